"""
Coordination services: column role inference, the claim/lease protocol,
task selection, the processing pipeline and the poll loop.
"""

from .claims import ClaimCoordinator
from .columns import ColumnRoleCache, classify_columns
from .events import EventEmitter, EventType
from .pipeline import ProcessingPipeline
from .poll_loop import PollLoop
from .selector import SelectedTask, TaskSelector

__all__ = [
    "ClaimCoordinator",
    "ColumnRoleCache",
    "EventEmitter",
    "EventType",
    "PollLoop",
    "ProcessingPipeline",
    "SelectedTask",
    "TaskSelector",
    "classify_columns",
]
