"""
Poll Loop
=========

The daemon's scheduler. Each cycle offers feedback tasks first, then new
backlog tasks; a task is processed only after this instance wins its claim.

An exception escaping a cycle (usually the store being unreachable) is logged,
reported, and answered with exponential backoff:

    delay = min(poll_interval * 2 ** consecutive_errors, max_backoff)

The loop stops only when ``stop_event`` is set. Shutdown is cooperative: the
event is checked between tasks and waited on between cycles, so a task that is
already running finishes first.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable, Iterable

import structlog

from autoclaude.core.config import DaemonConfig
from autoclaude.core.sentry import capture_exception

from .claims import ClaimCoordinator
from .events import EventEmitter
from .pipeline import ProcessingPipeline
from .selector import SelectedTask, TaskSelector

logger = structlog.get_logger(__name__)

EVENT_CLEANUP_INTERVAL_SECONDS = 3600


class PollLoop:
    def __init__(
        self,
        selector: TaskSelector,
        coordinator: ClaimCoordinator,
        pipeline: ProcessingPipeline,
        config: DaemonConfig,
        stop_event: threading.Event,
        events: EventEmitter | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.selector = selector
        self.coordinator = coordinator
        self.pipeline = pipeline
        self.config = config
        self.stop_event = stop_event
        self.events = events
        self._clock = clock
        self.consecutive_errors = 0
        self._last_event_cleanup: float | None = None

    def backoff_delay(self) -> float:
        """Seconds to wait after ``consecutive_errors`` failed cycles."""
        return min(
            self.config.poll_interval * (2**self.consecutive_errors),
            self.config.max_backoff,
        )

    def run_cycle(self) -> float:
        """
        Run one poll cycle.

        Returns:
            Seconds to wait before the next cycle
        """
        try:
            worked = self._process_feedback_tasks()
            if not self.stop_event.is_set():
                worked = self._process_new_tasks() or worked
        except Exception as e:
            self.consecutive_errors += 1
            delay = self.backoff_delay()
            # Sentry gets this once, through capture_exception
            logger.warning(
                "Poll cycle failed",
                consecutive_errors=self.consecutive_errors,
                retry_in_seconds=delay,
                exc_info=True,
            )
            capture_exception(e, consecutive_errors=self.consecutive_errors)
            return delay

        self.consecutive_errors = 0
        if not worked:
            self._idle_housekeeping()
        return self.config.poll_interval

    def run_forever(self) -> None:
        logger.info(
            "Poll loop started",
            instance=self.config.instance_id,
            poll_interval_seconds=self.config.poll_interval,
        )
        while not self.stop_event.is_set():
            delay = self.run_cycle()
            self.stop_event.wait(delay)
        logger.info("Poll loop stopped", instance=self.config.instance_id)

    def _claim_and_process(
        self,
        candidates: Iterable[SelectedTask],
        process: Callable[[SelectedTask], bool],
    ) -> bool:
        worked = False
        for selected in candidates:
            if self.stop_event.is_set():
                break
            if not self.coordinator.claim(selected.task.id, selected.roles.in_progress):
                continue
            if self.stop_event.is_set():
                # Stop arrived during the claim; hand the task back unstarted
                self.coordinator.release(selected.task.id)
                break
            worked = True
            process(selected)
        return worked

    def _process_feedback_tasks(self) -> bool:
        return self._claim_and_process(
            self.selector.get_feedback_tasks(), self.pipeline.process_feedback_task
        )

    def _process_new_tasks(self) -> bool:
        return self._claim_and_process(
            self.selector.get_claimable_tasks(), self.pipeline.process_new_task
        )

    def _idle_housekeeping(self) -> None:
        if self.events is None:
            return
        now = self._clock()
        if (
            self._last_event_cleanup is not None
            and now - self._last_event_cleanup < EVENT_CLEANUP_INTERVAL_SECONDS
        ):
            return
        self._last_event_cleanup = now

        removed = self.events.cleanup_old_events(self.config.event_retention_hours)
        if removed:
            logger.info("Removed old activity events", count=removed)
