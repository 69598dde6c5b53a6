"""
Core infrastructure for the AUTOCLAUDE daemon: configuration, the task store,
logging, error tracking, and the external CLI wrappers.
"""

__version__ = "0.3.0"
