"""
AUTOCLAUDE Daemon
=================

Autonomous agent daemon for the kanban task manager.

Polls the shared task store for tasks flagged for automated processing,
claims them under a lease, runs the Claude Code CLI against a clone of the
project's repository, and opens a pull request with the result.

Quick Start:
    python run.py               # Validate CLI tools and start polling
    python run.py --once        # Run a single poll cycle and exit
    python run.py --check       # Only validate dependencies

See DESIGN.md for the lease protocol. The release version lives in
``autoclaude.core.__version__``.
"""

__author__ = "Auto Claude Team"
