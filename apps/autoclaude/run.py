#!/usr/bin/env python3
"""
AUTOCLAUDE Daemon
=================

Turns kanban tasks flagged for automation into pull requests.

Each poll cycle the daemon looks for tasks sent back with review feedback
first, then for new tasks in a project's backlog column. A task is claimed
under a lease, implemented by the Claude Code CLI in a fresh clone of the
project's repository, and resolved with a PR link. Several daemons may share
one database; the lease keeps them off each other's tasks.

Usage:
    python apps/autoclaude/run.py
    python apps/autoclaude/run.py --once
    python apps/autoclaude/run.py --check

Prerequisites:
    - DATABASE_URL environment variable set (or in .env)
    - Claude Code CLI installed and logged in
    - GitHub CLI installed and authenticated (gh auth login)
"""

import sys
from pathlib import Path

# Python version check - must be before any imports using 3.10+ syntax
if sys.version_info < (3, 10):  # noqa: UP036
    sys.exit(
        f"Error: AUTOCLAUDE requires Python 3.10 or higher.\n"
        f"You are running Python {sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}\n"
        f"\n"
        f"Please upgrade Python: https://www.python.org/downloads/"
    )

# Make the autoclaude package importable when run as a script
_APPS_DIR = Path(__file__).resolve().parent.parent
if str(_APPS_DIR) not in sys.path:
    sys.path.insert(0, str(_APPS_DIR))

from autoclaude.cli.main import main  # noqa: E402

if __name__ == "__main__":
    main()
