"""
AUTOCLAUDE CLI
==============

Command-line entry point for the AUTOCLAUDE daemon (``autoclaude.cli.main``).
"""
