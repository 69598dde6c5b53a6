"""
AUTOCLAUDE CLI - Main Entry Point
=================================

Wires the daemon together from environment configuration and runs the poll
loop until SIGINT/SIGTERM.
"""

import argparse
import signal
import sys
import threading
from pathlib import Path

import structlog

from autoclaude.core import __version__
from autoclaude.core.claude_cli import ClaudeCLI
from autoclaude.core.commands import SubprocessCommandRunner
from autoclaude.core.config import ConfigError, DaemonConfig
from autoclaude.core.dependency_validator import (
    DependencyValidationError,
    validate_cli_dependencies,
)
from autoclaude.core.git_workspace import GitWorkspace
from autoclaude.core.github_cli import GitHubCLI
from autoclaude.core.logging_config import setup_logging
from autoclaude.core.sentry import capture_exception, init_sentry
from autoclaude.core.store import create_schema, create_store_engine
from autoclaude.services import (
    ClaimCoordinator,
    ColumnRoleCache,
    EventEmitter,
    PollLoop,
    ProcessingPipeline,
    TaskSelector,
)

logger = structlog.get_logger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="AUTOCLAUDE - turns kanban tasks into pull requests",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run the daemon until interrupted
  python apps/autoclaude/run.py

  # Run a single poll cycle and exit
  python apps/autoclaude/run.py --once

  # Validate configuration and CLI tools, then exit
  python apps/autoclaude/run.py --check

  # Create the tables in a local development database
  DATABASE_URL=sqlite:///autoclaude.db python apps/autoclaude/run.py --init-schema --once

Prerequisites:
  1. claude CLI installed and logged in
  2. gh CLI installed and authenticated (gh auth login)
  3. DATABASE_URL pointing at the kanban database

Environment Variables:
  DATABASE_URL         Database URL (required)
  POLL_INTERVAL_MS     Delay between poll cycles (default: 10000)
  INSTANCE_ID          Lease owner id (default: autoclaude-<start ms>)
  CLAUDE_MODEL         Model for the claude CLI (default: sonnet)
  DEBUG=true           Debug logging
  LOG_JSON=true        JSON log lines
  SENTRY_DSN           Enable error reporting
        """,
    )
    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Load environment variables from this file (default: .env)",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run one poll cycle and exit",
    )
    parser.add_argument(
        "--check",
        action="store_true",
        help="Validate configuration and CLI dependencies, then exit",
    )
    parser.add_argument(
        "--init-schema",
        action="store_true",
        help="Create missing tables before polling (development databases)",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        default=None,
        help="Enable debug logging",
    )
    return parser.parse_args(argv)


def print_banner(config: DaemonConfig) -> None:
    """Log the startup banner."""
    logger.info("=" * 50)
    logger.info("AUTOCLAUDE daemon starting")
    logger.info(f"  Instance:      {config.instance_id}")
    logger.info(f"  Poll interval: {config.poll_interval_ms}ms")
    logger.info(f"  Work dir:      {config.work_dir}")
    logger.info(f"  Model:         {config.claude_model}")
    logger.info(f"  Max retries:   {config.max_retry_attempts}")
    logger.info("=" * 50)


def build_poll_loop(
    config: DaemonConfig,
    stop_event: threading.Event,
    init_schema: bool = False,
) -> PollLoop:
    """Construct the engine, services and poll loop for one process."""
    runner = SubprocessCommandRunner()
    engine = create_store_engine(config.database_url)
    if init_schema:
        create_schema(engine)

    events = EventEmitter(engine, config.instance_id)
    column_cache = ColumnRoleCache.for_engine(engine, ttl_seconds=config.column_cache_ttl)
    coordinator = ClaimCoordinator(
        engine, config.instance_id, claim_timeout_seconds=config.claim_timeout
    )
    selector = TaskSelector(
        engine,
        column_cache,
        claim_timeout_seconds=config.claim_timeout,
        max_retry_attempts=config.max_retry_attempts,
        max_concurrent=config.max_concurrent,
    )
    pipeline = ProcessingPipeline(
        coordinator=coordinator,
        workspace=GitWorkspace(runner, config.work_dir, timeout=config.git_timeout),
        github=GitHubCLI(runner, timeout=config.git_timeout),
        claude=ClaudeCLI(runner, model=config.claude_model, timeout=config.claude_timeout),
        events=events,
        config=config,
    )
    return PollLoop(selector, coordinator, pipeline, config, stop_event, events)


def install_signal_handlers(stop_event: threading.Event) -> None:
    """Set ``stop_event`` on SIGINT/SIGTERM so the loop exits between cycles."""

    def _handle(signum, _frame):
        logger.info("Shutdown requested", signal=signal.Signals(signum).name)
        stop_event.set()

    signal.signal(signal.SIGINT, _handle)
    signal.signal(signal.SIGTERM, _handle)


def main(argv: list[str] | None = None) -> None:
    """Main CLI entry point."""
    args = parse_args(argv)
    setup_logging(debug=args.debug)

    # Loads .env, so SENTRY_DSN may come from there
    try:
        config = DaemonConfig.from_env(env_file=args.env_file)
    except ConfigError as e:
        sys.exit(f"Configuration error: {e}")

    init_sentry(component="autoclaude-daemon", release=f"autoclaude@{__version__}")

    try:
        validate_cli_dependencies(SubprocessCommandRunner())
    except DependencyValidationError as e:
        sys.exit(f"Dependency check failed: {e}")

    if args.check:
        logger.info("Configuration and dependencies OK")
        return

    config.work_dir.mkdir(parents=True, exist_ok=True)
    print_banner(config)

    stop_event = threading.Event()
    install_signal_handlers(stop_event)

    try:
        loop = build_poll_loop(config, stop_event, init_schema=args.init_schema)
        if args.once:
            loop.run_cycle()
        else:
            loop.run_forever()
    except KeyboardInterrupt:
        sys.exit(130)
    except Exception as e:
        capture_exception(e)
        print(f"\nUnexpected error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
