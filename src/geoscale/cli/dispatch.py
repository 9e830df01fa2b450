"""CLI command that runs one dispatch cycle.

This is the cron-invoked form of the worker: each invocation is one stateless
cycle (reclaim, overlap guard, batch, summary), then the process exits.

Usage:
    python -m geoscale.cli dispatch [OPTIONS]

Examples:
    # Process up to one batch across all job kinds
    python -m geoscale.cli dispatch

    # Only WordPress pushes
    python -m geoscale.cli dispatch --kind wordpress-push

    # Verbose logging
    python -m geoscale.cli dispatch -v
"""

import asyncio
import sys
from argparse import ArgumentParser, Namespace

import structlog
from sqlalchemy.exc import SQLAlchemyError

from geoscale.core import timezone  # noqa: F401
from geoscale.core.config import Settings, configure_logging
from geoscale.core.database import setup_db_session
from geoscale.models.job import JobKind
from geoscale.uow import create_uow_factory
from geoscale.workers.dispatcher import Dispatcher, DispatchSummary

logger = structlog.get_logger()


def parse_args(argv: list[str] | None = None) -> Namespace:
    """Parse command-line arguments."""
    parser = ArgumentParser(
        description="Run one dispatch cycle over the job queue",
        epilog="Intended to be scheduled by cron; every run is independent",
    )

    parser.add_argument(
        "--kind",
        choices=[kind.value for kind in JobKind],
        help="Only dispatch jobs of this kind (default: all kinds)",
    )

    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging (DEBUG level)",
    )

    return parser.parse_args(argv)


def print_summary(summary: DispatchSummary) -> None:
    print("\n" + "=" * 60)
    print("Dispatch Summary")
    print("=" * 60)
    if summary.skipped:
        print("Skipped: a previous batch is still processing")
    else:
        print(f"Stuck jobs reset: {summary.reclaimed}")
        print(f"Processed: {summary.processed}")
        print(f"Succeeded: {summary.succeeded}")
        print(f"Failed: {summary.failed}")
        if summary.budget_exhausted:
            print("Time budget exhausted, remaining jobs deferred to the next cycle")

        failures = [r for r in summary.results if not r.success]
        for result in failures[:5]:
            print(f"  - {result.job_id}: {result.error}")
        if len(failures) > 5:
            print(f"  ... and {len(failures) - 5} more failures")
    print("=" * 60 + "\n")


async def async_main(argv: list[str] | None = None) -> int:
    """Main CLI entry point (async).

    Returns:
        Exit code: 0 (cycle ran or was skipped), 1 (job store error)
    """
    args = parse_args(argv)

    settings = Settings()  # type: ignore[call-arg]
    if args.verbose:
        settings.log_level = "DEBUG"
    configure_logging(settings)

    kind = JobKind(args.kind) if args.kind else None
    logger.info("cli.dispatch_started", kind=args.kind or "all")

    session_factory = setup_db_session(settings.database_url, settings.db_pool_size)
    dispatcher = Dispatcher.from_settings(settings, create_uow_factory(session_factory))

    try:
        summary = await dispatcher.run_cycle(kind)
    except SQLAlchemyError as e:
        logger.error("cli.store_unavailable", error=str(e), error_type=type(e).__name__)
        print(f"\nError: job store unavailable: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        logger.info("cli.interrupted")
        print("\nDispatch interrupted by user", file=sys.stderr)
        return 130

    print_summary(summary)
    return 0


def main(argv: list[str] | None = None) -> int:
    """Synchronous entry point for CLI."""
    return asyncio.run(async_main(argv))


if __name__ == "__main__":
    sys.exit(main())
