"""In-process dispatch trigger.

Production deployments call POST /dispatch from an external cron. When
DISPATCH_INTERVAL_SECONDS > 0 the API process fires the same stateless cycle
itself on a fixed interval instead. The loop holds no queue state: every tick
is an independent `Dispatcher.run_cycle()`.
"""

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable

import structlog

from geoscale.workers.dispatcher import Dispatcher

logger = structlog.get_logger(__name__)

RESTART_DELAY_SECONDS = 1
ERROR_BACKOFF_SECONDS = 5


async def run_dispatch_loop(
    dispatcher: Dispatcher,
    interval_seconds: float,
    shutdown_event: asyncio.Event | None = None,
) -> None:
    """Run one dispatch cycle every `interval_seconds` until cancelled or shut down.

    Args:
        dispatcher: Dispatcher wired with executors and a UoW factory
        interval_seconds: Delay between the end of one cycle and the start of the next
        shutdown_event: Loop exits before the next cycle once this is set
    """
    logger.info("scheduler.started", interval_seconds=interval_seconds)

    try:
        while shutdown_event is None or not shutdown_event.is_set():
            try:
                await dispatcher.run_cycle()
                await asyncio.sleep(interval_seconds)

            except asyncio.CancelledError:
                raise

            except Exception as e:
                # Job store unreachable or similar - log and back off
                logger.error(
                    "scheduler.cycle_error",
                    error_type=type(e).__name__,
                    error_message=str(e),
                    exc_info=True,
                )
                await asyncio.sleep(ERROR_BACKOFF_SECONDS)

    except asyncio.CancelledError:
        logger.info("scheduler.stopped")
        raise

    logger.info("scheduler.stopped")


@dataclass
class WorkerHandle:
    """Tracks the live task of a resilient worker across restarts."""

    name: str
    task: asyncio.Task

    async def stop(self) -> None:
        self.task.cancel()
        await asyncio.gather(self.task, return_exceptions=True)


def create_resilient_worker(
    coro_func: Callable[[], Awaitable[None]],
    worker_name: str,
    shutdown_event: asyncio.Event,
) -> WorkerHandle:
    """Create a worker task that restarts itself after a crash.

    Args:
        coro_func: Zero-argument coroutine function running the worker loop
        worker_name: Human-readable worker name for logging
        shutdown_event: Event to signal graceful shutdown

    Returns:
        Handle whose `task` always points at the current worker task
    """

    def on_worker_done(task: asyncio.Task):
        if shutdown_event.is_set():
            logger.info("worker.shutdown_complete", worker=worker_name)
            return

        if task.cancelled():
            logger.info("worker.cancelled", worker=worker_name)
            return

        exc = task.exception()
        if exc:
            logger.error(
                "worker.crashed",
                worker=worker_name,
                error=str(exc),
                error_type=type(exc).__name__,
                retry_in_seconds=RESTART_DELAY_SECONDS,
                exc_info=exc,
            )
        else:
            logger.warning(
                "worker.stopped_unexpectedly",
                worker=worker_name,
                retry_in_seconds=RESTART_DELAY_SECONDS,
            )

        async def restart_worker():
            await asyncio.sleep(RESTART_DELAY_SECONDS)

            # Shutdown may have been requested during the sleep
            if shutdown_event.is_set():
                return

            logger.info("worker.restarting", worker=worker_name)
            new_task = asyncio.create_task(coro_func())
            new_task.add_done_callback(on_worker_done)
            handle.task = new_task

        asyncio.create_task(restart_worker())

    handle = WorkerHandle(name=worker_name, task=asyncio.create_task(coro_func()))
    handle.task.add_done_callback(on_worker_done)
    return handle
