"""Dispatcher and background trigger for the job queue."""

from geoscale.workers.dispatcher import (
    DispatchConfig,
    Dispatcher,
    DispatchSummary,
    JobResult,
)
from geoscale.workers.scheduler import WorkerHandle, create_resilient_worker, run_dispatch_loop

__all__ = [
    "DispatchConfig",
    "Dispatcher",
    "DispatchSummary",
    "JobResult",
    "WorkerHandle",
    "create_resilient_worker",
    "run_dispatch_loop",
]
