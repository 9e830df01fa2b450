"""Enqueuer - turns a user request into queued job rows."""

from datetime import timedelta
from uuid import UUID

import structlog

from geoscale.core.timezone import utcnow
from geoscale.models.job import Job, JobKind, JobStatus
from geoscale.models.location_keyword import SubjectStatus
from geoscale.services.exceptions import ValidationError
from geoscale.uow import UnitOfWork

logger = structlog.get_logger(__name__)


async def enqueue_jobs(
    uow: UnitOfWork,
    kind: JobKind,
    subject_ids: list[UUID],
    owner_id: UUID,
    project_id: UUID,
    priority: int = 0,
    max_attempts: int = 3,
) -> list[UUID]:
    """Insert one queued job per subject.

    Duplicate subject IDs are collapsed, keeping the first occurrence. Jobs from
    one request get strictly increasing `created_at` values so that, at equal
    priority, they are dispatched in request order.

    Content generation subjects are flipped to `queued` in the same transaction
    so the UI reflects the request immediately.

    Args:
        uow: Unit of work the inserts join (committed by the caller's context)
        kind: Job kind for every job in the request
        subject_ids: Location keyword IDs to act upon
        owner_id: Requesting user
        project_id: Project the subjects belong to
        priority: Higher runs first (default: 0)
        max_attempts: Attempts before a job is terminally failed (default: 3)

    Returns:
        IDs of the created jobs, in request order

    Raises:
        ValidationError: If subject_ids is empty or max_attempts < 1
    """
    if not subject_ids:
        raise ValidationError("subject_ids must contain at least one subject")
    if max_attempts < 1:
        raise ValidationError(f"max_attempts must be >= 1, got {max_attempts}")

    unique_ids = list(dict.fromkeys(subject_ids))
    base = utcnow()

    jobs = [
        Job(
            kind=kind,
            subject_id=subject_id,
            owner_id=owner_id,
            project_id=project_id,
            status=JobStatus.QUEUED,
            attempts=0,
            max_attempts=max_attempts,
            priority=priority,
            created_at=base + timedelta(microseconds=offset),
            updated_at=base,
        )
        for offset, subject_id in enumerate(unique_ids)
    ]
    await uow.jobs.add_many(jobs)

    if kind == JobKind.CONTENT_GENERATION:
        await uow.location_keywords.set_status(unique_ids, SubjectStatus.QUEUED, now=base)

    logger.info(
        "jobs.enqueued",
        kind=kind.value,
        project_id=str(project_id),
        jobs_created=len(jobs),
        duplicates_dropped=len(subject_ids) - len(unique_ids),
        priority=priority,
    )
    return [job.id for job in jobs]
