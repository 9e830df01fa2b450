"""Job repository for GeoScale backend.

Provides the job store: enqueue, batch selection, atomic claim and the
stuck-job sweep. Every dispatcher decision is re-derived from these queries,
no queue state is kept in process memory.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from geoscale.core.timezone import utcnow
from geoscale.models.job import ERROR_MESSAGE_MAX_LENGTH, Job, JobKind, JobStatus


class JobRepository:
    """Repository for Job entities.

    Claiming is a compare-and-swap on `status`, so two dispatch cycles racing
    on the same row cannot both win even if the overlap guard is bypassed.
    """

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy async session for database operations
        """
        self.session = session

    async def add_many(self, jobs: list[Job]) -> list[Job]:
        """Persist new jobs to database.

        Args:
            jobs: Job entities to persist

        Returns:
            Persisted jobs with generated IDs
        """
        self.session.add_all(jobs)
        await self.session.flush()
        return jobs

    async def get_by_id(self, job_id: UUID) -> Job | None:
        """Retrieve job by UUID.

        Args:
            job_id: Job's unique identifier

        Returns:
            Job if found, None otherwise
        """
        result = await self.session.execute(select(Job).where(Job.id == job_id))  # type: ignore[arg-type]
        return result.scalar_one_or_none()

    async def get_for_update(self, job_id: UUID) -> Job | None:
        """Retrieve job by UUID holding a row lock until the transaction ends.

        Used when writing an attempt's outcome so the status check and the
        write cannot interleave with the stuck-job sweep.
        """
        result = await self.session.execute(
            select(Job)
            .where(Job.id == job_id)  # type: ignore[arg-type]
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def dequeue_batch(self, limit: int, kind: JobKind | None = None) -> list[Job]:
        """Retrieve up to `limit` queued jobs in dispatch order.

        Query explanation:
        - WHERE status = 'queued': Only jobs waiting to run
        - ORDER BY priority DESC: Higher priority first
        - ORDER BY created_at ASC: Oldest first among equal priority
        - LIMIT: Batch size for one dispatch cycle

        This is a plain read. Ownership is taken per job by `claim()`.

        Args:
            limit: Maximum number of jobs to retrieve
            kind: Restrict to one job kind (None = all kinds)

        Returns:
            List of queued jobs, highest priority and oldest first
        """
        stmt = select(Job).where(Job.status == JobStatus.QUEUED)  # type: ignore[arg-type]
        if kind is not None:
            stmt = stmt.where(Job.kind == kind)  # type: ignore[arg-type]
        stmt = stmt.order_by(
            Job.priority.desc(),  # type: ignore[attr-defined]
            Job.created_at.asc(),  # type: ignore[attr-defined]
            Job.id.asc(),  # type: ignore[attr-defined]
        ).limit(limit)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def claim(self, job_id: UUID, now: datetime | None = None) -> int | None:
        """Atomically move a queued job to processing and consume one attempt.

        Query:
            UPDATE jobs
            SET status = 'processing', attempts = attempts + 1,
                started_at = :now, updated_at = :now
            WHERE id = :job_id AND status = 'queued' AND attempts < max_attempts
            RETURNING attempts

        Args:
            job_id: Job to claim
            now: Claim timestamp (default: current UTC time)

        Returns:
            The attempt number this claim consumed, or None if the job was
            already claimed, finished, or has no attempts left
        """
        now = now or utcnow()
        result = await self.session.execute(
            update(Job)
            .where(
                Job.id == job_id,  # type: ignore[arg-type]
                Job.status == JobStatus.QUEUED,  # type: ignore[arg-type]
                Job.attempts < Job.max_attempts,  # type: ignore[arg-type]
            )
            .values(
                status=JobStatus.PROCESSING,
                attempts=Job.attempts + 1,
                started_at=now,
                updated_at=now,
            )
            .returning(Job.attempts)
            .execution_options(synchronize_session=False)
        )
        return result.scalar_one_or_none()

    async def reset_stuck(
        self,
        older_than: datetime,
        error_message: str,
        kind: JobKind | None = None,
        now: datetime | None = None,
    ) -> list[UUID]:
        """Reset jobs abandoned in processing back to queued.

        Query:
            UPDATE jobs
            SET status = 'queued', error_message = :error_message, updated_at = :now
            WHERE status = 'processing' AND started_at < :older_than
            RETURNING id

        The attempt counter is not touched: the stuck attempt is voided, not consumed.
        Safe to run when nothing is stuck.

        Args:
            older_than: Jobs started before this instant are considered abandoned
            error_message: Diagnostic stored on each reset job
            kind: Restrict to one job kind (None = all kinds)
            now: Update timestamp (default: current UTC time)

        Returns:
            IDs of the jobs that were reset
        """
        stmt = update(Job).where(
            Job.status == JobStatus.PROCESSING,  # type: ignore[arg-type]
            Job.started_at < older_than,  # type: ignore[arg-type,operator]
        )
        if kind is not None:
            stmt = stmt.where(Job.kind == kind)  # type: ignore[arg-type]
        stmt = (
            stmt.values(
                status=JobStatus.QUEUED,
                error_message=error_message[:ERROR_MESSAGE_MAX_LENGTH],
                updated_at=now or utcnow(),
            )
            .returning(Job.id)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def count_processing(self, kind: JobKind | None = None) -> int:
        """Count jobs currently marked processing (the overlap guard query)."""
        return await self.count_by_status(JobStatus.PROCESSING, kind=kind)

    async def count_by_status(
        self,
        status: JobStatus,
        kind: JobKind | None = None,
        project_id: UUID | None = None,
    ) -> int:
        """Count jobs in a status, optionally scoped to a kind and project."""
        stmt = select(func.count(Job.id)).where(Job.status == status)  # type: ignore[arg-type]
        if kind is not None:
            stmt = stmt.where(Job.kind == kind)  # type: ignore[arg-type]
        if project_id is not None:
            stmt = stmt.where(Job.project_id == project_id)  # type: ignore[arg-type]
        result = await self.session.execute(stmt)
        return result.scalar() or 0

    async def get_latest_for_subject(
        self, subject_id: UUID, kind: JobKind | None = None
    ) -> Job | None:
        """Retrieve the most recent job for a subject.

        Args:
            subject_id: Subject's unique identifier
            kind: Restrict to one job kind (None = any kind)

        Returns:
            Latest Job if found, None otherwise
        """
        stmt = select(Job).where(Job.subject_id == subject_id)  # type: ignore[arg-type]
        if kind is not None:
            stmt = stmt.where(Job.kind == kind)  # type: ignore[arg-type]
        stmt = stmt.order_by(Job.created_at.desc()).limit(1)  # type: ignore[attr-defined]
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_by_project(
        self,
        project_id: UUID,
        kind: JobKind | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[Job]:
        """Retrieve jobs for a project with pagination.

        Returns:
            List of jobs ordered by created_at timestamp (newest first)
        """
        stmt = select(Job).where(Job.project_id == project_id)  # type: ignore[arg-type]
        if kind is not None:
            stmt = stmt.where(Job.kind == kind)  # type: ignore[arg-type]
        stmt = (
            stmt.order_by(Job.created_at.desc())  # type: ignore[attr-defined]
            .limit(limit)
            .offset(offset)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def queued_subject_ids(self, kind: JobKind | None = None) -> list[UUID]:
        """Subject IDs of all queued jobs, in dispatch order.

        Used to compute a subject's position in the queue.
        """
        stmt = select(Job.subject_id).where(Job.status == JobStatus.QUEUED)  # type: ignore[arg-type,call-overload]
        if kind is not None:
            stmt = stmt.where(Job.kind == kind)  # type: ignore[arg-type]
        stmt = stmt.order_by(
            Job.priority.desc(),  # type: ignore[attr-defined]
            Job.created_at.asc(),  # type: ignore[attr-defined]
            Job.id.asc(),  # type: ignore[attr-defined]
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
