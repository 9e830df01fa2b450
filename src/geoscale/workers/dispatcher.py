"""Dispatcher - one stateless pass over the job queue.

Each invocation of `Dispatcher.run_cycle()` is triggered externally (cron via
POST /dispatch, the CLI, or the optional in-process trigger) and re-derives
everything it needs from the jobs table. Nothing survives between cycles.

Cycle:
1. Reset jobs stuck in 'processing' past the threshold (crash recovery)
2. Overlap guard: if any job is still 'processing', do nothing
3. Select up to `batch_size` queued jobs (priority DESC, created_at ASC)
4. Process them strictly sequentially while the time budget lasts:
   - Exhausted jobs are failed without another attempt
   - Each job is claimed with a compare-and-swap; a lost claim is skipped
   - The effect executor runs under a per-job timeout
   - The outcome (job state, subject status, result fields, audit record)
     is committed in a single transaction
5. Return a summary

## Transactions

Unlike request handlers, a cycle is not one Unit of Work. Each decision point
gets its own short UoW so that:

- the claim ('processing') is committed and visible to other cycles before the
  slow external call starts, and
- one job's outcome commits independently of the others in the batch.

No transaction is held open across an executor call.

## Failure handling

A job's failure never aborts the cycle: executor exceptions are classified
(`is_retryable`), written to the job row and the audit log, and the loop moves
on. Database errors are not caught here; they abort the cycle and surface to
the caller as an infrastructure failure.
"""

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable
from uuid import UUID

import structlog

from geoscale.core.config import Settings
from geoscale.core.timezone import utcnow
from geoscale.models.job import InvalidStateTransition, Job, JobKind, JobStatus
from geoscale.models.location_keyword import SubjectStatus
from geoscale.services.content.generator import OpenRouterContentGenerator
from geoscale.services.effects import (
    ContentGenerator,
    GeneratedContent,
    PageContext,
    PagePublisher,
    PublishResult,
)
from geoscale.services.exceptions import (
    ExecutorTimeoutError,
    ExhaustedRetriesError,
    NotFoundError,
    is_retryable,
)
from geoscale.services.wordpress.publisher import WordPressPublisher
from geoscale.workers.projection import (
    audit_entry,
    status_on_claim,
    status_on_failure,
    status_on_success,
)

logger = structlog.get_logger(__name__)

STUCK_JOB_MESSAGE = "stuck job reset: job exceeded the processing threshold and was requeued"


@dataclass
class DispatchConfig:
    """Tunables for one dispatch cycle."""

    batch_size: int = 5
    time_budget_seconds: float = 50.0
    job_timeout_seconds: float = 30.0
    stuck_threshold_seconds: float = 300.0
    surface_error_on_retry: bool = True

    @classmethod
    def from_settings(cls, settings: Settings) -> "DispatchConfig":
        return cls(
            batch_size=settings.dispatch_batch_size,
            time_budget_seconds=settings.dispatch_time_budget_seconds,
            job_timeout_seconds=settings.job_timeout_seconds,
            stuck_threshold_seconds=settings.stuck_job_threshold_seconds,
            surface_error_on_retry=settings.surface_error_on_retry,
        )


@dataclass
class JobResult:
    """Outcome of one job within a cycle."""

    job_id: UUID
    success: bool
    error: str | None = None


@dataclass
class DispatchSummary:
    """Result of one dispatch cycle."""

    skipped: bool = False
    results: list[JobResult] = field(default_factory=list)
    reclaimed: int = 0
    budget_exhausted: bool = False

    @property
    def processed(self) -> int:
        return len(self.results)

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if not r.success)


class Dispatcher:
    """Drives jobs through queued -> processing -> completed | queued | failed."""

    def __init__(
        self,
        uow_factory: Callable,
        content_generator: ContentGenerator,
        publisher: PagePublisher,
        config: DispatchConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
        now: Callable[[], datetime] = utcnow,
    ):
        """Initialize dispatcher.

        Args:
            uow_factory: Factory producing UnitOfWork instances (one per decision point)
            content_generator: Executor for content-generation jobs
            publisher: Executor for wordpress-push jobs
            config: Cycle tunables (default: DispatchConfig())
            clock: Monotonic clock used for the time budget
            now: Wall clock used for persisted timestamps
        """
        self.uow_factory = uow_factory
        self.content_generator = content_generator
        self.publisher = publisher
        self.config = config or DispatchConfig()
        self.clock = clock
        self.now = now

    @classmethod
    def from_settings(cls, settings: Settings, uow_factory: Callable) -> "Dispatcher":
        """Wire the production executors (OpenRouter, WordPress plugin)."""
        return cls(
            uow_factory=uow_factory,
            content_generator=OpenRouterContentGenerator.from_settings(settings),
            publisher=WordPressPublisher.from_settings(settings),
            config=DispatchConfig.from_settings(settings),
        )

    async def run_cycle(self, kind: JobKind | None = None) -> DispatchSummary:
        """Run one dispatch cycle.

        Args:
            kind: Restrict the cycle (reclaim, guard, batch) to one job kind.
                None treats the whole jobs table as one queue.

        Returns:
            DispatchSummary (skipped=True when the overlap guard declined to run)

        Raises:
            SQLAlchemyError: Job store unreachable - the cycle is aborted
        """
        started = self.clock()
        log = logger.bind(kind=kind.value if kind else "all")
        summary = DispatchSummary()

        reclaimed = await self.reclaim_stuck_jobs(kind)
        summary.reclaimed = len(reclaimed)

        async with await self.uow_factory() as uow:
            in_flight = await uow.jobs.count_processing(kind)
        if in_flight > 0:
            log.info("dispatch.skipped", reason="previous_batch_processing", processing=in_flight)
            summary.skipped = True
            return summary

        async with await self.uow_factory() as uow:
            jobs = await uow.jobs.dequeue_batch(self.config.batch_size, kind)

        if not jobs:
            log.debug("dispatch.queue_empty")
            return summary

        log.info("dispatch.started", batch_size=len(jobs))

        for index, job in enumerate(jobs):
            elapsed = self.clock() - started
            if elapsed >= self.config.time_budget_seconds:
                summary.budget_exhausted = True
                log.info(
                    "dispatch.budget_exhausted",
                    elapsed_seconds=round(elapsed, 3),
                    deferred=len(jobs) - index,
                )
                break

            result = await self.process_job(job)
            if result is not None:
                summary.results.append(result)

        log.info(
            "dispatch.completed",
            processed=summary.processed,
            succeeded=summary.succeeded,
            failed=summary.failed,
            reclaimed=summary.reclaimed,
            duration_seconds=round(self.clock() - started, 3),
        )
        return summary

    async def reclaim_stuck_jobs(self, kind: JobKind | None = None) -> list[UUID]:
        """Requeue jobs left in 'processing' longer than the stuck threshold.

        Attempts are not incremented: the abandoned attempt is voided.
        """
        threshold = self.now() - timedelta(seconds=self.config.stuck_threshold_seconds)
        async with await self.uow_factory() as uow:
            reset_ids = await uow.jobs.reset_stuck(
                older_than=threshold, error_message=STUCK_JOB_MESSAGE, kind=kind, now=self.now()
            )

        if reset_ids:
            logger.warning(
                "dispatch.stuck_jobs_reset",
                count=len(reset_ids),
                job_ids=[str(job_id) for job_id in reset_ids],
            )
        return reset_ids

    async def process_job(self, job: Job) -> JobResult | None:
        """Run one attempt of a job.

        Args:
            job: Job snapshot from batch selection (detached from any session)

        Returns:
            JobResult, or None if another cycle claimed the job first or took it
            over while the executor ran
        """
        if job.exhausted:
            return await self._fail_exhausted(job)

        attempt = await self._claim(job)
        if attempt is None:
            logger.info("job.claim_lost", job_id=str(job.id))
            return None

        start_time = time.time()
        try:
            context = await self._load_context(job)
        except NotFoundError as e:
            return await self._record_failure(job, attempt, e)

        try:
            outcome = await asyncio.wait_for(
                self._execute(job.kind, context), timeout=self.config.job_timeout_seconds
            )
        except asyncio.TimeoutError:
            error: Exception = ExecutorTimeoutError(
                f"{job.kind.value} timed out after {self.config.job_timeout_seconds}s"
            )
            return await self._record_failure(job, attempt, error)
        except Exception as e:
            return await self._record_failure(job, attempt, e)

        try:
            return await self._record_success(
                job, attempt, context, outcome, time.time() - start_time
            )
        except NotFoundError as e:
            return await self._record_failure(job, attempt, e)

    async def _claim(self, job: Job) -> int | None:
        """Claim the job and project the claim onto the subject, atomically.

        Returns:
            The attempt number owned by this cycle, or None if the claim was lost
        """
        now = self.now()
        async with await self.uow_factory() as uow:
            attempt = await uow.jobs.claim(job.id, now=now)
            if attempt is None:
                return None

            claimed_status = status_on_claim(job.kind)
            if claimed_status is not None:
                await uow.location_keywords.set_status([job.subject_id], claimed_status, now=now)

        logger.info(
            "job.claimed",
            job_id=str(job.id),
            kind=job.kind.value,
            subject_id=str(job.subject_id),
            attempt_number=attempt,
            max_attempts=job.max_attempts,
        )
        return attempt

    async def _load_context(self, job: Job) -> PageContext:
        """Load the subject and everything its executor needs.

        Raises:
            NotFoundError: Subject or its project no longer exists
        """
        async with await self.uow_factory() as uow:
            subject = await uow.location_keywords.get_by_id(job.subject_id)
            if subject is None:
                raise NotFoundError(f"Location keyword not found: {job.subject_id}")

            project = await uow.projects.get_by_id(subject.project_id)
            if project is None:
                raise NotFoundError(f"Project not found: {subject.project_id}")

            parent = None
            if subject.parent_location_id is not None:
                parent = await uow.location_keywords.get_by_id(subject.parent_location_id)

            context = PageContext(subject=subject, project=project, parent=parent)
            if job.kind == JobKind.WORDPRESS_PUSH:
                context.page = await uow.generated_pages.get_by_location_keyword(subject.id)
            else:
                context.services = await uow.project_services.list_for_project(project.id)
                context.testimonials = await uow.project_testimonials.list_for_project(
                    project.id
                )
                if subject.service_id is not None:
                    context.faqs = await uow.project_services.list_faqs(subject.service_id)

        return context

    async def _execute(
        self, kind: JobKind, context: PageContext
    ) -> GeneratedContent | PublishResult:
        if kind == JobKind.CONTENT_GENERATION:
            return await self.content_generator.generate(context)
        return await self.publisher.publish(context)

    def _executor_for(self, kind: JobKind) -> tuple[str, str | None]:
        """(api_type, default endpoint) for audit records."""
        if kind == JobKind.CONTENT_GENERATION:
            return self.content_generator.api_type, self.content_generator.endpoint
        return self.publisher.api_type, None

    async def _lock_owned(self, uow, job: Job, attempt: int) -> Job:
        """Lock the job row and check this cycle still owns the attempt.

        Raises:
            InvalidStateTransition: Job is gone, no longer processing, or was
                reclaimed and claimed again by another cycle
        """
        locked = await uow.jobs.get_for_update(job.id)
        if locked is None:
            raise InvalidStateTransition(f"Job {job.id} no longer exists")
        if locked.status != JobStatus.PROCESSING or locked.attempts != attempt:
            raise InvalidStateTransition(
                f"Job {job.id} attempt {attempt} no longer owned "
                f"(status={locked.status.value}, attempts={locked.attempts})"
            )
        return locked

    async def _record_success(
        self,
        job: Job,
        attempt: int,
        context: PageContext,
        outcome: GeneratedContent | PublishResult,
        duration: float,
    ) -> JobResult | None:
        """Commit a successful attempt: result fields, subject status, job, audit.

        Raises:
            NotFoundError: Subject was deleted while the executor ran

        Returns:
            JobResult, or None if the outcome was discarded because another
            cycle owns the job now
        """
        now = self.now()
        api_type, endpoint = self._executor_for(job.kind)

        try:
            async with await self.uow_factory() as uow:
                locked = await self._lock_owned(uow, job, attempt)
                locked.mark_completed(now)

                subject = await uow.location_keywords.get_by_id(job.subject_id)
                if subject is None:
                    raise NotFoundError(f"Location keyword not found: {job.subject_id}")

                if isinstance(outcome, GeneratedContent):
                    page = await uow.generated_pages.upsert(
                        project_id=subject.project_id,
                        location_keyword_id=subject.id,
                        title=outcome.title,
                        slug=outcome.slug,
                        content=outcome.body,
                        meta_title=outcome.meta_title,
                        meta_description=outcome.meta_description,
                    )
                    subject.set_status(status_on_success(job.kind), now)
                    request_body = {"phrase": subject.phrase, **outcome.audit}
                    response_body = {"success": True, "generated_page_id": str(page.id)}
                else:
                    subject.mark_pushed(outcome.page_id, outcome.page_url, now)
                    endpoint = outcome.endpoint
                    request_body = {"phrase": subject.phrase, "update": outcome.updated}
                    response_body = {"success": True, "page_url": outcome.page_url}

                await uow.api_logs.add(
                    audit_entry(
                        locked,
                        api_type=api_type,
                        endpoint=endpoint,
                        status_code=200,
                        request_body=request_body,
                        response_body=response_body,
                    )
                )
                attempt_number = locked.attempts
        except InvalidStateTransition as e:
            # Reclaimed while the executor ran; the queued copy or its new owner wins
            logger.warning("job.outcome_discarded", job_id=str(job.id), reason=str(e))
            return None

        logger.info(
            "job.succeeded",
            job_id=str(job.id),
            kind=job.kind.value,
            subject_id=str(job.subject_id),
            attempt_number=attempt_number,
            duration_seconds=round(duration, 3),
        )
        return JobResult(job_id=job.id, success=True)

    async def _record_failure(
        self, job: Job, attempt: int, error: BaseException
    ) -> JobResult | None:
        """Commit a failed attempt: requeue or fail the job, project onto the subject."""
        now = self.now()
        message = str(error) or type(error).__name__
        retryable = is_retryable(error)
        api_type, endpoint = self._executor_for(job.kind)

        try:
            async with await self.uow_factory() as uow:
                locked = await self._lock_owned(uow, job, attempt)

                terminal = not retryable or locked.exhausted
                if terminal:
                    locked.mark_failed(message, now)
                else:
                    locked.requeue(message, now)

                subject_status = status_on_failure(
                    job.kind, terminal, self.config.surface_error_on_retry
                )
                if subject_status is not None:
                    await uow.location_keywords.set_status(
                        [job.subject_id], subject_status, now=now
                    )

                await uow.api_logs.add(
                    audit_entry(
                        locked,
                        api_type=api_type,
                        endpoint=endpoint,
                        status_code=500,
                        error_message=message,
                    )
                )
                attempt_number = locked.attempts
                max_attempts = locked.max_attempts
        except InvalidStateTransition as e:
            logger.warning("job.outcome_discarded", job_id=str(job.id), reason=str(e))
            return None

        log_method = logger.error if terminal else logger.warning
        log_method(
            "job.failed" if terminal else "job.retry",
            job_id=str(job.id),
            kind=job.kind.value,
            subject_id=str(job.subject_id),
            error_type=type(error).__name__,
            error_message=message,
            retryable=retryable,
            attempt_number=attempt_number,
            max_attempts=max_attempts,
        )
        return JobResult(job_id=job.id, success=False, error=message)

    async def _fail_exhausted(self, job: Job) -> JobResult | None:
        """Fail a queued job whose attempts are already consumed.

        Happens when the final attempt was abandoned and reclaimed by the
        stuck-job sweep. No executor call is made.
        """
        error = ExhaustedRetriesError("Max attempts exceeded")
        now = self.now()
        api_type, endpoint = self._executor_for(job.kind)

        async with await self.uow_factory() as uow:
            locked = await uow.jobs.get_for_update(job.id)
            if locked is None or locked.status != JobStatus.QUEUED:
                return None

            locked.mark_failed(f"{error} ({locked.attempts}/{locked.max_attempts})", now)
            await uow.location_keywords.set_status([job.subject_id], SubjectStatus.ERROR, now=now)
            await uow.api_logs.add(
                audit_entry(
                    locked,
                    api_type=api_type,
                    endpoint=endpoint,
                    status_code=500,
                    error_message=str(error),
                )
            )

        logger.warning(
            "job.failed",
            job_id=str(job.id),
            kind=job.kind.value,
            error_type=type(error).__name__,
            attempts=job.attempts,
            max_attempts=job.max_attempts,
        )
        return JobResult(job_id=job.id, success=False, error=str(error))
