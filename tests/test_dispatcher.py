"""Dispatcher cycle tests.

Effect executors are replaced by in-memory fakes and the budget clock by a
manually advanced counter, so every scenario runs in milliseconds:
- Batch processing within and beyond the time budget
- Retry until exhaustion, permanent failures, missing subjects
- Stuck-job reclaim and the overlap guard
- Status projection onto the subject and audit records
"""

import asyncio
from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from geoscale.core.timezone import utcnow
from geoscale.models.job import Job, JobKind, JobStatus
from geoscale.models.location_keyword import SubjectStatus
from geoscale.models.project_service import ProjectService, ServiceFaq
from geoscale.models.project_testimonial import ProjectTestimonial
from geoscale.services.effects import GeneratedContent, PageContext, PublishResult
from geoscale.services.enqueue import enqueue_jobs
from geoscale.services.exceptions import (
    ExternalServiceError,
    NotFoundError,
    PermanentServiceError,
)
from geoscale.workers.dispatcher import STUCK_JOB_MESSAGE, DispatchConfig, Dispatcher


class FakeClock:
    """Monotonic clock advanced explicitly by the fake executors."""

    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeGenerator:
    api_type = "openrouter"
    endpoint = "https://openrouter.test/api/v1/chat/completions"

    def __init__(self, clock=None, duration=0.0, error=None, side_effect=None):
        self.clock = clock
        self.duration = duration
        self.error = error
        self.side_effect = side_effect
        self.calls: list[PageContext] = []

    async def generate(self, context: PageContext) -> GeneratedContent:
        self.calls.append(context)
        if self.clock is not None:
            self.clock.advance(self.duration)
        if self.side_effect is not None:
            await self.side_effect(context)
        if self.error is not None:
            raise self.error
        return GeneratedContent(
            title=f"Web Design in {context.subject.location_name}",
            body="<h2>Why choose us</h2><p>Local experts.</p>",
            meta_title=f"Web Design in {context.subject.location_name} | Acme",
            meta_description="Professional web design.",
            slug="web-design-in-" + context.subject.location_name.lower(),
            audit={"model": "fake-model"},
        )


class FakePublisher:
    api_type = "wordpress"

    def __init__(self, error=None):
        self.error = error
        self.calls: list[PageContext] = []

    async def publish(self, context: PageContext) -> PublishResult:
        self.calls.append(context)
        if self.error is not None:
            raise self.error
        return PublishResult(
            page_id=101,
            page_url="https://acme.example/web-design-london",
            endpoint="https://acme.example/wp-json/geoscale/v1/publish",
        )


def make_dispatcher(uow_factory, generator=None, publisher=None, clock=None, now=None, **config):
    return Dispatcher(
        uow_factory=uow_factory,
        content_generator=generator or FakeGenerator(),
        publisher=publisher or FakePublisher(),
        config=DispatchConfig(**config),
        clock=clock or FakeClock(),
        now=now or utcnow,
    )


async def enqueue(uow_factory, project, subjects, kind=JobKind.CONTENT_GENERATION, **kwargs):
    async with await uow_factory() as uow:
        return await enqueue_jobs(
            uow,
            kind=kind,
            subject_ids=[s.id for s in subjects],
            owner_id=project.owner_id,
            project_id=project.id,
            **kwargs,
        )


async def load_job(uow_factory, job_id) -> Job:
    async with await uow_factory() as uow:
        return await uow.jobs.get_by_id(job_id)


async def load_subject(uow_factory, subject_id):
    async with await uow_factory() as uow:
        return await uow.location_keywords.get_by_id(subject_id)


@pytest.mark.asyncio
async def test_batch_of_five_completes_within_budget(uow_factory, project, make_subject):
    """Five jobs taking 2s each fit in a 50s budget."""
    subjects = [await make_subject(location=f"Town {i}") for i in range(5)]
    job_ids = await enqueue(uow_factory, project, subjects)
    clock = FakeClock()
    generator = FakeGenerator(clock=clock, duration=2.0)
    dispatcher = make_dispatcher(uow_factory, generator=generator, clock=clock)

    summary = await dispatcher.run_cycle()

    assert not summary.skipped
    assert (summary.processed, summary.succeeded, summary.failed) == (5, 5, 0)
    assert not summary.budget_exhausted
    assert [r.job_id for r in summary.results] == job_ids
    for job_id in job_ids:
        job = await load_job(uow_factory, job_id)
        assert job.status == JobStatus.COMPLETED
        assert job.attempts == 1
    for subject in subjects:
        assert (await load_subject(uow_factory, subject.id)).status == SubjectStatus.GENERATED


@pytest.mark.asyncio
async def test_successful_generation_writes_page_and_audit(uow_factory, project, subject):
    [job_id] = await enqueue(uow_factory, project, [subject])
    dispatcher = make_dispatcher(uow_factory)

    await dispatcher.run_cycle()

    async with await uow_factory() as uow:
        page = await uow.generated_pages.get_by_location_keyword(subject.id)
        logs = await uow.api_logs.list_by_job(job_id)

    assert page is not None
    assert page.title == "Web Design in London"
    assert page.slug == "web-design-in-london"
    assert len(logs) == 1
    assert logs[0].api_type == "openrouter"
    assert logs[0].status_code == 200
    assert logs[0].endpoint == FakeGenerator.endpoint
    assert logs[0].owner_id == project.owner_id
    assert logs[0].request_body["job_id"] == str(job_id)
    assert logs[0].request_body["model"] == "fake-model"
    assert logs[0].response_body["generated_page_id"] == str(page.id)


@pytest.mark.asyncio
async def test_budget_exhaustion_defers_remaining_jobs(uow_factory, project, make_subject):
    """Jobs not started before the budget runs out stay queued for the next cycle."""
    subjects = [await make_subject(location=f"Town {i}") for i in range(5)]
    job_ids = await enqueue(uow_factory, project, subjects)
    clock = FakeClock()
    generator = FakeGenerator(clock=clock, duration=20.0)
    dispatcher = make_dispatcher(uow_factory, generator=generator, clock=clock)

    summary = await dispatcher.run_cycle()

    # Jobs start at t=0, 20, 40; at t=60 the 50s budget is spent
    assert summary.processed == 3
    assert summary.budget_exhausted
    for job_id in job_ids[3:]:
        job = await load_job(uow_factory, job_id)
        assert job.status == JobStatus.QUEUED
        assert job.attempts == 0

    next_summary = await make_dispatcher(uow_factory).run_cycle()
    assert [r.job_id for r in next_summary.results] == job_ids[3:]


@pytest.mark.asyncio
async def test_always_failing_job_fails_after_max_attempts(uow_factory, project, subject):
    """Retryable failures are retried once per cycle until attempts are consumed."""
    [job_id] = await enqueue(uow_factory, project, [subject], max_attempts=3)
    generator = FakeGenerator(error=ExternalServiceError("OpenRouter API error: 503"))
    dispatcher = make_dispatcher(uow_factory, generator=generator)

    for cycle in range(1, 4):
        summary = await dispatcher.run_cycle()
        assert summary.failed == 1

        job = await load_job(uow_factory, job_id)
        assert job.attempts == cycle
        assert job.attempts <= job.max_attempts
        expected = JobStatus.FAILED if cycle == 3 else JobStatus.QUEUED
        assert job.status == expected
        assert job.error_message == "OpenRouter API error: 503"
        # Error is surfaced on the subject from the first failed attempt
        assert (await load_subject(uow_factory, subject.id)).status == SubjectStatus.ERROR

    summary = await dispatcher.run_cycle()
    assert summary.processed == 0
    assert len(generator.calls) == 3

    async with await uow_factory() as uow:
        logs = await uow.api_logs.list_by_job(job_id)
    assert [log.status_code for log in logs] == [500, 500, 500]
    assert [log.request_body["attempt"] for log in logs] == [1, 2, 3]


@pytest.mark.asyncio
async def test_error_hidden_until_terminal_when_surfacing_disabled(uow_factory, project, subject):
    [job_id] = await enqueue(uow_factory, project, [subject], max_attempts=2)
    generator = FakeGenerator(error=ExternalServiceError("timeout"))
    dispatcher = make_dispatcher(uow_factory, generator=generator, surface_error_on_retry=False)

    await dispatcher.run_cycle()
    assert (await load_subject(uow_factory, subject.id)).status == SubjectStatus.QUEUED

    await dispatcher.run_cycle()
    assert (await load_job(uow_factory, job_id)).status == JobStatus.FAILED
    assert (await load_subject(uow_factory, subject.id)).status == SubjectStatus.ERROR


@pytest.mark.asyncio
async def test_permanent_error_fails_without_retry(uow_factory, project, subject):
    [job_id] = await enqueue(uow_factory, project, [subject])
    generator = FakeGenerator(error=PermanentServiceError("OpenRouter rejected credentials"))
    dispatcher = make_dispatcher(uow_factory, generator=generator)

    summary = await dispatcher.run_cycle()

    assert summary.results[0].error == "OpenRouter rejected credentials"
    job = await load_job(uow_factory, job_id)
    assert job.status == JobStatus.FAILED
    assert job.attempts == 1


@pytest.mark.asyncio
async def test_unexpected_executor_exception_is_retried(uow_factory, project, subject):
    [job_id] = await enqueue(uow_factory, project, [subject])
    dispatcher = make_dispatcher(uow_factory, generator=FakeGenerator(error=RuntimeError("boom")))

    await dispatcher.run_cycle()

    job = await load_job(uow_factory, job_id)
    assert job.status == JobStatus.QUEUED
    assert job.error_message == "boom"


@pytest.mark.asyncio
async def test_missing_subject_fails_immediately(uow_factory, project):
    """A job whose subject no longer exists fails on its first attempt."""
    ghost_id = uuid4()
    async with await uow_factory() as uow:
        [job_id] = await enqueue_jobs(
            uow,
            kind=JobKind.CONTENT_GENERATION,
            subject_ids=[ghost_id],
            owner_id=project.owner_id,
            project_id=project.id,
        )
    generator = FakeGenerator()
    dispatcher = make_dispatcher(uow_factory, generator=generator)

    summary = await dispatcher.run_cycle()

    assert summary.failed == 1
    assert generator.calls == []
    job = await load_job(uow_factory, job_id)
    assert job.status == JobStatus.FAILED
    assert job.attempts == 1
    assert "not found" in job.error_message


@pytest.mark.asyncio
async def test_exhausted_job_failed_without_executor_call(uow_factory, project, subject):
    """A queued job with no attempts left (last attempt reclaimed) is failed outright."""
    job = Job(
        kind=JobKind.CONTENT_GENERATION,
        subject_id=subject.id,
        owner_id=project.owner_id,
        project_id=project.id,
        attempts=3,
        max_attempts=3,
    )
    async with await uow_factory() as uow:
        await uow.jobs.add_many([job])
    generator = FakeGenerator()
    dispatcher = make_dispatcher(uow_factory, generator=generator)

    summary = await dispatcher.run_cycle()

    assert summary.failed == 1
    assert summary.results[0].error == "Max attempts exceeded"
    assert generator.calls == []
    stored = await load_job(uow_factory, job.id)
    assert stored.status == JobStatus.FAILED
    assert stored.attempts == 3
    assert (await load_subject(uow_factory, subject.id)).status == SubjectStatus.ERROR


@pytest.mark.asyncio
async def test_per_job_timeout_is_retryable(uow_factory, project, subject):
    [job_id] = await enqueue(uow_factory, project, [subject])

    async def hang(context):
        await asyncio.sleep(5)

    dispatcher = make_dispatcher(
        uow_factory, generator=FakeGenerator(side_effect=hang), job_timeout_seconds=0.05
    )

    summary = await dispatcher.run_cycle()

    assert summary.failed == 1
    job = await load_job(uow_factory, job_id)
    assert job.status == JobStatus.QUEUED
    assert "timed out" in job.error_message


@pytest.mark.asyncio
async def test_stuck_job_is_reset_with_attempts_unchanged(uow_factory, project, subject):
    """A job processing for 6 minutes is requeued; the voided attempt is not counted."""
    now = datetime(2025, 6, 1, 12, 0, 0, tzinfo=timezone.utc)
    job = Job(
        kind=JobKind.CONTENT_GENERATION,
        subject_id=subject.id,
        owner_id=project.owner_id,
        project_id=project.id,
        status=JobStatus.PROCESSING,
        attempts=1,
        started_at=now - timedelta(minutes=6),
    )
    async with await uow_factory() as uow:
        await uow.jobs.add_many([job])
    dispatcher = make_dispatcher(uow_factory, now=lambda: now)

    reset_ids = await dispatcher.reclaim_stuck_jobs()

    assert reset_ids == [job.id]
    stored = await load_job(uow_factory, job.id)
    assert stored.status == JobStatus.QUEUED
    assert stored.attempts == 1
    assert stored.error_message == STUCK_JOB_MESSAGE


@pytest.mark.asyncio
async def test_cycle_reclaims_then_processes_stuck_job(uow_factory, project, subject):
    now = datetime(2025, 6, 1, 12, 0, 0, tzinfo=timezone.utc)
    job = Job(
        kind=JobKind.CONTENT_GENERATION,
        subject_id=subject.id,
        owner_id=project.owner_id,
        project_id=project.id,
        status=JobStatus.PROCESSING,
        attempts=1,
        started_at=now - timedelta(minutes=6),
    )
    async with await uow_factory() as uow:
        await uow.jobs.add_many([job])

    summary = await make_dispatcher(uow_factory, now=lambda: now).run_cycle()

    assert summary.reclaimed == 1
    assert summary.succeeded == 1
    stored = await load_job(uow_factory, job.id)
    assert stored.status == JobStatus.COMPLETED
    assert stored.attempts == 2


@pytest.mark.asyncio
async def test_overlap_guard_skips_cycle_without_changes(uow_factory, project, make_subject):
    """With jobs still processing, a second invocation does nothing."""
    in_flight = [await make_subject(location=f"Busy {i}") for i in range(3)]
    waiting = await make_subject(location="Waiting")
    busy_ids = await enqueue(uow_factory, project, in_flight)
    [waiting_id] = await enqueue(uow_factory, project, [waiting])
    async with await uow_factory() as uow:
        for job_id in busy_ids:
            assert await uow.jobs.claim(job_id)
    generator = FakeGenerator()
    dispatcher = make_dispatcher(uow_factory, generator=generator)

    summary = await dispatcher.run_cycle()

    assert summary.skipped
    assert summary.processed == 0
    assert generator.calls == []
    waiting_job = await load_job(uow_factory, waiting_id)
    assert waiting_job.status == JobStatus.QUEUED
    assert waiting_job.attempts == 0
    for job_id in busy_ids:
        job = await load_job(uow_factory, job_id)
        assert job.status == JobStatus.PROCESSING
        assert job.attempts == 1


@pytest.mark.asyncio
async def test_lost_claim_is_skipped(uow_factory, project, subject):
    """A job claimed by another cycle after batch selection is not processed twice."""
    [job_id] = await enqueue(uow_factory, project, [subject])
    async with await uow_factory() as uow:
        [snapshot] = await uow.jobs.dequeue_batch(limit=1)
    async with await uow_factory() as uow:
        assert await uow.jobs.claim(job_id)
    generator = FakeGenerator()
    dispatcher = make_dispatcher(uow_factory, generator=generator)

    result = await dispatcher.process_job(snapshot)

    assert result is None
    assert generator.calls == []
    assert (await load_job(uow_factory, job_id)).attempts == 1


@pytest.mark.asyncio
async def test_outcome_discarded_when_job_reclaimed_mid_flight(uow_factory, project, subject):
    """If the sweep requeued the job while the executor ran, the late outcome is dropped."""
    [job_id] = await enqueue(uow_factory, project, [subject])

    async def reclaimed_meanwhile(context):
        async with await uow_factory() as uow:
            await uow.jobs.reset_stuck(
                older_than=utcnow() + timedelta(days=1), error_message="stuck job reset"
            )

    dispatcher = make_dispatcher(
        uow_factory, generator=FakeGenerator(side_effect=reclaimed_meanwhile)
    )

    summary = await dispatcher.run_cycle()

    assert summary.processed == 0
    assert summary.failed == 0
    job = await load_job(uow_factory, job_id)
    assert job.status == JobStatus.QUEUED
    assert job.attempts == 1
    async with await uow_factory() as uow:
        assert await uow.generated_pages.get_by_location_keyword(subject.id) is None


async def reclaim_and_claim_again(uow_factory, job_id):
    """Requeue a running job through the sweep, then claim it as another cycle would."""
    async with await uow_factory() as uow:
        await uow.jobs.reset_stuck(
            older_than=utcnow() + timedelta(days=1), error_message="stuck job reset"
        )
    async with await uow_factory() as uow:
        assert await uow.jobs.claim(job_id) == 2


@pytest.mark.asyncio
async def test_late_failure_leaves_new_owners_claim_alone(uow_factory, project, subject):
    """A stale cycle's failure must not requeue a job another cycle is running."""
    [job_id] = await enqueue(uow_factory, project, [subject])

    async def taken_over(context):
        await reclaim_and_claim_again(uow_factory, job_id)

    dispatcher = make_dispatcher(
        uow_factory,
        generator=FakeGenerator(side_effect=taken_over, error=ExternalServiceError("503")),
    )

    summary = await dispatcher.run_cycle()

    assert summary.processed == 0
    job = await load_job(uow_factory, job_id)
    assert job.status == JobStatus.PROCESSING
    assert job.attempts == 2
    async with await uow_factory() as uow:
        assert await uow.api_logs.list_by_job(job_id) == []


@pytest.mark.asyncio
async def test_late_success_does_not_complete_new_owners_attempt(uow_factory, project, subject):
    [job_id] = await enqueue(uow_factory, project, [subject])

    async def taken_over(context):
        await reclaim_and_claim_again(uow_factory, job_id)

    dispatcher = make_dispatcher(uow_factory, generator=FakeGenerator(side_effect=taken_over))

    summary = await dispatcher.run_cycle()

    assert summary.processed == 0
    job = await load_job(uow_factory, job_id)
    assert job.status == JobStatus.PROCESSING
    assert job.completed_at is None
    async with await uow_factory() as uow:
        assert await uow.generated_pages.get_by_location_keyword(subject.id) is None


@pytest.mark.asyncio
async def test_wordpress_push_marks_subject_pushed(uow_factory, project, make_subject):
    subject = await make_subject(status=SubjectStatus.GENERATED)
    async with await uow_factory() as uow:
        await uow.generated_pages.upsert(
            project_id=project.id,
            location_keyword_id=subject.id,
            title="Web Design in London",
            slug="web-design-in-london",
            content="<p>content</p>",
            meta_title="Web Design in London",
            meta_description="desc",
        )
    [job_id] = await enqueue(uow_factory, project, [subject], kind=JobKind.WORDPRESS_PUSH)
    publisher = FakePublisher()
    dispatcher = make_dispatcher(uow_factory, publisher=publisher)

    summary = await dispatcher.run_cycle(kind=JobKind.WORDPRESS_PUSH)

    assert summary.succeeded == 1
    assert publisher.calls[0].page.title == "Web Design in London"
    stored = await load_subject(uow_factory, subject.id)
    assert stored.status == SubjectStatus.PUSHED
    assert stored.wp_page_id == 101
    assert stored.wp_page_url == "https://acme.example/web-design-london"
    async with await uow_factory() as uow:
        [log] = await uow.api_logs.list_by_job(job_id)
    assert log.api_type == "wordpress"
    assert log.endpoint == "https://acme.example/wp-json/geoscale/v1/publish"


@pytest.mark.asyncio
async def test_kind_scoped_cycle_ignores_other_kinds(uow_factory, project, make_subject):
    generated = await make_subject(location="York", status=SubjectStatus.GENERATED)
    pending = await make_subject(location="Hull")
    [push_id] = await enqueue(uow_factory, project, [generated], kind=JobKind.WORDPRESS_PUSH)
    [content_id] = await enqueue(uow_factory, project, [pending])
    publisher = FakePublisher(error=NotFoundError("Generated page not found"))
    dispatcher = make_dispatcher(uow_factory, publisher=publisher)

    summary = await dispatcher.run_cycle(kind=JobKind.CONTENT_GENERATION)

    assert [r.job_id for r in summary.results] == [content_id]
    assert publisher.calls == []
    assert (await load_job(uow_factory, push_id)).status == JobStatus.QUEUED


@pytest.mark.asyncio
async def test_suburb_job_loads_parent_context(uow_factory, project, make_subject):
    town = await make_subject(location="Leeds", wp_page_url="https://acme.example/leeds")
    suburb = await make_subject(location="Headingley", parent_location_id=town.id)
    await enqueue(uow_factory, project, [suburb])
    generator = FakeGenerator()

    await make_dispatcher(uow_factory, generator=generator).run_cycle()

    [context] = generator.calls
    assert context.parent is not None
    assert context.parent.id == town.id
    assert context.project.id == project.id


@pytest.mark.asyncio
async def test_empty_queue_returns_empty_summary(uow_factory):
    summary = await make_dispatcher(uow_factory).run_cycle()

    assert not summary.skipped
    assert summary.processed == 0
    assert summary.reclaimed == 0


@pytest.mark.asyncio
async def test_generation_context_carries_services_faqs_and_testimonials(
    uow_factory, project, make_subject
):
    async with await uow_factory() as uow:
        service = await uow.project_services.add(
            ProjectService(project_id=project.id, name="Web design", slug="web-design")
        )
        for order, question in [(2, "How long?"), (1, "How much?")]:
            await uow.project_services.add_faq(
                ServiceFaq(
                    service_id=service.id, question=question, answer="Ask us", sort_order=order
                )
            )
        await uow.project_testimonials.add(
            ProjectTestimonial(project_id=project.id, testimonial_text="Lovely site")
        )
    subject = await make_subject(service_id=service.id)
    await enqueue(uow_factory, project, [subject])
    generator = FakeGenerator()

    await make_dispatcher(uow_factory, generator=generator).run_cycle()

    [context] = generator.calls
    assert [s.name for s in context.services] == ["Web design"]
    assert [faq.question for faq in context.faqs] == ["How much?", "How long?"]
    assert [t.testimonial_text for t in context.testimonials] == ["Lovely site"]
    assert context.page is None
