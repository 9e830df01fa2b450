"""State transition tests for the Job model.

Tests focus on validating the job lifecycle state machine:
- queued -> processing -> completed | queued (retry) | failed
- Invalid transitions are rejected with clear error messages
- Failed state is reachable from any non-terminal state
"""

from datetime import datetime, timezone
from uuid import uuid4

import pytest

from geoscale.models.job import (
    ERROR_MESSAGE_MAX_LENGTH,
    InvalidStateTransition,
    Job,
    JobKind,
    JobStatus,
)
from geoscale.models.location_keyword import LocationKeyword, SubjectStatus


def make_job(**fields) -> Job:
    defaults = dict(
        kind=JobKind.CONTENT_GENERATION,
        subject_id=uuid4(),
        owner_id=uuid4(),
        project_id=uuid4(),
    )
    defaults.update(fields)
    return Job(**defaults)


def test_new_job_defaults():
    job = make_job()

    assert job.status == JobStatus.QUEUED
    assert job.attempts == 0
    assert job.max_attempts == 3
    assert job.priority == 0
    assert job.started_at is None
    assert not job.exhausted
    assert not job.is_terminal


def test_mark_completed_from_processing():
    now = datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
    job = make_job(status=JobStatus.PROCESSING, attempts=1)

    job.mark_completed(now)

    assert job.status == JobStatus.COMPLETED
    assert job.completed_at == now
    assert job.updated_at == now
    assert job.is_terminal


def test_mark_completed_requires_processing():
    job = make_job()

    with pytest.raises(InvalidStateTransition, match="Cannot mark completed from queued"):
        job.mark_completed()


def test_requeue_keeps_attempt_consumed():
    """A retryable failure returns the job to queued without refunding the attempt."""
    job = make_job(status=JobStatus.PROCESSING, attempts=1)

    job.requeue("OpenRouter API error: 503")

    assert job.status == JobStatus.QUEUED
    assert job.attempts == 1
    assert job.error_message == "OpenRouter API error: 503"


def test_requeue_rejected_when_exhausted():
    job = make_job(status=JobStatus.PROCESSING, attempts=3, max_attempts=3)

    with pytest.raises(InvalidStateTransition, match="3/3 attempts consumed"):
        job.requeue("still failing")


def test_requeue_requires_processing():
    job = make_job(status=JobStatus.COMPLETED, attempts=1)

    with pytest.raises(InvalidStateTransition):
        job.requeue("late failure")


@pytest.mark.parametrize("status", [JobStatus.QUEUED, JobStatus.PROCESSING])
def test_mark_failed_from_non_terminal(status):
    job = make_job(status=status, attempts=1)

    job.mark_failed("Location keyword not found")

    assert job.status == JobStatus.FAILED
    assert job.completed_at is not None
    assert job.error_message == "Location keyword not found"


@pytest.mark.parametrize("status", [JobStatus.COMPLETED, JobStatus.FAILED])
def test_mark_failed_rejected_from_terminal(status):
    job = make_job(status=status, attempts=1)

    with pytest.raises(InvalidStateTransition, match="terminal state"):
        job.mark_failed("too late")


def test_error_message_truncated():
    job = make_job(status=JobStatus.PROCESSING, attempts=1)

    job.mark_failed("x" * (ERROR_MESSAGE_MAX_LENGTH + 500))

    assert len(job.error_message) == ERROR_MESSAGE_MAX_LENGTH


def test_subject_mark_pushed_keeps_first_page_id():
    """Updates of an already published page keep the original WordPress page id."""
    subject = LocationKeyword(
        project_id=uuid4(),
        phrase="plumber in Leeds",
        location_name="Leeds",
        keyword="plumber",
        wp_page_id=42,
    )

    subject.mark_pushed(page_id=99, page_url="https://acme.example/plumber-leeds")

    assert subject.wp_page_id == 42
    assert subject.wp_page_url == "https://acme.example/plumber-leeds"
    assert subject.status == SubjectStatus.PUSHED
