"""Status projection - mirrors job outcomes onto the subject's user-facing status.

    content-generation:  queued -> generating -> generated | error
    wordpress-push:      generated -> pushed | error
"""

from dataclasses import dataclass
from typing import Any
from uuid import UUID

from geoscale.models.api_log import ApiLog
from geoscale.models.job import Job, JobKind
from geoscale.models.location_keyword import SubjectStatus


@dataclass(frozen=True)
class SubjectProjection:
    """Subject statuses written at each point of a job's life."""

    claimed: SubjectStatus | None
    succeeded: SubjectStatus
    # Written on a retryable failure when errors are only surfaced once terminal
    retrying: SubjectStatus | None


PROJECTIONS: dict[JobKind, SubjectProjection] = {
    JobKind.CONTENT_GENERATION: SubjectProjection(
        claimed=SubjectStatus.GENERATING,
        succeeded=SubjectStatus.GENERATED,
        retrying=SubjectStatus.QUEUED,
    ),
    JobKind.WORDPRESS_PUSH: SubjectProjection(
        claimed=None,
        succeeded=SubjectStatus.PUSHED,
        retrying=None,
    ),
}


def status_on_claim(kind: JobKind) -> SubjectStatus | None:
    return PROJECTIONS[kind].claimed


def status_on_success(kind: JobKind) -> SubjectStatus:
    return PROJECTIONS[kind].succeeded


def status_on_failure(
    kind: JobKind, terminal: bool, surface_error_on_retry: bool
) -> SubjectStatus | None:
    """Subject status after a failed attempt.

    With `surface_error_on_retry` the subject shows "error" as soon as any
    attempt fails, even though a retry is still pending. Without it the error
    only appears once the job is terminally failed.

    Returns:
        Status to write, or None to leave the subject untouched
    """
    if terminal or surface_error_on_retry:
        return SubjectStatus.ERROR
    return PROJECTIONS[kind].retrying


def audit_entry(
    job: Job,
    api_type: str,
    endpoint: str | None,
    status_code: int,
    request_body: dict[str, Any] | None = None,
    response_body: dict[str, Any] | None = None,
    error_message: str | None = None,
) -> ApiLog:
    """Build the audit record for one job attempt."""
    request: dict[str, Any] = {"job_id": str(job.id), "attempt": job.attempts}
    if request_body:
        request.update(request_body)
    return ApiLog(
        owner_id=job.owner_id,
        project_id=job.project_id,
        job_id=job.id,
        api_type=api_type,
        endpoint=endpoint,
        method="POST",
        status_code=status_code,
        request_body=_jsonable(request),
        response_body=_jsonable(response_body) if response_body else None,
        error_message=error_message,
    )


def _jsonable(data: dict[str, Any]) -> dict[str, Any]:
    return {key: str(value) if isinstance(value, UUID) else value for key, value in data.items()}
