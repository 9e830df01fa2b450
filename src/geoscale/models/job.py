"""Job entity - durable, retryable unit of deferred work."""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint
from sqlmodel import Field, SQLModel

from geoscale.core.timezone import UTCDateTime, utcnow


class JobKind(str, Enum):
    """Which effect executor a job drives."""

    CONTENT_GENERATION = "content-generation"
    WORDPRESS_PUSH = "wordpress-push"


class JobStatus(str, Enum):
    """Job lifecycle status."""

    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class InvalidStateTransition(Exception):
    """Raised when attempting an invalid job state transition."""

    pass


ERROR_MESSAGE_MAX_LENGTH = 1000


class Job(SQLModel, table=True):
    """Job is one deferred operation on a single subject.

    State machine:
        queued -> processing -> completed | queued (retry) | failed
        processing -> queued (stuck job reclaim)
        queued -> failed (attempts already exhausted)
    """

    __tablename__ = "jobs"  # type: ignore[assignment]
    __table_args__ = (
        CheckConstraint("attempts <= max_attempts", name="ck_jobs_attempts_within_max"),
    )

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    kind: JobKind = Field(index=True)
    subject_id: UUID = Field(index=True)
    owner_id: UUID = Field(index=True)
    project_id: UUID = Field(index=True)
    status: JobStatus = Field(default=JobStatus.QUEUED, index=True)
    attempts: int = Field(default=0, ge=0)
    max_attempts: int = Field(default=3, ge=1)
    priority: int = Field(default=0, index=True)
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime, index=True)
    started_at: Optional[datetime] = Field(default=None, sa_type=UTCDateTime)
    completed_at: Optional[datetime] = Field(default=None, sa_type=UTCDateTime)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
    error_message: Optional[str] = Field(default=None, max_length=ERROR_MESSAGE_MAX_LENGTH)

    @property
    def exhausted(self) -> bool:
        return self.attempts >= self.max_attempts

    @property
    def is_terminal(self) -> bool:
        return self.status in (JobStatus.COMPLETED, JobStatus.FAILED)

    def mark_completed(self, now: datetime | None = None) -> None:
        """Transition from processing to completed.

        Raises:
            InvalidStateTransition: If current status is not processing
        """
        if self.status != JobStatus.PROCESSING:
            raise InvalidStateTransition(
                f"Cannot mark completed from {self.status.value}. Job must be in processing state."
            )
        now = now or utcnow()
        self.status = JobStatus.COMPLETED
        self.completed_at = now
        self.updated_at = now

    def requeue(self, error_message: str, now: datetime | None = None) -> None:
        """Transition from processing back to queued after a retryable failure.

        The attempt counter is left as-is: the failed attempt stays consumed.

        Raises:
            InvalidStateTransition: If not processing, or no attempts remain
        """
        if self.status != JobStatus.PROCESSING:
            raise InvalidStateTransition(
                f"Cannot requeue from {self.status.value}. Job must be in processing state."
            )
        if self.exhausted:
            raise InvalidStateTransition(
                f"Cannot requeue job with {self.attempts}/{self.max_attempts} attempts consumed."
            )
        self.status = JobStatus.QUEUED
        self.error_message = error_message[:ERROR_MESSAGE_MAX_LENGTH]
        self.updated_at = now or utcnow()

    def mark_failed(self, error_message: str, now: datetime | None = None) -> None:
        """Transition from any non-terminal state to failed.

        Raises:
            InvalidStateTransition: If current status is already terminal
        """
        if self.is_terminal:
            raise InvalidStateTransition(
                f"Cannot mark failed from terminal state {self.status.value}."
            )
        now = now or utcnow()
        self.status = JobStatus.FAILED
        self.error_message = error_message[:ERROR_MESSAGE_MAX_LENGTH]
        self.completed_at = now
        self.updated_at = now
