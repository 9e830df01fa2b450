"""LocationKeyword entity - a location x keyword landing page."""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from sqlmodel import Field, SQLModel

from geoscale.core.timezone import UTCDateTime, utcnow


class SubjectStatus(str, Enum):
    """User-facing page status mirrored from its jobs."""

    PENDING = "pending"
    QUEUED = "queued"
    GENERATING = "generating"
    GENERATED = "generated"
    PUSHED = "pushed"
    ERROR = "error"


class LocationKeyword(SQLModel, table=True):
    """LocationKeyword is the subject every job acts on.

    Rows are created by the project management layer. The queue only writes
    `status`, `wp_page_id`, `wp_page_url` and `updated_at`.
    """

    __tablename__ = "location_keywords"  # type: ignore[assignment]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    project_id: UUID = Field(foreign_key="projects.id", index=True)
    phrase: str = Field(max_length=500)  # e.g. "web design in London"
    location_name: str = Field(max_length=255)
    keyword: str = Field(max_length=255)
    # Suburb pages point at the town page they support
    parent_location_id: Optional[UUID] = Field(default=None, foreign_key="location_keywords.id")
    # Service whose FAQs are included in the generated page
    service_id: Optional[UUID] = Field(default=None, foreign_key="project_services.id")
    status: SubjectStatus = Field(default=SubjectStatus.PENDING, index=True)
    wp_page_id: Optional[int] = Field(default=None)
    wp_page_url: Optional[str] = Field(default=None)
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)

    def set_status(self, status: SubjectStatus, now: datetime | None = None) -> None:
        self.status = status
        self.updated_at = now or utcnow()

    def mark_pushed(
        self, page_id: int | None, page_url: str | None, now: datetime | None = None
    ) -> None:
        """Record a successful WordPress publish.

        The page id is only written on first publish; updates keep the original id.
        """
        if self.wp_page_id is None and page_id is not None:
            self.wp_page_id = page_id
        if page_url:
            self.wp_page_url = page_url
        self.set_status(SubjectStatus.PUSHED, now)
