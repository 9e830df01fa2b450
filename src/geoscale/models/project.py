"""Project entity - business details and WordPress connection settings."""

from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4

from sqlmodel import Field, SQLModel

from geoscale.core.timezone import UTCDateTime, utcnow


class Project(SQLModel, table=True):
    """Project groups location keywords for one client website."""

    __tablename__ = "projects"  # type: ignore[assignment]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    owner_id: UUID = Field(index=True)
    name: str = Field(max_length=255)
    company_name: Optional[str] = Field(default=None, max_length=255)
    phone_number: Optional[str] = Field(default=None, max_length=50)
    contact_url: Optional[str] = Field(default=None)
    service_description: Optional[str] = Field(default=None)

    # WordPress plugin connection
    wp_url: Optional[str] = Field(default=None)
    blog_url: Optional[str] = Field(default=None)  # Preferred over wp_url for API calls
    wp_api_key: Optional[str] = Field(default=None, max_length=255)
    wp_page_template: Optional[str] = Field(default=None, max_length=255)
    wp_publish_status: str = Field(default="publish", max_length=20)

    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)

    @property
    def business_name(self) -> str:
        return self.company_name or self.name or "Our Business"

    @property
    def wordpress_api_base(self) -> str | None:
        return self.blog_url or self.wp_url
