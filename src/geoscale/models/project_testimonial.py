"""ProjectTestimonial entity - customer quotes used in page prompts."""

from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import Column, Text
from sqlmodel import Field, SQLModel

from geoscale.core.timezone import UTCDateTime, utcnow


class ProjectTestimonial(SQLModel, table=True):
    __tablename__ = "project_testimonials"  # type: ignore[assignment]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    project_id: UUID = Field(foreign_key="projects.id", index=True)
    testimonial_text: str = Field(sa_column=Column(Text, nullable=False))
    customer_name: Optional[str] = Field(default=None)
    business_name: Optional[str] = Field(default=None)
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)

    @property
    def attribution(self) -> str:
        return ", ".join(part for part in (self.customer_name, self.business_name) if part)
