"""GeneratedPage entity - LLM output for a location keyword."""

from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import Column, Text
from sqlmodel import Field, SQLModel

from geoscale.core.timezone import UTCDateTime, utcnow


class GeneratedPage(SQLModel, table=True):
    """GeneratedPage holds the latest content for a subject (one row per subject)."""

    __tablename__ = "generated_pages"  # type: ignore[assignment]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    project_id: UUID = Field(foreign_key="projects.id", index=True)
    location_keyword_id: UUID = Field(foreign_key="location_keywords.id", unique=True)
    title: str
    slug: str = Field(max_length=500)
    content: str = Field(sa_column=Column(Text, nullable=False))
    meta_title: Optional[str] = Field(default=None)
    meta_description: Optional[str] = Field(default=None)
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
