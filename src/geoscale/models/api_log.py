"""ApiLog entity - audit trail of external API calls made by jobs."""

from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel

from geoscale.core.timezone import UTCDateTime, utcnow


class ApiLog(SQLModel, table=True):
    """ApiLog records one job attempt against an external service."""

    __tablename__ = "api_logs"  # type: ignore[assignment]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    owner_id: Optional[UUID] = Field(default=None, index=True)
    project_id: Optional[UUID] = Field(default=None, index=True)
    job_id: Optional[UUID] = Field(default=None, index=True)
    api_type: str = Field(max_length=50)  # "openrouter" or "wordpress"
    endpoint: Optional[str] = Field(default=None)
    method: str = Field(default="POST", max_length=10)
    status_code: Optional[int] = Field(default=None)
    request_body: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    response_body: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    error_message: Optional[str] = Field(default=None)
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
