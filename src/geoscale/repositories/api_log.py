"""ApiLog repository for GeoScale backend."""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from geoscale.models.api_log import ApiLog


class ApiLogRepository:
    """Repository for ApiLog audit records. Append-only."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def add(self, entry: ApiLog) -> ApiLog:
        """Persist an audit record.

        Args:
            entry: ApiLog entity to persist

        Returns:
            Persisted entry with generated ID
        """
        self.session.add(entry)
        await self.session.flush()
        return entry

    async def list_by_job(self, job_id: UUID) -> list[ApiLog]:
        """Retrieve all audit records for a job, oldest first."""
        result = await self.session.execute(
            select(ApiLog)
            .where(ApiLog.job_id == job_id)  # type: ignore[arg-type]
            .order_by(ApiLog.created_at.asc())  # type: ignore[attr-defined]
        )
        return list(result.scalars().all())
