"""LocationKeyword repository for GeoScale backend.

Provides data access methods for the subjects jobs act upon.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from geoscale.core.timezone import utcnow
from geoscale.models.location_keyword import LocationKeyword, SubjectStatus


class LocationKeywordRepository:
    """Repository for LocationKeyword entities."""

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy async session for database operations
        """
        self.session = session

    async def add(self, location_keyword: LocationKeyword) -> LocationKeyword:
        """Persist new location keyword to database.

        Args:
            location_keyword: LocationKeyword entity to persist

        Returns:
            Persisted location keyword with generated ID
        """
        self.session.add(location_keyword)
        await self.session.flush()
        return location_keyword

    async def get_by_id(self, location_keyword_id: UUID) -> LocationKeyword | None:
        """Retrieve location keyword by UUID.

        Args:
            location_keyword_id: Location keyword's unique identifier

        Returns:
            LocationKeyword if found, None otherwise
        """
        result = await self.session.execute(
            select(LocationKeyword)
            .where(LocationKeyword.id == location_keyword_id)  # type: ignore[arg-type]
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def set_status(
        self,
        location_keyword_ids: list[UUID],
        status: SubjectStatus,
        now: datetime | None = None,
    ) -> int:
        """Set the user-facing status of several location keywords at once.

        Args:
            location_keyword_ids: Subjects to update
            status: New status
            now: Update timestamp (default: current UTC time)

        Returns:
            Number of rows updated (missing IDs are ignored)
        """
        if not location_keyword_ids:
            return 0
        result = await self.session.execute(
            update(LocationKeyword)
            .where(LocationKeyword.id.in_(location_keyword_ids))  # type: ignore[attr-defined]
            .values(status=status, updated_at=now or utcnow())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount  # type: ignore[attr-defined]
