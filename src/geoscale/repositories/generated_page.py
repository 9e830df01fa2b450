"""GeneratedPage repository for GeoScale backend.

Provides UPSERT-by-subject for generated content so that retried and
re-enqueued generation jobs overwrite rather than duplicate pages.
"""

from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from geoscale.core.timezone import utcnow
from geoscale.models.generated_page import GeneratedPage


class GeneratedPageRepository:
    """Repository for GeneratedPage entities."""

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy async session for database operations
        """
        self.session = session

    async def get_by_location_keyword(self, location_keyword_id: UUID) -> GeneratedPage | None:
        """Retrieve the generated page for a location keyword.

        Args:
            location_keyword_id: Subject's unique identifier

        Returns:
            GeneratedPage if content has been generated, None otherwise
        """
        result = await self.session.execute(
            select(GeneratedPage)
            .where(GeneratedPage.location_keyword_id == location_keyword_id)  # type: ignore[arg-type]
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def upsert(
        self,
        project_id: UUID,
        location_keyword_id: UUID,
        title: str,
        slug: str,
        content: str,
        meta_title: str | None,
        meta_description: str | None,
    ) -> GeneratedPage:
        """Insert or replace the generated page for a location keyword (UPSERT).

        Query explanation:
        - INSERT: Try to insert new row
        - ON CONFLICT (location_keyword_id): If the subject already has a page
        - DO UPDATE: Replace content fields and bump updated_at

        Returns:
            The stored page
        """
        now = utcnow()
        fields = {
            "title": title,
            "slug": slug,
            "content": content,
            "meta_title": meta_title,
            "meta_description": meta_description,
            "updated_at": now,
        }
        dialect = postgresql if self.session.bind.dialect.name == "postgresql" else sqlite
        stmt = dialect.insert(GeneratedPage).values(
            id=uuid4(),
            project_id=project_id,
            location_keyword_id=location_keyword_id,
            created_at=now,
            **fields,
        )
        stmt = stmt.on_conflict_do_update(index_elements=["location_keyword_id"], set_=fields)
        await self.session.execute(stmt)
        await self.session.flush()

        page = await self.get_by_location_keyword(location_keyword_id)
        assert page is not None
        return page
