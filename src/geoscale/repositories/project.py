"""Project repository for GeoScale backend."""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from geoscale.models.project import Project


class ProjectRepository:
    """Repository for Project entities."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def add(self, project: Project) -> Project:
        self.session.add(project)
        await self.session.flush()
        return project

    async def get_by_id(self, project_id: UUID) -> Project | None:
        result = await self.session.execute(select(Project).where(Project.id == project_id))  # type: ignore[arg-type]
        return result.scalar_one_or_none()
