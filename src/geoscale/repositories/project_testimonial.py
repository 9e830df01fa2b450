"""ProjectTestimonial repository for GeoScale backend."""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from geoscale.models.project_testimonial import ProjectTestimonial


class ProjectTestimonialRepository:
    """Repository for ProjectTestimonial entities."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def add(self, testimonial: ProjectTestimonial) -> ProjectTestimonial:
        self.session.add(testimonial)
        await self.session.flush()
        return testimonial

    async def list_for_project(self, project_id: UUID) -> list[ProjectTestimonial]:
        result = await self.session.execute(
            select(ProjectTestimonial).where(
                ProjectTestimonial.project_id == project_id  # type: ignore[arg-type]
            )
        )
        return list(result.scalars().all())
