"""ProjectService repository for GeoScale backend."""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from geoscale.models.project_service import ProjectService, ServiceFaq


class ProjectServiceRepository:
    """Repository for ProjectService entities and their FAQs."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def add(self, service: ProjectService) -> ProjectService:
        self.session.add(service)
        await self.session.flush()
        return service

    async def add_faq(self, faq: ServiceFaq) -> ServiceFaq:
        self.session.add(faq)
        await self.session.flush()
        return faq

    async def list_for_project(self, project_id: UUID) -> list[ProjectService]:
        """Services of a project in the order they were added."""
        result = await self.session.execute(
            select(ProjectService)
            .where(ProjectService.project_id == project_id)  # type: ignore[arg-type]
            .order_by(ProjectService.created_at.asc())  # type: ignore[attr-defined]
        )
        return list(result.scalars().all())

    async def list_faqs(self, service_id: UUID) -> list[ServiceFaq]:
        """FAQs of a service ordered by sort_order."""
        result = await self.session.execute(
            select(ServiceFaq)
            .where(ServiceFaq.service_id == service_id)  # type: ignore[arg-type]
            .order_by(ServiceFaq.sort_order.asc())  # type: ignore[attr-defined]
        )
        return list(result.scalars().all())
