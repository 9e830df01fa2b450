"""Unit of Work pattern for GeoScale backend.

Provides transaction management with automatic commit/rollback and access to all repositories.
"""

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from geoscale.repositories.api_log import ApiLogRepository
from geoscale.repositories.generated_page import GeneratedPageRepository
from geoscale.repositories.job import JobRepository
from geoscale.repositories.location_keyword import LocationKeywordRepository
from geoscale.repositories.project import ProjectRepository
from geoscale.repositories.project_service import ProjectServiceRepository
from geoscale.repositories.project_testimonial import ProjectTestimonialRepository

logger = structlog.get_logger()


class UnitOfWork:
    """Unit of Work pattern implementation.

    Manages database transactions and provides access to all repositories.
    Use as async context manager for automatic commit/rollback.

    Example:
        async with await uow_factory() as uow:
            job = await uow.jobs.get_for_update(job_id)
            job.mark_completed()
            subject = await uow.location_keywords.get_by_id(job.subject_id)
            subject.set_status(SubjectStatus.GENERATED)
            # Both writes commit together on successful exit
            # Automatically rolls back on exception
    """

    def __init__(self, session: AsyncSession):
        """Initialize UnitOfWork with database session.

        Args:
            session: SQLAlchemy async session for database operations
        """
        self.session = session

        self.jobs = JobRepository(session)
        self.location_keywords = LocationKeywordRepository(session)
        self.projects = ProjectRepository(session)
        self.project_services = ProjectServiceRepository(session)
        self.project_testimonials = ProjectTestimonialRepository(session)
        self.generated_pages = GeneratedPageRepository(session)
        self.api_logs = ApiLogRepository(session)

    async def __aenter__(self):
        """Enter async context manager.

        Returns:
            self: UnitOfWork instance with all repositories available
        """
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Exit async context manager with automatic commit/rollback.

        Returns:
            False: Always re-raise exceptions after rollback
        """
        try:
            if exc_type is None:
                await self.session.commit()
                logger.debug("transaction.committed")
            else:
                await self.session.rollback()
                logger.debug("transaction.rolled_back", exc_type=exc_type.__name__)
        finally:
            await self.session.close()

        return False


def create_uow_factory(session_factory: async_sessionmaker[AsyncSession]):
    """Create a factory function that produces UnitOfWork instances.

    Args:
        session_factory: SQLAlchemy async session factory

    Returns:
        Callable that creates UnitOfWork instances from new sessions

    Example:
        session_factory = setup_db_session(db_url, pool_size=20)
        uow_factory = create_uow_factory(session_factory)

        async with await uow_factory() as uow:
            await uow.jobs.add_many(jobs)
    """

    async def _create_uow():
        """Create a new UnitOfWork instance with a new session."""
        session = session_factory()
        return UnitOfWork(session)

    return _create_uow
