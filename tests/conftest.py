"""pytest fixtures for GeoScale job queue tests.

Provides:
- postgres_url: Session-scoped testcontainer PostgreSQL (only when TEST_DATABASE=postgres)
- utc_timezone: Autouse fixture enforcing UTC timezone
- session: Function-scoped database session on a fresh schema
- uow_factory: Function-scoped UnitOfWork factory bound to the same database
- project / subject / make_subject: Seeded rows for queue tests

By default every test gets its own SQLite file (aiosqlite) with the schema
created from SQLModel metadata. Set TEST_DATABASE=postgres to run against a
PostgreSQL container with Alembic migrations applied.
"""

import os
import subprocess
import sys
from pathlib import Path
from typing import AsyncGenerator
from uuid import uuid4

# Must be set before geoscale.app is imported (Settings validation)
os.environ.setdefault("APP_ENV", "test")
os.environ["TZ"] = "UTC"

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from sqlalchemy import text  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker  # noqa: E402
from sqlmodel import SQLModel  # noqa: E402

import geoscale.models  # noqa: E402,F401
from geoscale.core.database import setup_db_session  # noqa: E402
from geoscale.models.location_keyword import LocationKeyword, SubjectStatus  # noqa: E402
from geoscale.models.project import Project  # noqa: E402
from geoscale.uow import create_uow_factory  # noqa: E402

PROJECT_ROOT = Path(__file__).resolve().parent.parent

# Dependent tables first
TABLES = [
    "api_logs",
    "jobs",
    "generated_pages",
    "location_keywords",
    "service_faqs",
    "project_services",
    "project_testimonials",
    "projects",
]


@pytest.fixture(scope="session")
def postgres_url():
    """Provide session-scoped PostgreSQL container URL with migrations applied.

    Yields None unless TEST_DATABASE=postgres, in which case tests run against
    SQLite instead.
    """
    if os.environ.get("TEST_DATABASE") != "postgres":
        yield None
        return

    from testcontainers.postgres import PostgresContainer

    with PostgresContainer(
        image="postgres:17",
        username="test",
        password="test",
        dbname="test_geoscale",
    ) as container:
        db_url = container.get_connection_url(driver="psycopg")

        # Apply migrations using subprocess (avoids asyncio.run() conflict)
        env = os.environ.copy()
        env["DATABASE_URL"] = db_url
        subprocess.run(
            [sys.executable, "-m", "alembic", "upgrade", "head"],
            check=True,
            capture_output=True,
            text=True,
            env=env,
            cwd=PROJECT_ROOT,
        )

        yield db_url


@pytest.fixture(scope="session", autouse=True)
def utc_timezone():
    """Enforce UTC timezone for all tests."""
    os.environ["TZ"] = "UTC"
    yield


@pytest.fixture
def database_url(postgres_url, tmp_path) -> str:
    if postgres_url is not None:
        return postgres_url
    return f"sqlite+aiosqlite:///{tmp_path / 'geoscale_test.db'}"


@pytest_asyncio.fixture(scope="function")
async def session(database_url, postgres_url) -> AsyncGenerator[AsyncSession, None]:
    """Provide function-scoped database session on an empty schema."""
    session_factory = setup_db_session(database_url, pool_size=5)

    async with session_factory() as session:
        if postgres_url is None:
            conn = await session.connection()
            await conn.run_sync(SQLModel.metadata.create_all)
            await session.commit()

        yield session

        await session.rollback()

        if postgres_url is not None:
            for table in TABLES:
                await session.execute(text(f"DELETE FROM {table}"))
            await session.commit()

    await session.bind.dispose()


@pytest_asyncio.fixture(scope="function")
async def uow_factory(session: AsyncSession):
    """Provide function-scoped UnitOfWork factory on the test database."""
    session_factory = async_sessionmaker(
        bind=session.bind,
        expire_on_commit=False,
    )
    return create_uow_factory(session_factory)


@pytest_asyncio.fixture
async def project(uow_factory) -> Project:
    """Committed project with a configured WordPress connection."""
    async with await uow_factory() as uow:
        project = await uow.projects.add(
            Project(
                owner_id=uuid4(),
                name="Acme Web",
                company_name="Acme Web Studio",
                phone_number="020 7946 0000",
                contact_url="https://acme.example/contact",
                service_description="Websites for local trades",
                wp_url="https://acme.example",
                wp_api_key="wp-key-123",
            )
        )
    return project


@pytest_asyncio.fixture
async def make_subject(uow_factory, project):
    """Factory fixture: commit a location keyword for the seeded project."""

    async def _make(
        location: str = "London",
        keyword: str = "web design",
        status: SubjectStatus = SubjectStatus.PENDING,
        **fields,
    ) -> LocationKeyword:
        async with await uow_factory() as uow:
            subject = await uow.location_keywords.add(
                LocationKeyword(
                    project_id=project.id,
                    phrase=f"{keyword} in {location}",
                    location_name=location,
                    keyword=keyword,
                    status=status,
                    **fields,
                )
            )
        return subject

    return _make


@pytest_asyncio.fixture
async def subject(make_subject) -> LocationKeyword:
    return await make_subject()
