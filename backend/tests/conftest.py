"""
Shared pytest fixtures for the engine test suite.

Provides:
    - test_settings: Settings pointing at a per-test SQLite file
    - engine: AsyncEngine with the metamodel tables created
    - session: AsyncSession for service-level tests
    - app / client: FastAPI app bound to its own engine + httpx AsyncClient
    - payroll, employee, invoice: the standard demo definitions
"""

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from metaengine.core.config import Settings
from metaengine.core.database import Base, build_engine, build_session_factory
from metaengine.main import create_app
from metaengine.models.project import Project  # noqa: F401  (populates Base.metadata)
from metaengine.services import metamodel, schema_compiler


@pytest.fixture()
def test_settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'engine.db'}",
        CREATE_METADATA_TABLES=True,
        AUTO_MIGRATE_SCHEMA=False,
    )


# ── Service-level fixtures ───────────────────────────────────────────────


@pytest_asyncio.fixture()
async def engine(test_settings):
    """Fresh database per test with the metamodel tables in place."""
    engine = build_engine(test_settings)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture()
async def session(engine):
    session_factory = build_session_factory(engine)
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture()
async def payroll(session):
    return await metamodel.create_project(session, "Payroll")


@pytest_asyncio.fixture()
async def employee(session, payroll):
    """Plain entity "Employee" with a required Full Name, compiled."""
    entity = await metamodel.create_entity(session, payroll.id, "Employee")
    await metamodel.create_attribute(session, entity.id, "Full Name", "text", required=True)
    await schema_compiler.compile_entity(session, entity)
    return entity


@pytest_asyncio.fixture()
async def invoice(session, payroll):
    """Process entity "Invoice" (Draft initial, Paid) with an Amount, compiled."""
    entity = await metamodel.create_entity(session, payroll.id, "Invoice", is_process=True)
    await metamodel.create_attribute(session, entity.id, "Amount", "number")
    await metamodel.create_workflow_state(session, entity.id, "Draft", is_initial=True)
    await metamodel.create_workflow_state(session, entity.id, "Paid")
    await schema_compiler.compile_entity(session, entity)
    return entity


# ── HTTP fixtures ────────────────────────────────────────────────────────


@pytest_asyncio.fixture()
async def app(test_settings):
    """Application with its own engine; tables created up front."""
    application = create_app(test_settings)
    async with application.state.engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield application
    await application.state.engine.dispose()


@pytest_asyncio.fixture()
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
