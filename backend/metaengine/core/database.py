"""
Async database engine, session factory, and ORM base.

Rules enforced:
  • The storage handle is explicitly owned: create_app() builds one engine
    per application instance and disposes it on shutdown. No module keeps
    a process-wide connection.
  • Sessions are request-scoped via FastAPI's Depends(get_db_session).
  • The declarative Base holds only the metamodel tables so Alembic can
    auto-detect their changes. Record tables are generated at runtime and
    never registered on Base.metadata.
"""

from collections.abc import AsyncGenerator

from fastapi import Request
from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from metaengine.core.config import Settings


# ── Engine ──────────────────────────────────────────────────
def build_engine(settings: Settings) -> AsyncEngine:
    """
    Create the async engine for one application instance.

    echo: SQL logging — only in debug mode.
    On SQLite, foreign keys are switched on per connection so that
    metamodel cascades are enforced by the engine too.
    """
    engine = create_async_engine(
        settings.DATABASE_URL,
        echo=settings.DEBUG,
        pool_pre_ping=True,
    )

    if engine.dialect.name == "sqlite":

        @event.listens_for(engine.sync_engine, "connect")
        def _enable_sqlite_foreign_keys(dbapi_connection, _record):  # type: ignore[no-untyped-def]
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return engine


# ── Session factory ─────────────────────────────────────────
def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the given engine."""
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,  # avoid lazy-load issues after commit
    )


# ── ORM Base ────────────────────────────────────────────────
class Base(DeclarativeBase):
    """Shared declarative base for the metamodel tables."""


# ── Dependency ──────────────────────────────────────────────
async def get_db_session(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """
    Yield a scoped async session for one request.

    The session factory lives on app.state (set up by create_app).
    Services commit their own writes; this generator only guarantees
    cleanup on exit.
    """
    session_factory: async_sessionmaker[AsyncSession] = request.app.state.session_factory
    async with session_factory() as session:
        try:
            yield session
        finally:
            await session.close()
