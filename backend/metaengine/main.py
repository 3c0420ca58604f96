"""
FastAPI application entrypoint.

create_app() owns the storage handle: it builds one engine + session
factory per application instance and keeps them on app.state.

Lifespan:
  • On startup: verify DB connectivity, create the metamodel tables
    when CREATE_METADATA_TABLES is set (dev; prod runs Alembic).
  • On shutdown: dispose the engine cleanly.

Routers:
  • /architect — metamodel editing
  • /run       — records of one entity, by slug
  • /health    — shallow liveness probe
"""

import logging
from contextlib import asynccontextmanager
from collections.abc import AsyncIterator

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy import text

from metaengine.core.config import Settings, settings as default_settings
from metaengine.core.database import Base, build_engine, build_session_factory
from metaengine.core.errors import (
    NotFoundError,
    SchemaDriftError,
    StorageError,
    ValidationError,
)
from metaengine.models.project import Project  # noqa: F401  (populates Base.metadata)
from metaengine.routers.architect import router as architect_router
from metaengine.routers.runner import router as runner_router

logging.basicConfig(
    level=logging.DEBUG if default_settings.DEBUG else logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)
logger = logging.getLogger(__name__)


# ── Lifespan ────────────────────────────────────────────────
@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Startup / shutdown lifecycle."""
    engine = app.state.engine

    # Startup — verify DB is reachable
    try:
        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
            if app.state.settings.CREATE_METADATA_TABLES:
                await conn.run_sync(Base.metadata.create_all)
        logger.info("Database connection verified ✓")
    except Exception:
        logger.warning(
            "Could not reach the database on startup. "
            "The app will start, but requests will fail until the DB is available."
        )

    yield  # ← application runs here

    # Shutdown — clean up connection pool
    await engine.dispose()
    logger.info("Database engine disposed ✓")


# ── Error mapping ───────────────────────────────────────────
async def _not_found(_request: Request, exc: NotFoundError) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})


async def _invalid(_request: Request, exc: ValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": str(exc)},
    )


async def _drift(_request: Request, exc: SchemaDriftError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content={
            "detail": str(exc),
            "table_name": exc.table_name,
            "missing_columns": exc.missing_columns,
        },
    )


async def _storage(request: Request, exc: StorageError) -> JSONResponse:
    logger.error(
        "Storage failure on %s %s: %s", request.method, request.url.path, exc,
        exc_info=exc,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "The storage engine failed. Please try again."},
    )


# ── App ─────────────────────────────────────────────────────
def create_app(app_settings: Settings | None = None) -> FastAPI:
    """Build an application bound to its own engine."""
    app_settings = app_settings or default_settings

    app = FastAPI(
        title=app_settings.APP_NAME,
        version="0.1.0",
        description=(
            "Metadata-driven record store — define entities, attributes "
            "and workflows at runtime, then store and move records."
        ),
        lifespan=lifespan,
    )

    engine = build_engine(app_settings)
    app.state.settings = app_settings
    app.state.engine = engine
    app.state.session_factory = build_session_factory(engine)

    app.add_exception_handler(NotFoundError, _not_found)
    app.add_exception_handler(ValidationError, _invalid)
    app.add_exception_handler(SchemaDriftError, _drift)
    app.add_exception_handler(StorageError, _storage)

    # Mount routers
    app.include_router(architect_router, prefix="/architect")
    app.include_router(runner_router, prefix="/run")

    # ── Health check ────────────────────────────────────────
    @app.get(
        "/health",
        tags=["System"],
        summary="Liveness probe",
    )
    async def health_check() -> dict[str, str]:
        """Shallow health check — confirms the process is alive."""
        return {"status": "healthy"}

    return app


app = create_app()
