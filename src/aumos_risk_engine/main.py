"""AumOS Risk Engine service entry point.

Initializes the FastAPI application with:
- Structured logging
- The selected storage backend: in-process memory store or the primary
  PostgreSQL database through SQLAlchemy
- Error translation for the RiskEngineError taxonomy
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from aumos_risk_engine import __version__
from aumos_risk_engine.adapters.database import close_database, init_database
from aumos_risk_engine.adapters.memory import InMemoryRiskStore
from aumos_risk_engine.api.exception_handlers import register_exception_handlers
from aumos_risk_engine.api.router import router
from aumos_risk_engine.observability import configure_logging, get_logger
from aumos_risk_engine.settings import Settings

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application startup and shutdown.

    Configures logging and, for the SQL backend, opens the database engine
    on startup and disposes it on shutdown.

    Args:
        app: The FastAPI application instance.

    Yields:
        None
    """
    settings: Settings = app.state.settings
    configure_logging(settings.log_level, json_output=settings.log_json)

    if settings.storage_backend == "sql":
        await init_database(
            settings.database_url,
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_timeout=settings.db_pool_timeout,
            create_schema=settings.db_create_schema,
        )

    logger.info(
        "Risk engine startup complete",
        service=settings.service_name,
        storage_backend=settings.storage_backend,
    )

    yield

    logger.info("Shutting down risk engine")
    if settings.storage_backend == "sql":
        await close_database()
    logger.info("Risk engine shutdown complete")


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the FastAPI application.

    Args:
        settings: Settings to use; read from the environment when omitted.

    Returns:
        The configured application with the router mounted under /api/v1.
    """
    settings = settings or Settings()
    app = FastAPI(title=settings.service_name, version=__version__, lifespan=lifespan)
    app.state.settings = settings
    if settings.storage_backend == "memory":
        app.state.memory_store = InMemoryRiskStore()

    register_exception_handlers(app)
    app.include_router(router, prefix="/api/v1")

    @app.get("/health", include_in_schema=False)
    async def health() -> dict[str, str]:
        return {"status": "ok", "service": settings.service_name}

    return app
