import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from portfolio_admin.api.routers import auth, health
from portfolio_admin.core.config import Settings, get_settings
from portfolio_admin.core.errors import register_exception_handlers
from portfolio_admin.core.logging_config import configure_logging
from portfolio_admin.db.base import Base
from portfolio_admin.db.init_db import ensure_admin_exists
from portfolio_admin.db.session import build_engine, build_session_factory

logger = logging.getLogger(__name__)


def on_startup(settings: Settings, engine: Engine, session_factory: sessionmaker) -> None:
    Base.metadata.create_all(bind=engine)
    db = session_factory()
    try:
        ensure_admin_exists(db, settings)
    finally:
        db.close()
    logger.info(f"{settings.app_name} started")


def create_app(settings: Settings | None = None, engine: Engine | None = None) -> FastAPI:
    """Build the API. Settings are resolved here so a missing JWT_SECRET stops the process at startup."""
    settings = settings or get_settings()
    configure_logging(settings)

    engine = engine or build_engine(settings.database_url, echo=settings.db_echo)
    session_factory = build_session_factory(engine)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        on_startup(settings, engine, session_factory)
        yield

    docs_url = "/docs" if settings.debug else None
    redoc_url = "/redoc" if settings.debug else None
    openapi_url = "/openapi.json" if settings.debug else None

    app = FastAPI(
        title=settings.app_name,
        version="0.1.0",
        docs_url=docs_url,
        redoc_url=redoc_url,
        openapi_url=openapi_url,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = session_factory

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
        allow_credentials=True,
    )

    register_exception_handlers(app, debug=settings.debug)
    app.include_router(auth.router)
    app.include_router(health.router)

    return app
