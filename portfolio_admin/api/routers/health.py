import logging

from fastapi import APIRouter, Request
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from portfolio_admin.core.config import get_settings
from portfolio_admin.core.time import utcnow

logger = logging.getLogger(__name__)
router = APIRouter(tags=["health"])


@router.get("/health")
def health(request: Request):
    """Report which required settings are present (never their values) and whether the database answers."""
    settings = get_settings()
    database_ok = True
    try:
        with request.app.state.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        logger.error(f"Health check could not reach the database: {exc}")
        database_ok = False

    environment = {
        "DATABASE_URL": "SET" if settings.database_url else "MISSING",
        "JWT_SECRET": "SET" if settings.jwt_secret else "MISSING",
        "ADMIN_EMAIL": "SET" if settings.admin_email else "not-set",
    }
    healthy = database_ok and all(v == "SET" for k, v in environment.items() if k != "ADMIN_EMAIL")
    return {
        "status": "healthy" if healthy else "degraded",
        "timestamp": utcnow().isoformat(),
        "database": "ok" if database_ok else "unreachable",
        "environment": environment,
    }
