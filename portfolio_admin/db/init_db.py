import logging

from sqlalchemy.orm import Session

from portfolio_admin.core.config import Settings
from portfolio_admin.models import User
from portfolio_admin.services import users

logger = logging.getLogger(__name__)


def ensure_admin_exists(db: Session, settings: Settings) -> User | None:
    """Seed the single admin account from settings when none exists yet."""
    if not settings.admin_email or not settings.admin_password:
        return None

    existing = users.get_by_email(db, settings.admin_email)
    if existing:
        return existing

    admin = users.create_user(
        db,
        email=settings.admin_email,
        password=settings.admin_password,
        first_name=settings.admin_first_name,
        last_name=settings.admin_last_name,
    )
    logger.info(f"Seeded admin account {admin.email}")
    return admin
