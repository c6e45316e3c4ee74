from sqlalchemy.orm import declarative_base

Base = declarative_base()

# Import models so Alembic can discover metadata
from portfolio_admin.models import (  # noqa: E402,F401
    two_factor_session,
    user,
)
