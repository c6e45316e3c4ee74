import os

os.environ.setdefault("JWT_SECRET", "test-secret-key-for-portfolio-admin-tests")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("REGISTRATION_ENABLED", "true")

import pytest
from fastapi.testclient import TestClient

from portfolio_admin.core import security
from portfolio_admin.core.config import get_settings
from portfolio_admin.db.base import Base
from portfolio_admin.db.session import build_engine, build_session_factory
from portfolio_admin.main import create_app
from portfolio_admin.models import User

PASSWORD = "Secret123!"


@pytest.fixture(autouse=True)
def _fresh_settings():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture()
def engine():
    engine = build_engine("sqlite://")
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def db(engine):
    session = build_session_factory(engine)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def client(engine):
    app = create_app(engine=engine)
    with TestClient(app) as test_client:
        yield test_client


def make_user(db, email="admin@example.com", password=PASSWORD, **kwargs) -> User:
    user = User(
        email=email,
        password_hash=security.hash_password(password),
        first_name=kwargs.pop("first_name", "Ada"),
        last_name=kwargs.pop("last_name", "Admin"),
        **kwargs,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture()
def user(db):
    return make_user(db)
