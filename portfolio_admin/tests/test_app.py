import pytest
from fastapi.testclient import TestClient

from portfolio_admin.core import security
from portfolio_admin.core.config import get_settings
from portfolio_admin.db.init_db import ensure_admin_exists
from portfolio_admin.main import create_app
from portfolio_admin.services import users


def test_create_app_refuses_to_start_without_jwt_secret(monkeypatch, engine):
    monkeypatch.setenv("JWT_SECRET", "")
    get_settings.cache_clear()
    with pytest.raises(Exception):
        create_app(engine=engine)


def test_admin_is_seeded_on_startup(monkeypatch, engine, db):
    monkeypatch.setenv("ADMIN_EMAIL", "Owner@Example.com")
    monkeypatch.setenv("ADMIN_PASSWORD", "Secret123!")
    get_settings.cache_clear()

    with TestClient(create_app(engine=engine)) as client:
        resp = client.post("/api/auth/login", json={"email": "owner@example.com", "password": "Secret123!"})
        assert resp.status_code == 200, resp.text

    admin = users.get_by_email(db, "owner@example.com")
    assert admin is not None
    assert security.verify_password("Secret123!", admin.password_hash)


def test_seeding_is_idempotent_and_optional(monkeypatch, db):
    assert ensure_admin_exists(db, get_settings()) is None

    monkeypatch.setenv("ADMIN_EMAIL", "owner@example.com")
    monkeypatch.setenv("ADMIN_PASSWORD", "Secret123!")
    get_settings.cache_clear()
    first = ensure_admin_exists(db, get_settings())
    second = ensure_admin_exists(db, get_settings())
    assert first.id == second.id
