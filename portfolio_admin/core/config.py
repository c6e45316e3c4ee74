from functools import lru_cache
from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _split_csv(value: str | List[str]) -> List[str]:
    if isinstance(value, list):
        return value
    return [v.strip() for v in str(value).split(",") if v and v.strip()]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_name: str = "Portfolio Admin API"
    debug: bool = False

    database_url: str = "sqlite:///./portfolio_admin.db"
    db_echo: bool = False

    # no default: a missing signing secret must abort startup
    jwt_secret: str = Field(..., min_length=1)
    jwt_issuer: str = "portfolio-admin"
    access_token_exp_minutes: int = 24 * 60
    pending_token_exp_minutes: int = 10
    two_factor_session_minutes: int = 10

    totp_issuer: str = "Portfolio Admin"
    totp_valid_window: int = 2
    backup_code_count: int = 10

    registration_enabled: bool = True

    admin_email: str | None = None
    admin_password: str | None = None
    admin_first_name: str = "Admin"
    admin_last_name: str = "User"

    cors_origins_raw: str = "http://localhost:3000"

    log_level: str = "INFO"
    log_file: str | None = None

    @property
    def cors_origins(self) -> List[str]:
        parsed = _split_csv(self.cors_origins_raw)
        return parsed or ["http://localhost:3000"]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()  # type: ignore[call-arg]
