import enum
import uuid
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Dict

import jwt
from passlib.context import CryptContext

from .config import get_settings
from .time import utcnow


# pbkdf2_sha256 for new hashes; bcrypt stays verifiable for accounts imported from the old panel.
pwd_context = CryptContext(
    schemes=["pbkdf2_sha256", "bcrypt"],
    deprecated="auto",
)
ALGORITHM = "HS256"

ACCESS_TOKEN = "access"
PENDING_TOKEN = "pre_2fa"


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return pwd_context.verify(password, password_hash)
    except ValueError:
        # unrecognized or corrupt hash
        return False


class TokenStatus(str, enum.Enum):
    VALID = "valid"
    EXPIRED = "expired"
    INVALID = "invalid"


@dataclass(frozen=True)
class TokenVerification:
    """Outcome of checking a bearer token; ``claims`` is only set when valid."""

    status: TokenStatus
    claims: Dict[str, Any] = field(default_factory=dict)
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status is TokenStatus.VALID

    @property
    def is_pending(self) -> bool:
        return bool(self.claims.get("temporary"))


def create_token(payload: Dict[str, Any], expires_minutes: int) -> str:
    settings = get_settings()
    now = utcnow()
    expire = now + timedelta(minutes=expires_minutes)
    claims = {
        **payload,
        "jti": uuid.uuid4().hex,
        "iss": settings.jwt_issuer,
        "iat": now,
        "exp": expire,
    }
    return jwt.encode(claims, settings.jwt_secret, algorithm=ALGORITHM)


def create_access_token(user_id: str, email: str, two_factor_verified: bool = False) -> str:
    settings = get_settings()
    payload = {"sub": user_id, "email": email, "type": ACCESS_TOKEN}
    if two_factor_verified:
        payload["two_factor_verified"] = True
    return create_token(payload, settings.access_token_exp_minutes)


def create_pending_token(user_id: str, email: str) -> str:
    settings = get_settings()
    return create_token(
        {"sub": user_id, "email": email, "type": PENDING_TOKEN, "temporary": True},
        settings.pending_token_exp_minutes,
    )


def verify_token(token: str) -> TokenVerification:
    """Check signature, issuer and expiry without raising for routine failures."""
    settings = get_settings()
    try:
        claims = jwt.decode(
            token,
            settings.jwt_secret,
            issuer=settings.jwt_issuer,
            algorithms=[ALGORITHM],
            options={"require": ["iss", "iat", "exp", "sub"]},
        )
    except jwt.ExpiredSignatureError:
        return TokenVerification(TokenStatus.EXPIRED, error="token expired")
    except jwt.InvalidTokenError as exc:
        return TokenVerification(TokenStatus.INVALID, error=str(exc) or type(exc).__name__)
    return TokenVerification(TokenStatus.VALID, claims=claims)
