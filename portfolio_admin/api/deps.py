import logging

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from portfolio_admin.core.errors import AccountDeactivated, InvalidBearerToken, MissingBearerToken
from portfolio_admin.core.security import ACCESS_TOKEN, verify_token
from portfolio_admin.db.session import get_db
from portfolio_admin.models import User
from portfolio_admin.services import users

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme), db: Session = Depends(get_db)
) -> User:
    """Resolve a full session token; pre-2FA tokens are refused here."""
    if credentials is None:
        raise MissingBearerToken()

    verification = verify_token(credentials.credentials)
    if not verification.ok:
        raise InvalidBearerToken(reason=f"bearer token {verification.status.value}: {verification.error}")

    claims = verification.claims
    if verification.is_pending or claims.get("type") != ACCESS_TOKEN:
        raise InvalidBearerToken("Invalid token type", reason="pre-2FA token used as session token")

    user_id = claims.get("sub")
    if not user_id:
        raise InvalidBearerToken(reason="token without subject")

    user = users.get_by_id(db, user_id)
    if not user:
        raise InvalidBearerToken("User not found", reason=f"token for missing user {user_id}")
    if not user.is_active:
        raise AccountDeactivated(reason=f"token for deactivated user {user_id}")
    return user
