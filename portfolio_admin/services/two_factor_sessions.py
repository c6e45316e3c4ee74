"""Server-side records bridging a password check and its second factor.

The pre-2FA bearer token is stateless, so these rows are what make it
single-use and revocable. Only a sha256 digest of the token is stored.
"""
import hashlib
from datetime import timedelta

from sqlalchemy.orm import Session

from portfolio_admin.core.time import utcnow
from portfolio_admin.models import TwoFactorSession


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def create(db: Session, user_id: str, token: str, ttl: timedelta) -> TwoFactorSession:
    record = TwoFactorSession(
        user_id=user_id,
        token_hash=hash_token(token),
        expires_at_utc=utcnow() + ttl,
        verified=False,
    )
    db.add(record)
    db.commit()
    db.refresh(record)
    return record


def find_active(db: Session, token: str) -> TwoFactorSession | None:
    """Unverified and unexpired only; consumed, expired and unknown tokens all come back as None."""
    return (
        db.query(TwoFactorSession)
        .filter(
            TwoFactorSession.token_hash == hash_token(token),
            TwoFactorSession.verified.is_(False),
            TwoFactorSession.expires_at_utc > utcnow(),
        )
        .first()
    )


def mark_verified(db: Session, session_id: str, commit: bool = True) -> bool:
    """Flip ``verified`` only if it is still unset, so two racing verifications cannot both win.

    With ``commit=False`` the caller owns the transaction and must commit or roll back.
    """
    updated = (
        db.query(TwoFactorSession)
        .filter(TwoFactorSession.id == session_id, TwoFactorSession.verified.is_(False))
        .update({TwoFactorSession.verified: True}, synchronize_session=False)
    )
    if commit:
        db.commit()
    return updated == 1


def delete_all_for_user(db: Session, user_id: str, except_id: str | None = None) -> int:
    query = db.query(TwoFactorSession).filter(TwoFactorSession.user_id == user_id)
    if except_id:
        query = query.filter(TwoFactorSession.id != except_id)
    deleted = query.delete(synchronize_session=False)
    db.commit()
    return deleted


def purge_expired(db: Session) -> int:
    deleted = (
        db.query(TwoFactorSession)
        .filter(TwoFactorSession.expires_at_utc <= utcnow())
        .delete(synchronize_session=False)
    )
    db.commit()
    return deleted
