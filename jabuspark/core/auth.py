"""
Opaque bearer sessions.

Clients send ``Authorization: Bearer <token>``. Only the sha256 of the token is
stored, so the raw token is the sole credential and cannot be recovered from the
database.
"""
from datetime import datetime, timedelta, timezone
import hashlib
import logging
import secrets

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from passlib.context import CryptContext
from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from jabuspark.core.database import get_db
from jabuspark.core.errors import Forbidden, Unauthorized
from jabuspark.models.orm import User, UserSession, utcnow

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

bearer = HTTPBearer(auto_error=False)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return pwd_context.verify(password, password_hash)
    except ValueError:
        # Unknown or malformed hash format
        return False


def token_hash(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def issue_session(db: Session, user: User, ttl_days: int, ip: str = "", user_agent: str = "") -> tuple[str, datetime]:
    """Create a session row and return the raw token with its UTC expiry."""
    token = secrets.token_hex(32)
    now = utcnow()
    expires_at = now + timedelta(days=ttl_days)
    db.add(UserSession(
        user_id=user.id, token_hash=token_hash(token), created_at=now, expires_at=expires_at,
        ip=(ip or "")[:64], user_agent=(user_agent or "")[:255],
    ))
    db.commit()
    logger.info(f"Session issued for user {user.id}")
    return token, expires_at.replace(tzinfo=timezone.utc)


def resolve_session(db: Session, token: str, now: datetime | None = None) -> User | None:
    """Return the session's user, or None for unknown or expired tokens."""
    now = now or utcnow()
    return db.scalar(
        select(User)
        .join(UserSession, UserSession.user_id == User.id)
        .where(UserSession.token_hash == token_hash(token), UserSession.expires_at > now)
        .limit(1)
    )


def revoke_session(db: Session, token: str) -> None:
    db.execute(delete(UserSession).where(UserSession.token_hash == token_hash(token)))
    db.commit()


def client_info(request: Request) -> tuple[str, str]:
    ip = request.client.host if request.client else ""
    return ip, request.headers.get("user-agent", "")


def get_optional_token(creds: HTTPAuthorizationCredentials | None = Depends(bearer)) -> str | None:
    if creds is None or not creds.credentials.strip():
        return None
    return creds.credentials.strip()


def get_current_user(token: str | None = Depends(get_optional_token), db: Session = Depends(get_db)) -> User:
    if not token:
        raise Unauthorized("Unauthorized")
    user = resolve_session(db, token)
    if user is None:
        raise Unauthorized("Invalid or expired session")
    return user


def require_roles(*required: str):
    def checker(user: User = Depends(get_current_user)) -> User:
        if user.role not in required:
            raise Forbidden("Admin only" if required == ("admin",) else "Insufficient role")
        return user
    return checker
