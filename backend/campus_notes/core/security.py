"""Password hashing and bearer tokens.

Tokens carry the user id as ``sub`` plus the role and department the user had
when the token was minted. Those extra claims are informational only; every
request re-reads the user row, so a role change takes effect immediately.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import JWTError, jwt
from passlib.context import CryptContext

from campus_notes.core.settings import settings

DEFAULT_TOKEN_MINUTES = 60

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


class InvalidTokenError(ValueError):
    pass


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def create_access_token(claims: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    issued_at = datetime.now(timezone.utc)
    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.access_token_expire_minutes or DEFAULT_TOKEN_MINUTES)
    payload = {**claims, "iat": issued_at, "exp": issued_at + expires_delta}
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.algorithm)


def create_user_token(user, expires_delta: Optional[timedelta] = None) -> str:
    return create_access_token(
        {"sub": str(user.id), "role": user.role.value, "department": user.department},
        expires_delta,
    )


def decode_token(token: str) -> Dict[str, Any]:
    return jwt.decode(token, settings.jwt_secret, algorithms=[settings.algorithm])


def user_id_from_token(token: str) -> int:
    """Return the ``sub`` claim as an int or raise ``InvalidTokenError``."""
    try:
        subject = decode_token(token).get("sub")
    except JWTError as exc:
        raise InvalidTokenError("token rejected") from exc
    if subject is None:
        raise InvalidTokenError("token has no subject")
    try:
        return int(subject)
    except (TypeError, ValueError) as exc:
        raise InvalidTokenError("token subject is not a user id") from exc
