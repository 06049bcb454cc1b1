from __future__ import annotations

import secrets
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Any, Dict

import jwt
from passlib.context import CryptContext

from sharebox.core.config import settings

SHARE_TOKEN_SCOPE = "share"

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=settings.bcrypt_rounds)


@lru_cache
def _dummy_hash() -> str:
    return pwd_context.hash(secrets.token_urlsafe(16))


def burn_password_check() -> None:
    """Spend the cost of one verification without a real hash to compare."""
    pwd_context.verify("not-the-password", _dummy_hash())


def verify_password(plain_password: str | None, hashed_password: str | None) -> bool:
    if not plain_password or not hashed_password:
        burn_password_check()
        return False
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except (ValueError, TypeError):
        burn_password_check()
        return False


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def generate_share_id() -> str:
    return secrets.token_hex(16)


def create_share_access_token(
    share_id: str,
    share_expires_at: datetime,
    expires_delta: timedelta | None = None,
) -> tuple[str, datetime]:
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(minutes=settings.share_token_expire_minutes))
    expire = min(expire, share_expires_at)
    payload: Dict[str, Any] = {
        "sid": share_id,
        "scope": SHARE_TOKEN_SCOPE,
        "jti": secrets.token_hex(8),
        "iat": int(now.timestamp()),
        "exp": int(expire.timestamp()),
    }
    token = jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)
    return token, expire


def decode_share_access_token(token: str) -> Dict[str, Any]:
    return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])


def share_token_grants(token: str | None, share_id: str) -> bool:
    if not token:
        return False
    try:
        payload = decode_share_access_token(token)
    except jwt.PyJWTError:
        return False
    return payload.get("scope") == SHARE_TOKEN_SCOPE and secrets.compare_digest(
        str(payload.get("sid", "")), share_id
    )
