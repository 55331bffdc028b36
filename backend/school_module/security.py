from datetime import datetime, timedelta, timezone
from typing import Any

import jwt

from .config import settings


class AuthError(Exception):
    pass


def create_access_token(
    subject: str,
    role: str,
    class_id: int | None = None,
    expires_minutes: int | None = None,
) -> str:
    exp_minutes = expires_minutes or settings.jwt_exp_minutes
    now = datetime.now(timezone.utc)
    payload: dict[str, Any] = {
        "sub": subject,
        "role": role,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=exp_minutes)).timestamp()),
    }
    if class_id is not None:
        payload["class_id"] = class_id
    if settings.jwt_audience:
        payload["aud"] = settings.jwt_audience
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> dict[str, Any]:
    options = {} if settings.jwt_audience else {"verify_aud": False}
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            audience=settings.jwt_audience or None,
            options=options,
        )
    except jwt.ExpiredSignatureError as exc:
        raise AuthError("Token expired") from exc
    except jwt.InvalidTokenError as exc:
        raise AuthError("Invalid token") from exc
    if not payload.get("sub"):
        raise AuthError("Invalid token payload")
    return payload


def role_claim(payload: dict[str, Any]) -> str | None:
    """Role as issued by the identity provider, top level or under ``metadata``."""
    metadata = payload.get("metadata") or {}
    role = payload.get("role") or metadata.get("role")
    return str(role).strip().lower() if role else None


def class_claim(payload: dict[str, Any]) -> int | None:
    metadata = payload.get("metadata") or {}
    raw = payload.get("class_id", metadata.get("classId"))
    try:
        return int(raw) if raw is not None else None
    except (TypeError, ValueError):
        return None
