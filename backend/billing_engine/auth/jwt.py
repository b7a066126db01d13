"""Access/refresh token pair handed out by the login endpoint."""

from datetime import datetime, timedelta, timezone

from jose import jwt

from billing_engine.config import settings


def _encode(subject: str, token_type: str, lifetime: timedelta, extra: dict | None = None) -> str:
    now = datetime.now(timezone.utc)
    claims = {"sub": subject, "iat": now, "exp": now + lifetime, "type": token_type}
    if extra:
        claims.update(extra)
    return jwt.encode(claims, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def create_access_token(subject: str, role: str | None = None, expires_delta: timedelta | None = None) -> str:
    """Short-lived token carrying the user id and, when given, the role."""
    lifetime = expires_delta or timedelta(minutes=settings.jwt_access_token_expire_minutes)
    return _encode(subject, "access", lifetime, {"role": role} if role else None)


def create_refresh_token(subject: str, expires_delta: timedelta | None = None) -> str:
    lifetime = expires_delta or timedelta(days=settings.jwt_refresh_token_expire_days)
    return _encode(subject, "refresh", lifetime)


def decode_token(token: str) -> dict:
    """Verify signature and expiry; raises ``jose.JWTError`` otherwise."""
    return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])


def create_token_pair(user_id: str, role: str | None = None) -> dict[str, str]:
    return {
        "access_token": create_access_token(user_id, role),
        "refresh_token": create_refresh_token(user_id),
        "token_type": "bearer",
    }
