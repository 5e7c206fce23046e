from datetime import datetime, timedelta, timezone
from typing import Any
import secrets
import uuid

import bcrypt
from jose import JWTError, jwt

from .config import settings


def _password_bytes(password: str) -> bytes:
    # bcrypt has a 72-byte limit, truncate if necessary
    return password.encode("utf-8")[:72]


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return bcrypt.checkpw(_password_bytes(plain_password), hashed_password.encode("utf-8"))


def get_password_hash(password: str) -> str:
    salt = bcrypt.gensalt()
    hashed = bcrypt.hashpw(_password_bytes(password), salt)
    return hashed.decode("utf-8")


def generate_password() -> str:
    """Throwaway password for identities created from the user directory."""
    return secrets.token_urlsafe(12)


def create_token(identity_id: str, token_type: str, expires_delta: timedelta) -> str:
    """Sign a token whose subject is an identity id."""
    now = datetime.now(timezone.utc)
    payload: dict[str, Any] = {
        "sub": identity_id,
        "iat": int(now.timestamp()),
        "exp": int((now + expires_delta).timestamp()),
        "type": token_type,
        # Unique per login so each sign-in gets its own session
        "jti": uuid.uuid4().hex,
    }
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def create_access_token(identity_id: str) -> str:
    expires = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    return create_token(identity_id, "access", expires)


def token_expiry(token: str) -> float | None:
    """UNIX expiry of a token, read without checking its signature."""
    try:
        claims = jwt.get_unverified_claims(token)
    except JWTError:
        return None
    exp = claims.get("exp")
    return float(exp) if exp is not None else None


def decode_token(token: str, expected_type: str) -> dict[str, Any]:
    try:
        payload = jwt.decode(
            token,
            settings.SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM],
        )
        if payload.get("type") != expected_type:
            raise JWTError("Invalid token type")
        return payload
    except JWTError as exc:
        raise JWTError("Invalid or expired token") from exc
