"""
Password hashing and bearer token utilities.

Passwords are stored as bcrypt digests (salt embedded in the digest).
Tokens are HS256 JWTs carrying the user id and email.
"""
from datetime import datetime, timedelta, timezone
from uuid import UUID

import bcrypt
import jwt
from pydantic import BaseModel


class TokenError(Exception):
    """Raised when a token fails signature, expiry or claim validation."""


class TokenClaims(BaseModel):
    """Identity asserted by a verified token."""

    id: UUID
    email: str
    iat: int
    exp: int


def hash_password(password: str, rounds: int = 10) -> str:
    digest = bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds))
    return digest.decode("utf-8")


def verify_password(password: str, digest: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), digest.encode("utf-8"))
    except ValueError:
        # Stored value is not a bcrypt digest
        return False


def create_access_token(
    user_id: UUID,
    email: str,
    secret: str,
    *,
    algorithm: str = "HS256",
    expires_in: int = 86400,
    now: datetime | None = None,
) -> str:
    """
    Issue a signed token for a user.

    `now` is only overridden by tests that need an already expired token.
    """
    issued = now or datetime.now(timezone.utc)
    payload = {
        "id": str(user_id),
        "email": email,
        "iat": issued,
        "exp": issued + timedelta(seconds=expires_in),
    }
    return jwt.encode(payload, secret, algorithm=algorithm)


def decode_access_token(token: str, secret: str, *, algorithm: str = "HS256") -> TokenClaims:
    try:
        payload = jwt.decode(
            token,
            secret,
            algorithms=[algorithm],
            options={"require": ["exp", "iat"]},
        )
    except jwt.InvalidTokenError as e:
        # ExpiredSignatureError is a subclass
        raise TokenError(str(e)) from e

    try:
        return TokenClaims.model_validate(payload)
    except ValueError as e:
        raise TokenError("Token payload is missing identity claims") from e
