from datetime import datetime, timedelta, timezone
from uuid import uuid4

import jwt
import pytest

from taskboard.core.security import (
    TokenError,
    create_access_token,
    decode_access_token,
    hash_password,
    verify_password,
)


def test_hash_is_salted_and_verifiable() -> None:
    first = hash_password("s3cret", rounds=4)
    second = hash_password("s3cret", rounds=4)

    assert first != second
    assert verify_password("s3cret", first)
    assert verify_password("s3cret", second)
    assert not verify_password("wrong", first)


def test_verify_rejects_non_bcrypt_digest() -> None:
    assert not verify_password("s3cret", "s3cret")


def test_token_roundtrip_carries_identity() -> None:
    user_id = uuid4()
    token = create_access_token(user_id, "ana@example.com", "k", expires_in=60)

    claims = decode_access_token(token, "k")
    assert claims.id == user_id
    assert claims.email == "ana@example.com"
    assert claims.exp - claims.iat == 60


def test_expired_token_is_rejected() -> None:
    issued = datetime.now(timezone.utc) - timedelta(days=1, seconds=1)
    token = create_access_token(uuid4(), "ana@example.com", "k", expires_in=86400, now=issued)

    with pytest.raises(TokenError):
        decode_access_token(token, "k")


def test_wrong_secret_is_rejected() -> None:
    token = create_access_token(uuid4(), "ana@example.com", "k")
    with pytest.raises(TokenError):
        decode_access_token(token, "other")


def test_token_without_identity_claims_is_rejected() -> None:
    now = datetime.now(timezone.utc)
    token = jwt.encode({"iat": now, "exp": now + timedelta(minutes=5)}, "k", algorithm="HS256")
    with pytest.raises(TokenError):
        decode_access_token(token, "k")
