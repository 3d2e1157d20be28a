"""
Test cases for token issuing and validation.
"""
import base64
import uuid
from datetime import datetime, timedelta, timezone

import jwt
import pytest

from user_service.auth.jwt import TokenIssuer, ALGORITHM
from user_service.auth.models import User

TEST_SECRET = "unit-test-signing-secret-with-at-least-32-bytes"
TEST_ISSUER = "test-issuer"
TEST_AUDIENCE = "test-audience"


def make_user(first_name=None, email="alice@example.com"):
    return User(id=uuid.uuid4(), email=email, password_hash="x", first_name=first_name)


def decode(token):
    return jwt.decode(
        token, TEST_SECRET, algorithms=["HS256"],
        audience=TEST_AUDIENCE, issuer=TEST_ISSUER,
    )


def test_access_token_claims(token_issuer):
    user = make_user(first_name="Alice")
    now = datetime.now(timezone.utc).replace(microsecond=0)

    token = token_issuer.issue_access_token(user, ["Seller", "User"], now)
    claims = decode(token)

    assert jwt.get_unverified_header(token)["alg"] == "HS256"
    assert ALGORITHM == "HS256"
    assert claims["sub"] == str(user.id)
    assert claims["email"] == "alice@example.com"
    assert claims["name"] == "Alice"
    assert claims["role"] == ["Seller", "User"]
    assert claims["iss"] == TEST_ISSUER
    assert claims["aud"] == TEST_AUDIENCE
    assert claims["iat"] == int(now.timestamp())
    assert claims["exp"] == int((now + timedelta(minutes=60)).timestamp())


def test_display_name_falls_back_to_email(token_issuer):
    for first_name in (None, "", "   "):
        claims = decode(token_issuer.issue_access_token(make_user(first_name=first_name), []))
        assert claims["name"] == "alice@example.com"


def test_one_role_entry_per_role(token_issuer):
    claims = decode(token_issuer.issue_access_token(make_user(), ["User"]))
    assert claims["role"] == ["User"]

    claims = decode(token_issuer.issue_access_token(make_user(), []))
    assert claims["role"] == []


def test_expiry_is_configurable():
    issuer = TokenIssuer(secret_key=TEST_SECRET, issuer=TEST_ISSUER, audience=TEST_AUDIENCE, expire_minutes=5)
    now = datetime.now(timezone.utc).replace(microsecond=0)
    claims = decode(issuer.issue_access_token(make_user(), [], now))
    assert claims["exp"] - claims["iat"] == 5 * 60
    assert issuer.expires_at(now) == now + timedelta(minutes=5)


def test_refresh_token_is_random_256_bits(token_issuer):
    first = token_issuer.issue_refresh_token()
    second = token_issuer.issue_refresh_token()
    assert first != second
    assert len(base64.b64decode(first)) == 32


def test_create_tokens(token_issuer):
    now = datetime.now(timezone.utc)
    tokens = token_issuer.create_tokens(make_user(), ["User"], now)
    assert tokens.token_type == "bearer"
    assert tokens.expires_at == now + timedelta(minutes=60)
    assert decode(tokens.access_token)["role"] == ["User"]
    assert tokens.refresh_token != tokens.access_token


def test_verify_token_round_trip(token_issuer):
    user = make_user(first_name="Alice")
    token = token_issuer.issue_access_token(user, ["Admin", "User"])
    data = token_issuer.verify_token(token)
    assert data is not None
    assert data.user_id == str(user.id)
    assert data.email == "alice@example.com"
    assert data.name == "Alice"
    assert data.roles == ["Admin", "User"]


def test_verify_rejects_expired_token(token_issuer):
    past = datetime.now(timezone.utc) - timedelta(hours=2)
    token = token_issuer.issue_access_token(make_user(), [], past)
    assert token_issuer.verify_token(token) is None


@pytest.mark.parametrize("kwargs", [
    {"secret_key": "another-secret-key-that-is-long-enough-for-hs256"},
    {"issuer": "someone-else"},
    {"audience": "another-audience"},
])
def test_verify_rejects_foreign_tokens(token_issuer, kwargs):
    settings = dict(secret_key=TEST_SECRET, issuer=TEST_ISSUER, audience=TEST_AUDIENCE)
    settings.update(kwargs)
    foreign = TokenIssuer(**settings).issue_access_token(make_user(), ["Admin"])
    assert token_issuer.verify_token(foreign) is None


def test_verify_rejects_garbage(token_issuer):
    assert token_issuer.verify_token("invalid.token.here") is None
    assert token_issuer.verify_token("") is None
