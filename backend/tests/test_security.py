"""
Tests for Supabase access token verification.
"""
import time

from jose import jwt

from smartprompts.core.config import settings
from smartprompts.core.security import principal_from_token, verify_token


def make_token(secret=None, **claims):
    payload = {
        "sub": "0b6f1d5e-2a7c-4c1e-9b55-8c1f0e4b7a21",
        "aud": "authenticated",
        "exp": int(time.time()) + 600,
    }
    payload.update(claims)
    return jwt.encode(payload, secret or settings.jwt_secret_key, algorithm="HS256")


class TestVerifyToken:

    def test_valid_token(self):
        payload = verify_token(make_token(email="a@example.com"))

        assert payload["sub"] == "0b6f1d5e-2a7c-4c1e-9b55-8c1f0e4b7a21"
        assert payload["email"] == "a@example.com"

    def test_wrong_secret(self):
        assert verify_token(make_token(secret="some-other-secret")) is None

    def test_expired(self):
        assert verify_token(make_token(exp=int(time.time()) - 10)) is None

    def test_wrong_audience(self):
        assert verify_token(make_token(aud="anon")) is None

    def test_garbage(self):
        assert verify_token("not-a-jwt") is None


class TestPrincipalFromToken:

    def test_email_claim(self):
        principal = principal_from_token(make_token(email="a@example.com"))

        assert principal.id == "0b6f1d5e-2a7c-4c1e-9b55-8c1f0e4b7a21"
        assert principal.email == "a@example.com"

    def test_email_from_user_metadata(self):
        principal = principal_from_token(make_token(user_metadata={"email": "meta@example.com"}))

        assert principal.email == "meta@example.com"

    def test_missing_sub(self):
        assert principal_from_token(make_token(sub=None)) is None

    def test_invalid_token(self):
        assert principal_from_token("not-a-jwt") is None
