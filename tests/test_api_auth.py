"""Tests for API authentication module."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi import HTTPException
from fastapi.security import HTTPAuthorizationCredentials
from jose import jwt

from orgguard.api.auth import JWTValidator, get_current_user
from orgguard.config.settings import Settings


def _request(headers: dict[str, str] | None = None) -> MagicMock:
    request = MagicMock()
    request.headers = headers or {}
    return request


class TestJWTValidator:
    """Tests for JWTValidator class."""

    @pytest.mark.asyncio
    async def test_get_jwks_returns_cached(self):
        """_get_jwks returns cached JWKS if available."""
        validator = JWTValidator(Settings(jwt_jwks_url="https://example.com/jwks"))
        cached_jwks = {"keys": [{"kid": "test-key"}]}
        validator._jwks = cached_jwks

        assert await validator._get_jwks() == cached_jwks

    @pytest.mark.asyncio
    async def test_get_jwks_fetches_from_url(self):
        """_get_jwks fetches from jwt_jwks_url."""
        validator = JWTValidator(Settings(jwt_jwks_url="https://example.com/jwks"))

        mock_response = MagicMock()
        mock_response.json.return_value = {"keys": [{"kid": "fetched-key"}]}

        with patch("httpx.AsyncClient") as mock_client:
            mock_instance = AsyncMock()
            mock_instance.get.return_value = mock_response
            mock_client.return_value.__aenter__.return_value = mock_instance

            result = await validator._get_jwks()

        assert result == {"keys": [{"kid": "fetched-key"}]}
        mock_instance.get.assert_called_once_with("https://example.com/jwks")

    @pytest.mark.asyncio
    async def test_get_jwks_without_url_raises(self):
        validator = JWTValidator(Settings(jwt_jwks_url=None))

        with pytest.raises(ValueError, match="No JWKS URL"):
            await validator._get_jwks()

    @pytest.mark.asyncio
    async def test_validate_token_unknown_kid(self):
        """A token signed with a key absent from the JWKS is rejected."""
        validator = JWTValidator(Settings(jwt_jwks_url="https://example.com/jwks"))
        validator._jwks = {"keys": [{"kid": "other"}]}
        token = jwt.encode({"sub": "u1"}, "secret", algorithm="HS256", headers={"kid": "mine"})

        with pytest.raises(HTTPException) as exc_info:
            await validator.validate_token(token)

        assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    async def test_validate_token_malformed(self):
        validator = JWTValidator(Settings(jwt_jwks_url="https://example.com/jwks"))

        with pytest.raises(HTTPException) as exc_info:
            await validator.validate_token("not-a-jwt")

        assert exc_info.value.status_code == 401


class TestGetCurrentUser:
    @pytest.mark.asyncio
    async def test_anonymous_uses_principal_header(self):
        settings = Settings(jwt_jwks_url=None, allow_anonymous=True)

        user = await get_current_user(_request({"X-Principal-Id": "dev-1"}), None, settings)

        assert user["sub"] == "dev-1"

    @pytest.mark.asyncio
    async def test_anonymous_default_principal(self):
        settings = Settings(jwt_jwks_url=None, allow_anonymous=True)

        user = await get_current_user(_request(), None, settings)

        assert user["sub"] == "anonymous"

    @pytest.mark.asyncio
    async def test_unconfigured_auth_rejected(self):
        settings = Settings(jwt_jwks_url=None, allow_anonymous=False)

        with pytest.raises(HTTPException) as exc_info:
            await get_current_user(_request(), None, settings)

        assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    async def test_missing_credentials_rejected(self):
        settings = Settings(jwt_jwks_url="https://example.com/jwks")

        with pytest.raises(HTTPException) as exc_info:
            await get_current_user(_request(), None, settings)

        assert exc_info.value.status_code == 401
        assert exc_info.value.headers == {"WWW-Authenticate": "Bearer"}

    @pytest.mark.asyncio
    async def test_valid_token_returns_claims(self):
        settings = Settings(jwt_jwks_url="https://example.com/jwks")
        credentials = HTTPAuthorizationCredentials(scheme="Bearer", credentials="token")

        with patch.object(JWTValidator, "validate_token", AsyncMock(return_value={"sub": "u1"})):
            user = await get_current_user(_request(), credentials, settings)

        assert user == {"sub": "u1"}
