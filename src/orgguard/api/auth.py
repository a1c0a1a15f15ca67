from __future__ import annotations

from typing import Any

import httpx
import structlog
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from orgguard.config import Settings, get_settings

logger = structlog.get_logger()
security = HTTPBearer(auto_error=False)

PRINCIPAL_HEADER = "X-Principal-Id"


class JWTValidator:
    """Validates JWT tokens against a JWKS endpoint."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self._jwks: dict[str, Any] | None = None

    async def _get_jwks(self) -> dict[str, Any]:
        """Fetch JWKS from configured URL."""
        if self._jwks:
            return self._jwks

        if not self.settings.jwt_jwks_url:
            raise ValueError("No JWKS URL configured")

        async with httpx.AsyncClient() as client:
            response = await client.get(str(self.settings.jwt_jwks_url))
            response.raise_for_status()
            self._jwks = response.json()
            return self._jwks

    async def validate_token(self, token: str) -> dict[str, Any]:
        """Validate JWT token and return claims."""
        try:
            unverified_header = jwt.get_unverified_header(token)
            kid = unverified_header.get("kid")

            jwks = await self._get_jwks()
            key = next((jwk for jwk in jwks.get("keys", []) if jwk.get("kid") == kid), None)
            if not key:
                raise JWTError("Public key not found in JWKS")

            return jwt.decode(
                token,
                key,
                algorithms=["RS256"],
                audience=self.settings.jwt_audience,
                issuer=self.settings.jwt_issuer,
            )

        except JWTError as exc:
            logger.warning("jwt_validation_failed", error=str(exc))
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid authentication credentials",
                headers={"WWW-Authenticate": "Bearer"},
            ) from exc


async def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(security),  # noqa: B008
    settings: Settings = Depends(get_settings),  # noqa: B008
) -> dict[str, Any]:
    """Extract and validate the caller's identity.

    Without JWKS configuration only ``allow_anonymous`` deployments accept
    requests; the principal then comes from the ``X-Principal-Id`` header.
    """
    if not settings.jwt_jwks_url:
        if not settings.allow_anonymous:
            logger.error("auth_not_configured")
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Authentication is not configured",
            )
        principal = request.headers.get(PRINCIPAL_HEADER, "anonymous")
        logger.warning("auth_disabled", principal=principal)
        return {"sub": principal, "username": principal}

    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing authentication credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    validator = JWTValidator(settings)
    return await validator.validate_token(credentials.credentials)
