"""
GitHub App authentication.

Two steps, both per sync attempt:
1. AppTokenMinter signs a short-lived RS256 JWT (iat = now - 60s,
   exp = now + 600s, iss = app id) proving we hold the App's private key.
2. InstallationTokenBroker trades that JWT for an installation access token
   via POST /app/installations/{id}/access_tokens.

Neither the JWT nor the installation token is cached.
"""

import logging
import time
from typing import Callable, Optional

import httpx
import jwt

from release_sync.core.config import GitHubAppConfig, normalize_private_key
from release_sync.exceptions import ConfigurationError, TransportError, UpstreamAuthError
from release_sync.schemas.github import InstallationToken
from .client import build_http_client, github_headers

logger = logging.getLogger(__name__)

JWT_ALGORITHM = "RS256"
CLOCK_SKEW_SECONDS = 60
JWT_LIFETIME_SECONDS = 600


class AppTokenMinter:
    """Signs GitHub App JWTs. Pure function of (config, clock)."""

    def __init__(
        self,
        config: GitHubAppConfig,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config
        self._clock = clock

    def claims(self) -> dict:
        now = int(self._clock())
        return {
            "iat": now - CLOCK_SKEW_SECONDS,
            "exp": now + JWT_LIFETIME_SECONDS,
            "iss": str(self.config.app_id),
        }

    def mint(self) -> str:
        """
        Build a fresh signed assertion.

        Raises:
            ConfigurationError: app id or private key missing or unusable
        """
        if not self.config.app_id:
            raise ConfigurationError("GitHub App", "ID")
        if not self.config.private_key:
            raise ConfigurationError("GitHub App", "private key")

        try:
            return jwt.encode(
                self.claims(),
                normalize_private_key(self.config.private_key),
                algorithm=JWT_ALGORITHM,
            )
        except (ValueError, TypeError, jwt.PyJWTError) as e:
            raise ConfigurationError("GitHub App", "private key", type(e).__name__) from e


class InstallationTokenBroker:
    """Exchanges a freshly minted App JWT for an installation token."""

    def __init__(
        self,
        config: GitHubAppConfig,
        minter: Optional[AppTokenMinter] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config
        self.minter = minter or AppTokenMinter(config)
        self._transport = transport

    async def get_installation_token(self, installation_id: str) -> InstallationToken:
        """
        Raises:
            ConfigurationError: App credentials missing
            UpstreamAuthError: GitHub refused the exchange
            TransportError: network failure or timeout
        """
        assertion = self.minter.mint()

        try:
            async with build_http_client(self.config, self._transport) as client:
                response = await client.post(
                    f"/app/installations/{installation_id}/access_tokens",
                    headers=github_headers(assertion),
                )
        except httpx.TransportError as e:
            raise TransportError("GitHub token exchange", type(e).__name__) from e

        if not response.is_success:
            logger.warning(
                f"Installation token exchange failed for installation {installation_id}",
                extra={"error": f"status {response.status_code}"},
            )
            raise UpstreamAuthError(response.status_code, response.text)

        try:
            data = response.json()
            token = InstallationToken(token=data["token"], expires_at=data["expires_at"])
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(
                f"Malformed installation token response for installation {installation_id}",
                extra={"error": type(e).__name__},
            )
            raise UpstreamAuthError(response.status_code, response.text) from e

        logger.debug(f"Obtained installation token for {installation_id}, expires {token.expires_at}")
        return token
