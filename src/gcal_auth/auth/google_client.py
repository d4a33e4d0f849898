"""
Google OAuth2 endpoint client.

Builds the consent URL and talks to the token endpoint for the
``authorization_code`` and ``refresh_token`` grants. Every transport or
protocol failure surfaces as :class:`TokenExchangeError`.
"""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import urlencode

import httpx

from gcal_auth.auth.errors import TokenExchangeError
from gcal_auth.auth.models import TokenResponse

logger = logging.getLogger("gcal_auth.auth.google_client")

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"


class GoogleOAuthClient:
    """Thin async client for Google's authorization and token endpoints.

    Usage::

        client = GoogleOAuthClient(client_id, client_secret, scopes=[...])
        url = client.get_authorization_url(redirect_uri, state, code_challenge)
        tokens = await client.exchange_code(code, redirect_uri, code_verifier)
        tokens = await client.refresh(tokens.refresh_token)
        await client.close()
    """

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        *,
        scopes: list[str] | None = None,
        authorize_url: str = GOOGLE_AUTH_URL,
        token_url: str = GOOGLE_TOKEN_URL,
        timeout: float = 30.0,
    ) -> None:
        self.client_id = client_id
        self.client_secret = client_secret
        self.scopes = scopes or []
        self.authorize_url = authorize_url
        self.token_url = token_url
        self.timeout = timeout
        self._http_client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create a reusable httpx client."""
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(timeout=self.timeout)
        return self._http_client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._http_client and not self._http_client.is_closed:
            await self._http_client.aclose()

    def get_authorization_url(
        self,
        redirect_uri: str,
        state: str,
        code_challenge: str,
    ) -> str:
        """Build the consent URL with PKCE (S256) and an offline-access hint."""
        params = {
            "response_type": "code",
            "client_id": self.client_id,
            "redirect_uri": redirect_uri,
            "scope": " ".join(self.scopes),
            "state": state,
            "code_challenge": code_challenge,
            "code_challenge_method": "S256",
            "access_type": "offline",  # issue a refresh token
            "prompt": "consent",
        }
        return f"{self.authorize_url}?{urlencode(params)}"

    async def _post_token(self, payload: dict[str, str], grant: str) -> TokenResponse:
        client = await self._get_client()
        try:
            resp = await client.post(self.token_url, data=payload)
            resp.raise_for_status()
            data: dict[str, Any] = resp.json()
            return TokenResponse.from_oauth_response(data)
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            logger.warning("Token endpoint rejected %s grant (HTTP %d)", grant, status)
            raise TokenExchangeError(
                f"Token endpoint rejected {grant} grant (HTTP {status})",
                status_code=status,
            ) from e
        except httpx.HTTPError as e:
            logger.warning("Token endpoint unreachable during %s grant: %s", grant, type(e).__name__)
            raise TokenExchangeError(f"Token endpoint unreachable: {type(e).__name__}") from e
        except (KeyError, ValueError, TypeError) as e:
            logger.warning("Malformed token response for %s grant", grant)
            raise TokenExchangeError(f"Malformed token response for {grant} grant") from e

    async def exchange_code(
        self,
        code: str,
        redirect_uri: str,
        code_verifier: str,
    ) -> TokenResponse:
        """Exchange an authorization code bound to ``code_verifier`` for tokens.

        Raises:
            TokenExchangeError: On network failure, vendor rejection or a
                malformed response.
        """
        payload = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": redirect_uri,
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "code_verifier": code_verifier,
        }
        tokens = await self._post_token(payload, "authorization_code")
        logger.info("Exchanged authorization code for tokens")
        return tokens

    async def refresh(self, refresh_token: str) -> TokenResponse:
        """Mint a new access token from a refresh token.

        Google usually omits ``refresh_token`` from refresh responses; the
        original one is carried over in that case.

        Raises:
            TokenExchangeError: On network failure, vendor rejection or a
                malformed response.
        """
        payload = {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            "client_id": self.client_id,
            "client_secret": self.client_secret,
        }
        tokens = await self._post_token(payload, "refresh_token")
        if not tokens.refresh_token:
            tokens.refresh_token = refresh_token
        logger.info("Refreshed access token (expires in %ds)", tokens.access_ttl)
        return tokens
