"""Tests for the Google OAuth2 endpoint client."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from gcal_auth.auth.errors import TokenExchangeError
from gcal_auth.auth.google_client import GOOGLE_TOKEN_URL, GoogleOAuthClient
from gcal_auth.auth.models import TokenResponse


@pytest.fixture
def client() -> GoogleOAuthClient:
    return GoogleOAuthClient(
        "test-client-id",
        "test-client-secret",
        scopes=[
            "https://www.googleapis.com/auth/calendar",
            "https://www.googleapis.com/auth/calendar.events",
        ],
    )


def _mock_http(client: GoogleOAuthClient, payload: dict | None = None) -> AsyncMock:
    mock_response = MagicMock()
    mock_response.json.return_value = payload or {}
    mock_response.raise_for_status = MagicMock()

    mock_client = AsyncMock()
    mock_client.post.return_value = mock_response
    mock_client.is_closed = False
    client._http_client = mock_client
    return mock_client


# ---------------------------------------------------------------------------
# TokenResponse
# ---------------------------------------------------------------------------


class TestTokenResponse:
    def test_from_oauth_response(self) -> None:
        tokens = TokenResponse.from_oauth_response({
            "access_token": "ya29.abc",
            "refresh_token": "1//ref",
            "expires_in": "3599",
            "token_type": "Bearer",
            "scope": "https://www.googleapis.com/auth/calendar",
            "id_token": "jwt",
        })
        assert tokens.access_token == "ya29.abc"
        assert tokens.refresh_token == "1//ref"
        assert tokens.expires_in == 3599
        assert tokens.access_ttl == 3599
        assert tokens.extra == {"id_token": "jwt"}
        assert "ya29" not in repr(tokens)

    def test_missing_expires_in(self) -> None:
        tokens = TokenResponse.from_oauth_response({"access_token": "abc"})
        assert tokens.refresh_token is None
        assert tokens.access_ttl == 3600

    def test_missing_access_token(self) -> None:
        with pytest.raises(KeyError):
            TokenResponse.from_oauth_response({"refresh_token": "ref"})


# ---------------------------------------------------------------------------
# Authorization URL
# ---------------------------------------------------------------------------


class TestAuthorizationUrl:
    def test_parameters(self, client: GoogleOAuthClient) -> None:
        url = client.get_authorization_url(
            "http://localhost:4153/oauth2callback", "state123", "challenge456"
        )
        parsed = urlparse(url)
        query = parse_qs(parsed.query)

        assert parsed.netloc == "accounts.google.com"
        assert query["response_type"] == ["code"]
        assert query["client_id"] == ["test-client-id"]
        assert query["redirect_uri"] == ["http://localhost:4153/oauth2callback"]
        assert query["scope"] == [
            "https://www.googleapis.com/auth/calendar https://www.googleapis.com/auth/calendar.events"
        ]
        assert query["state"] == ["state123"]
        assert query["code_challenge"] == ["challenge456"]
        assert query["code_challenge_method"] == ["S256"]
        assert query["access_type"] == ["offline"]
        assert query["prompt"] == ["consent"]
        assert "test-client-secret" not in url


# ---------------------------------------------------------------------------
# Token endpoint
# ---------------------------------------------------------------------------


class TestExchangeCode:
    @pytest.mark.asyncio
    async def test_exchange(self, client: GoogleOAuthClient) -> None:
        mock_client = _mock_http(client, {
            "access_token": "new_access",
            "refresh_token": "new_refresh",
            "expires_in": 3600,
        })

        tokens = await client.exchange_code("auth-code", "http://localhost:4153/oauth2callback", "verifier")
        assert tokens.access_token == "new_access"
        assert tokens.refresh_token == "new_refresh"

        call = mock_client.post.call_args
        assert call.args[0] == GOOGLE_TOKEN_URL
        payload = call.kwargs["data"]
        assert payload["grant_type"] == "authorization_code"
        assert payload["code"] == "auth-code"
        assert payload["code_verifier"] == "verifier"
        assert payload["redirect_uri"] == "http://localhost:4153/oauth2callback"
        assert payload["client_secret"] == "test-client-secret"

    @pytest.mark.asyncio
    async def test_http_error(self, client: GoogleOAuthClient) -> None:
        mock_client = _mock_http(client)
        request = httpx.Request("POST", GOOGLE_TOKEN_URL)
        mock_client.post.return_value.raise_for_status.side_effect = httpx.HTTPStatusError(
            "bad request", request=request, response=httpx.Response(400, request=request)
        )

        with pytest.raises(TokenExchangeError) as exc_info:
            await client.exchange_code("bad-code", "http://localhost:4153/oauth2callback", "v")
        assert exc_info.value.status_code == 400
        assert exc_info.value.code == "TOKEN_ERROR"

    @pytest.mark.asyncio
    async def test_unreachable(self, client: GoogleOAuthClient) -> None:
        mock_client = _mock_http(client)
        mock_client.post.side_effect = httpx.ConnectError("connection refused")

        with pytest.raises(TokenExchangeError, match="unreachable") as exc_info:
            await client.exchange_code("code", "http://localhost:4153/oauth2callback", "v")
        assert exc_info.value.status_code is None

    @pytest.mark.asyncio
    async def test_malformed_response(self, client: GoogleOAuthClient) -> None:
        _mock_http(client, {"token_type": "Bearer"})

        with pytest.raises(TokenExchangeError, match="Malformed"):
            await client.exchange_code("code", "http://localhost:4153/oauth2callback", "v")


class TestRefresh:
    @pytest.mark.asyncio
    async def test_refresh_keeps_refresh_token(self, client: GoogleOAuthClient) -> None:
        mock_client = _mock_http(client, {"access_token": "refreshed", "expires_in": 3599})

        tokens = await client.refresh("1//original")
        assert tokens.access_token == "refreshed"
        assert tokens.refresh_token == "1//original"

        payload = mock_client.post.call_args.kwargs["data"]
        assert payload["grant_type"] == "refresh_token"
        assert payload["refresh_token"] == "1//original"

    @pytest.mark.asyncio
    async def test_refresh_rotated(self, client: GoogleOAuthClient) -> None:
        _mock_http(client, {"access_token": "refreshed", "refresh_token": "1//rotated"})
        tokens = await client.refresh("1//original")
        assert tokens.refresh_token == "1//rotated"

    @pytest.mark.asyncio
    async def test_refresh_rejected(self, client: GoogleOAuthClient) -> None:
        mock_client = _mock_http(client)
        request = httpx.Request("POST", GOOGLE_TOKEN_URL)
        mock_client.post.return_value.raise_for_status.side_effect = httpx.HTTPStatusError(
            "invalid_grant", request=request, response=httpx.Response(400, request=request)
        )

        with pytest.raises(TokenExchangeError):
            await client.refresh("1//revoked")


class TestClose:
    @pytest.mark.asyncio
    async def test_close(self, client: GoogleOAuthClient) -> None:
        mock_client = _mock_http(client)
        await client.close()
        mock_client.aclose.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_close_without_client(self, client: GoogleOAuthClient) -> None:
        await client.close()
