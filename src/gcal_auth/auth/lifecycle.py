"""
Credential lifecycle: use, silently refresh, or reauthorize.

Decision policy for :meth:`CredentialLifecycleManager.get_or_refresh`:

1. A live or stored access credential that has not expired is returned.
2. Otherwise a stored refresh credential is exchanged for a new access
   credential without user interaction.
3. Otherwise (no refresh credential, or the refresh failed) every stored
   credential for the identity is cleared and the caller is told that
   interactive reauthorization is required.

The manager never hands out an expired credential and never lets a refresh
failure escape as an exception.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable

from gcal_auth.auth.flow import AuthorizationFlowCoordinator
from gcal_auth.auth.google_client import GoogleOAuthClient
from gcal_auth.auth.models import (
    Credential,
    CredentialResult,
    access_key,
    refresh_key,
)
from gcal_auth.auth.token_store import TokenStore, load_credential, save_tokens

logger = logging.getLogger("gcal_auth.auth.lifecycle")


class CredentialLifecycleManager:
    """Decides per call whether a credential is usable, refreshable or gone."""

    def __init__(
        self,
        store: TokenStore,
        coordinator: AuthorizationFlowCoordinator,
        client: GoogleOAuthClient,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._coordinator = coordinator
        self._client = client
        self._clock = clock
        self._live: dict[str, Credential] = {}

    def _is_expired(self, credential: Credential) -> bool:
        return credential.is_expired(self._clock())

    def _hydrate(self, identity: str) -> Credential | None:
        live = self._live.get(identity)
        if live is not None and not self._is_expired(live):
            return live

        stored = load_credential(self._store, identity)
        if stored is None or self._is_expired(stored):
            return None
        self._live[identity] = stored
        return stored

    def is_authenticated(self, identity: str) -> bool:
        """True iff an unexpired access credential is live or cached. No I/O."""
        return self._hydrate(identity) is not None

    def get_valid_credential(self, identity: str) -> Credential | None:
        """Return a usable credential without refreshing or prompting the user."""
        return self._hydrate(identity)

    async def get_or_refresh(self, identity: str) -> CredentialResult:
        """Return a usable credential, refreshing silently when possible.

        Never raises; failures resolve to a reauthorization-required result.
        """
        credential = self._hydrate(identity)
        if credential is not None:
            return CredentialResult.valid(credential)

        refresh_token = self._refresh_token_for(identity)
        if refresh_token is None:
            logger.warning("No refresh token available for %s, re-authentication required", identity)
            self.clear_authentication(identity)
            return CredentialResult.reauthorize()

        logger.info("Access token expired for %s, refreshing...", identity)
        try:
            credential = await self._refresh(identity, refresh_token)
        except Exception as e:
            logger.error(
                "Token refresh failed for %s (%s), re-authentication required",
                identity,
                type(e).__name__,
            )
            self.clear_authentication(identity)
            return CredentialResult.reauthorize()
        return CredentialResult.refreshed(credential)

    async def ensure_credential(self, identity: str) -> Credential:
        """Like :meth:`get_or_refresh`, but falls back to interactive authorization.

        Raises:
            AuthorizationTimeoutError: If the user does not finish in time.
            TokenExchangeError: If the authorization code exchange fails.
            CsrfValidationError: If a manually pasted URL does not match.
        """
        result = await self.get_or_refresh(identity)
        if result.credential is not None:
            return result.credential

        logger.info("Starting interactive authorization for %s", identity)
        # Other callers may share this future; cancelling this one must not cancel it.
        credential = await asyncio.shield(self._coordinator.initiate(identity))
        self._live[identity] = credential
        return credential

    def clear_authentication(self, identity: str) -> None:
        """Forget every credential held for ``identity``."""
        self._store.remove(refresh_key(identity))
        self._store.remove(access_key(identity))
        self._live.pop(identity, None)
        logger.info("All credentials cleared for %s", identity)

    def token_info(self, identity: str) -> dict[str, Any]:
        """Non-secret summary of what is held for ``identity``."""
        credential = self._live.get(identity) or load_credential(self._store, identity)
        return {
            "has_access_token": credential is not None,
            "has_refresh_token": self._refresh_token_for(identity) is not None,
            "is_expired": credential is None or self._is_expired(credential),
            "expires_at": credential.expires_at if credential else None,
            "authorization_status": self._coordinator.status(identity).value,
        }

    def _refresh_token_for(self, identity: str) -> str | None:
        live = self._live.get(identity)
        if live is not None and live.refresh_token:
            return live.refresh_token
        return self._store.fetch(refresh_key(identity))

    async def _refresh(self, identity: str, refresh_token: str) -> Credential:
        tokens = await self._client.refresh(refresh_token)
        if tokens.refresh_token == refresh_token:
            # Not rotated: keep the existing entry and its original expiry.
            tokens.refresh_token = None
        save_tokens(self._store, identity, tokens)

        credential = load_credential(self._store, identity)
        if credential is None:
            raise RuntimeError("Refreshed access token was not persisted")
        self._live[identity] = credential
        logger.info("Successfully refreshed and stored access token for %s", identity)
        return credential
