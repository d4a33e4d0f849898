"""
gcal-auth service: process-wide wiring of the authentication subsystem.

One :class:`AuthService` is built at process start and passed to the tool
handlers that need a Google credential. It owns the encryption key, the
token store, the authorization flow coordinator and the lifecycle manager.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any

from gcal_auth.auth.flow import AuthorizationFlowCoordinator
from gcal_auth.auth.google_client import GoogleOAuthClient
from gcal_auth.auth.lifecycle import CredentialLifecycleManager
from gcal_auth.auth.models import Credential, CredentialResult
from gcal_auth.auth.token_store import TokenStore, load_encryption_key
from gcal_auth.config import GCalAuthConfig

logger = logging.getLogger("gcal_auth")


@dataclass
class AuthService:
    """Top-level entry point used by calendar tool handlers.

    Usage::

        from gcal_auth import AuthService

        async with AuthService.from_config("gcal-auth.yaml") as auth:
            if not auth.is_authenticated():
                credential = await auth.ensure_credential()

    Every method takes an optional ``identity``; it defaults to the
    configured single identity (``default-user``).
    """

    config: GCalAuthConfig
    store: TokenStore
    client: GoogleOAuthClient
    coordinator: AuthorizationFlowCoordinator
    lifecycle: CredentialLifecycleManager
    _started: bool = field(default=False, init=False, repr=False)

    @classmethod
    def from_config(
        cls,
        config: GCalAuthConfig | str | None = None,
        **overrides: Any,
    ) -> AuthService:
        """Build the service from a config object, a YAML path, or env vars.

        Raises:
            ConfigurationError: If the OAuth client or encryption key is misconfigured.
        """
        if not isinstance(config, GCalAuthConfig):
            config = GCalAuthConfig.load(config, **overrides)
        config.validate_credentials()

        store = TokenStore(key=load_encryption_key(config.auth.token_encryption_key))
        client = GoogleOAuthClient(
            config.google.client_id,
            config.google.client_secret,
            scopes=config.google.scopes,
        )
        coordinator = AuthorizationFlowCoordinator(
            store,
            client,
            redirect_uri=config.redirect_uri,
            host=config.auth.host,
            port=config.auth.port,
            use_manual_auth=config.auth.use_manual_auth,
            timeout=config.auth.authorization_timeout,
            poll_interval=config.auth.poll_interval,
        )
        lifecycle = CredentialLifecycleManager(store, coordinator, client)
        logger.info(
            "gcal-auth initialized (callback %s, manual auth %s)",
            config.redirect_uri,
            "on" if config.auth.use_manual_auth else "off",
        )
        return cls(
            config=config,
            store=store,
            client=client,
            coordinator=coordinator,
            lifecycle=lifecycle,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start background sweeps. Must run inside the event loop."""
        if self._started:
            return
        self.store.start()
        self.coordinator.start()
        self._started = True

    async def stop(self) -> None:
        """Stop sweeps, cancel in-flight flows and close the HTTP client."""
        await self.coordinator.stop()
        await self.store.stop()
        await self.client.close()
        self._started = False

    async def __aenter__(self) -> AuthService:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()

    # ------------------------------------------------------------------
    # Tool handler interface
    # ------------------------------------------------------------------

    def _identity(self, identity: str | None) -> str:
        return identity or self.config.auth.identity

    def is_authenticated(self, identity: str | None = None) -> bool:
        return self.lifecycle.is_authenticated(self._identity(identity))

    def get_valid_credential(self, identity: str | None = None) -> Credential | None:
        return self.lifecycle.get_valid_credential(self._identity(identity))

    async def get_or_refresh(self, identity: str | None = None) -> CredentialResult:
        return await self.lifecycle.get_or_refresh(self._identity(identity))

    async def ensure_credential(self, identity: str | None = None) -> Credential:
        return await self.lifecycle.ensure_credential(self._identity(identity))

    async def initiate(self, identity: str | None = None) -> Credential:
        return await asyncio.shield(self.coordinator.initiate(self._identity(identity)))

    def clear_authentication(self, identity: str | None = None) -> None:
        self.lifecycle.clear_authentication(self._identity(identity))

    def token_info(self, identity: str | None = None) -> dict[str, Any]:
        return self.lifecycle.token_info(self._identity(identity))

    def statistics(self) -> dict[str, Any]:
        return {
            "stored_credentials": len(self.store),
            **self.coordinator.statistics(),
        }
