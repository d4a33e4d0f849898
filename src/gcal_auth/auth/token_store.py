"""
Encrypted, TTL-bounded in-memory credential cache.

Each secret is sealed with AES-256-GCM under a process-wide key and a fresh
random IV, and kept only as ``iv:auth_tag:ciphertext``. Nothing is written
to disk. Expired entries are evicted lazily on lookup and by a periodic
sweep that runs while the store is started.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import time
from dataclasses import dataclass, field
from typing import Callable

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from gcal_auth.auth.errors import ConfigurationError, CredentialDecryptionError
from gcal_auth.auth.models import (
    REFRESH_TOKEN_TTL,
    Credential,
    TokenResponse,
    access_key,
    refresh_key,
)

logger = logging.getLogger("gcal_auth.auth.token_store")

_IV_BYTES = 12
_TAG_BYTES = 16
_KEY_BYTES = 32

# How often the background sweep runs (1 hour).
SWEEP_INTERVAL = 60 * 60


@dataclass
class StoredCredential:
    """Ciphertext of one secret plus its absolute expiry."""

    owner_id: str
    iv: bytes = field(repr=False)
    auth_tag: bytes = field(repr=False)
    ciphertext: bytes = field(repr=False)
    expires_at: float

    def serialize(self) -> str:
        return f"{self.iv.hex()}:{self.auth_tag.hex()}:{self.ciphertext.hex()}"


def load_encryption_key(hex_key: str | None) -> bytes:
    """Decode a configured 256-bit key, or generate one for this process.

    Raises:
        ConfigurationError: If a key is configured but is not 64 hex characters.
    """
    if not hex_key:
        logger.debug("No token encryption key configured; generating a process-local key")
        return AESGCM.generate_key(bit_length=256)
    try:
        key = bytes.fromhex(hex_key.strip())
    except ValueError as e:
        raise ConfigurationError("TOKEN_ENCRYPTION_KEY must be hex-encoded") from e
    if len(key) != _KEY_BYTES:
        raise ConfigurationError(
            f"TOKEN_ENCRYPTION_KEY must be {_KEY_BYTES * 2} hex characters (256 bits)"
        )
    return key


class TokenStore:
    """Encrypted key/value store for OAuth credentials.

    Usage::

        store = TokenStore(key=load_encryption_key(config.auth.token_encryption_key))
        store.start()                       # hourly expiry sweep
        store.store("default-user_access", token, ttl=3600)
        token = store.fetch("default-user_access")   # None if absent/expired
        await store.stop()

    ``clock`` returns seconds since the epoch and can be replaced in tests.
    """

    def __init__(
        self,
        key: bytes | None = None,
        *,
        clock: Callable[[], float] = time.time,
        sweep_interval: float = SWEEP_INTERVAL,
    ) -> None:
        self._key = key if key is not None else AESGCM.generate_key(bit_length=256)
        self._clock = clock
        self._sweep_interval = sweep_interval
        self._entries: dict[str, StoredCredential] = {}
        self._sweep_task: asyncio.Task[None] | None = None
        logger.info("TokenStore initialized with AES-256-GCM encryption")

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, owner_id: object) -> bool:
        return owner_id in self._entries

    # ------------------------------------------------------------------
    # Cipher
    # ------------------------------------------------------------------

    def _encrypt(self, owner_id: str, secret: str, expires_at: float) -> StoredCredential:
        iv = os.urandom(_IV_BYTES)
        try:
            sealed = AESGCM(self._key).encrypt(iv, secret.encode("utf-8"), None)
        except (ValueError, TypeError) as e:
            logger.error("Failed to encrypt credential for %s", owner_id)
            raise ConfigurationError("Token encryption failed") from e
        return StoredCredential(
            owner_id=owner_id,
            iv=iv,
            auth_tag=sealed[-_TAG_BYTES:],
            ciphertext=sealed[:-_TAG_BYTES],
            expires_at=expires_at,
        )

    def _decrypt(self, entry: StoredCredential) -> str:
        try:
            plaintext = AESGCM(self._key).decrypt(
                entry.iv, entry.ciphertext + entry.auth_tag, None
            )
            return plaintext.decode("utf-8")
        except (InvalidTag, ValueError, TypeError) as e:
            raise CredentialDecryptionError(
                f"Could not decrypt credential for {entry.owner_id}"
            ) from e

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def store(self, owner_id: str, secret: str, ttl: float = REFRESH_TOKEN_TTL) -> None:
        """Encrypt and store ``secret``, replacing any previous entry.

        Raises:
            ConfigurationError: If encryption fails (misconfigured key).
        """
        expires_at = self._clock() + ttl
        self._entries[owner_id] = self._encrypt(owner_id, secret, expires_at)
        logger.debug("Credential stored for %s (expires at %.0f)", owner_id, expires_at)

    def fetch(self, owner_id: str) -> str | None:
        """Return the decrypted secret, or None if absent, expired or unreadable."""
        entry = self._entries.get(owner_id)
        if entry is None:
            logger.debug("No credential found for %s", owner_id)
            return None

        if entry.expires_at <= self._clock():
            logger.debug("Credential expired for %s", owner_id)
            self.remove(owner_id)
            return None

        try:
            return self._decrypt(entry)
        except CredentialDecryptionError as e:
            logger.warning("%s; treating as not authenticated", e)
            return None

    def expiry(self, owner_id: str) -> float | None:
        """Absolute expiry of a live entry, or None if absent or expired."""
        entry = self._entries.get(owner_id)
        if entry is None or entry.expires_at <= self._clock():
            return None
        return entry.expires_at

    def remove(self, owner_id: str) -> None:
        """Delete an entry. Removing a missing entry is a no-op."""
        if self._entries.pop(owner_id, None) is not None:
            logger.debug("Credential removed for %s", owner_id)

    def sweep(self) -> int:
        """Evict every expired entry and return how many were removed."""
        now = self._clock()
        expired = [oid for oid, entry in self._entries.items() if entry.expires_at <= now]
        for owner_id in expired:
            del self._entries[owner_id]
        if expired:
            logger.info("Cleaned up %d expired credentials", len(expired))
        return len(expired)

    # ------------------------------------------------------------------
    # Background sweep
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the periodic sweep on the running event loop."""
        if self._sweep_task is None or self._sweep_task.done():
            self._sweep_task = asyncio.get_running_loop().create_task(self._sweep_loop())

    async def stop(self) -> None:
        """Cancel the periodic sweep."""
        if self._sweep_task is not None:
            self._sweep_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._sweep_task
            self._sweep_task = None

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self._sweep_interval)
            self.sweep()


def save_tokens(store: TokenStore, identity: str, tokens: TokenResponse) -> None:
    """Store both credential classes from a token response.

    The refresh-class credential is only written when one was issued; the
    access-class credential lives for the vendor-reported ``expires_in``.
    """
    if tokens.refresh_token:
        store.store(refresh_key(identity), tokens.refresh_token)
        logger.info("Stored refresh credential for %s", identity)
    else:
        logger.debug("No refresh token in response for %s", identity)
    store.store(access_key(identity), tokens.access_token, ttl=tokens.access_ttl)


def load_credential(store: TokenStore, identity: str) -> Credential | None:
    """Hydrate a :class:`Credential` from the store, or None without an access token."""
    access_token = store.fetch(access_key(identity))
    if access_token is None:
        return None
    return Credential(
        access_token=access_token,
        refresh_token=store.fetch(refresh_key(identity)),
        expires_at=store.expiry(access_key(identity)),
    )
