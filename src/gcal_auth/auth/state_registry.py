"""
In-memory table of issued authorization URLs (state -> verifier).

Each entry lives for ten minutes and is consumed exactly once by the
callback handler. A sweep task removes entries left behind by abandoned
flows.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from typing import Callable

from gcal_auth.auth.models import AUTHORIZATION_STATE_TTL, AuthorizationState

logger = logging.getLogger("gcal_auth.auth.state_registry")

# How often abandoned states are swept (30 minutes).
STATE_SWEEP_INTERVAL = 30 * 60


class AuthorizationStateRegistry:
    """Single-use CSRF state / PKCE verifier records."""

    def __init__(
        self,
        *,
        ttl: float = AUTHORIZATION_STATE_TTL,
        clock: Callable[[], float] = time.time,
        sweep_interval: float = STATE_SWEEP_INTERVAL,
    ) -> None:
        self._ttl = ttl
        self._clock = clock
        self._sweep_interval = sweep_interval
        self._states: dict[str, AuthorizationState] = {}
        self._sweep_task: asyncio.Task[None] | None = None

    def __len__(self) -> int:
        return len(self._states)

    def __contains__(self, state_token: object) -> bool:
        return state_token in self._states

    def register(
        self,
        state_token: str,
        *,
        identity: str,
        code_verifier: str,
        redirect_uri: str,
    ) -> AuthorizationState:
        now = self._clock()
        state = AuthorizationState(
            state_token=state_token,
            identity=identity,
            code_verifier=code_verifier,
            redirect_uri=redirect_uri,
            created_at=now,
            expires_at=now + self._ttl,
        )
        self._states[state_token] = state
        logger.debug("Registered authorization state for %s", identity)
        return state

    def get(self, state_token: str | None) -> AuthorizationState | None:
        """Look up a live state without consuming it. Expired entries are dropped."""
        if not state_token:
            return None
        state = self._states.get(state_token)
        if state is None:
            return None
        if state.is_expired(self._clock()):
            del self._states[state_token]
            logger.debug("Authorization state for %s expired", state.identity)
            return None
        return state

    def consume(self, state_token: str | None) -> AuthorizationState | None:
        """Remove and return a live state; None if missing or expired."""
        state = self.get(state_token)
        if state is not None:
            del self._states[state.state_token]
        return state

    def discard(self, state_token: str) -> None:
        self._states.pop(state_token, None)

    def sweep(self) -> int:
        now = self._clock()
        expired = [token for token, state in self._states.items() if state.is_expired(now)]
        for token in expired:
            del self._states[token]
        if expired:
            logger.info("Cleaned up %d stale authorization states", len(expired))
        return len(expired)

    def start(self) -> None:
        if self._sweep_task is None or self._sweep_task.done():
            self._sweep_task = asyncio.get_running_loop().create_task(self._sweep_loop())

    async def stop(self) -> None:
        if self._sweep_task is not None:
            self._sweep_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._sweep_task
            self._sweep_task = None

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self._sweep_interval)
            self.sweep()
