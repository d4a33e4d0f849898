"""
Data records shared by the token store, the flow coordinator and the
credential lifecycle manager.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

# Default lifetime of a refresh-class credential (30 days).
REFRESH_TOKEN_TTL = 30 * 24 * 60 * 60

# Fallback lifetime of an access-class credential when the vendor omits expires_in.
DEFAULT_ACCESS_TOKEN_TTL = 3600

# Lifetime of an issued authorization URL (state + verifier).
AUTHORIZATION_STATE_TTL = 10 * 60

DEFAULT_IDENTITY = "default-user"


def refresh_key(identity: str) -> str:
    """TokenStore key of the long-lived refresh-class credential."""
    return identity


def access_key(identity: str) -> str:
    """TokenStore key of the short-lived access-class credential."""
    return f"{identity}_access"


class FlowStatus(str, Enum):
    """Lifecycle of one interactive authorization attempt."""

    IDLE = "idle"
    AWAITING_USER_ACTION = "awaiting_user_action"
    CALLBACK_RECEIVED = "callback_received"
    EXCHANGING_CODE = "exchanging_code"
    COMPLETE = "complete"
    FAILED = "failed"
    TIMED_OUT = "timed_out"

    @property
    def is_terminal(self) -> bool:
        return self in (FlowStatus.COMPLETE, FlowStatus.FAILED, FlowStatus.TIMED_OUT)


class CredentialStatus(str, Enum):
    VALID = "valid"
    REFRESHED = "refreshed"
    REAUTHORIZATION_REQUIRED = "reauthorization_required"


@dataclass
class Credential:
    """A delegated Google credential.

    ``refresh_token`` is optional: Google only issues one on the first
    consent. A missing ``expires_at`` is treated as already expired.
    """

    access_token: str
    refresh_token: str | None = None
    expires_at: float | None = None

    def is_expired(self, now: float | None = None) -> bool:
        if self.expires_at is None:
            return True
        current = time.time() if now is None else now
        return self.expires_at <= current

    def __repr__(self) -> str:
        return (
            f"Credential(access_token='***', "
            f"refresh_token={'***' if self.refresh_token else None}, "
            f"expires_at={self.expires_at})"
        )


@dataclass
class TokenResponse:
    """Parsed token endpoint response."""

    access_token: str
    refresh_token: str | None = None
    expires_in: int | None = None
    token_type: str = "Bearer"
    scope: str = ""
    extra: dict[str, Any] = field(default_factory=dict, repr=False)

    @property
    def access_ttl(self) -> int:
        """Seconds the access token stays valid, falling back to one hour."""
        if self.expires_in and self.expires_in > 0:
            return self.expires_in
        return DEFAULT_ACCESS_TOKEN_TTL

    @classmethod
    def from_oauth_response(cls, data: dict[str, Any]) -> TokenResponse:
        """Parse a standard OAuth2 token response.

        Raises:
            KeyError: If ``access_token`` is missing.
            ValueError: If ``expires_in`` is not an integer.
        """
        expires_in = data.get("expires_in")
        return cls(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token") or None,
            expires_in=int(expires_in) if expires_in is not None else None,
            token_type=data.get("token_type", "Bearer"),
            scope=data.get("scope", ""),
            extra={k: v for k, v in data.items() if k not in {
                "access_token", "refresh_token", "token_type", "expires_in", "scope",
            }},
        )

    def __repr__(self) -> str:
        return f"TokenResponse(token_type={self.token_type!r}, expires_in={self.expires_in}, scope={self.scope!r})"


@dataclass
class AuthorizationState:
    """One issued authorization URL, keyed by its CSRF ``state_token``."""

    state_token: str
    identity: str
    code_verifier: str = field(repr=False)
    redirect_uri: str
    created_at: float
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return self.expires_at <= now


@dataclass
class CredentialResult:
    """Outcome of :meth:`CredentialLifecycleManager.get_or_refresh`."""

    status: CredentialStatus
    credential: Credential | None = None

    @property
    def reauthorization_required(self) -> bool:
        return self.status is CredentialStatus.REAUTHORIZATION_REQUIRED

    @classmethod
    def valid(cls, credential: Credential) -> CredentialResult:
        return cls(CredentialStatus.VALID, credential)

    @classmethod
    def refreshed(cls, credential: Credential) -> CredentialResult:
        return cls(CredentialStatus.REFRESHED, credential)

    @classmethod
    def reauthorize(cls) -> CredentialResult:
        return cls(CredentialStatus.REAUTHORIZATION_REQUIRED)
