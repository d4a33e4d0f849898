"""
Error taxonomy for the authentication subsystem.

Every error carries a short machine-readable ``code`` so tool handlers can
map failures to user-facing messages without inspecting exception text.
"""

from __future__ import annotations


class GCalAuthError(Exception):
    """Base class for all gcal-auth errors."""

    code: str = "AUTH_ERROR"


class ConfigurationError(GCalAuthError):
    """Missing or invalid configuration (client id/secret, encryption key)."""

    code = "CONFIG_ERROR"


class CsrfValidationError(GCalAuthError):
    """A callback carried a missing, unknown or expired ``state`` token."""


class AuthorizationTimeoutError(GCalAuthError):
    """The user did not complete authorization within the allowed window."""


class TokenExchangeError(GCalAuthError):
    """The token endpoint rejected a code or refresh exchange, or was unreachable."""

    code = "TOKEN_ERROR"

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class CredentialDecryptionError(GCalAuthError):
    """A stored credential could not be decrypted (corrupted data or rotated key)."""

    code = "TOKEN_ERROR"
