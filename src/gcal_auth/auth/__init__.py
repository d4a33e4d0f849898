"""
gcal-auth authentication and token management.

Provides the OAuth2 Authorization Code + PKCE flow, encrypted in-memory
token storage, and the refresh-or-reauthenticate policy used by calendar
tool handlers.
"""

from gcal_auth.auth.callback_server import CallbackResponse, OAuthCallbackServer
from gcal_auth.auth.errors import (
    AuthorizationTimeoutError,
    ConfigurationError,
    CredentialDecryptionError,
    CsrfValidationError,
    GCalAuthError,
    TokenExchangeError,
)
from gcal_auth.auth.flow import AuthorizationFlowCoordinator, PendingAuthorization
from gcal_auth.auth.google_client import GoogleOAuthClient
from gcal_auth.auth.lifecycle import CredentialLifecycleManager
from gcal_auth.auth.models import (
    AuthorizationState,
    Credential,
    CredentialResult,
    CredentialStatus,
    FlowStatus,
    TokenResponse,
)
from gcal_auth.auth.pkce import generate_pkce_pair, generate_state_token
from gcal_auth.auth.state_registry import AuthorizationStateRegistry
from gcal_auth.auth.token_store import TokenStore, load_encryption_key

__all__ = [
    "AuthorizationFlowCoordinator",
    "AuthorizationState",
    "AuthorizationStateRegistry",
    "AuthorizationTimeoutError",
    "CallbackResponse",
    "ConfigurationError",
    "Credential",
    "CredentialDecryptionError",
    "CredentialLifecycleManager",
    "CredentialResult",
    "CredentialStatus",
    "CsrfValidationError",
    "FlowStatus",
    "GCalAuthError",
    "GoogleOAuthClient",
    "OAuthCallbackServer",
    "PendingAuthorization",
    "TokenExchangeError",
    "TokenResponse",
    "TokenStore",
    "generate_pkce_pair",
    "generate_state_token",
    "load_encryption_key",
]
