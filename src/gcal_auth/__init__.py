"""
gcal-auth: Google Calendar OAuth2 + PKCE authentication for local tool servers.

Obtain. Encrypt. Refresh.
Delegated calendar credentials that never leave process memory.
"""

__version__ = "0.1.0"
__all__ = ["AuthService"]

from gcal_auth.service import AuthService  # noqa: E402
