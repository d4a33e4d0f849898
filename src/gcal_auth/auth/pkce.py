"""PKCE proof material and CSRF state tokens."""

from __future__ import annotations

import base64
import hashlib
import secrets


def generate_code_verifier() -> str:
    """Random URL-safe verifier (86 characters, within RFC 7636's 43-128)."""
    return secrets.token_urlsafe(64)[:128]


def derive_code_challenge(code_verifier: str) -> str:
    """S256 challenge: base64url(SHA256(verifier)) without padding."""
    digest = hashlib.sha256(code_verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")


def generate_pkce_pair() -> tuple[str, str]:
    """Generate a PKCE code_verifier and code_challenge pair.

    Returns:
        Tuple of (code_verifier, code_challenge) for OAuth2 PKCE flow.
    """
    code_verifier = generate_code_verifier()
    return code_verifier, derive_code_challenge(code_verifier)


def generate_state_token() -> str:
    """CSRF state: 32 random bytes, hex-encoded."""
    return secrets.token_hex(32)
