"""Random artifacts for one login attempt.

``state`` and ``nonce`` bind the callback and the ID token to the attempt
that started them; the PKCE verifier/challenge pair (RFC 7636) binds the
authorization code to this client.
"""

from __future__ import annotations

import base64
import hashlib
import secrets

# RFC 7636 section 4.1
CODE_VERIFIER_MIN_LENGTH = 43
CODE_VERIFIER_MAX_LENGTH = 128

CODE_CHALLENGE_METHOD = "S256"


def new_state() -> str:
    """Generate an opaque anti-CSRF value (256 bits, URL-safe)."""
    return secrets.token_urlsafe(32)


def new_nonce() -> str:
    """Generate an opaque anti-replay value for the ID token (256 bits, URL-safe)."""
    return secrets.token_urlsafe(32)


def new_code_verifier(length: int = 64) -> str:
    """Generate a PKCE code verifier.

    The code verifier is a high-entropy cryptographic random string
    between 43 and 128 characters, using unreserved URI characters.

    Args:
        length: Length of the verifier (clamped to 43-128, default 64).

    Returns:
        URL-safe base64 random string without padding.
    """
    length = max(CODE_VERIFIER_MIN_LENGTH, min(CODE_VERIFIER_MAX_LENGTH, length))
    # Enough bytes that the encoded form is at least `length` characters
    num_bytes = (length * 3) // 4 + 1
    verifier = base64.urlsafe_b64encode(secrets.token_bytes(num_bytes)).decode("ascii")
    return verifier.rstrip("=")[:length]


def code_challenge(verifier: str) -> str:
    """Derive the S256 code challenge: base64url(SHA-256(verifier)) without padding."""
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")
