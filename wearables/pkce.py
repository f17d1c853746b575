"""State and PKCE (Proof Key for Code Exchange) generation"""

import base64
import hashlib
import secrets
from typing import NamedTuple


class PkcePair(NamedTuple):
    verifier: str
    challenge: str


def new_state() -> str:
    """Generate an opaque CSRF state value (256 bits, hex encoded)

    Returns:
        64-character hex string
    """
    return secrets.token_hex(32)


def s256_challenge(verifier: str) -> str:
    """Derive the S256 code_challenge for a verifier

    Args:
        verifier: The PKCE code verifier

    Returns:
        URL-safe base64 SHA-256 digest with padding stripped
    """
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")


def new_pkce_pair() -> PkcePair:
    """Generate PKCE code verifier and challenge

    Returns:
        PkcePair of (verifier, challenge)
    """
    # 32 random bytes -> 43 URL-safe chars, inside the 43-128 range
    verifier = base64.urlsafe_b64encode(secrets.token_bytes(32)).decode("ascii").rstrip("=")
    return PkcePair(verifier, s256_challenge(verifier))
