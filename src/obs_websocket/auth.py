"""Challenge/response hashing for the OBS login handshake.

The server hands out a salt and a challenge. The client answers with:

    secret = base64(sha256(password + salt))
    auth = base64(sha256(secret + challenge))

Strings are UTF-8 encoded before hashing; base64 uses the standard
alphabet with padding.
"""

from __future__ import annotations

import base64
import hashlib


def base64_hash(data: str) -> str:
    """Return the base64 encoded SHA-256 digest of a UTF-8 string."""
    digest = hashlib.sha256(data.encode("utf-8")).digest()
    return base64.b64encode(digest).decode("ascii")


def compute_secret(password: str, salt: str) -> str:
    return base64_hash(password + salt)


def compute_auth_response(password: str, salt: str, challenge: str) -> str:
    """Derive the value sent with the Authenticate request.

    Args:
        password: Password configured in the OBS websocket settings
        salt: Salt returned by GetAuthRequired
        challenge: Challenge returned by GetAuthRequired

    Returns:
        The base64 auth string
    """
    secret = compute_secret(password, salt)
    return base64_hash(secret + challenge)
