"""
Token helpers: hashing, link formatting and unverified inspection.

Nothing here establishes trust. Inspection helpers decode without checking
the signature and are meant for logging, debugging and UI hints only.
"""

import hashlib
import time
from typing import Any, Dict, Optional
from urllib.parse import quote

from jose import JWTError, jwt


def hash_token(token: str) -> str:
    """SHA-256 hex digest (64 chars) used as the persisted lookup key"""
    if not token or not isinstance(token, str):
        raise ValueError("Token must be a non-empty string")
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def build_invitation_link(token: str, base_url: str) -> str:
    if not token:
        raise ValueError("Token is required")
    return f"{base_url}?token={quote(token, safe='')}"


def decode_token_unverified(token: str) -> Dict[str, Any]:
    """Decode claims WITHOUT signature verification"""
    if not token or not isinstance(token, str):
        raise ValueError("Token must be a non-empty string")
    try:
        return jwt.get_unverified_claims(token)
    except JWTError as e:
        raise ValueError(f"Failed to decode token: {e}") from e


def get_invitation_id_from_token(token: str) -> Optional[str]:
    try:
        return decode_token_unverified(token).get("invitation_id")
    except ValueError:
        return None


def is_token_expired(token: str, now: Optional[float] = None) -> bool:
    """Unverified expiry check; undecodable tokens count as expired"""
    try:
        exp = decode_token_unverified(token).get("exp")
    except ValueError:
        return True
    if not isinstance(exp, (int, float)):
        return True
    current = time.time() if now is None else now
    return exp < current
