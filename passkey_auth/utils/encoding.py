from typing import Any, Optional

from webauthn.helpers import base64url_to_bytes, bytes_to_base64url

__all__ = [
    "base64url_to_bytes",
    "bytes_to_base64url",
    "normalize_base64url",
    "try_normalize_base64url",
]


def normalize_base64url(value: str) -> str:
    """
    Canonical WebAuthn form of a base64url string: URL-safe alphabet
    (``-`` and ``_``) and no ``=`` padding.
    """
    return value.strip().rstrip("=").replace("+", "-").replace("/", "_")


def try_normalize_base64url(value: Any) -> Optional[str]:
    """Normalize ``value`` if it is a non-empty string, otherwise return None."""
    if not isinstance(value, str):
        return None
    normalized = normalize_base64url(value)
    return normalized or None
