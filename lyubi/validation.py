"""Input validation helpers for lyubi.

Shared by the ledger, the timer controller and the CLI so every entry point
rejects bad input the same way, before any state is touched.

- ``sanitize_string``: string validation + control-char stripping
- ``normalize_hex_color``: canonical ``#RRGGBB`` form
- ``validate_backend_url``: refuse unsafe remote endpoints
"""

import logging
import re
from typing import Any, Optional
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

_HEX_RE = re.compile(r"^#([0-9a-fA-F]{3}|[0-9a-fA-F]{6})$")


class ValidationError(ValueError):
    """User input rejected before any state change."""


def sanitize_string(
    value: Any, field_name: str, max_length: int = 1000, required: bool = True
) -> str:
    """Sanitize and validate string inputs.

    Args:
        value: The value to sanitize.
        field_name: Name of the field for error messages.
        max_length: Maximum allowed string length.
        required: If True, empty strings are rejected.

    Returns:
        Sanitized, stripped string.

    Raises:
        ValidationError: If validation fails.
    """
    if value is None and not required:
        return ""

    if not isinstance(value, str):
        raise ValidationError(f"{field_name} must be a string, got {type(value).__name__}")

    if required and not value.strip():
        raise ValidationError(f"{field_name} cannot be empty")

    if len(value) > max_length:
        raise ValidationError(
            f"{field_name} too long (max {max_length} characters, got {len(value)})"
        )

    # Remove null bytes and control characters except newlines and tabs
    return re.sub(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]", "", value).strip()


def optional_text(value: Optional[str], field_name: str, max_length: int = 500) -> Optional[str]:
    """Sanitize optional free text; blank becomes None."""
    cleaned = sanitize_string(value, field_name, max_length=max_length, required=False)
    return cleaned or None


def normalize_hex_color(value: Optional[str]) -> Optional[str]:
    """Return the canonical ``#RRGGBB`` uppercase form, or None if invalid.

    ``"f97316"``, ``"#f97316"`` and ``"#F73"`` style inputs are accepted.
    """
    if not value:
        return None
    hex_value = value.strip()
    if not hex_value:
        return None
    if not hex_value.startswith("#"):
        hex_value = f"#{hex_value}"
    if not _HEX_RE.match(hex_value):
        return None
    if len(hex_value) == 4:
        hex_value = "#" + "".join(ch * 2 for ch in hex_value[1:])
    return hex_value.upper()


def validate_backend_url(url: Optional[str], *, allow_localhost_http: bool = True) -> Optional[str]:
    """Validate a remote store URL for safe credential transmission.

    Returns the URL unchanged if valid, or None if rejected (with a warning
    logged for the rejection reason).
    """
    if not url:
        return None

    parsed = urlparse(url)
    if parsed.scheme not in {"https", "http"}:
        logger.warning("Invalid supabase_url scheme; only http/https allowed.")
        return None
    if not parsed.netloc:
        logger.warning("Invalid supabase_url; missing host.")
        return None
    if parsed.scheme == "http":
        if not allow_localhost_http:
            logger.warning("HTTP not allowed in this context.")
            return None
        host = parsed.hostname or ""
        if host not in {"localhost", "127.0.0.1"}:
            logger.warning("Refusing non-local http supabase_url for security.")
            return None
    return url
