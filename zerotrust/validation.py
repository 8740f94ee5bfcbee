"""
Input validation and log sanitization.

Validators raise ValidationError, a MalformedRequest whose field name stays
in the internal ``detail`` and never reaches the wire body.
"""

import re
import uuid
from typing import Any, Dict, List, Optional

from .errors import Layer, MalformedRequest


# ============================================================
# Input Validation
# ============================================================

HEX_PATTERN = re.compile(r'^[a-fA-F0-9]+$')
USERNAME_PATTERN = re.compile(r'^[A-Za-z0-9_.-]{1,64}$')


class ValidationError(MalformedRequest):
    """Raised when input validation fails."""

    def __init__(self, field: str, message: str, layer: Optional[Layer] = None):
        self.field = field
        self.message = message
        super().__init__(f"{field}: {message}", layer)


def validate_hex(
    value: Any,
    field_name: str,
    expected_length: Optional[int] = None,
    layer: Optional[Layer] = None,
) -> str:
    """
    Validate that a string is valid hexadecimal.

    Returns:
        The validated (lowercased) hex string

    Raises:
        ValidationError: If validation fails
    """
    if not isinstance(value, str):
        raise ValidationError(field_name, "must be a string", layer)

    value = value.lower().strip()

    if not value:
        raise ValidationError(field_name, "cannot be empty", layer)

    if not HEX_PATTERN.match(value):
        raise ValidationError(field_name, "must be valid hexadecimal", layer)

    if expected_length and len(value) != expected_length:
        raise ValidationError(field_name, f"must be {expected_length} characters", layer)

    return value


def validate_username(value: Any, field_name: str = "username", layer: Optional[Layer] = None) -> str:
    if not isinstance(value, str) or not USERNAME_PATTERN.fullmatch(value):
        raise ValidationError(field_name, "invalid format", layer)
    return value


# ============================================================
# Request ID Generation
# ============================================================

def generate_request_id() -> str:
    """Generate a unique request ID for audit trail correlation."""
    return str(uuid.uuid4())


# ============================================================
# Audit Logging Helpers
# ============================================================

DEFAULT_SENSITIVE_FIELDS = [
    "token",
    "signature",
    "user_signature",
    "gateway_hmac",
    "private_key",
    "secret",
    "padding",
]


def sanitize_for_logging(data: Dict[str, Any], sensitive_fields: List[str] = None) -> Dict[str, Any]:
    """
    Sanitize data for logging by masking sensitive fields.

    Args:
        data: The data to sanitize
        sensitive_fields: List of field names to mask

    Returns:
        Sanitized copy of the data
    """
    if sensitive_fields is None:
        sensitive_fields = DEFAULT_SENSITIVE_FIELDS

    result = {}
    for key, value in data.items():
        if key in sensitive_fields:
            if isinstance(value, str) and len(value) > 8:
                result[key] = value[:4] + "..." + value[-4:]
            else:
                result[key] = "[REDACTED]"
        elif isinstance(value, dict):
            result[key] = sanitize_for_logging(value, sensitive_fields)
        elif isinstance(value, list):
            result[key] = [
                sanitize_for_logging(item, sensitive_fields) if isinstance(item, dict) else item
                for item in value
            ]
        else:
            result[key] = value

    return result
