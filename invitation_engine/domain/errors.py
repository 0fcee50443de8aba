"""
Invitation Engine Error Codes

Three disjoint taxonomies: issuance, validation and lifecycle (orchestrator).
Security rejections are never conflated with transient store failures.
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Any, Dict, Optional

from invitation_engine.libs.result import Error


class IssuanceErrorCode(str, Enum):
    INVALID_INPUT = "INVALID_INPUT"
    INVALID_EXPIRY = "INVALID_EXPIRY"
    DUPLICATE_ACTIVE = "DUPLICATE_ACTIVE"
    CREATION_RATE_LIMITED = "CREATION_RATE_LIMITED"


class ValidationErrorCode(str, Enum):
    MISSING_TOKEN = "MISSING_TOKEN"
    INVALID_FORMAT = "INVALID_FORMAT"
    SIGNATURE_INVALID = "SIGNATURE_INVALID"
    TOKEN_EXPIRED = "TOKEN_EXPIRED"
    INVALID_CLAIMS = "INVALID_CLAIMS"
    NOT_FOUND = "NOT_FOUND"
    ALREADY_CONSUMED = "ALREADY_CONSUMED"
    REVOKED = "REVOKED"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    DATABASE_ERROR = "DATABASE_ERROR"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


class LifecycleErrorCode(str, Enum):
    NOT_FOUND = "NOT_FOUND"
    ALREADY_CONSUMED = "ALREADY_CONSUMED"
    ALREADY_REVOKED = "ALREADY_REVOKED"
    CANNOT_RESEND_CONSUMED = "CANNOT_RESEND_CONSUMED"
    INVALID_STATE_TRANSITION = "INVALID_STATE_TRANSITION"
    CONFLICT = "CONFLICT"
    DATABASE_ERROR = "DATABASE_ERROR"


TRANSIENT_CODES = frozenset(
    {
        ValidationErrorCode.DATABASE_ERROR.value,
        LifecycleErrorCode.CONFLICT.value,
        LifecycleErrorCode.DATABASE_ERROR.value,
    }
)


def make_error(
    code: Enum, message: str, details: Optional[Dict[str, Any]] = None
) -> Error:
    return Error(code.value, message, details)


def is_transient(code: str) -> bool:
    """True when the caller may retry the same request later"""
    return code in TRANSIENT_CODES


def format_validation_error(error: Error) -> Dict[str, Any]:
    """Stable response shape for a rejected token"""
    return {
        "valid": False,
        "error": {
            "code": error.code,
            "message": error.message,
            "details": error.details,
            "timestamp": datetime.now(UTC).isoformat(),
        },
    }
