"""
Invitation Engine Domain Enums

All enumeration types used across domain entities.
"""

from enum import Enum


class TokenState(str, Enum):
    """Invitation token lifecycle state"""

    CREATED = "CREATED"
    SENT = "SENT"
    DELIVERED = "DELIVERED"
    OPENED = "OPENED"
    VALIDATED = "VALIDATED"
    CONSUMED = "CONSUMED"
    FAILED = "FAILED"
    EXPIRED = "EXPIRED"
    REVOKED = "REVOKED"


ACTIVE_STATES = frozenset(
    {
        TokenState.CREATED,
        TokenState.SENT,
        TokenState.DELIVERED,
        TokenState.OPENED,
        TokenState.VALIDATED,
    }
)

TERMINAL_STATES = frozenset(
    {
        TokenState.CONSUMED,
        TokenState.FAILED,
        TokenState.EXPIRED,
        TokenState.REVOKED,
    }
)


class AuditAction(str, Enum):
    """Audit event actions, one per operation outcome"""

    INVITATION_CREATED = "INVITATION_CREATED"
    INVITATION_CREATE_REJECTED = "INVITATION_CREATE_REJECTED"
    TOKEN_VALIDATED = "TOKEN_VALIDATED"
    TOKEN_VALIDATION_FAILED = "TOKEN_VALIDATION_FAILED"
    TOKEN_REVOKED = "TOKEN_REVOKED"
    TOKEN_REVOKE_REJECTED = "TOKEN_REVOKE_REJECTED"
    INVITATION_RESENT = "INVITATION_RESENT"
    INVITATION_RESEND_REJECTED = "INVITATION_RESEND_REJECTED"
    INVITATION_STATUS_VIEWED = "INVITATION_STATUS_VIEWED"
    INVITATION_STATE_CHANGED = "INVITATION_STATE_CHANGED"
    INVITATION_STATE_CHANGE_REJECTED = "INVITATION_STATE_CHANGE_REJECTED"
    INVITATION_CONSUMED = "INVITATION_CONSUMED"
    INVITATION_CONSUME_REJECTED = "INVITATION_CONSUME_REJECTED"
