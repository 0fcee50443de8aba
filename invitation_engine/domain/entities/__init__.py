"""
Invitation Engine Domain Entities

All domain entities organized by model.
Each entity in its own file for better maintainability.
"""

# Export all enums
from .enums import (
    ACTIVE_STATES,
    TERMINAL_STATES,
    AuditAction,
    TokenState,
)

# Export all entities
from .invitation_token import InvitationToken
from .audit_event import AuditEvent

__all__ = [
    # Enums
    "ACTIVE_STATES",
    "TERMINAL_STATES",
    "AuditAction",
    "TokenState",
    # Entities
    "InvitationToken",
    "AuditEvent",
]
