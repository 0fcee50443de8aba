"""
Use Cases

Organised into domain folders:
- invitations/: Supplier invitation lifecycle

Import from subdirectories for better organization.
"""

from .invitations import (
    AdvanceInvitationStateUseCase,
    ConsumeInvitationUseCase,
    CreateInvitationUseCase,
    GetInvitationStatusUseCase,
    ResendInvitationUseCase,
    RevokeInvitationUseCase,
)

__all__ = [
    "CreateInvitationUseCase",
    "ResendInvitationUseCase",
    "RevokeInvitationUseCase",
    "GetInvitationStatusUseCase",
    "AdvanceInvitationStateUseCase",
    "ConsumeInvitationUseCase",
]
