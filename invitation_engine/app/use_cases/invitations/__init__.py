"""
Invitation Lifecycle Use Cases

Create, resend, revoke, status, state signals and consume.
"""

from .advance_invitation_state_use_case import AdvanceInvitationStateUseCase
from .consume_invitation_use_case import ConsumeInvitationUseCase
from .create_invitation_use_case import CreateInvitationUseCase
from .dtos import (
    AdvanceInvitationStateCommand,
    CreateInvitationCommand,
    CreateInvitationResponse,
    InvitationStatusResponse,
    ResendInvitationCommand,
    ResendInvitationResponse,
    RevokeInvitationCommand,
    RevokeInvitationResponse,
    StateChangeResponse,
)
from .get_invitation_status_use_case import GetInvitationStatusUseCase
from .resend_invitation_use_case import ResendInvitationUseCase
from .revoke_invitation_use_case import RevokeInvitationUseCase

__all__ = [
    "CreateInvitationUseCase",
    "ResendInvitationUseCase",
    "RevokeInvitationUseCase",
    "GetInvitationStatusUseCase",
    "AdvanceInvitationStateUseCase",
    "ConsumeInvitationUseCase",
    "CreateInvitationCommand",
    "ResendInvitationCommand",
    "RevokeInvitationCommand",
    "AdvanceInvitationStateCommand",
    "CreateInvitationResponse",
    "ResendInvitationResponse",
    "RevokeInvitationResponse",
    "InvitationStatusResponse",
    "StateChangeResponse",
]
