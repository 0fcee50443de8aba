"""
Invitation Use Case DTOs (Data Transfer Objects)

All Command and Response classes for the invitation lifecycle.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


# ============================================================================
# Command DTOs
# ============================================================================


class CreateInvitationCommand(BaseModel):
    """Command for creating a supplier invitation"""

    recipient_email: Optional[str] = None
    company_name: Optional[str] = None
    contact_name: Optional[str] = None
    requester_name: Optional[str] = None
    department_code: Optional[str] = None
    cost_center: Optional[str] = None
    expiry_days: Optional[int] = None


class ResendInvitationCommand(BaseModel):
    expiry_days: Optional[int] = None


class RevokeInvitationCommand(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=500)


class AdvanceInvitationStateCommand(BaseModel):
    """External delivery or abort signal for an invitation"""

    target_state: str
    reason: Optional[str] = Field(default=None, max_length=500)


# ============================================================================
# Response DTOs
# ============================================================================


class CreateInvitationResponse(BaseModel):
    """Response for create invitation use case"""

    invitation_id: str
    token: str
    invitation_link: str
    state: str
    issued_at: str
    expires_at: str


class ResendInvitationResponse(BaseModel):
    """Response for resend invitation use case"""

    invitation_id: str
    token: str
    invitation_link: str
    state: str
    validation_attempts: int
    expires_at: str


class RevokeInvitationResponse(BaseModel):
    """Response for revoke invitation use case"""

    invitation_id: str
    state: str
    revoked_at: str
    revoked_by: str
    reason: Optional[str] = None


class InvitationStatusResponse(BaseModel):
    """Current lifecycle view of a single invitation"""

    model_config = ConfigDict(from_attributes=True)

    invitation_id: str
    recipient_email: str
    company_name: Optional[str] = None
    contact_name: Optional[str] = None
    state: str
    validation_attempts: int
    max_validation_attempts: int
    issued_at: str
    expires_at: str
    is_active: bool
    is_expired: bool
    last_validated_at: Optional[str] = None
    revoked_at: Optional[str] = None
    revoked_by: Optional[str] = None
    revoked_reason: Optional[str] = None
    consumed_at: Optional[str] = None
    created_by: str
    metadata: Dict[str, Any] = Field(default_factory=dict)


class StateChangeResponse(BaseModel):
    """Response for advance state and consume use cases"""

    invitation_id: str
    previous_state: str
    state: str
    changed_at: str
