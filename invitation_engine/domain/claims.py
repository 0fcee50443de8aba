"""
Signed Invitation Claims

Typed replacement for the claim dictionary carried inside every invitation
token. Field names are the wire names of the JWT payload.
"""

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict

PURPOSE = "supplier_onboarding"
ALLOWED_USES = 1


class InvitationClaims(BaseModel):
    """Standard + custom claims of a supplier invitation token"""

    model_config = ConfigDict(frozen=True, extra="ignore")

    # Standard JWT claims
    iss: str
    sub: str
    aud: str
    exp: int
    iat: int
    jti: str
    scope: List[str]

    # Invitation context
    invitation_id: str
    supplier_email: str
    company_name: Optional[str] = None
    contact_name: Optional[str] = None
    requester_id: str = "system"
    requester_name: str = "System"
    department_code: Optional[str] = None
    cost_center: Optional[str] = None
    created_at: str  # ISO-8601
    purpose: Literal["supplier_onboarding"] = PURPOSE
    allowed_uses: Literal[1] = ALLOWED_USES
    initial_state: Literal["CREATED"] = "CREATED"

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump()
