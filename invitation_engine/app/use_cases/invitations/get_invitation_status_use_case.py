"""
Get Invitation Status Use Case
"""

from datetime import datetime
from typing import Callable, Optional
from uuid import UUID

from invitation_engine.app.services.audit_sink import IAuditSink, emit_audit
from invitation_engine.app.services.settings import LifecycleSettings
from invitation_engine.app.services.unit_of_work import UnitOfWork
from invitation_engine.domain.base import utcnow
from invitation_engine.domain.entities import (
    ACTIVE_STATES,
    AuditAction,
    InvitationToken,
    TokenState,
)
from invitation_engine.domain.errors import LifecycleErrorCode, make_error
from invitation_engine.libs.result import Result, Return

from .dtos import InvitationStatusResponse
from .store_guard import iso, run_guarded


class GetInvitationStatusUseCase:
    """
    Read-only lifecycle view of an invitation.

    is_expired reflects the clock even when the persisted state has not
    been moved to EXPIRED yet. The token hash is never exposed.
    """

    def __init__(
        self,
        uow: UnitOfWork,
        audit_sink: IAuditSink,
        settings: Optional[LifecycleSettings] = None,
        max_validation_attempts: int = 5,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.uow = uow
        self.audit_sink = audit_sink
        self.settings = settings or LifecycleSettings()
        self.max_validation_attempts = max_validation_attempts
        self.clock = clock

    async def execute(
        self, invitation_id: UUID, requested_by: str
    ) -> Result[InvitationStatusResponse]:
        result = await run_guarded(
            self._get_status(invitation_id),
            self.settings.operation_timeout_seconds,
            "get invitation status",
        )
        await emit_audit(
            self.audit_sink,
            AuditAction.INVITATION_STATUS_VIEWED,
            invitation_id=invitation_id,
            actor=requested_by,
            metadata={
                "outcome": "success" if result.is_ok() else "failure",
                "error_code": None if result.is_ok() else result.error.code,
            },
        )
        return result

    async def _get_status(self, invitation_id: UUID) -> Result[InvitationStatusResponse]:
        async with self.uow:
            invitation = await self.uow.invitations.get_by_id(invitation_id)

            if invitation is None:
                return Return.err(
                    make_error(LifecycleErrorCode.NOT_FOUND, "Invitation not found")
                )

            return self._to_response(invitation)

    def _to_response(
        self, invitation: InvitationToken
    ) -> Result[InvitationStatusResponse]:
        return Return.ok(
            InvitationStatusResponse(
                invitation_id=str(invitation.id),
                recipient_email=invitation.recipient_email,
                company_name=invitation.company_name,
                contact_name=invitation.contact_name,
                state=TokenState(invitation.state).value,
                validation_attempts=invitation.validation_attempts,
                max_validation_attempts=self.max_validation_attempts,
                issued_at=iso(invitation.issued_at),
                expires_at=iso(invitation.expires_at),
                is_active=TokenState(invitation.state) in ACTIVE_STATES,
                is_expired=invitation.is_expired_at(self.clock()),
                last_validated_at=iso(invitation.last_validated_at),
                revoked_at=iso(invitation.revoked_at),
                revoked_by=invitation.revoked_by,
                revoked_reason=invitation.revoked_reason,
                consumed_at=iso(invitation.consumed_at),
                created_by=invitation.created_by,
                metadata={
                    "department_code": invitation.department_code,
                    "cost_center": invitation.cost_center,
                    "created_at": iso(invitation.created_at),
                },
            )
        )
