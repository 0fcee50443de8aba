"""
Resend Invitation Use Case

Re-issues the token of an existing invitation. The previous token stops
validating because its hash is replaced on the same record.
"""

import logging
from datetime import datetime
from typing import Callable, Optional
from uuid import UUID

from invitation_engine.app.repositories.errors import DuplicateRecordError
from invitation_engine.app.services.audit_sink import IAuditSink, emit_audit
from invitation_engine.app.services.settings import LifecycleSettings
from invitation_engine.app.services.token_issuer import IssueTokenParams, TokenIssuer
from invitation_engine.app.services.unit_of_work import UnitOfWork
from invitation_engine.domain.base import utcnow
from invitation_engine.domain.entities import AuditAction, TokenState
from invitation_engine.domain.errors import (
    IssuanceErrorCode,
    LifecycleErrorCode,
    make_error,
)
from invitation_engine.domain.state_machine import RESEND_TARGET, can_resend
from invitation_engine.domain.tokens import build_invitation_link
from invitation_engine.libs.result import Result, Return

from .dtos import ResendInvitationCommand, ResendInvitationResponse
from .store_guard import iso, run_guarded

logger = logging.getLogger(__name__)


class ResendInvitationUseCase:
    """
    Use case for resending an invitation.

    Business Rules:
    - Consumed invitations cannot be resent (CANNOT_RESEND_CONSUMED)
    - A new token with a fresh jti and expiry replaces the old one
    - State goes back to CREATED and validation attempts reset to zero
    - Revocation and last-validation details are cleared
    - Reactivating must not create a second active invitation for the email
    """

    def __init__(
        self,
        uow: UnitOfWork,
        issuer: TokenIssuer,
        audit_sink: IAuditSink,
        settings: Optional[LifecycleSettings] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.uow = uow
        self.issuer = issuer
        self.audit_sink = audit_sink
        self.settings = settings or LifecycleSettings()
        self.clock = clock

    async def execute(
        self,
        invitation_id: UUID,
        requested_by: str,
        command: Optional[ResendInvitationCommand] = None,
    ) -> Result[ResendInvitationResponse]:
        """
        Execute resend invitation use case.

        Args:
            invitation_id: ID of the invitation to resend
            requested_by: Identifier of the requesting user or service
            command: Optional new expiry

        Returns:
            Result with ResendInvitationResponse DTO, or Error
        """
        expiry_days = command.expiry_days if command else None
        result = await run_guarded(
            self._resend(invitation_id, expiry_days),
            self.settings.operation_timeout_seconds,
            "resend invitation",
        )

        if result.is_ok():
            logger.info(f"Invitation resent: id={invitation_id}")
            await emit_audit(
                self.audit_sink,
                AuditAction.INVITATION_RESENT,
                invitation_id=invitation_id,
                actor=requested_by,
                metadata={"expires_at": result.value.expires_at},
            )
        else:
            await emit_audit(
                self.audit_sink,
                AuditAction.INVITATION_RESEND_REJECTED,
                invitation_id=invitation_id,
                actor=requested_by,
                metadata={"error_code": result.error.code},
            )
        return result

    async def _resend(
        self, invitation_id: UUID, expiry_days: Optional[int]
    ) -> Result[ResendInvitationResponse]:
        async with self.uow:
            invitation = await self.uow.invitations.get_by_id(invitation_id)

            if invitation is None:
                return Return.err(
                    make_error(LifecycleErrorCode.NOT_FOUND, "Invitation not found")
                )

            state = TokenState(invitation.state)
            if not can_resend(state):
                return Return.err(
                    make_error(
                        LifecycleErrorCode.CANNOT_RESEND_CONSUMED,
                        "Cannot resend an invitation that has already been used",
                    )
                )

            other = await self.uow.invitations.find_active_by_recipient(
                invitation.recipient_email
            )
            if other is not None and other.id != invitation.id:
                return Return.err(
                    make_error(
                        IssuanceErrorCode.DUPLICATE_ACTIVE,
                        "Another active invitation exists for this email",
                        {"invitation_id": str(other.id)},
                    )
                )

            snapshot = invitation.claims_snapshot or {}
            issued_result = self.issuer.issue(
                IssueTokenParams(
                    recipient_email=invitation.recipient_email,
                    company_name=invitation.company_name,
                    contact_name=invitation.contact_name,
                    requester_id=snapshot.get("requester_id", invitation.created_by),
                    requester_name=snapshot.get("requester_name"),
                    department_code=invitation.department_code,
                    cost_center=invitation.cost_center,
                    expiry_days=expiry_days,
                ),
                invitation_id=invitation.id,
            )
            if issued_result.is_err():
                return issued_result
            issued = issued_result.value

            attempts = invitation.validation_attempts
            try:
                applied = await self.uow.invitations.update_state_and_attempts(
                    invitation.id,
                    expected_state=state,
                    new_state=RESEND_TARGET,
                    attempts_delta=-attempts,
                    expected_attempts=attempts,
                    extra_fields={
                        "token_hash": issued.token_hash,
                        "claims_snapshot": issued.record.claims_snapshot,
                        "issued_at": issued.record.issued_at,
                        "expires_at": issued.record.expires_at,
                        "last_validated_at": None,
                        "last_validated_ip": None,
                        "revoked_at": None,
                        "revoked_by": None,
                        "revoked_reason": None,
                        "updated_at": self.clock(),
                    },
                )
                if applied:
                    await self.uow.commit()
            except DuplicateRecordError:
                return Return.err(
                    make_error(
                        IssuanceErrorCode.DUPLICATE_ACTIVE,
                        "Another active invitation exists for this email",
                    )
                )

            if not applied:
                return Return.err(
                    make_error(
                        LifecycleErrorCode.CONFLICT,
                        "Invitation was modified concurrently, retry the request",
                    )
                )

        return Return.ok(
            ResendInvitationResponse(
                invitation_id=str(invitation_id),
                token=issued.token,
                invitation_link=build_invitation_link(
                    issued.token, self.settings.invitation_base_url
                ),
                state=RESEND_TARGET.value,
                validation_attempts=0,
                expires_at=iso(issued.record.expires_at),
            )
        )
