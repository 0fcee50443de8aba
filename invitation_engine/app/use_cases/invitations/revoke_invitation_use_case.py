"""
Revoke Invitation Use Case

Handles administrative revocation of an invitation token.
"""

import logging
from datetime import datetime
from typing import Callable, Optional
from uuid import UUID

from invitation_engine.app.services.audit_sink import IAuditSink, emit_audit
from invitation_engine.app.services.settings import LifecycleSettings
from invitation_engine.app.services.unit_of_work import UnitOfWork
from invitation_engine.domain.base import utcnow
from invitation_engine.domain.entities import AuditAction, TokenState
from invitation_engine.domain.errors import LifecycleErrorCode, make_error
from invitation_engine.domain.state_machine import can_transition
from invitation_engine.libs.result import Result, Return

from .dtos import RevokeInvitationCommand, RevokeInvitationResponse
from .store_guard import iso, run_guarded

logger = logging.getLogger(__name__)


class RevokeInvitationUseCase:
    """
    Use case for revoking an invitation.

    Business Rules:
    - Consumed invitations cannot be revoked (ALREADY_CONSUMED)
    - Revoking twice fails (ALREADY_REVOKED)
    - Expired or failed invitations are terminal (INVALID_STATE_TRANSITION)
    - The state change is conditional on the state that was read (CONFLICT)
    - Every later validation of the token fails with REVOKED
    """

    def __init__(
        self,
        uow: UnitOfWork,
        audit_sink: IAuditSink,
        settings: Optional[LifecycleSettings] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.uow = uow
        self.audit_sink = audit_sink
        self.settings = settings or LifecycleSettings()
        self.clock = clock

    async def execute(
        self,
        invitation_id: UUID,
        revoked_by: str,
        command: Optional[RevokeInvitationCommand] = None,
    ) -> Result[RevokeInvitationResponse]:
        """
        Execute revoke invitation use case.

        Args:
            invitation_id: ID of the invitation to revoke
            revoked_by: Identifier of the revoking user or service
            command: Optional revocation reason

        Returns:
            Result with RevokeInvitationResponse DTO, or Error
        """
        reason = command.reason if command else None
        result = await run_guarded(
            self._revoke(invitation_id, revoked_by, reason),
            self.settings.operation_timeout_seconds,
            "revoke invitation",
        )

        if result.is_ok():
            logger.info(f"Invitation revoked: id={invitation_id} by={revoked_by}")
            await emit_audit(
                self.audit_sink,
                AuditAction.TOKEN_REVOKED,
                invitation_id=invitation_id,
                actor=revoked_by,
                metadata={"reason": reason},
            )
        else:
            await emit_audit(
                self.audit_sink,
                AuditAction.TOKEN_REVOKE_REJECTED,
                invitation_id=invitation_id,
                actor=revoked_by,
                metadata={"error_code": result.error.code, "reason": reason},
            )
        return result

    async def _revoke(
        self, invitation_id: UUID, revoked_by: str, reason: Optional[str]
    ) -> Result[RevokeInvitationResponse]:
        async with self.uow:
            invitation = await self.uow.invitations.get_by_id(invitation_id)

            if invitation is None:
                return Return.err(
                    make_error(LifecycleErrorCode.NOT_FOUND, "Invitation not found")
                )

            state = TokenState(invitation.state)
            if state == TokenState.CONSUMED:
                return Return.err(
                    make_error(
                        LifecycleErrorCode.ALREADY_CONSUMED,
                        "Cannot revoke an invitation that has already been used",
                    )
                )
            if state == TokenState.REVOKED:
                return Return.err(
                    make_error(
                        LifecycleErrorCode.ALREADY_REVOKED,
                        "Invitation is already revoked",
                    )
                )
            if not can_transition(state, TokenState.REVOKED):
                return Return.err(
                    make_error(
                        LifecycleErrorCode.INVALID_STATE_TRANSITION,
                        f"Cannot revoke an invitation in state {state.value}",
                        {"current": state.value, "target": TokenState.REVOKED.value},
                    )
                )

            now = self.clock()
            applied = await self.uow.invitations.update_state_and_attempts(
                invitation.id,
                expected_state=state,
                new_state=TokenState.REVOKED,
                expected_attempts=invitation.validation_attempts,
                extra_fields={
                    "revoked_at": now,
                    "revoked_by": revoked_by,
                    "revoked_reason": reason,
                    "updated_at": now,
                },
            )
            if not applied:
                return Return.err(
                    make_error(
                        LifecycleErrorCode.CONFLICT,
                        "Invitation was modified concurrently, retry the request",
                    )
                )

            await self.uow.commit()

        return Return.ok(
            RevokeInvitationResponse(
                invitation_id=str(invitation_id),
                state=TokenState.REVOKED.value,
                revoked_at=iso(now),
                revoked_by=revoked_by,
                reason=reason,
            )
        )
