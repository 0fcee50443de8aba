"""
Advance Invitation State Use Case

Applies delivery signals (SENT, DELIVERED, OPENED) and abort signals
(FAILED, EXPIRED, REVOKED) reported by outer systems.
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

from .dtos import AdvanceInvitationStateCommand, StateChangeResponse
from .store_guard import iso, run_guarded

logger = logging.getLogger(__name__)

# VALIDATED and CONSUMED are reached only through validation and consume
SIGNAL_STATES = frozenset(
    {
        TokenState.SENT,
        TokenState.DELIVERED,
        TokenState.OPENED,
        TokenState.FAILED,
        TokenState.EXPIRED,
        TokenState.REVOKED,
    }
)


class AdvanceInvitationStateUseCase:
    """
    Use case for applying an external state signal.

    Business Rules:
    - Only signal states are accepted as targets
    - The move must be an edge of the state machine (INVALID_STATE_TRANSITION)
    - The update is conditional on the state that was read (CONFLICT)
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
        self, invitation_id: UUID, command: AdvanceInvitationStateCommand, actor: str
    ) -> Result[StateChangeResponse]:
        result = await run_guarded(
            self._advance(invitation_id, command, actor),
            self.settings.operation_timeout_seconds,
            "advance invitation state",
        )

        if result.is_ok():
            response = result.value
            logger.info(
                f"Invitation {invitation_id} moved "
                f"{response.previous_state} -> {response.state}"
            )
            action = AuditAction.INVITATION_STATE_CHANGED
            if response.state == TokenState.REVOKED.value:
                action = AuditAction.TOKEN_REVOKED
            await emit_audit(
                self.audit_sink,
                action,
                invitation_id=invitation_id,
                actor=actor,
                metadata={
                    "from": response.previous_state,
                    "to": response.state,
                    "reason": command.reason,
                },
            )
        else:
            await emit_audit(
                self.audit_sink,
                AuditAction.INVITATION_STATE_CHANGE_REJECTED,
                invitation_id=invitation_id,
                actor=actor,
                metadata={
                    "error_code": result.error.code,
                    "target_state": command.target_state,
                },
            )
        return result

    async def _advance(
        self, invitation_id: UUID, command: AdvanceInvitationStateCommand, actor: str
    ) -> Result[StateChangeResponse]:
        try:
            target = TokenState(command.target_state.upper())
        except ValueError:
            target = None
        if target not in SIGNAL_STATES:
            return Return.err(
                make_error(
                    LifecycleErrorCode.INVALID_STATE_TRANSITION,
                    f"{command.target_state} cannot be set by a state signal",
                    {"target": command.target_state},
                )
            )

        async with self.uow:
            invitation = await self.uow.invitations.get_by_id(invitation_id)

            if invitation is None:
                return Return.err(
                    make_error(LifecycleErrorCode.NOT_FOUND, "Invitation not found")
                )

            current = TokenState(invitation.state)
            if not can_transition(current, target):
                return Return.err(
                    make_error(
                        LifecycleErrorCode.INVALID_STATE_TRANSITION,
                        f"Invalid state transition: {current.value} -> {target.value}",
                        {"current": current.value, "target": target.value},
                    )
                )

            now = self.clock()
            extra_fields = {"updated_at": now}
            if target == TokenState.REVOKED:
                extra_fields.update(
                    revoked_at=now, revoked_by=actor, revoked_reason=command.reason
                )

            applied = await self.uow.invitations.update_state_and_attempts(
                invitation.id,
                expected_state=current,
                new_state=target,
                expected_attempts=invitation.validation_attempts,
                extra_fields=extra_fields,
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
            StateChangeResponse(
                invitation_id=str(invitation_id),
                previous_state=current.value,
                state=target.value,
                changed_at=iso(now),
            )
        )
