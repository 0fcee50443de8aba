"""
Consume Invitation Use Case

Marks a validated invitation as used once onboarding completes.
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

from .dtos import StateChangeResponse
from .store_guard import iso, run_guarded

logger = logging.getLogger(__name__)


class ConsumeInvitationUseCase:
    """
    Use case for consuming an invitation.

    Business Rules:
    - Only a VALIDATED invitation can be consumed
    - Consuming twice fails with ALREADY_CONSUMED
    - CONSUMED is terminal; the token never validates again
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

    async def execute(self, invitation_id: UUID, actor: str) -> Result[StateChangeResponse]:
        result = await run_guarded(
            self._consume(invitation_id),
            self.settings.operation_timeout_seconds,
            "consume invitation",
        )

        if result.is_ok():
            logger.info(f"Invitation consumed: id={invitation_id}")
            await emit_audit(
                self.audit_sink,
                AuditAction.INVITATION_CONSUMED,
                invitation_id=invitation_id,
                actor=actor,
            )
        else:
            await emit_audit(
                self.audit_sink,
                AuditAction.INVITATION_CONSUME_REJECTED,
                invitation_id=invitation_id,
                actor=actor,
                metadata={"error_code": result.error.code},
            )
        return result

    async def _consume(self, invitation_id: UUID) -> Result[StateChangeResponse]:
        async with self.uow:
            invitation = await self.uow.invitations.get_by_id(invitation_id)

            if invitation is None:
                return Return.err(
                    make_error(LifecycleErrorCode.NOT_FOUND, "Invitation not found")
                )

            current = TokenState(invitation.state)
            if current == TokenState.CONSUMED:
                return Return.err(
                    make_error(
                        LifecycleErrorCode.ALREADY_CONSUMED,
                        "Invitation has already been used",
                    )
                )
            if not can_transition(current, TokenState.CONSUMED):
                return Return.err(
                    make_error(
                        LifecycleErrorCode.INVALID_STATE_TRANSITION,
                        f"Invalid state transition: {current.value} -> CONSUMED",
                        {"current": current.value, "target": TokenState.CONSUMED.value},
                    )
                )

            now = self.clock()
            applied = await self.uow.invitations.update_state_and_attempts(
                invitation.id,
                expected_state=current,
                new_state=TokenState.CONSUMED,
                expected_attempts=invitation.validation_attempts,
                extra_fields={"consumed_at": now, "updated_at": now},
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
                state=TokenState.CONSUMED.value,
                changed_at=iso(now),
            )
        )
