"""
Create Invitation Use Case

Issues a magic-link token for a supplier and persists its record.
"""

import logging
from datetime import datetime, timedelta
from typing import Callable, Optional
from uuid import UUID

from invitation_engine.app.repositories.errors import DuplicateRecordError
from invitation_engine.app.services.audit_sink import IAuditSink, emit_audit
from invitation_engine.app.services.settings import LifecycleSettings
from invitation_engine.app.services.token_issuer import (
    IssueTokenParams,
    TokenIssuer,
    normalize_email,
)
from invitation_engine.app.services.unit_of_work import UnitOfWork
from invitation_engine.domain.base import utcnow
from invitation_engine.domain.entities import AuditAction, TokenState
from invitation_engine.domain.errors import IssuanceErrorCode, make_error
from invitation_engine.domain.tokens import build_invitation_link
from invitation_engine.libs.result import Result, Return

from .dtos import CreateInvitationCommand, CreateInvitationResponse
from .store_guard import iso, run_guarded

logger = logging.getLogger(__name__)


class CreateInvitationUseCase:
    """
    Use case for creating a supplier invitation.

    Business Rules:
    - Email and expiry are validated by the issuer (INVALID_INPUT, INVALID_EXPIRY)
    - At most one active invitation per recipient email (DUPLICATE_ACTIVE)
    - A requester may create at most N invitations per window (CREATION_RATE_LIMITED)
    - The record starts in CREATED with zero validation attempts
    - The raw token is returned once and never stored
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
        self, command: CreateInvitationCommand, created_by: str
    ) -> Result[CreateInvitationResponse]:
        """
        Execute create invitation use case.

        Args:
            command: Recipient details and optional expiry
            created_by: Identifier of the requesting user or service

        Returns:
            Result with CreateInvitationResponse DTO, or Error
        """
        result = await run_guarded(
            self._create(command, created_by),
            self.settings.operation_timeout_seconds,
            "create invitation",
        )

        if result.is_ok():
            response = result.value
            logger.info(f"Invitation created: id={response.invitation_id}")
            await emit_audit(
                self.audit_sink,
                AuditAction.INVITATION_CREATED,
                invitation_id=UUID(response.invitation_id),
                actor=created_by,
                metadata={
                    "recipient_email": normalize_email(command.recipient_email),
                    "expires_at": response.expires_at,
                },
            )
        else:
            logger.info(f"Invitation creation rejected: {result.error.code}")
            await emit_audit(
                self.audit_sink,
                AuditAction.INVITATION_CREATE_REJECTED,
                actor=created_by,
                metadata={
                    "error_code": result.error.code,
                    "recipient_email": normalize_email(command.recipient_email),
                },
            )
        return result

    async def _create(
        self, command: CreateInvitationCommand, created_by: str
    ) -> Result[CreateInvitationResponse]:
        issued_result = self.issuer.issue(
            IssueTokenParams(
                recipient_email=command.recipient_email,
                company_name=command.company_name,
                contact_name=command.contact_name,
                requester_id=created_by,
                requester_name=command.requester_name,
                department_code=command.department_code,
                cost_center=command.cost_center,
                expiry_days=command.expiry_days,
            )
        )
        if issued_result.is_err():
            return issued_result

        issued = issued_result.value
        record = issued.record

        async with self.uow:
            existing = await self.uow.invitations.find_active_by_recipient(
                record.recipient_email
            )
            if existing is not None:
                return Return.err(
                    make_error(
                        IssuanceErrorCode.DUPLICATE_ACTIVE,
                        "An active invitation already exists for this email",
                        {
                            "invitation_id": str(existing.id),
                            "state": TokenState(existing.state).value,
                        },
                    )
                )

            window = self.settings.creation_rate_window_seconds
            since = self.clock() - timedelta(seconds=window)
            created_recently = await self.uow.invitations.count_created_by_since(
                record.created_by, since
            )
            if created_recently >= self.settings.creation_rate_limit:
                return Return.err(
                    make_error(
                        IssuanceErrorCode.CREATION_RATE_LIMITED,
                        "Too many invitations created, try again later",
                        {
                            "limit": self.settings.creation_rate_limit,
                            "window_seconds": window,
                        },
                    )
                )

            record.created_at = record.issued_at
            record.updated_at = record.issued_at
            try:
                await self.uow.invitations.insert(record)
                await self.uow.commit()
            except DuplicateRecordError:
                # lost a race with a concurrent create for the same recipient
                return Return.err(
                    make_error(
                        IssuanceErrorCode.DUPLICATE_ACTIVE,
                        "An active invitation already exists for this email",
                    )
                )

        return Return.ok(
            CreateInvitationResponse(
                invitation_id=str(record.id),
                token=issued.token,
                invitation_link=build_invitation_link(
                    issued.token, self.settings.invitation_base_url
                ),
                state=record.state.value,
                issued_at=iso(record.issued_at),
                expires_at=iso(record.expires_at),
            )
        )
