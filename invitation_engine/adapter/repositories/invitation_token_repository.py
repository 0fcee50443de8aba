from datetime import datetime
from typing import Any, Dict, Optional
from uuid import UUID

from sqlalchemy import func, update
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from invitation_engine.adapter.repositories.store_errors import translate_store_errors
from invitation_engine.app.repositories.invitation_token_repository import (
    IInvitationTokenRepository,
)
from invitation_engine.domain.entities import ACTIVE_STATES, InvitationToken, TokenState


class InvitationTokenRepository(IInvitationTokenRepository):
    """InvitationToken repository implementation using SQLModel"""

    def __init__(self, session: AsyncSession):
        self.session = session

    @translate_store_errors
    async def get_by_id(self, invitation_id: UUID) -> Optional[InvitationToken]:
        """Get invitation by ID"""
        stmt = select(InvitationToken).where(InvitationToken.id == invitation_id)
        result = await self.session.exec(stmt)
        return result.one_or_none()

    @translate_store_errors
    async def find_by_token_hash(self, token_hash: str) -> Optional[InvitationToken]:
        """Get invitation by token hash"""
        stmt = select(InvitationToken).where(InvitationToken.token_hash == token_hash)
        result = await self.session.exec(stmt)
        return result.one_or_none()

    @translate_store_errors
    async def find_active_by_recipient(self, email: str) -> Optional[InvitationToken]:
        """Get active invitation for a recipient"""
        stmt = select(InvitationToken).where(
            InvitationToken.recipient_email == email,
            InvitationToken.state.in_(list(ACTIVE_STATES)),
        )
        result = await self.session.exec(stmt)
        return result.first()

    @translate_store_errors
    async def count_created_by_since(self, created_by: str, since: datetime) -> int:
        """Count invitations created by an actor since a point in time"""
        stmt = select(func.count()).select_from(InvitationToken).where(
            InvitationToken.created_by == created_by,
            InvitationToken.created_at >= since,
        )
        result = await self.session.exec(stmt)
        return result.one()

    @translate_store_errors
    async def insert(self, invitation: InvitationToken) -> InvitationToken:
        """Insert a new invitation"""
        self.session.add(invitation)
        await self.session.flush()
        await self.session.refresh(invitation)
        return invitation

    @translate_store_errors
    async def update_state_and_attempts(
        self,
        invitation_id: UUID,
        expected_state: TokenState,
        new_state: TokenState,
        attempts_delta: int = 0,
        extra_fields: Optional[Dict[str, Any]] = None,
        expected_attempts: Optional[int] = None,
    ) -> bool:
        """Single conditional UPDATE; rowcount tells whether we won"""
        conditions = [
            InvitationToken.id == invitation_id,
            InvitationToken.state == expected_state,
        ]
        if expected_attempts is not None:
            conditions.append(InvitationToken.validation_attempts == expected_attempts)

        values: Dict[str, Any] = dict(extra_fields or {})
        values["state"] = new_state
        values["validation_attempts"] = (
            InvitationToken.validation_attempts + attempts_delta
        )

        stmt = (
            update(InvitationToken)
            .where(*conditions)
            .values(**values)
            .execution_options(synchronize_session="fetch")
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1
