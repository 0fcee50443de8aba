from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, Optional
from uuid import UUID

from invitation_engine.domain.entities import InvitationToken, TokenState


class IInvitationTokenRepository(ABC):
    """InvitationToken repository interface - application layer

    Adapters raise StoreError for infrastructure failures and
    DuplicateRecordError when a uniqueness constraint rejects a write.
    """

    @abstractmethod
    async def get_by_id(self, invitation_id: UUID) -> Optional[InvitationToken]:
        """Get invitation by ID"""
        pass

    @abstractmethod
    async def find_by_token_hash(self, token_hash: str) -> Optional[InvitationToken]:
        """Get invitation by SHA-256 hash of its current token"""
        pass

    @abstractmethod
    async def find_active_by_recipient(self, email: str) -> Optional[InvitationToken]:
        """Get the invitation in an active state for a recipient, if any"""
        pass

    @abstractmethod
    async def count_created_by_since(self, created_by: str, since: datetime) -> int:
        """Count invitations created by an actor at or after `since`"""
        pass

    @abstractmethod
    async def insert(self, invitation: InvitationToken) -> InvitationToken:
        """Insert a new invitation"""
        pass

    @abstractmethod
    async def update_state_and_attempts(
        self,
        invitation_id: UUID,
        expected_state: TokenState,
        new_state: TokenState,
        attempts_delta: int = 0,
        extra_fields: Optional[Dict[str, Any]] = None,
        expected_attempts: Optional[int] = None,
    ) -> bool:
        """
        Atomic conditional update.

        Applies new_state, validation_attempts += attempts_delta and
        extra_fields only if the row still has expected_state (and
        expected_attempts when given). Returns False on conflict.
        """
        pass
