"""
InvitationToken Entity

The persisted record behind a supplier magic link.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import text
from sqlmodel import JSON, Column, DateTime, Field, Index, SQLModel

from ..base import ensure_utc, utcnow
from .enums import ACTIVE_STATES, TokenState

_ACTIVE_STATES_SQL = "state IN ({})".format(
    ", ".join(f"'{state.value}'" for state in sorted(ACTIVE_STATES))
)


class InvitationToken(SQLModel, table=True):
    """
    InvitationToken entity - one supplier invitation and its current token.

    Business Rules:
    - At most one active invitation per recipient email
    - token_hash is the SHA-256 of the current signed token; replaced on resend
    - claims_snapshot is for audit/debugging only, never for trust decisions
    - Never deleted; terminal states are kept for audit
    """

    __tablename__ = "invitation_tokens"

    id: UUID = Field(default_factory=uuid4, primary_key=True)

    recipient_email: str = Field(max_length=255, nullable=False, index=True)
    company_name: Optional[str] = Field(default=None, max_length=255)
    contact_name: Optional[str] = Field(default=None, max_length=255)
    department_code: Optional[str] = Field(default=None, max_length=64)
    cost_center: Optional[str] = Field(default=None, max_length=64)

    token_hash: str = Field(unique=True, max_length=64)  # SHA-256 hex
    claims_snapshot: Optional[dict] = Field(default=None, sa_column=Column(JSON))

    state: TokenState = Field(default=TokenState.CREATED, nullable=False)
    validation_attempts: int = Field(default=0, ge=0)

    # Timestamps
    issued_at: datetime = Field(sa_column=Column(DateTime(timezone=True)))
    expires_at: datetime = Field(sa_column=Column(DateTime(timezone=True)))
    created_at: datetime = Field(
        default_factory=utcnow, sa_column=Column(DateTime(timezone=True))
    )
    updated_at: Optional[datetime] = Field(
        default=None, sa_column=Column(DateTime(timezone=True))
    )

    # Audit fields
    last_validated_at: Optional[datetime] = Field(
        default=None, sa_column=Column(DateTime(timezone=True))
    )
    last_validated_ip: Optional[str] = Field(default=None, max_length=45)
    revoked_at: Optional[datetime] = Field(
        default=None, sa_column=Column(DateTime(timezone=True))
    )
    revoked_by: Optional[str] = Field(default=None, max_length=255)
    revoked_reason: Optional[str] = Field(default=None, max_length=500)
    consumed_at: Optional[datetime] = Field(
        default=None, sa_column=Column(DateTime(timezone=True))
    )
    created_by: str = Field(default="system", max_length=255, index=True)

    __table_args__ = (
        Index("idx_invitation_token_state", "state"),
        Index("idx_invitation_token_expires_at", "expires_at"),
        Index("idx_invitation_token_created_by_created_at", "created_by", "created_at"),
        Index(
            "uq_invitation_token_active_recipient",
            "recipient_email",
            unique=True,
            sqlite_where=text(_ACTIVE_STATES_SQL),
            postgresql_where=text(_ACTIVE_STATES_SQL),
        ),
    )

    @property
    def is_active(self) -> bool:
        return self.state in ACTIVE_STATES

    def is_expired_at(self, now: datetime) -> bool:
        return now > ensure_utc(self.expires_at)
