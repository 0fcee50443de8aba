"""
AuditEvent Entity

Immutable log of invitation lifecycle events.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4

from sqlmodel import Column, DateTime, Field, Index, JSON, SQLModel

from ..base import utcnow


class AuditEvent(SQLModel, table=True):
    """
    AuditEvent entity - immutable log of invitation lifecycle events.

    Business Rules:
    - Immutable (never updated or deleted)
    - invitation_id nullable for events rejected before a record is known
    - Metadata stores outcome, error code and caller context (IP, reason)
    """

    __tablename__ = "audit_events"

    id: UUID = Field(default_factory=uuid4, primary_key=True)

    invitation_id: Optional[UUID] = Field(default=None, index=True)
    actor: Optional[str] = Field(default=None, max_length=255)

    action: str = Field(max_length=100)  # e.g., "TOKEN_VALIDATED"
    event_metadata: Optional[dict] = Field(default=None, sa_column=Column(JSON))

    # Timestamps
    created_at: datetime = Field(
        default_factory=utcnow, sa_column=Column(DateTime(timezone=True))
    )

    __table_args__ = (
        Index("idx_audit_created_at", "created_at"),
        Index("idx_audit_invitation_action", "invitation_id", "action"),
    )
