import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional
from uuid import UUID

from invitation_engine.domain.entities import AuditAction, AuditEvent

logger = logging.getLogger(__name__)


class IAuditSink(ABC):
    """Append-only audit log, written outside the primary transaction"""

    @abstractmethod
    async def append(self, event: AuditEvent) -> None:
        pass


async def emit_audit(
    sink: IAuditSink,
    action: AuditAction,
    invitation_id: Optional[UUID] = None,
    actor: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Best-effort audit write.

    A failing sink is logged here and never changes the outcome of the
    operation that produced the event.
    """
    event = AuditEvent(
        invitation_id=invitation_id,
        actor=actor,
        action=action.value,
        event_metadata=metadata or {},
    )
    try:
        await sink.append(event)
    except Exception:
        logger.exception(
            f"Audit sink failed for action={action.value} invitation_id={invitation_id}"
        )
