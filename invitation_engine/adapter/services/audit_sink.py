from sqlalchemy.orm import sessionmaker

from invitation_engine.app.services.audit_sink import IAuditSink
from invitation_engine.domain.entities import AuditEvent


class SqlAlchemyAuditSink(IAuditSink):
    """Writes audit events in their own session so they survive a rolled-back operation"""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    async def append(self, event: AuditEvent) -> None:
        async with self.session_factory() as session:
            session.add(event)
            await session.commit()
