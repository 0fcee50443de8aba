from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel.ext.asyncio.session import AsyncSession

from invitation_engine.adapter.repositories.invitation_token_repository import (
    InvitationTokenRepository,
)
from invitation_engine.app.repositories.errors import DuplicateRecordError, StoreError
from invitation_engine.app.services.unit_of_work import UnitOfWork


class SqlAlchemyUnitOfWork(UnitOfWork):
    """SQLAlchemy implementation of UnitOfWork pattern"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def __aenter__(self):
        # Initialize all repositories with the session
        self.invitations = InvitationTokenRepository(self.session)
        return self

    async def __aexit__(self, *args):
        await self.rollback()

    async def commit(self):
        try:
            await self.session.commit()
        except IntegrityError as e:
            raise DuplicateRecordError(str(e.orig)) from e
        except SQLAlchemyError as e:
            raise StoreError(str(e)) from e

    async def rollback(self):
        await self.session.rollback()
