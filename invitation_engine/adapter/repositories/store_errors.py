import functools

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from invitation_engine.app.repositories.errors import DuplicateRecordError, StoreError


def translate_store_errors(func):
    """Map SQLAlchemy exceptions raised by an async repository method to app-level errors"""

    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        try:
            return await func(*args, **kwargs)
        except IntegrityError as e:
            raise DuplicateRecordError(str(e.orig)) from e
        except SQLAlchemyError as e:
            raise StoreError(str(e)) from e

    return wrapper
