import asyncio
import logging
from datetime import datetime
from typing import Awaitable, Optional

from invitation_engine.app.repositories.errors import StoreError
from invitation_engine.domain.base import ensure_utc
from invitation_engine.domain.errors import LifecycleErrorCode, make_error
from invitation_engine.libs.result import Result, Return

logger = logging.getLogger(__name__)


async def run_guarded(
    operation: Awaitable[Result], timeout: Optional[float], name: str
) -> Result:
    """
    Await a store-bound operation under a deadline.

    Timeouts and store failures become DATABASE_ERROR so they are never
    confused with a business rejection. Other exceptions propagate.
    """
    try:
        async with asyncio.timeout(timeout):
            return await operation
    except TimeoutError:
        logger.warning(f"{name} timed out after {timeout}s")
        return Return.err(
            make_error(
                LifecycleErrorCode.DATABASE_ERROR,
                "Invitation store did not respond in time",
                {"reason": "timeout"},
            )
        )
    except StoreError as e:
        logger.error(f"Invitation store failure during {name}: {e}")
        return Return.err(
            make_error(
                LifecycleErrorCode.DATABASE_ERROR,
                "Invitation store failure",
                {"reason": str(e)},
            )
        )


def iso(value: Optional[datetime]) -> Optional[str]:
    return ensure_utc(value).isoformat() if value is not None else None
