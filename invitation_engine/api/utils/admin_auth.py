"""
Internal API Key Authentication

Lifecycle endpoints are called by trusted internal services, not by
suppliers. Suppliers only reach the public validate endpoint.
"""

from fastapi import Header, status
from invitation_engine.libs.result import Error
from invitation_engine.api.error import ClientError
from config import ApplicationConfig

SYSTEM_ACTOR = "system"


async def verify_admin_api_key(x_admin_api_key: str = Header(None)):
    """
    Verify admin API key from X-Admin-API-Key header.

    Raises:
        ClientError: 401 if key is missing or invalid

    Returns:
        True if valid
    """
    if not x_admin_api_key:
        raise ClientError(
            Error("UNAUTHORIZED", "Admin API key required"),
            status_code=status.HTTP_401_UNAUTHORIZED,
        )

    if x_admin_api_key != ApplicationConfig.ADMIN_API_KEY:
        raise ClientError(
            Error("INVALID_API_KEY", "Invalid admin API key"),
            status_code=status.HTTP_401_UNAUTHORIZED,
        )

    return True


async def get_actor_id(x_actor_id: str = Header(None)) -> str:
    """Identity of the user or service acting through the internal API"""
    if x_actor_id and x_actor_id.strip():
        return x_actor_id.strip()[:255]
    return SYSTEM_ACTOR
