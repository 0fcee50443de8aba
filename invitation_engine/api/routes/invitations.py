from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from invitation_engine.api.error import ClientError, ServerError
from invitation_engine.api.utils.admin_auth import get_actor_id, verify_admin_api_key
from invitation_engine.app.services.audit_sink import IAuditSink
from invitation_engine.app.services.settings import LifecycleSettings, ValidatorSettings
from invitation_engine.app.services.token_issuer import TokenIssuer
from invitation_engine.app.services.token_validator import (
    TokenValidationResponse,
    TokenValidator,
    ValidationContext,
)
from invitation_engine.app.services.unit_of_work import UnitOfWork
from invitation_engine.app.use_cases.invitations import (
    AdvanceInvitationStateCommand,
    AdvanceInvitationStateUseCase,
    ConsumeInvitationUseCase,
    CreateInvitationCommand,
    CreateInvitationResponse,
    CreateInvitationUseCase,
    GetInvitationStatusUseCase,
    InvitationStatusResponse,
    ResendInvitationCommand,
    ResendInvitationResponse,
    ResendInvitationUseCase,
    RevokeInvitationCommand,
    RevokeInvitationResponse,
    RevokeInvitationUseCase,
    StateChangeResponse,
)
from invitation_engine.depends import (
    get_audit_sink,
    get_lifecycle_settings,
    get_token_issuer,
    get_token_validator,
    get_unit_of_work,
    get_validator_settings,
)
from invitation_engine.domain.errors import format_validation_error
from invitation_engine.libs.result import Error

router = APIRouter(prefix="/invitations", tags=["Invitations"])

ERROR_STATUS = {
    "INVALID_INPUT": status.HTTP_400_BAD_REQUEST,
    "INVALID_EXPIRY": status.HTTP_400_BAD_REQUEST,
    "MISSING_TOKEN": status.HTTP_400_BAD_REQUEST,
    "INVALID_FORMAT": status.HTTP_400_BAD_REQUEST,
    "INVALID_CLAIMS": status.HTTP_400_BAD_REQUEST,
    "SIGNATURE_INVALID": status.HTTP_401_UNAUTHORIZED,
    "NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "DUPLICATE_ACTIVE": status.HTTP_409_CONFLICT,
    "ALREADY_CONSUMED": status.HTTP_409_CONFLICT,
    "ALREADY_REVOKED": status.HTTP_409_CONFLICT,
    "CANNOT_RESEND_CONSUMED": status.HTTP_409_CONFLICT,
    "INVALID_STATE_TRANSITION": status.HTTP_409_CONFLICT,
    "CONFLICT": status.HTTP_409_CONFLICT,
    "TOKEN_EXPIRED": status.HTTP_410_GONE,
    "REVOKED": status.HTTP_410_GONE,
    "CREATION_RATE_LIMITED": status.HTTP_429_TOO_MANY_REQUESTS,
    "RATE_LIMIT_EXCEEDED": status.HTTP_429_TOO_MANY_REQUESTS,
}

SERVER_ERROR_STATUS = {
    "DATABASE_ERROR": status.HTTP_503_SERVICE_UNAVAILABLE,
}


def raise_for_error(error: Error):
    if error.code in ERROR_STATUS:
        raise ClientError(error, status_code=ERROR_STATUS[error.code])
    raise ServerError(
        error,
        status_code=SERVER_ERROR_STATUS.get(
            error.code, status.HTTP_500_INTERNAL_SERVER_ERROR
        ),
    )


class ValidateTokenRequest(BaseModel):
    """Token presented by a supplier following the magic link"""

    token: Optional[str] = Field(None, description="Invitation token from the link")


@router.post(
    "/validate",
    status_code=status.HTTP_200_OK,
    response_model=TokenValidationResponse,
)
async def validate_invitation_token(
    request: Request,
    body: ValidateTokenRequest,
    validator: TokenValidator = Depends(get_token_validator),
):
    """
    Validate Invitation Token (public)

    Rejections use the {valid: false, error: {...}} body so the portal can
    render a specific message per error code.
    """
    context = ValidationContext(
        ip_address=request.client.host if request.client else None
    )
    result = await validator.validate(body.token, context)

    if result.is_err():
        error = result.error
        status_code = ERROR_STATUS.get(
            error.code,
            SERVER_ERROR_STATUS.get(error.code, status.HTTP_500_INTERNAL_SERVER_ERROR),
        )
        return JSONResponse(
            status_code=status_code, content=format_validation_error(error)
        )

    return result.value


@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    response_model=CreateInvitationResponse,
    dependencies=[Depends(verify_admin_api_key)],
)
async def create_invitation(
    command: CreateInvitationCommand,
    actor_id: str = Depends(get_actor_id),
    uow: UnitOfWork = Depends(get_unit_of_work),
    issuer: TokenIssuer = Depends(get_token_issuer),
    audit_sink: IAuditSink = Depends(get_audit_sink),
    settings: LifecycleSettings = Depends(get_lifecycle_settings),
):
    """
    Create Invitation

    Raises:
        - 400 Bad Request: INVALID_INPUT, INVALID_EXPIRY
        - 409 Conflict: DUPLICATE_ACTIVE
        - 429 Too Many Requests: CREATION_RATE_LIMITED
        - 503 Service Unavailable: DATABASE_ERROR
    """
    use_case = CreateInvitationUseCase(uow, issuer, audit_sink, settings)
    result = await use_case.execute(command, created_by=actor_id)

    if result.is_err():
        raise_for_error(result.error)

    return result.value


@router.get(
    "/{invitation_id}",
    status_code=status.HTTP_200_OK,
    response_model=InvitationStatusResponse,
    dependencies=[Depends(verify_admin_api_key)],
)
async def get_invitation_status(
    invitation_id: UUID,
    actor_id: str = Depends(get_actor_id),
    uow: UnitOfWork = Depends(get_unit_of_work),
    audit_sink: IAuditSink = Depends(get_audit_sink),
    settings: LifecycleSettings = Depends(get_lifecycle_settings),
    validator_settings: ValidatorSettings = Depends(get_validator_settings),
):
    use_case = GetInvitationStatusUseCase(
        uow,
        audit_sink,
        settings,
        max_validation_attempts=validator_settings.max_validation_attempts,
    )
    result = await use_case.execute(invitation_id, requested_by=actor_id)

    if result.is_err():
        raise_for_error(result.error)

    return result.value


@router.delete(
    "/{invitation_id}",
    status_code=status.HTTP_200_OK,
    response_model=RevokeInvitationResponse,
    dependencies=[Depends(verify_admin_api_key)],
)
async def revoke_invitation(
    invitation_id: UUID,
    command: Optional[RevokeInvitationCommand] = None,
    actor_id: str = Depends(get_actor_id),
    uow: UnitOfWork = Depends(get_unit_of_work),
    audit_sink: IAuditSink = Depends(get_audit_sink),
    settings: LifecycleSettings = Depends(get_lifecycle_settings),
):
    """
    Revoke Invitation

    Raises:
        - 404 Not Found: NOT_FOUND
        - 409 Conflict: ALREADY_CONSUMED, ALREADY_REVOKED,
                        INVALID_STATE_TRANSITION, CONFLICT
    """
    use_case = RevokeInvitationUseCase(uow, audit_sink, settings)
    result = await use_case.execute(invitation_id, revoked_by=actor_id, command=command)

    if result.is_err():
        raise_for_error(result.error)

    return result.value


@router.post(
    "/{invitation_id}/resend",
    status_code=status.HTTP_200_OK,
    response_model=ResendInvitationResponse,
    dependencies=[Depends(verify_admin_api_key)],
)
async def resend_invitation(
    invitation_id: UUID,
    command: Optional[ResendInvitationCommand] = None,
    actor_id: str = Depends(get_actor_id),
    uow: UnitOfWork = Depends(get_unit_of_work),
    issuer: TokenIssuer = Depends(get_token_issuer),
    audit_sink: IAuditSink = Depends(get_audit_sink),
    settings: LifecycleSettings = Depends(get_lifecycle_settings),
):
    """
    Resend Invitation

    Issues a new token for the same invitation; the previous link stops working.

    Raises:
        - 404 Not Found: NOT_FOUND
        - 409 Conflict: CANNOT_RESEND_CONSUMED, DUPLICATE_ACTIVE, CONFLICT
    """
    use_case = ResendInvitationUseCase(uow, issuer, audit_sink, settings)
    result = await use_case.execute(
        invitation_id, requested_by=actor_id, command=command
    )

    if result.is_err():
        raise_for_error(result.error)

    return result.value


@router.post(
    "/{invitation_id}/state",
    status_code=status.HTTP_200_OK,
    response_model=StateChangeResponse,
    dependencies=[Depends(verify_admin_api_key)],
)
async def advance_invitation_state(
    invitation_id: UUID,
    command: AdvanceInvitationStateCommand,
    actor_id: str = Depends(get_actor_id),
    uow: UnitOfWork = Depends(get_unit_of_work),
    audit_sink: IAuditSink = Depends(get_audit_sink),
    settings: LifecycleSettings = Depends(get_lifecycle_settings),
):
    """Apply a delivery or abort signal (SENT, DELIVERED, OPENED, FAILED, EXPIRED, REVOKED)"""
    use_case = AdvanceInvitationStateUseCase(uow, audit_sink, settings)
    result = await use_case.execute(invitation_id, command, actor=actor_id)

    if result.is_err():
        raise_for_error(result.error)

    return result.value


@router.post(
    "/{invitation_id}/consume",
    status_code=status.HTTP_200_OK,
    response_model=StateChangeResponse,
    dependencies=[Depends(verify_admin_api_key)],
)
async def consume_invitation(
    invitation_id: UUID,
    actor_id: str = Depends(get_actor_id),
    uow: UnitOfWork = Depends(get_unit_of_work),
    audit_sink: IAuditSink = Depends(get_audit_sink),
    settings: LifecycleSettings = Depends(get_lifecycle_settings),
):
    use_case = ConsumeInvitationUseCase(uow, audit_sink, settings)
    result = await use_case.execute(invitation_id, actor=actor_id)

    if result.is_err():
        raise_for_error(result.error)

    return result.value
