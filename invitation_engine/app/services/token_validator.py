"""
Token Validator

Verifies a presented invitation token and applies the resulting state
transition to its persisted record.
"""

import asyncio
import logging
from datetime import UTC, datetime
from typing import Any, Callable, Dict, NamedTuple, Optional, Tuple
from uuid import UUID

from jose import jwt
from jose.exceptions import JOSEError
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from invitation_engine.app.repositories.errors import StoreError
from invitation_engine.app.services.audit_sink import IAuditSink, emit_audit
from invitation_engine.app.services.key_provider import KeyProvider, UnknownKeyError
from invitation_engine.app.services.settings import ValidatorSettings
from invitation_engine.app.services.unit_of_work import UnitOfWork
from invitation_engine.domain.base import ensure_utc, utcnow
from invitation_engine.domain.claims import InvitationClaims
from invitation_engine.domain.entities import (
    AuditAction,
    InvitationToken,
    TokenState,
)
from invitation_engine.domain.errors import ValidationErrorCode, make_error
from invitation_engine.domain.state_machine import can_transition, is_terminal
from invitation_engine.domain.tokens import hash_token
from invitation_engine.libs.result import Error, Result, Return

logger = logging.getLogger(__name__)

REQUIRED_CUSTOM_CLAIMS = ("invitation_id", "supplier_email")

# Claims are checked explicitly, in order, after the signature
_DECODE_OPTIONS = {
    "verify_signature": True,
    "verify_aud": False,
    "verify_iss": False,
    "verify_exp": False,
    "verify_nbf": False,
    "verify_iat": False,
    "verify_sub": False,
    "verify_jti": False,
    "verify_at_hash": False,
}


class ValidationContext(BaseModel):
    """Per-call context: caller address and deadline for store calls"""

    ip_address: Optional[str] = None
    timeout_seconds: Optional[float] = Field(default=None, gt=0)


class TokenValidationResponse(BaseModel):
    """Successful validation outcome"""

    valid: bool = True
    invitation_id: str
    supplier_email: str
    company_name: Optional[str] = None
    contact_name: Optional[str] = None
    state: str
    validation_attempts: int
    claims: Dict[str, Any]
    metadata: Dict[str, Any]


def _hash_prefix(token_hash: str) -> str:
    return token_hash[:16] + "..."


class TokenValidator:
    """
    Validates supplier invitation tokens.

    Steps (strict order, first failure wins):
    1. Structure       - non-empty, three segments      -> MISSING_TOKEN / INVALID_FORMAT
    2. Signature       - resolved key, expected alg     -> SIGNATURE_INVALID
    3. Claim expiry    - signed exp vs now              -> TOKEN_EXPIRED
    4. Required claims - invitation_id, supplier_email  -> INVALID_CLAIMS
    5. Lookup by hash                                   -> NOT_FOUND / DATABASE_ERROR
    6. State           - consumed/revoked/expired       -> ALREADY_CONSUMED / REVOKED / TOKEN_EXPIRED
    7. Persisted expiry cross-check                     -> TOKEN_EXPIRED
    8. Rate limit      - attempts >= max                -> RATE_LIMIT_EXCEEDED
    9. Success         - VALIDATED, attempts + 1

    Steps 1-4 never touch the store. Once a record is found every outcome
    increments its attempt counter in one conditional update. Exactly one
    audit event is emitted per call.
    """

    def __init__(
        self,
        uow: UnitOfWork,
        key_provider: KeyProvider,
        audit_sink: IAuditSink,
        settings: Optional[ValidatorSettings] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.uow = uow
        self.key_provider = key_provider
        self.audit_sink = audit_sink
        self.settings = settings or ValidatorSettings()
        self.clock = clock

    async def validate(
        self, token: Optional[str], context: Optional[ValidationContext] = None
    ) -> Result[TokenValidationResponse]:
        context = context or ValidationContext()
        result, invitation_id, token_hash = await self._validate(token, context)

        metadata: Dict[str, Any] = {"ip_address": context.ip_address}
        if token_hash:
            metadata["token_hash_prefix"] = _hash_prefix(token_hash)
        if result.is_ok():
            metadata.update(
                outcome="success",
                validation_attempts=result.value.validation_attempts,
            )
            action = AuditAction.TOKEN_VALIDATED
        else:
            metadata.update(
                outcome="failure",
                error_code=result.error.code,
                error_message=result.error.message,
            )
            action = AuditAction.TOKEN_VALIDATION_FAILED
            logger.info(
                f"Token validation failed: {result.error.code} "
                f"invitation_id={invitation_id}"
            )

        await emit_audit(
            self.audit_sink,
            action,
            invitation_id=invitation_id,
            actor=context.ip_address,
            metadata=metadata,
        )
        return result

    def verify_signature_only(self, token: Optional[str]) -> Result[InvitationClaims]:
        """Steps 1-4: structure, signature, expiry and claims, no store access"""
        if token is None or token == "":
            return Return.err(
                make_error(
                    ValidationErrorCode.MISSING_TOKEN,
                    "Token parameter is required",
                    {"parameter": "token"},
                )
            )
        if not isinstance(token, str) or not token.strip():
            return Return.err(
                make_error(
                    ValidationErrorCode.INVALID_FORMAT,
                    "Token must be a non-empty string",
                    {"token_type": type(token).__name__},
                )
            )

        parts = token.split(".")
        if len(parts) != 3 or not all(parts):
            return Return.err(
                make_error(
                    ValidationErrorCode.INVALID_FORMAT,
                    "Invalid JWT format (expected 3 parts separated by dots)",
                    {"parts": len(parts)},
                )
            )

        try:
            header = jwt.get_unverified_header(token)
        except JOSEError:
            return Return.err(
                make_error(
                    ValidationErrorCode.INVALID_FORMAT,
                    "Token header could not be decoded",
                )
            )

        payload, error = self._verify_signature(token, header)
        if error is not None:
            return Return.err(error)

        exp = payload.get("exp")
        if isinstance(exp, bool) or not isinstance(exp, (int, float)):
            return Return.err(
                make_error(
                    ValidationErrorCode.INVALID_CLAIMS,
                    "Token missing required claim: exp",
                    {"claims": sorted(payload.keys())},
                )
            )
        now_ts = self.clock().timestamp()
        if now_ts > exp + self.settings.clock_tolerance_seconds:
            return Return.err(
                make_error(
                    ValidationErrorCode.TOKEN_EXPIRED,
                    "Token has expired",
                    {"expired_at": datetime.fromtimestamp(exp, UTC).isoformat()},
                )
            )

        for claim in REQUIRED_CUSTOM_CLAIMS:
            if not payload.get(claim):
                return Return.err(
                    make_error(
                        ValidationErrorCode.INVALID_CLAIMS,
                        f"Token missing required claim: {claim}",
                        {"claims": sorted(payload.keys())},
                    )
                )

        if payload.get("iss") != self.settings.issuer:
            return Return.err(
                make_error(
                    ValidationErrorCode.INVALID_CLAIMS,
                    "Token issuer is not accepted",
                    {"iss": payload.get("iss")},
                )
            )
        if payload.get("aud") != self.settings.audience:
            return Return.err(
                make_error(
                    ValidationErrorCode.INVALID_CLAIMS,
                    "Token audience is not accepted",
                    {"aud": payload.get("aud")},
                )
            )

        try:
            claims = InvitationClaims.model_validate(payload)
        except PydanticValidationError as e:
            return Return.err(
                make_error(
                    ValidationErrorCode.INVALID_CLAIMS,
                    "Token claims are malformed",
                    {"fields": [".".join(map(str, err["loc"])) for err in e.errors()]},
                )
            )

        return Return.ok(claims)

    def _verify_signature(
        self, token: str, header: Dict[str, Any]
    ) -> Tuple[Optional[Dict[str, Any]], Optional[Error]]:
        key_id = header.get("kid")
        if not key_id:
            return None, make_error(
                ValidationErrorCode.SIGNATURE_INVALID, "Token header has no key id"
            )

        try:
            public_key = self.key_provider.get_verification_key(key_id)
        except UnknownKeyError:
            return None, make_error(
                ValidationErrorCode.SIGNATURE_INVALID,
                "Token was signed with an unknown key",
                {"kid": key_id},
            )

        try:
            payload = jwt.decode(
                token,
                public_key,
                algorithms=list(self.settings.algorithms),
                options=_DECODE_OPTIONS,
            )
        except JOSEError as e:
            return None, make_error(
                ValidationErrorCode.SIGNATURE_INVALID,
                "Invalid token signature",
                {"reason": str(e)},
            )
        return payload, None

    async def _validate(
        self, token: Optional[str], context: ValidationContext
    ) -> Tuple[Result[TokenValidationResponse], Optional[UUID], Optional[str]]:
        claims_result = self.verify_signature_only(token)
        if claims_result.is_err():
            return claims_result, None, None

        claims = claims_result.value
        token_hash = hash_token(token)
        timeout = context.timeout_seconds or self.settings.operation_timeout_seconds

        try:
            async with asyncio.timeout(timeout):
                async with self.uow:
                    result, invitation_id, pending = await self._check_record(
                        token_hash, claims, context
                    )
        except TimeoutError:
            logger.warning(
                f"Token validation timed out after {timeout}s "
                f"hash={_hash_prefix(token_hash)}"
            )
            error = make_error(
                ValidationErrorCode.DATABASE_ERROR,
                "Invitation store did not respond in time",
                {"reason": "timeout"},
            )
        except StoreError as e:
            logger.error(f"Invitation store failure during validation: {e}")
            error = make_error(
                ValidationErrorCode.DATABASE_ERROR,
                "Failed to query invitation database",
                {"reason": str(e)},
            )
        except Exception:
            logger.exception("Unexpected error during token validation")
            error = make_error(
                ValidationErrorCode.UNKNOWN_ERROR, "Token validation failed"
            )
        else:
            # The rejection is already decided; counting it cannot change the outcome
            if pending is not None:
                await self._record_rejected_attempt(pending, context, timeout)
            return result, invitation_id, token_hash
        return Return.err(error), _parse_uuid(claims.invitation_id), token_hash

    async def _check_record(
        self, token_hash: str, claims: InvitationClaims, context: ValidationContext
    ) -> Tuple[
        Result[TokenValidationResponse], Optional[UUID], Optional["_RejectedAttempt"]
    ]:
        record = await self.uow.invitations.find_by_token_hash(token_hash)
        if record is None:
            return (
                Return.err(
                    make_error(
                        ValidationErrorCode.NOT_FOUND,
                        "Invitation not found or token has been regenerated",
                        {"token_hash_prefix": _hash_prefix(token_hash)},
                    )
                ),
                _parse_uuid(claims.invitation_id),
                None,
            )

        now = self.clock()
        rejection = self._state_rejection(record, now)
        if rejection is not None:
            error, new_state = rejection
            return Return.err(error), record.id, _rejected_attempt(record, new_state)

        current_state = TokenState(record.state)
        if not can_transition(current_state, TokenState.VALIDATED):
            error = make_error(
                ValidationErrorCode.UNKNOWN_ERROR,
                f"Invitation cannot be validated from state {current_state.value}",
                {"state": current_state.value},
            )
            return Return.err(error), record.id, _rejected_attempt(record, current_state)

        # the conditional update may refresh record in place
        attempts_before = record.validation_attempts
        applied = await self.uow.invitations.update_state_and_attempts(
            record.id,
            expected_state=current_state,
            new_state=TokenState.VALIDATED,
            attempts_delta=1,
            extra_fields={
                "last_validated_at": now,
                "last_validated_ip": context.ip_address,
                "updated_at": now,
            },
            expected_attempts=attempts_before,
        )
        if not applied:
            return (
                Return.err(
                    make_error(
                        ValidationErrorCode.DATABASE_ERROR,
                        "Invitation was modified concurrently",
                        {"conflict": True},
                    )
                ),
                record.id,
                None,
            )
        await self.uow.commit()

        return (
            Return.ok(
                TokenValidationResponse(
                    invitation_id=str(record.id),
                    supplier_email=record.recipient_email,
                    company_name=record.company_name,
                    contact_name=record.contact_name,
                    state=TokenState.VALIDATED.value,
                    validation_attempts=attempts_before + 1,
                    claims=claims.to_payload(),
                    metadata={
                        "issued_at": ensure_utc(record.issued_at).isoformat(),
                        "expires_at": ensure_utc(record.expires_at).isoformat(),
                        "created_by": record.created_by,
                        "department_code": record.department_code,
                        "cost_center": record.cost_center,
                    },
                )
            ),
            record.id,
            None,
        )

    def _state_rejection(
        self, record: InvitationToken, now: datetime
    ) -> Optional[Tuple[Error, TokenState]]:
        """Steps 6-8. Returns (error, state to persist) or None"""
        state = TokenState(record.state)

        if state == TokenState.CONSUMED:
            return (
                make_error(
                    ValidationErrorCode.ALREADY_CONSUMED,
                    "This invitation has already been used",
                    {
                        "invitation_id": str(record.id),
                        "consumed_at": _iso(record.consumed_at),
                    },
                ),
                state,
            )
        if state == TokenState.REVOKED:
            return (
                make_error(
                    ValidationErrorCode.REVOKED,
                    "This invitation has been revoked by an administrator",
                    {
                        "revoked_at": _iso(record.revoked_at),
                        "revoked_by": record.revoked_by,
                    },
                ),
                state,
            )
        if state == TokenState.EXPIRED:
            return (
                make_error(
                    ValidationErrorCode.TOKEN_EXPIRED,
                    "This invitation has expired",
                    {
                        "invitation_id": str(record.id),
                        "expires_at": _iso(record.expires_at),
                    },
                ),
                state,
            )
        if state == TokenState.FAILED:
            return (
                make_error(
                    ValidationErrorCode.REVOKED,
                    "This invitation is no longer usable",
                    {"invitation_id": str(record.id), "state": state.value},
                ),
                state,
            )

        if record.is_expired_at(now):
            return (
                make_error(
                    ValidationErrorCode.TOKEN_EXPIRED,
                    "This invitation has expired",
                    {
                        "invitation_id": str(record.id),
                        "expires_at": _iso(record.expires_at),
                    },
                ),
                TokenState.EXPIRED,
            )

        attempts = record.validation_attempts or 0
        if attempts >= self.settings.max_validation_attempts:
            return (
                make_error(
                    ValidationErrorCode.RATE_LIMIT_EXCEEDED,
                    "Maximum validation attempts exceeded "
                    f"({self.settings.max_validation_attempts})",
                    {
                        "attempts": attempts,
                        "max_attempts": self.settings.max_validation_attempts,
                        "invitation_id": str(record.id),
                    },
                ),
                state,
            )
        return None

    async def _record_rejected_attempt(
        self,
        pending: "_RejectedAttempt",
        context: ValidationContext,
        timeout: Optional[float],
    ) -> None:
        """Count a rejected attempt under its own deadline; failures are only logged"""
        try:
            async with asyncio.timeout(timeout):
                async with self.uow:
                    now = self.clock()
                    applied = await self.uow.invitations.update_state_and_attempts(
                        pending.invitation_id,
                        expected_state=pending.current_state,
                        new_state=pending.new_state,
                        attempts_delta=1,
                        extra_fields={
                            "last_validated_ip": context.ip_address,
                            "updated_at": now,
                        },
                        expected_attempts=pending.attempts,
                    )
                    if applied:
                        await self.uow.commit()
        except TimeoutError:
            logger.warning(
                f"Timed out recording rejected attempt for {pending.invitation_id}"
            )
            return
        except StoreError as e:
            logger.error(
                f"Failed to record rejected attempt for {pending.invitation_id}: {e}"
            )
            return
        if not applied:
            logger.warning(
                f"Concurrent update while recording rejected attempt "
                f"for {pending.invitation_id}"
            )


class _RejectedAttempt(NamedTuple):
    """Counter write owed by a rejection, captured while the record is loaded"""

    invitation_id: UUID
    current_state: TokenState
    new_state: TokenState
    attempts: int


def _rejected_attempt(record: InvitationToken, new_state: TokenState) -> _RejectedAttempt:
    current_state = TokenState(record.state)
    if new_state != current_state and (
        is_terminal(current_state) or not can_transition(current_state, new_state)
    ):
        new_state = current_state
    return _RejectedAttempt(
        invitation_id=record.id,
        current_state=current_state,
        new_state=new_state,
        attempts=record.validation_attempts,
    )


def _iso(value: Optional[datetime]) -> Optional[str]:
    value = ensure_utc(value)
    return value.isoformat() if value else None


def _parse_uuid(value: Optional[str]) -> Optional[UUID]:
    try:
        return UUID(value) if value else None
    except (TypeError, ValueError):
        return None
