"""
Token Issuer

Builds the signed magic-link token for a supplier invitation and the
InvitationToken record that backs it.
"""

import re
from datetime import UTC, datetime, timedelta
from typing import Callable, Optional
from uuid import UUID, uuid4

from jose import jwt
from pydantic import BaseModel, ConfigDict

from invitation_engine.app.services.key_provider import KeyProvider
from invitation_engine.app.services.settings import IssuerSettings
from invitation_engine.domain.base import utcnow
from invitation_engine.domain.claims import InvitationClaims
from invitation_engine.domain.entities import InvitationToken, TokenState
from invitation_engine.domain.errors import IssuanceErrorCode, make_error
from invitation_engine.domain.tokens import hash_token
from invitation_engine.libs.result import Result, Return

SECONDS_PER_DAY = 86400

# RFC 5322 simplified
EMAIL_PATTERN = re.compile(
    r"^[a-zA-Z0-9.!#$%&'*+/=?^_`{|}~-]+"
    r"@[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?"
    r"(?:\.[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)+$"
)


def normalize_email(email: Optional[str]) -> str:
    if not isinstance(email, str):
        return ""
    return email.strip().lower()


def is_valid_email(email: str) -> bool:
    return bool(email) and len(email) <= 254 and EMAIL_PATTERN.match(email) is not None


class IssueTokenParams(BaseModel):
    """Input for a single token issuance"""

    recipient_email: Optional[str] = None
    company_name: Optional[str] = None
    contact_name: Optional[str] = None
    requester_id: Optional[str] = None
    requester_name: Optional[str] = None
    department_code: Optional[str] = None
    cost_center: Optional[str] = None
    expiry_days: Optional[int] = None


class IssuedToken(BaseModel):
    """Signed token plus the record snapshot to persist"""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    token: str
    token_hash: str
    claims: InvitationClaims
    record: InvitationToken


class TokenIssuer:
    """
    Issues RS256-signed invitation tokens.

    Business Rules:
    - Recipient email is required and must be RFC 5322 shaped
    - Expiry defaults to 7 days and must lie within the configured bounds
    - invitation_id and jti are distinct UUIDv4 values
    - expires_at = issued_at + expiry_days * 86400 seconds exactly
    - Only the SHA-256 hash of the token is stored
    """

    def __init__(
        self,
        key_provider: KeyProvider,
        settings: Optional[IssuerSettings] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.key_provider = key_provider
        self.settings = settings or IssuerSettings()
        self.clock = clock

    def issue(
        self, params: IssueTokenParams, invitation_id: Optional[UUID] = None
    ) -> Result[IssuedToken]:
        """
        Issue a new token.

        Args:
            params: Recipient and requester metadata
            invitation_id: Existing record id when re-issuing (resend)

        Returns:
            Result with IssuedToken, or Error (INVALID_INPUT, INVALID_EXPIRY)
        """
        email = normalize_email(params.recipient_email)
        if not email:
            return Return.err(
                make_error(
                    IssuanceErrorCode.INVALID_INPUT,
                    "Supplier email is required",
                    {"field": "recipient_email"},
                )
            )
        if not is_valid_email(email):
            return Return.err(
                make_error(
                    IssuanceErrorCode.INVALID_INPUT,
                    "Invalid email format",
                    {"field": "recipient_email"},
                )
            )

        expiry_days = params.expiry_days
        if expiry_days is None:
            expiry_days = self.settings.default_expiry_days
        if not (
            self.settings.min_expiry_days <= expiry_days <= self.settings.max_expiry_days
        ):
            return Return.err(
                make_error(
                    IssuanceErrorCode.INVALID_EXPIRY,
                    f"Expiry must be between {self.settings.min_expiry_days} "
                    f"and {self.settings.max_expiry_days} days",
                    {
                        "expiry_days": expiry_days,
                        "min": self.settings.min_expiry_days,
                        "max": self.settings.max_expiry_days,
                    },
                )
            )

        signing_key = self.key_provider.get_signing_key()

        invitation_id = invitation_id or uuid4()
        jti = uuid4()
        while jti == invitation_id:
            jti = uuid4()

        # Whole seconds so the signed claims and the record agree exactly
        issued_ts = int(self.clock().timestamp())
        expires_ts = issued_ts + expiry_days * SECONDS_PER_DAY
        issued_at = datetime.fromtimestamp(issued_ts, UTC)
        expires_at = issued_at + timedelta(seconds=expiry_days * SECONDS_PER_DAY)

        claims = InvitationClaims(
            iss=self.settings.issuer,
            sub=self.settings.subject,
            aud=self.settings.audience,
            exp=expires_ts,
            iat=issued_ts,
            jti=str(jti),
            scope=list(self.settings.scope),
            invitation_id=str(invitation_id),
            supplier_email=email,
            company_name=params.company_name or None,
            contact_name=params.contact_name or None,
            requester_id=params.requester_id or "system",
            requester_name=params.requester_name or "System",
            department_code=params.department_code or None,
            cost_center=params.cost_center or None,
            created_at=issued_at.strftime("%Y-%m-%dT%H:%M:%S.000Z"),
        )
        payload = claims.to_payload()

        token = jwt.encode(
            payload,
            signing_key.private_key,
            algorithm=signing_key.algorithm,
            headers={"kid": signing_key.key_id, "typ": "JWT"},
        )
        token_hash = hash_token(token)

        record = InvitationToken(
            id=invitation_id,
            recipient_email=email,
            company_name=claims.company_name,
            contact_name=claims.contact_name,
            department_code=claims.department_code,
            cost_center=claims.cost_center,
            token_hash=token_hash,
            claims_snapshot=payload,
            state=TokenState.CREATED,
            validation_attempts=0,
            issued_at=issued_at,
            expires_at=expires_at,
            created_by=claims.requester_id,
        )

        return Return.ok(
            IssuedToken(token=token, token_hash=token_hash, claims=claims, record=record)
        )
