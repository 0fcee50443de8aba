import asyncio
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from invitation_engine.adapter.services.key_provider import DevelopmentKeyProvider
from invitation_engine.app.repositories.errors import StoreError
from invitation_engine.app.services.key_provider import UnknownKeyError
from invitation_engine.app.services.settings import IssuerSettings, ValidatorSettings
from invitation_engine.app.services.token_issuer import IssueTokenParams, TokenIssuer
from invitation_engine.app.services.token_validator import TokenValidator, ValidationContext
from invitation_engine.domain.entities import AuditAction, TokenState
from tests.utils.audit import audit_actions, last_audit_event

T0 = datetime.now(UTC).replace(microsecond=0)


def _issue(key_provider, clock=lambda: T0, expiry_days=7, settings=None):
    issuer = TokenIssuer(key_provider, settings or IssuerSettings(), clock=clock)
    return issuer.issue(
        IssueTokenParams(
            recipient_email="jane.doe@acme-supplies.com",
            company_name="Acme Supplies Ltd",
            requester_id="user-1",
            expiry_days=expiry_days,
        )
    ).value


@pytest.fixture
def validator(mock_uow, key_provider, audit_sink):
    return TokenValidator(mock_uow, key_provider, audit_sink, ValidatorSettings())


# ============================================================================
# Steps 1-4: no store access
# ============================================================================


@pytest.mark.asyncio
@pytest.mark.parametrize("token", [None, ""])
async def test_missing_token(validator, mock_uow, audit_sink, token):
    result = await validator.validate(token)

    assert result.is_err()
    assert result.error.code == "MISSING_TOKEN"
    mock_uow.invitations.find_by_token_hash.assert_not_called()
    assert audit_actions(audit_sink) == [AuditAction.TOKEN_VALIDATION_FAILED.value]


@pytest.mark.asyncio
@pytest.mark.parametrize("token", ["   ", "abc.def", "a..c", "a.b.c.d", "a.b.c"])
async def test_malformed_token(validator, mock_uow, token):
    result = await validator.validate(token)

    assert result.is_err()
    assert result.error.code == "INVALID_FORMAT"
    mock_uow.invitations.find_by_token_hash.assert_not_called()


@pytest.mark.asyncio
async def test_tampered_payload_fails_signature(validator, key_provider, mock_uow):
    first = _issue(key_provider).token.split(".")
    second = _issue(key_provider).token.split(".")
    tampered = ".".join([first[0], second[1], first[2]])

    result = await validator.validate(tampered)

    assert result.is_err()
    assert result.error.code == "SIGNATURE_INVALID"
    mock_uow.invitations.find_by_token_hash.assert_not_called()


@pytest.mark.asyncio
async def test_unknown_key_id_fails_signature(key_provider, mock_uow, audit_sink):
    other_provider = MagicMock()
    other_provider.get_verification_key.side_effect = UnknownKeyError("unit-test-key")
    validator = TokenValidator(mock_uow, other_provider, audit_sink)

    result = await validator.validate(_issue(key_provider).token)

    assert result.is_err()
    assert result.error.code == "SIGNATURE_INVALID"


@pytest.mark.asyncio
async def test_same_key_id_with_different_key_fails_signature(
    key_provider, mock_uow, audit_sink
):
    # Same kid, freshly generated RSA key pair
    rotated_provider = DevelopmentKeyProvider(key_id="unit-test-key")
    validator = TokenValidator(mock_uow, rotated_provider, audit_sink)

    result = await validator.validate(_issue(key_provider).token)

    assert result.is_err()
    assert result.error.code == "SIGNATURE_INVALID"
    mock_uow.invitations.find_by_token_hash.assert_not_called()


@pytest.mark.asyncio
async def test_expired_claim_is_rejected_before_lookup(key_provider, mock_uow, audit_sink):
    issued = _issue(key_provider, expiry_days=1)
    validator = TokenValidator(
        mock_uow,
        key_provider,
        audit_sink,
        clock=lambda: T0 + timedelta(days=1, seconds=1),
    )

    result = await validator.validate(issued.token)

    assert result.is_err()
    assert result.error.code == "TOKEN_EXPIRED"
    mock_uow.invitations.find_by_token_hash.assert_not_called()


@pytest.mark.asyncio
async def test_token_valid_until_exact_expiry_second(key_provider, mock_uow, audit_sink):
    issued = _issue(key_provider, expiry_days=1)
    mock_uow.invitations.find_by_token_hash.return_value = issued.record
    validator = TokenValidator(
        mock_uow, key_provider, audit_sink, clock=lambda: T0 + timedelta(days=1)
    )

    result = await validator.validate(issued.token)

    assert result.is_ok()


@pytest.mark.asyncio
async def test_wrong_audience_is_invalid_claims(validator, key_provider, mock_uow):
    issued = _issue(key_provider, settings=IssuerSettings(audience="someone-else"))

    result = await validator.validate(issued.token)

    assert result.is_err()
    assert result.error.code == "INVALID_CLAIMS"
    mock_uow.invitations.find_by_token_hash.assert_not_called()


def test_verify_signature_only_returns_claims(validator, key_provider, mock_uow):
    issued = _issue(key_provider)

    result = validator.verify_signature_only(issued.token)

    assert result.is_ok()
    assert result.value.invitation_id == str(issued.record.id)
    mock_uow.__aenter__.assert_not_called()


# ============================================================================
# Steps 5-9: record checks
# ============================================================================


@pytest.mark.asyncio
async def test_successful_validation(validator, key_provider, mock_uow, audit_sink):
    issued = _issue(key_provider)
    mock_uow.invitations.find_by_token_hash.return_value = issued.record

    result = await validator.validate(issued.token, ValidationContext(ip_address="10.0.0.7"))

    assert result.is_ok()
    response = result.value
    assert response.valid is True
    assert response.state == "VALIDATED"
    assert response.validation_attempts == 1
    assert response.supplier_email == "jane.doe@acme-supplies.com"
    assert response.metadata["created_by"] == "user-1"

    call = mock_uow.invitations.update_state_and_attempts.call_args
    assert call.kwargs["expected_state"] == TokenState.CREATED
    assert call.kwargs["new_state"] == TokenState.VALIDATED
    assert call.kwargs["attempts_delta"] == 1
    assert call.kwargs["expected_attempts"] == 0
    assert call.kwargs["extra_fields"]["last_validated_ip"] == "10.0.0.7"
    mock_uow.commit.assert_called_once()

    event = last_audit_event(audit_sink)
    assert event.action == AuditAction.TOKEN_VALIDATED.value
    assert event.invitation_id == issued.record.id
    assert event.actor == "10.0.0.7"
    assert audit_sink.append.call_count == 1


@pytest.mark.asyncio
async def test_reported_attempts_count_once_when_update_refreshes_record(
    validator, key_provider, mock_uow, audit_sink
):
    issued = _issue(key_provider)
    mock_uow.invitations.find_by_token_hash.return_value = issued.record

    # The SQL update synchronises the loaded record with the new counter
    async def update_in_place(invitation_id, **kwargs):
        issued.record.state = kwargs["new_state"]
        issued.record.validation_attempts += kwargs["attempts_delta"]
        return True

    mock_uow.invitations.update_state_and_attempts.side_effect = update_in_place

    result = await validator.validate(issued.token)

    assert result.is_ok()
    assert result.value.validation_attempts == 1
    assert issued.record.validation_attempts == 1
    assert last_audit_event(audit_sink).event_metadata["validation_attempts"] == 1


@pytest.mark.asyncio
async def test_unknown_hash_is_not_found(validator, key_provider, mock_uow, audit_sink):
    issued = _issue(key_provider)

    result = await validator.validate(issued.token)

    assert result.is_err()
    assert result.error.code == "NOT_FOUND"
    mock_uow.invitations.update_state_and_attempts.assert_not_called()
    assert last_audit_event(audit_sink).invitation_id == issued.record.id


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "state,code",
    [
        (TokenState.CONSUMED, "ALREADY_CONSUMED"),
        (TokenState.REVOKED, "REVOKED"),
        (TokenState.EXPIRED, "TOKEN_EXPIRED"),
        (TokenState.FAILED, "REVOKED"),
    ],
)
async def test_terminal_record_is_rejected(validator, key_provider, mock_uow, state, code):
    issued = _issue(key_provider)
    issued.record.state = state
    mock_uow.invitations.find_by_token_hash.return_value = issued.record

    result = await validator.validate(issued.token)

    assert result.is_err()
    assert result.error.code == code
    call = mock_uow.invitations.update_state_and_attempts.call_args
    assert call.kwargs["new_state"] == state
    assert call.kwargs["attempts_delta"] == 1


@pytest.mark.asyncio
async def test_persisted_expiry_moves_record_to_expired(validator, key_provider, mock_uow):
    issued = _issue(key_provider)
    issued.record.state = TokenState.SENT
    issued.record.expires_at = datetime.now(UTC) - timedelta(minutes=1)
    mock_uow.invitations.find_by_token_hash.return_value = issued.record

    result = await validator.validate(issued.token)

    assert result.is_err()
    assert result.error.code == "TOKEN_EXPIRED"
    call = mock_uow.invitations.update_state_and_attempts.call_args
    assert call.kwargs["expected_state"] == TokenState.SENT
    assert call.kwargs["new_state"] == TokenState.EXPIRED


@pytest.mark.asyncio
async def test_attempt_limit_is_enforced(validator, key_provider, mock_uow):
    issued = _issue(key_provider)
    issued.record.state = TokenState.VALIDATED
    issued.record.validation_attempts = 5
    mock_uow.invitations.find_by_token_hash.return_value = issued.record

    result = await validator.validate(issued.token)

    assert result.is_err()
    assert result.error.code == "RATE_LIMIT_EXCEEDED"
    assert result.error.details["max_attempts"] == 5


@pytest.mark.asyncio
async def test_lost_update_race_is_reported_as_database_error(
    validator, key_provider, mock_uow
):
    issued = _issue(key_provider)
    mock_uow.invitations.find_by_token_hash.return_value = issued.record
    mock_uow.invitations.update_state_and_attempts.return_value = False

    result = await validator.validate(issued.token)

    assert result.is_err()
    assert result.error.code == "DATABASE_ERROR"
    assert result.error.details == {"conflict": True}
    mock_uow.commit.assert_not_called()


@pytest.mark.asyncio
async def test_store_failure_is_database_error(validator, key_provider, mock_uow):
    mock_uow.invitations.find_by_token_hash.side_effect = StoreError("connection refused")

    result = await validator.validate(_issue(key_provider).token)

    assert result.is_err()
    assert result.error.code == "DATABASE_ERROR"


@pytest.mark.asyncio
async def test_slow_store_times_out(validator, key_provider, mock_uow):
    async def slow_lookup(token_hash):
        await asyncio.sleep(1)

    mock_uow.invitations.find_by_token_hash.side_effect = slow_lookup

    result = await validator.validate(
        _issue(key_provider).token, ValidationContext(timeout_seconds=0.01)
    )

    assert result.is_err()
    assert result.error.code == "DATABASE_ERROR"
    assert result.error.details == {"reason": "timeout"}


@pytest.mark.asyncio
async def test_slow_attempt_write_keeps_rejection_code(
    validator, key_provider, mock_uow, audit_sink
):
    issued = _issue(key_provider)
    issued.record.state = TokenState.CONSUMED
    mock_uow.invitations.find_by_token_hash.return_value = issued.record

    async def slow_update(invitation_id, **kwargs):
        await asyncio.sleep(1)
        return True

    mock_uow.invitations.update_state_and_attempts.side_effect = slow_update

    result = await validator.validate(
        issued.token, ValidationContext(timeout_seconds=0.1)
    )

    assert result.is_err()
    assert result.error.code == "ALREADY_CONSUMED"
    mock_uow.invitations.update_state_and_attempts.assert_called_once()
    mock_uow.commit.assert_not_called()
    assert last_audit_event(audit_sink).event_metadata["error_code"] == "ALREADY_CONSUMED"


@pytest.mark.asyncio
async def test_failed_attempt_write_keeps_rejection_code(validator, key_provider, mock_uow):
    issued = _issue(key_provider)
    issued.record.state = TokenState.REVOKED
    mock_uow.invitations.find_by_token_hash.return_value = issued.record
    mock_uow.invitations.update_state_and_attempts.side_effect = StoreError("deadlock")

    result = await validator.validate(issued.token)

    assert result.is_err()
    assert result.error.code == "REVOKED"


@pytest.mark.asyncio
async def test_audit_failure_does_not_change_outcome(
    validator, key_provider, mock_uow, audit_sink
):
    issued = _issue(key_provider)
    mock_uow.invitations.find_by_token_hash.return_value = issued.record
    audit_sink.append = AsyncMock(side_effect=RuntimeError("audit store down"))

    result = await validator.validate(issued.token)

    assert result.is_ok()
