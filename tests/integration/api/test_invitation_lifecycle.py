import pytest
from httpx import AsyncClient
from uuid import UUID
from sqlmodel import select

from invitation_engine.domain.entities import AuditEvent, InvitationToken, TokenState
from invitation_engine.domain.tokens import hash_token

BASE = "/api/invitations"


async def _create(client: AsyncClient, headers, supplier):
    response = await client.post(BASE, json=supplier, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


async def _validate(client: AsyncClient, token):
    return await client.post(f"{BASE}/validate", json={"token": token})


@pytest.mark.asyncio
async def test_create_and_validate_until_attempt_limit(
    client: AsyncClient, db_session, admin_headers, test_data
):
    """Given a fresh invitation
    When the supplier validates five times
    Then each succeeds with an increasing attempt count
    And the sixth validation is rejected with RATE_LIMIT_EXCEEDED
    """
    created = await _create(client, admin_headers, test_data.get_copy("supplier"))
    assert created["state"] == "CREATED"
    assert created["invitation_link"].endswith(f"?token={created['token']}")

    for attempt in range(1, 6):
        response = await _validate(client, created["token"])
        assert response.status_code == 200, response.text
        data = response.json()
        assert data["valid"] is True
        assert data["state"] == "VALIDATED"
        assert data["validation_attempts"] == attempt
        assert data["invitation_id"] == created["invitation_id"]

    response = await _validate(client, created["token"])
    assert response.status_code == 429
    body = response.json()
    assert body["valid"] is False
    assert body["error"]["code"] == "RATE_LIMIT_EXCEEDED"
    assert "timestamp" in body["error"]

    stmt = select(InvitationToken).where(
        InvitationToken.id == UUID(created["invitation_id"])
    )
    record = (await db_session.exec(stmt)).one()
    assert record.state == TokenState.VALIDATED
    assert record.validation_attempts == 6
    assert record.token_hash == hash_token(created["token"])


@pytest.mark.asyncio
async def test_only_one_active_invitation_per_email(
    client: AsyncClient, admin_headers, test_data
):
    supplier = test_data.get_copy("supplier")
    created = await _create(client, admin_headers, supplier)

    duplicate = await client.post(
        BASE,
        json={**supplier, "recipient_email": supplier["recipient_email"].upper()},
        headers=admin_headers,
    )
    assert duplicate.status_code == 409
    assert duplicate.json()["error"]["code"] == "DUPLICATE_ACTIVE"

    revoke = await client.request(
        "DELETE",
        f"{BASE}/{created['invitation_id']}",
        json={"reason": "wrong contact"},
        headers=admin_headers,
    )
    assert revoke.status_code == 200
    assert revoke.json()["state"] == "REVOKED"

    again = await client.post(BASE, json=supplier, headers=admin_headers)
    assert again.status_code == 201


@pytest.mark.asyncio
async def test_resend_invalidates_previous_token(
    client: AsyncClient, admin_headers, test_data
):
    created = await _create(client, admin_headers, test_data.get_copy("supplier"))
    assert (await _validate(client, created["token"])).status_code == 200

    resend = await client.post(
        f"{BASE}/{created['invitation_id']}/resend",
        json={"expiry_days": 14},
        headers=admin_headers,
    )
    assert resend.status_code == 200, resend.text
    resent = resend.json()
    assert resent["invitation_id"] == created["invitation_id"]
    assert resent["state"] == "CREATED"
    assert resent["validation_attempts"] == 0
    assert resent["token"] != created["token"]

    old = await _validate(client, created["token"])
    assert old.status_code == 404
    assert old.json()["error"]["code"] == "NOT_FOUND"

    new = await _validate(client, resent["token"])
    assert new.status_code == 200
    assert new.json()["validation_attempts"] == 1


@pytest.mark.asyncio
async def test_revoked_token_no_longer_validates(
    client: AsyncClient, admin_headers, test_data
):
    created = await _create(client, admin_headers, test_data.get_copy("supplier"))

    revoke = await client.delete(
        f"{BASE}/{created['invitation_id']}", headers=admin_headers
    )
    assert revoke.status_code == 200
    assert revoke.json()["revoked_by"] == "buyer-1"

    response = await _validate(client, created["token"])
    assert response.status_code == 410
    assert response.json()["error"]["code"] == "REVOKED"

    second = await client.delete(
        f"{BASE}/{created['invitation_id']}", headers=admin_headers
    )
    assert second.status_code == 409
    assert second.json()["error"]["code"] == "ALREADY_REVOKED"


@pytest.mark.asyncio
async def test_delivery_signals_then_consume(
    client: AsyncClient, admin_headers, test_data
):
    created = await _create(client, admin_headers, test_data.get_copy("supplier"))
    invitation_id = created["invitation_id"]

    for target in ("SENT", "DELIVERED", "OPENED"):
        response = await client.post(
            f"{BASE}/{invitation_id}/state",
            json={"target_state": target},
            headers=admin_headers,
        )
        assert response.status_code == 200, response.text
        assert response.json()["state"] == target

    backwards = await client.post(
        f"{BASE}/{invitation_id}/state",
        json={"target_state": "SENT"},
        headers=admin_headers,
    )
    assert backwards.status_code == 409
    assert backwards.json()["error"]["code"] == "INVALID_STATE_TRANSITION"

    early = await client.post(f"{BASE}/{invitation_id}/consume", headers=admin_headers)
    assert early.status_code == 409

    assert (await _validate(client, created["token"])).status_code == 200

    consumed = await client.post(f"{BASE}/{invitation_id}/consume", headers=admin_headers)
    assert consumed.status_code == 200
    assert consumed.json()["previous_state"] == "VALIDATED"

    after = await _validate(client, created["token"])
    assert after.status_code == 409
    assert after.json()["error"]["code"] == "ALREADY_CONSUMED"

    resend = await client.post(f"{BASE}/{invitation_id}/resend", headers=admin_headers)
    assert resend.status_code == 409
    assert resend.json()["error"]["code"] == "CANNOT_RESEND_CONSUMED"


@pytest.mark.asyncio
async def test_get_status(client: AsyncClient, admin_headers, test_data):
    created = await _create(client, admin_headers, test_data.get_copy("supplier"))
    await _validate(client, created["token"])

    response = await client.get(
        f"{BASE}/{created['invitation_id']}", headers=admin_headers
    )

    assert response.status_code == 200
    data = response.json()
    assert data["state"] == "VALIDATED"
    assert data["validation_attempts"] == 1
    assert data["max_validation_attempts"] == 5
    assert data["is_expired"] is False
    assert data["created_by"] == "buyer-1"
    assert "token_hash" not in data

    missing = await client.get(
        f"{BASE}/00000000-0000-4000-8000-000000000000", headers=admin_headers
    )
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_create_rejects_bad_input(client: AsyncClient, admin_headers, test_data):
    supplier = test_data.get_copy("supplier")

    bad_email = await client.post(
        BASE, json={**supplier, "recipient_email": "nope"}, headers=admin_headers
    )
    assert bad_email.status_code == 400
    assert bad_email.json()["error"]["code"] == "INVALID_INPUT"

    bad_expiry = await client.post(
        BASE, json={**supplier, "expiry_days": 90}, headers=admin_headers
    )
    assert bad_expiry.status_code == 400
    assert bad_expiry.json()["error"]["code"] == "INVALID_EXPIRY"


@pytest.mark.asyncio
async def test_validate_rejects_malformed_tokens(client: AsyncClient):
    missing = await client.post(f"{BASE}/validate", json={})
    assert missing.status_code == 400
    assert missing.json()["error"]["code"] == "MISSING_TOKEN"

    garbage = await _validate(client, "not.a.jwt")
    assert garbage.status_code == 400
    assert garbage.json()["error"]["code"] == "INVALID_FORMAT"


@pytest.mark.asyncio
async def test_internal_routes_require_api_key(client: AsyncClient, test_data):
    response = await client.post(BASE, json=test_data.get_copy("supplier"))
    assert response.status_code == 401
    assert response.json()["error"]["code"] == "UNAUTHORIZED"

    wrong = await client.post(
        BASE,
        json=test_data.get_copy("supplier"),
        headers={"X-Admin-API-Key": "wrong"},
    )
    assert wrong.status_code == 401
    assert wrong.json()["error"]["code"] == "INVALID_API_KEY"


@pytest.mark.asyncio
async def test_every_operation_is_audited(
    client: AsyncClient, db_session, admin_headers, test_data
):
    created = await _create(client, admin_headers, test_data.get_copy("supplier"))
    await _validate(client, created["token"])
    await _validate(client, "not.a.jwt")
    await client.delete(f"{BASE}/{created['invitation_id']}", headers=admin_headers)

    events = (
        await db_session.exec(select(AuditEvent).order_by(AuditEvent.created_at))
    ).all()
    actions = [event.action for event in events]

    assert actions == [
        "INVITATION_CREATED",
        "TOKEN_VALIDATED",
        "TOKEN_VALIDATION_FAILED",
        "TOKEN_REVOKED",
    ]
    assert events[0].actor == "buyer-1"
    assert all(created["token"] not in str(event.event_metadata) for event in events)
