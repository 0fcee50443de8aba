import pytest
from unittest.mock import AsyncMock, MagicMock

from invitation_engine.adapter.services.key_provider import DevelopmentKeyProvider
from invitation_engine.app.services.token_issuer import TokenIssuer


@pytest.fixture
def mock_uow():
    uow = MagicMock()
    uow.__aenter__ = AsyncMock(return_value=uow)
    uow.__aexit__ = AsyncMock(return_value=False)  # Must return False to not suppress exceptions
    uow.commit = AsyncMock()
    uow.rollback = AsyncMock()

    uow.invitations = MagicMock()
    uow.invitations.get_by_id = AsyncMock(return_value=None)
    uow.invitations.find_by_token_hash = AsyncMock(return_value=None)
    uow.invitations.find_active_by_recipient = AsyncMock(return_value=None)
    uow.invitations.count_created_by_since = AsyncMock(return_value=0)
    uow.invitations.insert = AsyncMock(side_effect=lambda record: record)
    uow.invitations.update_state_and_attempts = AsyncMock(return_value=True)
    return uow


@pytest.fixture
def audit_sink():
    sink = MagicMock()
    sink.append = AsyncMock()
    return sink


@pytest.fixture(scope="session")
def key_provider():
    # RSA generation is slow; one pair per test session
    return DevelopmentKeyProvider(key_id="unit-test-key")


@pytest.fixture
def issuer(key_provider):
    return TokenIssuer(key_provider)
