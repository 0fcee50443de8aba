import pytest
import pytest_asyncio
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession
from tests.fixtures.json_loader import TestDataLoader
from invitation_engine.depends import get_audit_sink, get_key_provider, get_unit_of_work
from invitation_engine.adapter.services.audit_sink import SqlAlchemyAuditSink
from invitation_engine.adapter.services.key_provider import DevelopmentKeyProvider
from invitation_engine.adapter.services.unit_of_work import SqlAlchemyUnitOfWork

ADMIN_HEADERS = {"X-Admin-API-Key": "test-admin-key-12345", "X-Actor-Id": "buyer-1"}


@pytest_asyncio.fixture
def test_data():
    return TestDataLoader()


@pytest.fixture(scope="session")
def key_provider():
    return DevelopmentKeyProvider(key_id="integration-test-key")


@pytest.fixture
def admin_headers():
    return dict(ADMIN_HEADERS)


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def client(db_session, session_factory, key_provider):
    from httpx import ASGITransport
    from invitation_engine.api.app import create_app
    from config import ApplicationConfig

    app = create_app(ApplicationConfig)

    async def override_get_unit_of_work():
        yield SqlAlchemyUnitOfWork(db_session)

    app.dependency_overrides[get_unit_of_work] = override_get_unit_of_work
    app.dependency_overrides[get_audit_sink] = lambda: SqlAlchemyAuditSink(session_factory)
    app.dependency_overrides[get_key_provider] = lambda: key_provider

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
