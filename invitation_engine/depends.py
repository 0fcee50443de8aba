from functools import lru_cache

from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession
from fastapi import Depends
from config import ApplicationConfig
from invitation_engine.adapter.services.audit_sink import SqlAlchemyAuditSink
from invitation_engine.adapter.services.key_provider import build_key_provider
from invitation_engine.adapter.services.unit_of_work import SqlAlchemyUnitOfWork
from invitation_engine.app.services.audit_sink import IAuditSink
from invitation_engine.app.services.key_provider import KeyProvider
from invitation_engine.app.services.settings import (
    IssuerSettings,
    LifecycleSettings,
    ValidatorSettings,
)
from invitation_engine.app.services.token_issuer import TokenIssuer
from invitation_engine.app.services.token_validator import TokenValidator

engine = create_async_engine(ApplicationConfig.DB_URI, echo=False, future=True)

AsyncSessionLocal = sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
)


async def init_models():
    """Create tables that do not exist yet"""
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)


async def get_unit_of_work():
    async with AsyncSessionLocal() as session:
        yield SqlAlchemyUnitOfWork(session)


def get_audit_sink() -> IAuditSink:
    return SqlAlchemyAuditSink(AsyncSessionLocal)


@lru_cache
def get_key_provider() -> KeyProvider:
    # Built once per process; the development provider would otherwise rotate keys
    return build_key_provider(ApplicationConfig)


def get_issuer_settings() -> IssuerSettings:
    return IssuerSettings.from_config(ApplicationConfig)


def get_validator_settings() -> ValidatorSettings:
    return ValidatorSettings.from_config(ApplicationConfig)


def get_lifecycle_settings() -> LifecycleSettings:
    return LifecycleSettings.from_config(ApplicationConfig)


def get_token_issuer(
    key_provider: KeyProvider = Depends(get_key_provider),
    settings: IssuerSettings = Depends(get_issuer_settings),
) -> TokenIssuer:
    return TokenIssuer(key_provider, settings)


def get_token_validator(
    uow=Depends(get_unit_of_work),
    key_provider: KeyProvider = Depends(get_key_provider),
    audit_sink: IAuditSink = Depends(get_audit_sink),
    settings: ValidatorSettings = Depends(get_validator_settings),
) -> TokenValidator:
    return TokenValidator(uow, key_provider, audit_sink, settings)
