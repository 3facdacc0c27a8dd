"""Shared fixtures for integration tests requiring live PostgreSQL."""

from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator

import pytest
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from pulse_namespaces.config import get_settings
from pulse_namespaces.storage.namespace_registry import NamespaceRegistry
from pulse_namespaces.storage.orm import Base, Namespace


@pytest.fixture()
async def async_engine() -> AsyncGenerator[AsyncEngine]:
    """Engine from settings with the schema in place."""
    engine = create_async_engine(
        get_settings().database_url,
        pool_size=5,
        max_overflow=0,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture()
def session_factory(
    async_engine: AsyncEngine,
) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest.fixture()
def ns_prefix() -> str:
    """Unique namespace prefix so tests never see each other's rows."""
    return f"itest-{uuid.uuid4().hex[:8]}-"


@pytest.fixture()
async def registry(
    session_factory: async_sessionmaker[AsyncSession],
    ns_prefix: str,
) -> AsyncGenerator[NamespaceRegistry]:
    """Registry whose rows are deleted after the test.

    The registry commits each operation, so cleanup deletes by prefix
    instead of rolling back.
    """
    yield NamespaceRegistry(session_factory, modify_max_attempts=50)
    async with session_factory() as session, session.begin():
        await session.execute(
            delete(Namespace).where(Namespace.namespace.startswith(ns_prefix))
        )
