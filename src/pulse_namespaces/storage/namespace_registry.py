"""Repository for namespace records: create-if-absent, optimistic modify, scan."""

from __future__ import annotations

import base64
import binascii
import json
from collections.abc import AsyncIterator, Callable
from dataclasses import replace
from typing import Any, Protocol

import structlog
from sqlalchemy import delete, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from pulse_namespaces.errors import (
    InvalidContinuationTokenError,
    ModifyConflictError,
    NamespaceNotFoundError,
)
from pulse_namespaces.models import CreateResult, NamespaceRecord, ScanFilter, ScanPage
from pulse_namespaces.storage.orm import Namespace

logger = structlog.get_logger()

Mutator = Callable[[NamespaceRecord], NamespaceRecord]

MAX_SCAN_LIMIT = 1000


class NamespaceStore(Protocol):
    """Operations the lifecycle engine and API need from a registry."""

    async def create(self, record: NamespaceRecord) -> CreateResult: ...

    async def load(self, namespace: str) -> NamespaceRecord | None: ...

    async def modify(self, namespace: str, mutator: Mutator) -> NamespaceRecord: ...

    async def remove(self, namespace: str) -> bool: ...

    async def scan(
        self,
        scan_filter: ScanFilter | None = None,
        *,
        limit: int = MAX_SCAN_LIMIT,
        continuation: str | None = None,
    ) -> ScanPage: ...


def encode_continuation(last_key: str) -> str:
    """Opaque token pointing just past ``last_key`` in key order."""
    raw = json.dumps({"after": last_key}).encode()
    return base64.urlsafe_b64encode(raw).decode("ascii")


def decode_continuation(token: str) -> str:
    """Return the key a continuation token resumes after.

    Raises:
        InvalidContinuationTokenError: if the token is malformed.
    """
    try:
        payload = json.loads(base64.urlsafe_b64decode(token.encode("ascii")))
        after = payload["after"]
    except (binascii.Error, ValueError, KeyError, TypeError) as exc:
        raise InvalidContinuationTokenError(token) from exc
    if not isinstance(after, str):
        raise InvalidContinuationTokenError(token)
    return after


async def iter_scan(
    registry: NamespaceStore,
    scan_filter: ScanFilter | None = None,
    *,
    page_size: int = 250,
    continuation: str | None = None,
) -> AsyncIterator[NamespaceRecord]:
    """Lazily walk every record matching ``scan_filter``, one page at a time.

    Pass a ``continuation`` from an earlier page to resume a walk.
    """
    while True:
        page = await registry.scan(
            scan_filter, limit=page_size, continuation=continuation
        )
        for entry in page.entries:
            yield entry
        if page.continuation is None:
            return
        continuation = page.continuation


def _to_record(row: Namespace) -> NamespaceRecord:
    return NamespaceRecord(
        namespace=row.namespace,
        created=row.created,
        expires=row.expires,
        contact=row.contact,
        rotation_state=row.rotation_state,
        next_rotation=row.next_rotation,
        password=row.password,
        version=row.version,
    )


def _mutable_values(record: NamespaceRecord) -> dict[str, Any]:
    return {
        "expires": record.expires,
        "contact": record.contact,
        "rotation_state": record.rotation_state,
        "next_rotation": record.next_rotation,
        "password": record.password,
    }


class NamespaceRegistry:
    """PostgreSQL-backed namespace registry.

    Each operation runs in its own short transaction so that many
    maintenance handlers can use the registry concurrently.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        modify_max_attempts: int = 5,
    ) -> None:
        self._session_factory = session_factory
        self._modify_max_attempts = modify_max_attempts

    async def create(self, record: NamespaceRecord) -> CreateResult:
        """Insert ``record`` unless the namespace already exists.

        Uses ``INSERT ... ON CONFLICT DO NOTHING`` so that of several
        concurrent creators exactly one observes ``created=True``. If the
        conflicting row is removed before it can be loaded, the insert is
        retried, up to ``modify_max_attempts`` times.

        Raises:
            ModifyConflictError: if every attempt lost a race.
        """
        stmt = (
            pg_insert(Namespace)
            .values(
                namespace=record.namespace,
                created=record.created,
                version=1,
                **_mutable_values(record),
            )
            .on_conflict_do_nothing(index_elements=[Namespace.namespace])
            .returning(Namespace.namespace)
        )
        for attempt in range(1, self._modify_max_attempts + 1):
            async with self._session_factory() as session, session.begin():
                inserted = (await session.execute(stmt)).scalar_one_or_none()

            if inserted is not None:
                return CreateResult(record=replace(record, version=1), created=True)

            existing = await self.load(record.namespace)
            if existing is not None:
                return CreateResult(record=existing, created=False)
            logger.debug(
                "namespace_create_conflict_vanished",
                namespace=record.namespace,
                attempt=attempt,
            )

        raise ModifyConflictError(record.namespace, self._modify_max_attempts)

    async def load(self, namespace: str) -> NamespaceRecord | None:
        """Get a namespace by key."""
        async with self._session_factory() as session:
            row = await session.get(Namespace, namespace)
            return _to_record(row) if row is not None else None

    async def modify(self, namespace: str, mutator: Mutator) -> NamespaceRecord:
        """Apply ``mutator`` to the stored record with a version check.

        Reads the current version, computes the new value, then writes it
        back only if nobody else wrote in between. A lost race re-reads
        and re-applies ``mutator``.

        Raises:
            NamespaceNotFoundError: if the record does not exist.
            ModifyConflictError: if every attempt lost a race.
        """
        for attempt in range(1, self._modify_max_attempts + 1):
            current = await self.load(namespace)
            if current is None:
                raise NamespaceNotFoundError(namespace)

            updated = mutator(current)
            new_version = current.version + 1
            stmt = (
                update(Namespace)
                .where(
                    Namespace.namespace == namespace,
                    Namespace.version == current.version,
                )
                .values(version=new_version, **_mutable_values(updated))
                .execution_options(synchronize_session=False)
            )
            async with self._session_factory() as session, session.begin():
                result = await session.execute(stmt)

            if result.rowcount == 1:
                return replace(
                    updated,
                    namespace=current.namespace,
                    created=current.created,
                    version=new_version,
                )
            logger.debug(
                "namespace_modify_conflict",
                namespace=namespace,
                attempt=attempt,
            )

        raise ModifyConflictError(namespace, self._modify_max_attempts)

    async def remove(self, namespace: str) -> bool:
        """Delete a namespace row. Returns False if it was already gone."""
        stmt = (
            delete(Namespace)
            .where(Namespace.namespace == namespace)
            .execution_options(synchronize_session=False)
        )
        async with self._session_factory() as session, session.begin():
            result = await session.execute(stmt)
        return bool(result.rowcount)

    async def scan(
        self,
        scan_filter: ScanFilter | None = None,
        *,
        limit: int = MAX_SCAN_LIMIT,
        continuation: str | None = None,
    ) -> ScanPage:
        """Return one page of matching records in namespace order.

        Keyset pagination: the token carries the last key returned, so
        rows deleted or updated behind the cursor never shift later pages.
        """
        stmt = select(Namespace).order_by(Namespace.namespace).limit(limit + 1)
        if continuation is not None:
            stmt = stmt.where(Namespace.namespace > decode_continuation(continuation))
        if scan_filter is not None:
            if scan_filter.expires_before is not None:
                stmt = stmt.where(Namespace.expires < scan_filter.expires_before)
            if scan_filter.next_rotation_before is not None:
                stmt = stmt.where(
                    Namespace.next_rotation < scan_filter.next_rotation_before
                )

        async with self._session_factory() as session:
            rows = list((await session.execute(stmt)).scalars().all())

        has_more = len(rows) > limit
        entries = [_to_record(row) for row in rows[:limit]]
        token = encode_continuation(entries[-1].namespace) if has_more else None
        return ScanPage(entries=entries, continuation=token)
