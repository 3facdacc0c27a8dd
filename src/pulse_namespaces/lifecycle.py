"""Credential lifecycle: claim, rotate, expire and delete namespaces.

Every namespace owns two broker users, ``<namespace>-1`` and
``<namespace>-2``. Exactly one of them (``rotation_state``) is the active
slot handed out to clients. Rotation enables the standby slot with a
fresh password and records it as active, so clients that reclaim before
``next_rotation`` always hold a password that keeps working while their
existing connections drain.
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass, replace
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Protocol

import structlog

from pulse_namespaces.batch import fold_bounded
from pulse_namespaces.config import ScanFailurePolicy
from pulse_namespaces.errors import NamespaceNotFoundError
from pulse_namespaces.models import NamespaceRecord, ScanFilter
from pulse_namespaces.naming import SLOTS, render_permission, slot_username
from pulse_namespaces.storage.namespace_registry import NamespaceStore, iter_scan

if TYPE_CHECKING:
    from pulse_namespaces.config import Settings

logger = structlog.get_logger()


class BrokerAccess(Protocol):
    """The broker administration calls the engine relies on."""

    async def create_user(
        self, username: str, password: str, tags: list[str]
    ) -> None: ...

    async def set_user_permissions(
        self,
        username: str,
        vhost: str,
        configure: str,
        write: str,
        read: str,
    ) -> None: ...

    async def delete_user(self, username: str) -> bool: ...


def generate_password() -> str:
    """Random 22-character url-safe password."""
    return secrets.token_urlsafe(16)


@dataclass(frozen=True)
class LifecycleConfig:
    """Knobs for the lifecycle engine, usually built from Settings."""

    virtualhost: str = "/"
    user_tags: tuple[str, ...] = ()
    config_permission: str = "^(queue|exchange)/{{namespace}}/.*"
    write_permission: str = "^(queue|exchange)/{{namespace}}/.*"
    read_permission: str = "^((queue|exchange)/{{namespace}}/.*|exchange/.*)"
    rotation_interval: timedelta = timedelta(hours=1)
    scan_concurrency: int = 250
    failure_policy: ScanFailurePolicy = ScanFailurePolicy.CONTINUE

    @classmethod
    def from_settings(cls, s: Settings) -> LifecycleConfig:
        return cls(
            virtualhost=s.virtualhost,
            user_tags=tuple(s.user_tags),
            config_permission=s.user_config_permission,
            write_permission=s.user_write_permission,
            read_permission=s.user_read_permission,
            rotation_interval=s.namespace_rotation_interval,
            scan_concurrency=s.scan_concurrency,
            failure_policy=s.scan_failure_policy,
        )


class CredentialLifecycleEngine:
    """Issues, rotates and revokes broker credentials for namespaces."""

    def __init__(
        self,
        registry: NamespaceStore,
        broker: BrokerAccess,
        config: LifecycleConfig | None = None,
    ) -> None:
        self._registry = registry
        self._broker = broker
        self._config = config or LifecycleConfig()

    async def _set_broker_user(
        self, namespace: str, slot: str, password: str
    ) -> None:
        """Create/update one slot user and (re)assert its permission triple.

        An empty password leaves the user unable to log in.
        """
        username = slot_username(namespace, slot)
        cfg = self._config
        await self._broker.create_user(username, password, list(cfg.user_tags))
        await self._broker.set_user_permissions(
            username,
            cfg.virtualhost,
            render_permission(cfg.config_permission, namespace),
            render_permission(cfg.write_permission, namespace),
            render_permission(cfg.read_permission, namespace),
        )

    async def _revoke_broker_access(self, namespace: str) -> None:
        for slot in SLOTS:
            await self._broker.delete_user(slot_username(namespace, slot))

    # ── claim ──────────────────────────────────────────────

    async def claim(
        self,
        namespace: str,
        contact: str,
        expires: datetime,
        *,
        now: datetime | None = None,
    ) -> NamespaceRecord:
        """Create a namespace, or refresh ``expires``/``contact`` of an existing one.

        Only the call that actually creates the record provisions the two
        broker users; a reclaim never touches broker state or the password.

        Args:
            now: Override for current time (useful for testing).
        """
        now = now or datetime.now(UTC)
        candidate = NamespaceRecord(
            namespace=namespace,
            created=now,
            expires=expires,
            contact=contact,
            rotation_state="1",
            next_rotation=now + self._config.rotation_interval,
            password=generate_password(),
        )
        outcome = await self._registry.create(candidate)

        if outcome.created:
            record = outcome.record
            # slot 1 active, slot 2 present but with logins disabled
            await self._set_broker_user(namespace, "1", record.password)
            await self._set_broker_user(namespace, "2", "")
            logger.info(
                "namespace_claimed",
                namespace=namespace,
                expires=expires.isoformat(),
                next_rotation=record.next_rotation.isoformat(),
            )
            return record

        existing = outcome.record
        if (existing.expires, existing.contact) == (expires, contact):
            logger.debug("namespace_reclaimed", namespace=namespace, changed=False)
            return existing

        updated = await self._registry.modify(
            namespace,
            lambda current: replace(current, expires=expires, contact=contact),
        )
        logger.info(
            "namespace_reclaimed",
            namespace=namespace,
            changed=True,
            expires=expires.isoformat(),
        )
        return updated

    # ── expire ─────────────────────────────────────────────

    async def expire(self, now: datetime) -> int:
        """Revoke and remove every namespace whose ``expires`` is before ``now``.

        Returns:
            Number of namespaces removed.
        """
        records = iter_scan(
            self._registry,
            ScanFilter(expires_before=now),
            page_size=self._config.scan_concurrency,
        )
        result = await fold_bounded(
            records,
            self._expire_one,
            concurrency=self._config.scan_concurrency,
            policy=self._config.failure_policy,
            label="expire",
        )
        logger.info(
            "expire_pass_complete",
            removed=result.succeeded,
            failed=result.failed,
            now=now.isoformat(),
        )
        return result.succeeded

    async def _expire_one(self, record: NamespaceRecord) -> bool:
        # Broker first: a crash in between leaves a record the next pass
        # retries, never a broker user without a record.
        await self._revoke_broker_access(record.namespace)
        removed = await self._registry.remove(record.namespace)
        if removed:
            logger.info(
                "namespace_expired",
                namespace=record.namespace,
                expires=record.expires.isoformat(),
            )
        return removed

    # ── rotate ─────────────────────────────────────────────

    async def rotate(self, now: datetime) -> int:
        """Activate the standby slot of every namespace due for rotation.

        Returns:
            Number of namespaces rotated.
        """
        records = iter_scan(
            self._registry,
            ScanFilter(next_rotation_before=now),
            page_size=self._config.scan_concurrency,
        )
        result = await fold_bounded(
            records,
            lambda record: self._rotate_one(record, now),
            concurrency=self._config.scan_concurrency,
            policy=self._config.failure_policy,
            label="rotate",
        )
        logger.info(
            "rotate_pass_complete",
            rotated=result.succeeded,
            failed=result.failed,
            now=now.isoformat(),
        )
        return result.succeeded

    async def _rotate_one(self, record: NamespaceRecord, now: datetime) -> bool:
        standby = record.standby_slot
        password = generate_password()
        next_rotation = now + self._config.rotation_interval

        # The broker learns the new password before the record points at
        # it. The previously active slot keeps its password until the
        # following rotation overwrites it.
        await self._set_broker_user(record.namespace, standby, password)

        try:
            await self._registry.modify(
                record.namespace,
                lambda current: replace(
                    current,
                    rotation_state=standby,
                    password=password,
                    next_rotation=next_rotation,
                ),
            )
        except NamespaceNotFoundError:
            # Expired or deleted while we were rotating; undo the user we
            # just re-enabled so no broker account outlives its record.
            logger.warning(
                "namespace_vanished_during_rotation", namespace=record.namespace
            )
            await self._revoke_broker_access(record.namespace)
            return False

        logger.info(
            "namespace_rotated",
            namespace=record.namespace,
            active_slot=standby,
            next_rotation=next_rotation.isoformat(),
        )
        return True

    # ── delete ─────────────────────────────────────────────

    async def delete(self, namespace: str) -> bool:
        """Immediately revoke and remove a namespace, as if it had expired.

        Returns:
            False if the namespace did not exist.
        """
        existing = await self._registry.load(namespace)
        if existing is None:
            return False
        await self._revoke_broker_access(namespace)
        removed = await self._registry.remove(namespace)
        logger.info("namespace_deleted", namespace=namespace, removed=removed)
        return removed
