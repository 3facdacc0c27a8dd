"""Tests for the credential lifecycle engine: claim, rotate, expire, delete."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta

import pytest

from pulse_namespaces.config import ScanFailurePolicy
from pulse_namespaces.errors import BrokerError, NamespaceNotFoundError
from pulse_namespaces.lifecycle import CredentialLifecycleEngine, LifecycleConfig
from pulse_namespaces.storage.namespace_registry import Mutator
from tests.unit.fakes import FakeBroker, InMemoryRegistry

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)
HOUR = timedelta(hours=1)


@pytest.fixture()
def registry() -> InMemoryRegistry:
    return InMemoryRegistry()


@pytest.fixture()
def broker() -> FakeBroker:
    return FakeBroker()


@pytest.fixture()
def config() -> LifecycleConfig:
    return LifecycleConfig(
        virtualhost="/",
        user_tags=("pulse",),
        config_permission="^(queue|exchange)/{{namespace}}/.*",
        write_permission="^(queue|exchange)/{{namespace}}/.*",
        read_permission="^((queue|exchange)/{{namespace}}/.*|exchange/public/.*)",
        rotation_interval=HOUR,
        scan_concurrency=250,
        failure_policy=ScanFailurePolicy.CONTINUE,
    )


@pytest.fixture()
def lifecycle(
    registry: InMemoryRegistry, broker: FakeBroker, config: LifecycleConfig
) -> CredentialLifecycleEngine:
    return CredentialLifecycleEngine(registry, broker, config)


class TestClaim:
    """First claim of an unclaimed namespace."""

    async def test_creates_record_with_slot_one_active(
        self, lifecycle: CredentialLifecycleEngine, registry: InMemoryRegistry
    ) -> None:
        record = await lifecycle.claim("ns", "me@example.com", NOW + 24 * HOUR, now=NOW)
        assert record.rotation_state == "1"
        assert record.username == "ns-1"
        assert record.created == NOW
        assert record.next_rotation == NOW + HOUR
        assert record.contact == "me@example.com"
        assert len(record.password) == 22
        assert registry.records["ns"] == record

    async def test_provisions_active_and_disabled_slots(
        self, lifecycle: CredentialLifecycleEngine, broker: FakeBroker
    ) -> None:
        record = await lifecycle.claim("ns", "c", NOW + HOUR, now=NOW)
        assert broker.users == {"ns-1": record.password, "ns-2": ""}

    async def test_both_slots_get_the_same_permissions(
        self, lifecycle: CredentialLifecycleEngine, broker: FakeBroker
    ) -> None:
        await lifecycle.claim("ns", "c", NOW + HOUR, now=NOW)
        expected = (
            "/",
            "^(queue|exchange)/ns/.*",
            "^(queue|exchange)/ns/.*",
            "^((queue|exchange)/ns/.*|exchange/public/.*)",
        )
        assert broker.permissions["ns-1"] == expected
        assert broker.permissions["ns-2"] == expected

    async def test_passwords_differ_between_namespaces(
        self, lifecycle: CredentialLifecycleEngine
    ) -> None:
        a = await lifecycle.claim("a", "c", NOW + HOUR, now=NOW)
        b = await lifecycle.claim("b", "c", NOW + HOUR, now=NOW)
        assert a.password != b.password

    async def test_broker_failure_propagates_and_keeps_record(
        self,
        lifecycle: CredentialLifecycleEngine,
        registry: InMemoryRegistry,
        broker: FakeBroker,
    ) -> None:
        """Provisioning failure is fatal to the call; the record stays for rotate."""
        broker.fail_for = {"ns-2"}
        with pytest.raises(BrokerError):
            await lifecycle.claim("ns", "c", NOW + HOUR, now=NOW)
        assert "ns" in registry.records
        assert "ns-1" in broker.users


class TestReclaim:
    """Claiming a namespace that already exists."""

    async def test_identical_claim_is_idempotent(
        self,
        lifecycle: CredentialLifecycleEngine,
        registry: InMemoryRegistry,
        broker: FakeBroker,
    ) -> None:
        first = await lifecycle.claim("ns", "c", NOW + HOUR, now=NOW)
        calls_after_first = list(broker.calls)

        second = await lifecycle.claim("ns", "c", NOW + HOUR, now=NOW + HOUR / 2)

        assert second == first
        assert registry.records["ns"] == first
        assert broker.calls == calls_after_first

    async def test_updates_only_expires_and_contact(
        self, lifecycle: CredentialLifecycleEngine, registry: InMemoryRegistry
    ) -> None:
        first = await lifecycle.claim("ns", "old", NOW + HOUR, now=NOW)
        second = await lifecycle.claim("ns", "new", NOW + 48 * HOUR, now=NOW)

        assert second.contact == "new"
        assert second.expires == NOW + 48 * HOUR
        assert second.rotation_state == first.rotation_state
        assert second.password == first.password
        assert second.next_rotation == first.next_rotation
        assert second.created == first.created
        assert registry.records["ns"] == second

    async def test_reclaim_with_changes_does_not_touch_broker(
        self, lifecycle: CredentialLifecycleEngine, broker: FakeBroker
    ) -> None:
        await lifecycle.claim("ns", "old", NOW + HOUR, now=NOW)
        calls_after_first = list(broker.calls)
        await lifecycle.claim("ns", "new", NOW + 2 * HOUR, now=NOW)
        assert broker.calls == calls_after_first

    async def test_reclaim_after_rotation_returns_current_slot(
        self, lifecycle: CredentialLifecycleEngine
    ) -> None:
        await lifecycle.claim("ns", "c", NOW + 24 * HOUR, now=NOW)
        await lifecycle.rotate(NOW + 2 * HOUR)
        record = await lifecycle.claim("ns", "c", NOW + 24 * HOUR, now=NOW + 2 * HOUR)
        assert record.username == "ns-2"


class TestClaimRace:
    async def test_concurrent_claims_provision_once(
        self,
        lifecycle: CredentialLifecycleEngine,
        registry: InMemoryRegistry,
        broker: FakeBroker,
    ) -> None:
        """Two simultaneous first claims: one record, one provisioning sequence."""
        a, b = await asyncio.gather(
            lifecycle.claim("ns", "c", NOW + HOUR, now=NOW),
            lifecycle.claim("ns", "c", NOW + HOUR, now=NOW),
        )
        assert a.password == b.password
        assert list(registry.records) == ["ns"]
        assert broker.calls.count(("create_user", "ns-1")) == 1
        assert broker.calls.count(("create_user", "ns-2")) == 1
        assert registry.create_calls == 2


class TestRotate:
    async def test_flips_to_standby_slot(
        self,
        lifecycle: CredentialLifecycleEngine,
        registry: InMemoryRegistry,
        broker: FakeBroker,
    ) -> None:
        original = await lifecycle.claim("ns", "c", NOW + 24 * HOUR, now=NOW)
        rotated = await lifecycle.rotate(NOW + 2 * HOUR)

        record = registry.records["ns"]
        assert rotated == 1
        assert record.rotation_state == "2"
        assert record.password != original.password
        assert record.next_rotation == NOW + 3 * HOUR
        assert broker.users["ns-2"] == record.password

    async def test_previous_slot_keeps_its_password(
        self, lifecycle: CredentialLifecycleEngine, broker: FakeBroker
    ) -> None:
        """The old active slot is not disabled; connections on it keep working."""
        original = await lifecycle.claim("ns", "c", NOW + 24 * HOUR, now=NOW)
        await lifecycle.rotate(NOW + 2 * HOUR)
        assert broker.users["ns-1"] == original.password

    async def test_reasserts_permissions_on_activated_slot(
        self, lifecycle: CredentialLifecycleEngine, broker: FakeBroker
    ) -> None:
        await lifecycle.claim("ns", "c", NOW + 24 * HOUR, now=NOW)
        broker.permissions.clear()
        await lifecycle.rotate(NOW + 2 * HOUR)
        assert list(broker.permissions) == ["ns-2"]

    @pytest.mark.parametrize("rotations", [1, 2, 3, 4, 5])
    async def test_active_slot_alternates(
        self,
        lifecycle: CredentialLifecycleEngine,
        registry: InMemoryRegistry,
        broker: FakeBroker,
        rotations: int,
    ) -> None:
        await lifecycle.claim("ns", "c", NOW + 100 * HOUR, now=NOW)
        for i in range(1, rotations + 1):
            assert await lifecycle.rotate(NOW + 2 * i * HOUR) == 1

        record = registry.records["ns"]
        assert record.rotation_state == ("1" if rotations % 2 == 0 else "2")
        assert broker.users[record.username] == record.password

    async def test_skips_namespaces_not_yet_due(
        self, lifecycle: CredentialLifecycleEngine, registry: InMemoryRegistry
    ) -> None:
        original = await lifecycle.claim("ns", "c", NOW + 24 * HOUR, now=NOW)
        assert await lifecycle.rotate(NOW + HOUR / 2) == 0
        assert registry.records["ns"] == original

    async def test_due_exactly_now_is_not_rotated(
        self, lifecycle: CredentialLifecycleEngine
    ) -> None:
        await lifecycle.claim("ns", "c", NOW + 24 * HOUR, now=NOW)
        assert await lifecycle.rotate(NOW + HOUR) == 0

    async def test_rotates_only_due_namespaces(
        self, lifecycle: CredentialLifecycleEngine, registry: InMemoryRegistry
    ) -> None:
        await lifecycle.claim("early", "c", NOW + 24 * HOUR, now=NOW)
        await lifecycle.claim("late", "c", NOW + 24 * HOUR, now=NOW + 3 * HOUR)
        assert await lifecycle.rotate(NOW + 2 * HOUR) == 1
        assert registry.records["early"].rotation_state == "2"
        assert registry.records["late"].rotation_state == "1"

    async def test_vanished_namespace_has_broker_users_revoked(
        self, broker: FakeBroker, config: LifecycleConfig
    ) -> None:
        """A namespace removed mid-rotation must not leave a live broker user."""

        class VanishingRegistry(InMemoryRegistry):
            async def modify(self, namespace: str, mutator: Mutator) -> object:
                self.records.pop(namespace, None)
                raise NamespaceNotFoundError(namespace)

        registry = VanishingRegistry()
        lifecycle = CredentialLifecycleEngine(registry, broker, config)
        await lifecycle.claim("ns", "c", NOW + 24 * HOUR, now=NOW)

        assert await lifecycle.rotate(NOW + 2 * HOUR) == 0
        assert "ns-1" not in broker.users
        assert "ns-2" not in broker.users


class TestExpire:
    async def test_removes_exactly_the_expired(
        self, lifecycle: CredentialLifecycleEngine, registry: InMemoryRegistry
    ) -> None:
        await lifecycle.claim("past", "c", NOW + HOUR, now=NOW)
        await lifecycle.claim("boundary", "c", NOW + 2 * HOUR, now=NOW)
        await lifecycle.claim("future", "c", NOW + 3 * HOUR, now=NOW)

        removed = await lifecycle.expire(NOW + 2 * HOUR)

        assert removed == 1
        assert sorted(registry.records) == ["boundary", "future"]

    async def test_second_pass_removes_nothing(
        self, lifecycle: CredentialLifecycleEngine
    ) -> None:
        await lifecycle.claim("a", "c", NOW + HOUR, now=NOW)
        await lifecycle.claim("b", "c", NOW + HOUR, now=NOW)
        assert await lifecycle.expire(NOW + 2 * HOUR) == 2
        assert await lifecycle.expire(NOW + 2 * HOUR) == 0

    async def test_no_namespaces(self, lifecycle: CredentialLifecycleEngine) -> None:
        assert await lifecycle.expire(NOW) == 0

    async def test_revokes_broker_users(
        self, lifecycle: CredentialLifecycleEngine, broker: FakeBroker
    ) -> None:
        await lifecycle.claim("gone", "c", NOW + HOUR, now=NOW)
        await lifecycle.claim("kept", "c", NOW + 10 * HOUR, now=NOW)
        await lifecycle.expire(NOW + 2 * HOUR)
        assert sorted(broker.users) == ["kept-1", "kept-2"]

    async def test_broker_revoked_before_record_removed(
        self,
        lifecycle: CredentialLifecycleEngine,
        registry: InMemoryRegistry,
        broker: FakeBroker,
    ) -> None:
        """A broker failure leaves the record in place for the next pass."""
        await lifecycle.claim("ns", "c", NOW + HOUR, now=NOW)
        broker.fail_for = {"ns-1"}

        assert await lifecycle.expire(NOW + 2 * HOUR) == 0
        assert "ns" in registry.records

        broker.fail_for = set()
        assert await lifecycle.expire(NOW + 2 * HOUR) == 1

    async def test_walks_every_page(
        self, registry: InMemoryRegistry, broker: FakeBroker, config: LifecycleConfig
    ) -> None:
        small = LifecycleConfig(
            rotation_interval=config.rotation_interval,
            scan_concurrency=3,
        )
        lifecycle = CredentialLifecycleEngine(registry, broker, small)
        for i in range(8):
            await lifecycle.claim(f"ns{i}", "c", NOW + HOUR, now=NOW)

        assert await lifecycle.expire(NOW + 2 * HOUR) == 8
        assert registry.records == {}
        assert all(call["limit"] == 3 for call in registry.scan_calls)
        assert len(registry.scan_calls) >= 3


class TestFailurePolicy:
    async def test_continue_skips_failed_namespace(
        self, lifecycle: CredentialLifecycleEngine, broker: FakeBroker
    ) -> None:
        for name in ("a", "b", "c"):
            await lifecycle.claim(name, "c", NOW + 24 * HOUR, now=NOW)
        broker.fail_for = {"b-2"}

        assert await lifecycle.rotate(NOW + 2 * HOUR) == 2

    async def test_abort_raises_first_failure(
        self, registry: InMemoryRegistry, broker: FakeBroker, config: LifecycleConfig
    ) -> None:
        aborting = LifecycleConfig(
            rotation_interval=config.rotation_interval,
            failure_policy=ScanFailurePolicy.ABORT,
        )
        lifecycle = CredentialLifecycleEngine(registry, broker, aborting)
        for name in ("a", "b", "c"):
            await lifecycle.claim(name, "c", NOW + HOUR, now=NOW)
        broker.fail_for = {"b-1"}

        with pytest.raises(BrokerError):
            await lifecycle.expire(NOW + 2 * HOUR)
        assert "b" in registry.records


class TestDelete:
    async def test_deletes_record_and_broker_users(
        self,
        lifecycle: CredentialLifecycleEngine,
        registry: InMemoryRegistry,
        broker: FakeBroker,
    ) -> None:
        await lifecycle.claim("ns", "c", NOW + 24 * HOUR, now=NOW)
        assert await lifecycle.delete("ns") is True
        assert registry.records == {}
        assert broker.users == {}

    async def test_missing_namespace(
        self, lifecycle: CredentialLifecycleEngine, broker: FakeBroker
    ) -> None:
        assert await lifecycle.delete("nope") is False
        assert broker.calls == []
