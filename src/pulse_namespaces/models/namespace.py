"""Namespace record and registry value types."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from pulse_namespaces.naming import other_slot, slot_username


@dataclass(frozen=True)
class NamespaceRecord:
    """Stored state of one claimed namespace.

    ``rotation_state`` names the active broker slot; ``password`` is the
    password last set on that slot. ``version`` increments on every write
    and guards optimistic modifies.
    """

    namespace: str
    created: datetime
    expires: datetime
    contact: str
    rotation_state: str
    next_rotation: datetime
    password: str
    version: int = 1

    @property
    def username(self) -> str:
        return slot_username(self.namespace, self.rotation_state)

    @property
    def standby_slot(self) -> str:
        return other_slot(self.rotation_state)


@dataclass(frozen=True)
class CreateResult:
    """Outcome of create-if-absent.

    ``created`` is False when the namespace already existed; ``record``
    is then the stored record, untouched.
    """

    record: NamespaceRecord
    created: bool


@dataclass(frozen=True)
class ScanFilter:
    """Conditions for a registry scan. ``None`` means unconstrained."""

    expires_before: datetime | None = None
    next_rotation_before: datetime | None = None


@dataclass(frozen=True)
class ScanPage:
    """One page of scan results plus the token for the next page."""

    entries: list[NamespaceRecord]
    continuation: str | None = None
