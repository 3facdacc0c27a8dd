"""Namespace name rules and broker user naming."""

from __future__ import annotations

import re

from pulse_namespaces.errors import InvalidNamespaceError

MAX_NAMESPACE_LENGTH = 64
_NAMESPACE_RE = re.compile(r"[A-Za-z0-9_-]+")

SLOTS: tuple[str, str] = ("1", "2")


def namespace_violations(namespace: str, prefix: str = "") -> list[str]:
    """Return the rules ``namespace`` breaks (empty list when valid)."""
    violations: list[str] = []
    if len(namespace) > MAX_NAMESPACE_LENGTH:
        violations.append(f"be at most {MAX_NAMESPACE_LENGTH} characters")
    if not _NAMESPACE_RE.fullmatch(namespace):
        violations.append("contain only [A-Za-z0-9_-]")
    if prefix and not namespace.startswith(prefix):
        violations.append(f'begin with "{prefix}"')
    return violations


def validate_namespace(namespace: str, prefix: str = "") -> str:
    """Validate a namespace name.

    Raises:
        InvalidNamespaceError: listing every violated rule.
    """
    violations = namespace_violations(namespace, prefix)
    if violations:
        raise InvalidNamespaceError(namespace, violations)
    return namespace


def slot_username(namespace: str, slot: str) -> str:
    """Broker user name for one of the namespace's two slots."""
    return f"{namespace}-{slot}"


def other_slot(slot: str) -> str:
    return "2" if slot == "1" else "1"


def render_permission(template: str, namespace: str) -> str:
    """Substitute the namespace into a permission pattern template."""
    return template.replace("{{namespace}}", namespace)
