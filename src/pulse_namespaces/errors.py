"""Domain-specific exceptions for pulse-namespaces."""

from __future__ import annotations


class NamespaceNotFoundError(Exception):
    """Raised when a namespace record does not exist in the registry."""

    def __init__(self, namespace: str) -> None:
        self.namespace = namespace
        super().__init__(f"No such namespace: {namespace}")


class InvalidNamespaceError(Exception):
    """Namespace name failed validation; ``violations`` lists the broken rules."""

    def __init__(self, namespace: str, violations: list[str]) -> None:
        self.namespace = namespace
        self.violations = violations
        super().__init__(
            f"Invalid namespace {namespace!r}: {'; '.join(violations)}"
        )


class InvalidContinuationTokenError(Exception):
    """Raised when a scan continuation token cannot be decoded."""


class ModifyConflictError(Exception):
    """Optimistic modify kept losing to concurrent writers."""

    def __init__(self, namespace: str, attempts: int) -> None:
        self.namespace = namespace
        self.attempts = attempts
        super().__init__(
            f"Namespace {namespace} modified concurrently; "
            f"gave up after {attempts} attempts"
        )


class BrokerError(Exception):
    """A RabbitMQ management API call returned an error status."""

    def __init__(self, status_code: int, message: str) -> None:
        self.status_code = status_code
        super().__init__(f"RabbitMQ management API error {status_code}: {message}")
