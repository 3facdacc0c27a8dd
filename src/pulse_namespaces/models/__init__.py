"""Domain value types for pulse-namespaces."""

from pulse_namespaces.models.namespace import (
    CreateResult,
    NamespaceRecord,
    ScanFilter,
    ScanPage,
)

__all__ = [
    "CreateResult",
    "NamespaceRecord",
    "ScanFilter",
    "ScanPage",
]
