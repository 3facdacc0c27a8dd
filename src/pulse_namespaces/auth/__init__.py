"""API client authentication and scope checks.

Note: ``require_namespace_scope`` lives in ``auth.scopes`` and is NOT
re-exported here to avoid a circular import (auth → scopes → api.deps → auth).
Import directly: ``from pulse_namespaces.auth.scopes import require_namespace_scope``.
"""

from pulse_namespaces.auth.context import ClientContext

__all__ = ["ClientContext"]
