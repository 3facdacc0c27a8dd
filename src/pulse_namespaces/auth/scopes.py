"""Scope matching and the per-namespace scope dependency."""

from collections.abc import Callable, Coroutine, Iterable
from typing import Any

from fastapi import Depends, HTTPException

from pulse_namespaces.api.deps import get_current_client
from pulse_namespaces.auth.context import ClientContext

_client_dep = Depends(get_current_client)

NAMESPACE_SCOPE = "pulse:namespace:{namespace}"


def scope_satisfied(granted: Iterable[str], required: str) -> bool:
    """True if any granted scope equals ``required`` or prefixes it with ``*``.

    ``pulse:namespace:ci-*`` satisfies ``pulse:namespace:ci-builds``;
    a bare ``*`` satisfies everything.
    """
    for scope in granted:
        if scope == required:
            return True
        if scope.endswith("*") and required.startswith(scope[:-1]):
            return True
    return False


def require_namespace_scope() -> Callable[..., Coroutine[Any, Any, ClientContext]]:
    """Dependency factory: require ``pulse:namespace:<namespace>``.

    The namespace comes from the ``{namespace}`` path parameter.

    Usage as parameter dependency (returns ClientContext)::

        async def endpoint(
            namespace: str,
            client: ClientContext = Depends(require_namespace_scope()),
        ): ...

    Raises:
        HTTPException 403: if the client lacks the namespace scope.
    """

    async def _check_scope(
        namespace: str,
        client: ClientContext = _client_dep,
    ) -> ClientContext:
        required = NAMESPACE_SCOPE.format(namespace=namespace)
        if not scope_satisfied(client.scopes, required):
            raise HTTPException(
                status_code=403,
                detail=f"Requires scope: {required}",
            )
        return client

    return _check_scope
