"""FastAPI dependency injection."""

from __future__ import annotations

import secrets
from typing import cast

from fastapi import Depends, HTTPException, Request, Security
from fastapi.security import APIKeyHeader

from pulse_namespaces.auth.context import ClientContext
from pulse_namespaces.broker.rabbitmq import RabbitManager
from pulse_namespaces.config import Settings, get_settings
from pulse_namespaces.lifecycle import CredentialLifecycleEngine
from pulse_namespaces.naming import validate_namespace
from pulse_namespaces.storage.namespace_registry import NamespaceStore

__all__ = [
    "get_current_client",
    "get_engine",
    "get_rabbit_manager",
    "get_registry",
    "valid_namespace",
]

api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)

_settings_dep = Depends(get_settings)


async def get_current_client(
    api_key: str | None = Security(api_key_header),
    settings: Settings = _settings_dep,
) -> ClientContext:
    """Authenticate request via API key, return client context.

    Raises:
        HTTPException 401: missing or unknown key.
    """
    if api_key:
        for known_key, scopes in settings.api_clients.items():
            if secrets.compare_digest(known_key.encode(), api_key.encode()):
                return ClientContext(key_prefix=api_key[:6], scopes=tuple(scopes))
    raise HTTPException(status_code=401, detail="Invalid API key")


async def valid_namespace(
    namespace: str,
    settings: Settings = _settings_dep,
) -> str:
    """Path-parameter dependency rejecting malformed namespace names.

    Raises:
        InvalidNamespaceError: rendered as 400 by the app exception handler.
    """
    return validate_namespace(namespace, settings.namespace_prefix)


async def get_registry(request: Request) -> NamespaceStore:
    """Retrieve the namespace registry from app state.

    Initialized during lifespan startup.
    """
    return cast(NamespaceStore, request.app.state.registry)


async def get_engine(request: Request) -> CredentialLifecycleEngine:
    """Retrieve the lifecycle engine from app state.

    Initialized during lifespan startup.
    """
    return cast(CredentialLifecycleEngine, request.app.state.engine)


async def get_rabbit_manager(request: Request) -> RabbitManager:
    """Retrieve the RabbitMQ management client from app state.

    Initialized during lifespan startup.
    """
    return cast(RabbitManager, request.app.state.rabbit)
