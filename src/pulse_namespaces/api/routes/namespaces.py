"""Namespace API endpoints: claim, inspect, list and delete."""

from __future__ import annotations

from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query

from pulse_namespaces.api.deps import get_engine, get_registry, valid_namespace
from pulse_namespaces.api.schemas import (
    NamespaceClaimRequest,
    NamespaceCredentials,
    NamespaceInfo,
    NamespaceListResponse,
)
from pulse_namespaces.auth.context import ClientContext
from pulse_namespaces.auth.scopes import require_namespace_scope
from pulse_namespaces.lifecycle import CredentialLifecycleEngine
from pulse_namespaces.storage.namespace_registry import MAX_SCAN_LIMIT, NamespaceStore

logger = structlog.get_logger()

router = APIRouter(tags=["namespaces"])

RegistryDep = Annotated[NamespaceStore, Depends(get_registry)]
EngineDep = Annotated[CredentialLifecycleEngine, Depends(get_engine)]
NamespaceDep = Annotated[str, Depends(valid_namespace)]
ScopedDep = Annotated[ClientContext, Depends(require_namespace_scope())]


@router.get("/namespaces", response_model_exclude_none=True)
async def list_namespaces(
    registry: RegistryDep,
    limit: Annotated[int, Query(ge=1)] = MAX_SCAN_LIMIT,
    continuation: str | None = None,
) -> NamespaceListResponse:
    """List namespaces managed by this service.

    Returns at most 1000 namespaces per page (larger limits are clamped).
    When more remain, ``continuationToken`` is included; pass it back as
    ``continuation`` for the next page.
    """
    page = await registry.scan(
        limit=min(limit, MAX_SCAN_LIMIT),
        continuation=continuation,
    )
    return NamespaceListResponse(
        namespaces=[NamespaceInfo.model_validate(ns) for ns in page.entries],
        continuation_token=page.continuation,
    )


@router.get("/namespace/{namespace}")
async def get_namespace(
    namespace: NamespaceDep,
    registry: RegistryDep,
) -> NamespaceInfo:
    """Get public information about a single namespace."""
    record = await registry.load(namespace)
    if record is None:
        raise HTTPException(status_code=404, detail="No such namespace")
    return NamespaceInfo.model_validate(record)


@router.post("/namespace/{namespace}")
async def claim_namespace(
    namespace: NamespaceDep,
    body: NamespaceClaimRequest,
    client: ScopedDep,
    engine: EngineDep,
) -> NamespaceCredentials:
    """Claim a namespace, returning a username and password for it.

    Clients should call again at ``reclaimAt``: the password is rotated
    soon after that time. ``expires`` and ``contact`` may be changed by
    any reclaim. The namespace and its broker users are removed at
    ``expires``.
    """
    record = await engine.claim(namespace, body.contact, body.expires)
    logger.info(
        "namespace_claim_served",
        namespace=namespace,
        client=client.key_prefix,
        username=record.username,
    )
    return NamespaceCredentials.from_record(record)


@router.delete("/namespace/{namespace}")
async def delete_namespace(
    namespace: NamespaceDep,
    client: ScopedDep,
    engine: EngineDep,
) -> dict[str, object]:
    """Immediately delete a namespace and its broker users, as if it expired."""
    deleted = await engine.delete(namespace)
    logger.info(
        "namespace_delete_served",
        namespace=namespace,
        client=client.key_prefix,
        deleted=deleted,
    )
    return {}
