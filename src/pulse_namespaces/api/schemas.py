"""Request/response schemas for the API layer."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from pulse_namespaces.models import NamespaceRecord


class CamelModel(BaseModel):
    """Serializes field names as camelCase (``reclaimAt``, ``continuationToken``)."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# --- Namespaces ---


class NamespaceClaimRequest(CamelModel):
    """Request body for POST /namespace/{namespace}."""

    contact: str = Field(..., max_length=1024)
    expires: AwareDatetime


class NamespaceInfo(CamelModel):
    """Public view of a namespace; never includes credentials."""

    namespace: str
    created: datetime
    contact: str
    expires: datetime


class NamespaceCredentials(CamelModel):
    """Claim response: the active slot's login plus when to reclaim."""

    namespace: str
    username: str
    password: str
    contact: str
    expires: datetime
    reclaim_at: datetime

    @classmethod
    def from_record(cls, record: NamespaceRecord) -> NamespaceCredentials:
        return cls(
            namespace=record.namespace,
            username=record.username,
            password=record.password,
            contact=record.contact,
            expires=record.expires,
            reclaim_at=record.next_rotation,
        )


class NamespaceListResponse(CamelModel):
    """Paginated response for ``GET /namespaces``.

    ``continuationToken`` is present only when more namespaces remain;
    pass it back as ``continuation`` to fetch the next page.
    """

    namespaces: list[NamespaceInfo]
    continuation_token: str | None = None


# --- Broker ---


class RabbitOverviewResponse(BaseModel):
    """Subset of the RabbitMQ cluster overview."""

    rabbitmq_version: str | None = None
    cluster_name: str | None = None
    management_version: str | None = None


class ExchangeResponse(BaseModel):
    """One exchange as reported by the broker."""

    name: str
    vhost: str
    type: str
    durable: bool
    auto_delete: bool
    internal: bool
    arguments: dict[str, Any] = {}
