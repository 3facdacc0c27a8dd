"""Read-only views of the RabbitMQ cluster."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends

from pulse_namespaces.api.deps import get_rabbit_manager
from pulse_namespaces.api.schemas import ExchangeResponse, RabbitOverviewResponse
from pulse_namespaces.broker.rabbitmq import RabbitManager

router = APIRouter(tags=["broker"])

RabbitDep = Annotated[RabbitManager, Depends(get_rabbit_manager)]


@router.get("/overview")
async def rabbit_overview(rabbit: RabbitDep) -> RabbitOverviewResponse:
    """Versions and name of the RabbitMQ cluster."""
    return RabbitOverviewResponse.model_validate(await rabbit.overview())


@router.get("/exchanges")
async def list_exchanges(rabbit: RabbitDep) -> list[ExchangeResponse]:
    """All exchanges in the cluster, including ones this service does not manage."""
    return [ExchangeResponse.model_validate(ex) for ex in await rabbit.exchanges()]
