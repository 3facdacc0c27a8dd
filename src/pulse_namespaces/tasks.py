"""Scheduled maintenance tasks run by the arq worker."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import structlog

from pulse_namespaces.logging_config import bind_pass_context

if TYPE_CHECKING:
    from pulse_namespaces.lifecycle import CredentialLifecycleEngine

logger = structlog.get_logger()


def _lifecycle(ctx: dict[str, Any]) -> CredentialLifecycleEngine:
    engine: CredentialLifecycleEngine = ctx["lifecycle"]
    return engine


def _elapsed_ms(started: datetime) -> int:
    return int((datetime.now(UTC) - started).total_seconds() * 1000)


async def expire_namespaces(ctx: dict[str, Any]) -> int:
    """Remove namespaces whose expiry has passed, revoking their broker users."""
    started = datetime.now(UTC)
    bind_pass_context("expire", started.isoformat())
    removed = await _lifecycle(ctx).expire(started)
    logger.info("expire_task_done", removed=removed, duration_ms=_elapsed_ms(started))
    return removed


async def rotate_namespaces(ctx: dict[str, Any]) -> int:
    """Rotate credentials of namespaces whose next rotation is due."""
    started = datetime.now(UTC)
    bind_pass_context("rotate", started.isoformat())
    rotated = await _lifecycle(ctx).rotate(started)
    logger.info("rotate_task_done", rotated=rotated, duration_ms=_elapsed_ms(started))
    return rotated
