"""ARQ worker configuration and lifecycle hooks.

Runs the expire and rotate passes on a cron schedule. Run with::

    arq pulse_namespaces.worker.WorkerSettings

Or in Docker::

    python -m arq pulse_namespaces.worker.WorkerSettings
"""

from typing import Any, ClassVar

import structlog
from arq import cron
from arq.connections import RedisSettings

from pulse_namespaces.config import get_settings
from pulse_namespaces.logging_config import configure_logging
from pulse_namespaces.tasks import expire_namespaces, rotate_namespaces

WorkerCtx = dict[str, Any]


async def startup(ctx: WorkerCtx) -> None:
    """Initialize worker resources on startup.

    Creates an async engine, session factory, RabbitMQ client and the
    lifecycle engine, storing them in the worker context for use by
    task functions.
    """
    from sqlalchemy.ext.asyncio import (
        AsyncSession,
        async_sessionmaker,
        create_async_engine,
    )

    from pulse_namespaces.broker.rabbitmq import RabbitManager
    from pulse_namespaces.lifecycle import CredentialLifecycleEngine, LifecycleConfig
    from pulse_namespaces.storage.namespace_registry import NamespaceRegistry

    s = get_settings()
    configure_logging(
        environment=str(s.environment),
        log_level=s.log_level,
    )

    engine = create_async_engine(
        s.database_url,
        pool_size=10,
        max_overflow=20,
    )
    session_factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    rabbit = RabbitManager(
        s.rabbitmq_url,
        s.rabbitmq_username,
        s.rabbitmq_password.get_secret_value(),
        timeout=s.rabbitmq_timeout,
    )
    await rabbit.open()

    registry = NamespaceRegistry(
        session_factory,
        modify_max_attempts=s.modify_max_attempts,
    )

    ctx["engine"] = engine
    ctx["session_factory"] = session_factory
    ctx["rabbit"] = rabbit
    ctx["lifecycle"] = CredentialLifecycleEngine(
        registry, rabbit, LifecycleConfig.from_settings(s)
    )

    log = structlog.get_logger()
    log.info(
        "worker_started",
        redis_url=s.redis_url,
        scan_concurrency=s.scan_concurrency,
        failure_policy=str(s.scan_failure_policy),
    )


async def shutdown(ctx: WorkerCtx) -> None:
    """Clean up worker resources on shutdown."""
    log = structlog.get_logger()

    rabbit = ctx.get("rabbit")
    if rabbit is not None:
        await rabbit.close()

    engine = ctx.get("engine")
    if engine is not None:
        await engine.dispose()

    log.info("worker_stopped")


class WorkerSettings:
    """ARQ worker settings, consumed by the ``arq`` CLI."""

    _settings = get_settings()

    redis_settings: RedisSettings = RedisSettings.from_dsn(
        _settings.redis_url,
    )
    cron_jobs: ClassVar[list[Any]] = [
        cron(
            expire_namespaces,
            minute=_settings.expire_cron_minutes,
            unique=True,
            run_at_startup=True,
        ),
        cron(
            rotate_namespaces,
            minute=_settings.rotate_cron_minutes,
            unique=True,
            run_at_startup=True,
        ),
    ]
    on_startup = startup
    on_shutdown = shutdown

    # One expire and one rotate pass may run at the same time.
    max_jobs: int = 2
    job_timeout: int = 1800
    max_tries: int = 1

    keep_result: int = 3600
    poll_delay: float = 0.5
