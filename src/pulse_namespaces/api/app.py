"""FastAPI application with lifespan management."""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime

import httpx
import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import OperationalError, SQLAlchemyError

from pulse_namespaces.api.middleware import RequestLoggingMiddleware
from pulse_namespaces.api.routes.broker import router as broker_router
from pulse_namespaces.api.routes.namespaces import router as namespaces_router
from pulse_namespaces.broker.rabbitmq import RabbitManager
from pulse_namespaces.config import settings
from pulse_namespaces.errors import (
    BrokerError,
    InvalidContinuationTokenError,
    InvalidNamespaceError,
)
from pulse_namespaces.lifecycle import CredentialLifecycleEngine, LifecycleConfig
from pulse_namespaces.logging_config import configure_logging
from pulse_namespaces.storage.database import async_session, engine
from pulse_namespaces.storage.namespace_registry import NamespaceRegistry

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application startup and shutdown.

    Startup:
        - Open the RabbitMQ management client.
        - Build the namespace registry and lifecycle engine.
    Shutdown:
        - Close the RabbitMQ client.
        - Dispose database engine (close connection pool).
    """
    configure_logging(
        environment=str(settings.environment),
        log_level=settings.log_level,
    )

    rabbit = RabbitManager(
        settings.rabbitmq_url,
        settings.rabbitmq_username,
        settings.rabbitmq_password.get_secret_value(),
        timeout=settings.rabbitmq_timeout,
    )
    async with rabbit:
        registry = NamespaceRegistry(
            async_session,
            modify_max_attempts=settings.modify_max_attempts,
        )
        app.state.rabbit = rabbit
        app.state.registry = registry
        app.state.engine = CredentialLifecycleEngine(
            registry, rabbit, LifecycleConfig.from_settings(settings)
        )

        logger.info("app_started", environment=str(settings.environment))
        yield

    await engine.dispose()
    logger.info("app_stopped")


app = FastAPI(
    title="Pulse Namespaces",
    description=(
        "Self-service RabbitMQ credentials: claim a namespace, receive a "
        "rotating username/password scoped to it."
    ),
    version="0.1.0",
    lifespan=lifespan,
    debug=settings.is_dev,
)

app.add_middleware(RequestLoggingMiddleware)


HEALTH_CHECK_TIMEOUT = 5.0


@app.get("/health")
async def health() -> JSONResponse:
    """Deep health check: verifies DB and RabbitMQ connectivity."""
    checks: dict[str, str] = {}
    overall = "ok"

    # DB check
    try:
        async with async_session() as session:
            await asyncio.wait_for(
                session.execute(text("SELECT 1")),
                timeout=HEALTH_CHECK_TIMEOUT,
            )
        checks["db"] = "ok"
    except (TimeoutError, OperationalError, SQLAlchemyError) as e:
        logger.warning("health_check_db_error", error=type(e).__name__)
        checks["db"] = f"error: {type(e).__name__}"
        overall = "degraded"
    except Exception as e:
        logger.error("health_check_db_unexpected", error=str(e), exc_info=True)
        checks["db"] = f"error: {type(e).__name__}"
        overall = "degraded"

    # RabbitMQ check
    try:
        rabbit: RabbitManager = app.state.rabbit
        await asyncio.wait_for(
            rabbit.check_connectivity(),
            timeout=HEALTH_CHECK_TIMEOUT,
        )
        checks["rabbitmq"] = "ok"
    except (TimeoutError, BrokerError, httpx.HTTPError) as e:
        logger.warning("health_check_rabbitmq_error", error=type(e).__name__)
        checks["rabbitmq"] = f"error: {type(e).__name__}"
        overall = "degraded"
    except Exception as e:
        logger.error("health_check_rabbitmq_unexpected", error=str(e), exc_info=True)
        checks["rabbitmq"] = f"error: {type(e).__name__}"
        overall = "degraded"

    status_code = 200 if overall == "ok" else 503
    return JSONResponse(
        status_code=status_code,
        content={
            "status": overall,
            "checks": checks,
            "timestamp": datetime.now(UTC).isoformat(timespec="seconds"),
        },
    )


@app.exception_handler(InvalidNamespaceError)
async def invalid_namespace_handler(
    request: Request,
    exc: InvalidNamespaceError,
) -> JSONResponse:
    """Explain every rule the namespace broke."""
    lines = ["Invalid namespace provided.  Namespaces must:"]
    lines.extend(f"* {rule}" for rule in exc.violations)
    return JSONResponse(
        status_code=400,
        content={
            "code": "InvalidNamespace",
            "detail": "\n".join(lines),
            "violations": exc.violations,
        },
    )


@app.exception_handler(InvalidContinuationTokenError)
async def invalid_continuation_handler(
    request: Request,
    exc: InvalidContinuationTokenError,
) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={"code": "InvalidContinuation", "detail": "Malformed continuation"},
    )


@app.exception_handler(BrokerError)
async def broker_error_handler(request: Request, exc: BrokerError) -> JSONResponse:
    """The broker rejected an administrative call."""
    logger.error(
        "broker_error",
        path=request.url.path,
        status_code=exc.status_code,
        error=str(exc),
    )
    return JSONResponse(status_code=502, content={"detail": "Broker error"})


@app.exception_handler(Exception)
async def unhandled_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """Catch-all handler for unhandled exceptions."""
    logger.error("unhandled_exception", exc_info=exc, path=request.url.path)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"},
    )


app.include_router(broker_router, prefix="/api/v1")
app.include_router(namespaces_router, prefix="/api/v1")
