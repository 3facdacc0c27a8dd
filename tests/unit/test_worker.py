"""Tests for ARQ worker configuration."""

from collections.abc import Generator
from contextlib import contextmanager
from unittest.mock import AsyncMock, MagicMock, patch

from arq.connections import RedisSettings

from pulse_namespaces.lifecycle import CredentialLifecycleEngine
from pulse_namespaces.tasks import expire_namespaces, rotate_namespaces
from pulse_namespaces.worker import WorkerSettings, shutdown, startup


class TestWorkerSettings:
    """WorkerSettings class attributes."""

    def test_redis_settings_type(self) -> None:
        assert isinstance(WorkerSettings.redis_settings, RedisSettings)

    def test_redis_settings_from_config(self) -> None:
        rs = WorkerSettings.redis_settings
        assert rs.host == "localhost"
        assert rs.port == 6379
        assert rs.database == 0

    def test_cron_jobs_cover_both_passes(self) -> None:
        coroutines = {job.coroutine for job in WorkerSettings.cron_jobs}
        assert coroutines == {expire_namespaces, rotate_namespaces}

    def test_cron_jobs_are_unique(self) -> None:
        assert all(job.unique for job in WorkerSettings.cron_jobs)

    def test_expire_schedule(self) -> None:
        (expire_job,) = [
            j for j in WorkerSettings.cron_jobs if j.coroutine is expire_namespaces
        ]
        assert expire_job.minute == {0, 15, 30, 45}

    def test_lifecycle_hooks_assigned(self) -> None:
        assert WorkerSettings.on_startup is startup
        assert WorkerSettings.on_shutdown is shutdown

    def test_no_retries(self) -> None:
        assert WorkerSettings.max_tries == 1


@contextmanager
def _patched_startup(
    mock_engine: MagicMock | None = None,
    mock_factory: MagicMock | None = None,
) -> Generator[MagicMock]:
    rabbit = MagicMock()
    rabbit.open = AsyncMock()
    with (
        patch("pulse_namespaces.worker.configure_logging") as mock_logging,
        patch(
            "sqlalchemy.ext.asyncio.create_async_engine",
            return_value=mock_engine or MagicMock(),
        ),
        patch(
            "sqlalchemy.ext.asyncio.async_sessionmaker",
            return_value=mock_factory or MagicMock(),
        ),
        patch("pulse_namespaces.broker.rabbitmq.RabbitManager", return_value=rabbit),
    ):
        yield mock_logging


class TestWorkerLifecycle:
    """Startup and shutdown hooks."""

    async def test_startup_configures_logging(self) -> None:
        ctx: dict[str, object] = {}
        with _patched_startup() as mock_logging:
            await startup(ctx)
        mock_logging.assert_called_once()

    async def test_startup_populates_ctx(self) -> None:
        ctx: dict[str, object] = {}
        mock_engine = MagicMock()
        mock_factory = MagicMock()
        with _patched_startup(mock_engine, mock_factory):
            await startup(ctx)
        assert ctx["engine"] is mock_engine
        assert ctx["session_factory"] is mock_factory
        assert isinstance(ctx["lifecycle"], CredentialLifecycleEngine)
        ctx["rabbit"].open.assert_awaited_once()  # type: ignore[attr-defined]

    async def test_shutdown_closes_resources(self) -> None:
        mock_engine = MagicMock()
        mock_engine.dispose = AsyncMock()
        rabbit = MagicMock()
        rabbit.close = AsyncMock()
        ctx: dict[str, object] = {"engine": mock_engine, "rabbit": rabbit}
        with patch("pulse_namespaces.worker.structlog"):
            await shutdown(ctx)
        mock_engine.dispose.assert_awaited_once()
        rabbit.close.assert_awaited_once()

    async def test_shutdown_handles_missing_resources(self) -> None:
        ctx: dict[str, object] = {}
        with patch("pulse_namespaces.worker.structlog") as mock_structlog:
            mock_logger = MagicMock()
            mock_structlog.get_logger.return_value = mock_logger
            await shutdown(ctx)
            mock_logger.info.assert_called_once_with("worker_stopped")
