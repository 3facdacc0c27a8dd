"""CLI for one-off namespace maintenance.

Usage::

    uv run python -m scripts.run_maintenance <command> [options]

Commands:
    expire      Remove namespaces whose expiry has passed
    rotate      Rotate credentials of namespaces that are due
    list        List namespaces (public fields only)
    delete      Immediately revoke and remove one namespace
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from collections.abc import AsyncIterator, Callable, Coroutine
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from pulse_namespaces.broker.rabbitmq import RabbitManager
from pulse_namespaces.config import settings
from pulse_namespaces.lifecycle import CredentialLifecycleEngine, LifecycleConfig
from pulse_namespaces.logging_config import configure_logging
from pulse_namespaces.naming import namespace_violations
from pulse_namespaces.storage.namespace_registry import NamespaceRegistry, iter_scan


@asynccontextmanager
async def open_lifecycle() -> AsyncIterator[CredentialLifecycleEngine]:
    """Build a lifecycle engine against the configured database and broker."""
    engine = create_async_engine(settings.database_url)
    session_factory = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False
    )
    registry = NamespaceRegistry(
        session_factory, modify_max_attempts=settings.modify_max_attempts
    )
    try:
        async with RabbitManager(
            settings.rabbitmq_url,
            settings.rabbitmq_username,
            settings.rabbitmq_password.get_secret_value(),
            timeout=settings.rabbitmq_timeout,
        ) as rabbit:
            yield CredentialLifecycleEngine(
                registry, rabbit, LifecycleConfig.from_settings(settings)
            )
    finally:
        await engine.dispose()


@asynccontextmanager
async def open_registry() -> AsyncIterator[NamespaceRegistry]:
    """Registry only; for read commands that never touch the broker."""
    engine = create_async_engine(settings.database_url)
    try:
        yield NamespaceRegistry(
            async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
        )
    finally:
        await engine.dispose()


async def expire(_args: argparse.Namespace) -> None:
    """Run one expire pass now."""
    async with open_lifecycle() as lifecycle:
        removed = await lifecycle.expire(datetime.now(UTC))
    print(f"Expired {removed} namespace{'s' if removed != 1 else ''}.")


async def rotate(_args: argparse.Namespace) -> None:
    """Run one rotate pass now."""
    async with open_lifecycle() as lifecycle:
        rotated = await lifecycle.rotate(datetime.now(UTC))
    print(f"Rotated {rotated} namespace{'s' if rotated != 1 else ''}.")


async def list_namespaces(_args: argparse.Namespace) -> None:
    """Print every namespace with its expiry and contact."""
    count = 0
    async with open_registry() as registry:
        async for ns in iter_scan(registry, page_size=1000):
            count += 1
            print(
                f"  {count}. {ns.namespace} "
                f"expires={ns.expires.isoformat(timespec='seconds')} "
                f"contact={ns.contact or '-'}"
            )
    if not count:
        print("No namespaces found.")


async def delete(args: argparse.Namespace) -> None:
    """Immediately revoke and remove a namespace."""
    violations = namespace_violations(args.namespace, settings.namespace_prefix)
    if violations:
        print(
            f"Invalid namespace {args.namespace!r}: {'; '.join(violations)}",
            file=sys.stderr,
        )
        sys.exit(1)

    async with open_lifecycle() as lifecycle:
        deleted = await lifecycle.delete(args.namespace)
    if not deleted:
        print(f"Namespace not found: {args.namespace}", file=sys.stderr)
        sys.exit(1)
    print(f"Namespace deleted: {args.namespace}")


def main() -> None:
    """Parse arguments and dispatch to command handler."""
    parser = argparse.ArgumentParser(description="Namespace maintenance CLI")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("expire", help="Remove expired namespaces")
    sub.add_parser("rotate", help="Rotate due namespace credentials")
    sub.add_parser("list", help="List namespaces")

    p = sub.add_parser("delete", help="Delete a namespace now")
    p.add_argument("namespace", help="Namespace name")

    args = parser.parse_args()
    configure_logging(
        environment=str(settings.environment),
        log_level=settings.log_level,
    )
    commands: dict[
        str, Callable[[argparse.Namespace], Coroutine[Any, Any, None]]
    ] = {
        "expire": expire,
        "rotate": rotate,
        "list": list_namespaces,
        "delete": delete,
    }
    asyncio.run(commands[args.command](args))


if __name__ == "__main__":
    main()
