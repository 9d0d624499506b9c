"""
Open Source Cloud platform — idempotent provisioning of long-lived instances.

ensure_instance() is "get-or-create, then wait until ready":
  1. Return the existing instance if the platform already has one by that name.
  2. Otherwise create it, retrying transient failures with exponential backoff.
     A 409 (someone else created it first) counts as success and the winner's
     record is fetched instead.
  3. Poll instance health until it reports running, or give up.

Concurrent calls for the same (account, kind, name) inside this process are
serialized by an asyncio.Lock so only one of them issues the create.
"""
from __future__ import annotations

import asyncio
import logging
import secrets
import string
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar
from urllib.parse import quote

from openmam.platform.client import PlatformContext
from openmam.platform.constants import (
    CACHE_PASSWORD_LENGTH,
    INSTANCE_FAILED_STATUS,
    INSTANCE_READY_POLL_SECONDS,
    INSTANCE_READY_STATUS,
    INSTANCE_READY_TIMEOUT_SECONDS,
    RETRY_BASE_DELAY_SECONDS,
    RETRY_MAX_ATTEMPTS,
    InstanceKind,
)
from openmam.platform.exceptions import InstanceAlreadyExists, InstanceNotReady, PlatformError
from openmam.platform.types import CacheConnection, StorageCredentials

logger = logging.getLogger(__name__)

T = TypeVar("T")

_locks: dict[tuple[str, str, str], asyncio.Lock] = {}

_PASSWORD_ALPHABET = string.ascii_letters + string.digits


def _lock_for(ctx: PlatformContext, service_id: str, name: str) -> asyncio.Lock:
    return _locks.setdefault((ctx.account_key, service_id, name), asyncio.Lock())


def generate_password(length: int = CACHE_PASSWORD_LENGTH) -> str:
    return "".join(secrets.choice(_PASSWORD_ALPHABET) for _ in range(length))


def is_transient(exc: PlatformError) -> bool:
    """Network failures and 5xx responses are worth retrying."""
    return exc.status_code is None or exc.status_code >= 500


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    label: str,
    *,
    max_attempts: int = RETRY_MAX_ATTEMPTS,
    base_delay: float = RETRY_BASE_DELAY_SECONDS,
) -> T:
    """Run ``operation``, retrying transient PlatformError with delays base·2^attempt.

    Client errors (4xx) are raised on the first attempt.
    """
    attempt = 0
    while True:
        try:
            return await operation()
        except PlatformError as exc:
            attempt += 1
            if not is_transient(exc):
                logger.error("%s rejected by the platform: %s", label, exc)
                raise
            if attempt >= max_attempts:
                logger.error("%s failed after %d attempts: %s", label, attempt, exc)
                raise
            delay = base_delay * 2 ** (attempt - 1)
            logger.warning(
                "%s attempt %d/%d failed (%s), retrying in %.1fs",
                label, attempt, max_attempts, exc, delay,
            )
            await asyncio.sleep(delay)


async def wait_until_ready(
    ctx: PlatformContext,
    service_id: str,
    name: str,
    *,
    timeout: float = INSTANCE_READY_TIMEOUT_SECONDS,
    interval: float = INSTANCE_READY_POLL_SECONDS,
) -> None:
    """Poll health until running. Raises InstanceNotReady on failure or timeout."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while True:
        status = await _health(ctx, service_id, name)
        if status == INSTANCE_READY_STATUS:
            logger.info("%s instance %r is ready", service_id, name)
            return
        if status == INSTANCE_FAILED_STATUS:
            raise InstanceNotReady(f"{service_id} instance {name!r} failed to start")
        if loop.time() >= deadline:
            raise InstanceNotReady(
                f"{service_id} instance {name!r} not ready after {timeout:.0f}s (last status: {status})"
            )
        await asyncio.sleep(interval)


async def _health(ctx: PlatformContext, service_id: str, name: str) -> str:
    try:
        return await ctx.get_instance_health(service_id, name)
    except PlatformError as exc:
        logger.warning("Health check for %s/%s failed: %s", service_id, name, exc)
        return "unknown"


async def ensure_instance(
    ctx: PlatformContext,
    kind: InstanceKind | str,
    name: str,
    params: dict[str, Any] | None = None,
    *,
    max_attempts: int = RETRY_MAX_ATTEMPTS,
    base_delay: float = RETRY_BASE_DELAY_SECONDS,
    ready_timeout: float = INSTANCE_READY_TIMEOUT_SECONDS,
    ready_interval: float = INSTANCE_READY_POLL_SECONDS,
) -> dict[str, Any]:
    """Get-or-create the named instance and return its platform record."""
    service_id = InstanceKind(kind).value

    async with _lock_for(ctx, service_id, name):
        existing = await ctx.get_instance(service_id, name)
        if existing is not None:
            logger.info("Using existing %s instance %r", service_id, name)
            return existing

        async def _create() -> dict[str, Any] | None:
            try:
                return await ctx.create_instance(service_id, {"name": name, **(params or {})})
            except InstanceAlreadyExists:
                logger.info("%s instance %r was created concurrently; reusing it", service_id, name)
                return None

        logger.info("Creating %s instance %r", service_id, name)
        instance = await with_retry(
            _create,
            f"Create {service_id}/{name}",
            max_attempts=max_attempts,
            base_delay=base_delay,
        )
        if instance is None:
            instance = await ctx.get_instance(service_id, name)
            if instance is None:
                raise PlatformError(f"{service_id} instance {name!r} reported as existing but not found")

        await wait_until_ready(ctx, service_id, name, timeout=ready_timeout, interval=ready_interval)
        return instance


async def get_instance_health(ctx: PlatformContext, kind: InstanceKind | str, name: str) -> str:
    """Health status of the instance; "unknown" if it cannot be determined."""
    return await _health(ctx, InstanceKind(kind).value, name)


async def remove_service_instance(ctx: PlatformContext, kind: InstanceKind | str, name: str) -> bool:
    """Best-effort removal. Returns False (and logs) on failure."""
    service_id = InstanceKind(kind).value
    try:
        await ctx.remove_instance(service_id, name)
    except PlatformError as exc:
        logger.warning("Failed to remove %s instance %r: %s", service_id, name, exc)
        return False
    logger.info("Removed %s instance %r", service_id, name)
    return True


# ── Typed wrappers ───────────────────────────────────────────────────────────

def storage_credentials_from(instance: dict[str, Any]) -> StorageCredentials:
    endpoint = instance.get("url")
    access_key_id = instance.get("RootUser")
    secret = instance.get("RootPassword")
    if not (endpoint and access_key_id and secret):
        raise PlatformError("Storage instance record is missing url or root credentials")
    console_url = (instance.get("resources") or {}).get("app", {}).get("url", "")
    return StorageCredentials(
        endpoint=endpoint.rstrip("/"),
        access_key_id=access_key_id,
        secret_access_key=secret,
        console_url=console_url,
    )


async def ensure_storage_instance(ctx: PlatformContext, name: str, **options: Any) -> StorageCredentials:
    """Object storage (MinIO) instance: S3 endpoint and root credentials."""
    instance = await ensure_instance(ctx, InstanceKind.STORAGE, name, **options)
    return storage_credentials_from(instance)


async def ensure_cache_instance(
    ctx: PlatformContext,
    name: str,
    password: str | None = None,
    **options: Any,
) -> CacheConnection:
    """
    Key-value (Valkey) instance. The connection URL is built from the
    instance's external port mapping, since its record carries no address.
    """
    password = password or generate_password()
    instance = await ensure_instance(
        ctx,
        InstanceKind.CACHE,
        name,
        {"Password": password},
        **options,
    )
    stored_password = instance.get("Password") or password
    if not stored_password:
        raise PlatformError(f"Cache instance {name!r} has no password on record")

    ports = await ctx.get_instance_ports(InstanceKind.CACHE.value, name)
    if not ports:
        raise PlatformError(f"Cache instance {name!r} exposes no ports")
    external_ip = ports[0].get("externalIp")
    external_port = ports[0].get("externalPort")
    if not external_ip or not external_port:
        raise PlatformError(f"Cache instance {name!r} port mapping is incomplete")

    return CacheConnection(
        url=f"redis://:{quote(stored_password, safe='')}@{external_ip}:{external_port}"
    )
