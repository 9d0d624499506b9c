"""
Tenant registry — resolves a platform access token to that tenant's handles.

Every tenant brings its own Open Source Cloud account. On first use the
registry provisions (or finds) the tenant's storage and cache instances,
makes sure the media bucket exists, and remembers the result:

  token digest → PlatformContext
  token digest → TenantHandles (redis, platform, storage credentials, bucket)
  cache URL    → Redis client          (openmam.redis_client)
  storage endpoint → bucket ensured

Entries live until close(); there is no eviction.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from redis.asyncio import Redis

from openmam import s3
from openmam.config import Settings
from openmam.platform import instances
from openmam.platform.client import PlatformContext, account_key
from openmam.platform.types import StorageCredentials
from openmam.redis_client import close_redis_clients, get_redis_client

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class TenantHandles:
    redis: Redis
    platform: PlatformContext
    storage: StorageCredentials
    bucket: str


class TenantRegistry:
    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._contexts: dict[str, PlatformContext] = {}
        self._handles: dict[str, TenantHandles] = {}
        self._ensured_buckets: set[str] = set()
        self._locks: dict[str, asyncio.Lock] = {}

    def platform_context(self, token: str) -> PlatformContext:
        key = account_key(token)
        ctx = self._contexts.get(key)
        if ctx is None:
            ctx = PlatformContext(token, environment=self._settings.osc_environment)
            self._contexts[key] = ctx
        return ctx

    async def resolve(self, token: str) -> TenantHandles:
        """
        Handles for the tenant owning ``token``. The first call per tenant
        provisions its instances; later calls are a dict lookup.

        Raises PlatformError (or StorageUnavailable) when provisioning fails.
        """
        key = account_key(token)
        cached = self._handles.get(key)
        if cached is not None:
            return cached

        async with self._locks.setdefault(key, asyncio.Lock()):
            cached = self._handles.get(key)
            if cached is not None:
                return cached

            settings = self._settings
            ctx = self.platform_context(token)
            provision = {
                "max_attempts": settings.provision_max_attempts,
                "base_delay": settings.provision_base_delay_seconds,
                "ready_timeout": settings.instance_ready_timeout_seconds,
            }
            storage, cache = await asyncio.gather(
                instances.ensure_storage_instance(ctx, settings.storage_instance_name, **provision),
                instances.ensure_cache_instance(ctx, settings.cache_instance_name, **provision),
            )

            if storage.endpoint not in self._ensured_buckets:
                await s3.ensure_bucket(storage, settings.media_bucket)
                self._ensured_buckets.add(storage.endpoint)

            handles = TenantHandles(
                redis=get_redis_client(cache.url),
                platform=ctx,
                storage=storage,
                bucket=settings.media_bucket,
            )
            self._handles[key] = handles
            logger.info("Tenant %s resolved (storage %s)", key, storage.endpoint)
            return handles

    async def close(self) -> None:
        contexts = list(self._contexts.values())
        self._contexts.clear()
        self._handles.clear()
        self._ensured_buckets.clear()
        for ctx in contexts:
            await ctx.aclose()
        await close_redis_clients()
