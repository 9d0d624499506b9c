"""
Async Redis clients — one per connection URL.

Each tenant's metadata lives in its own cache instance, so clients are kept
in a module-level map keyed by URL and reused for the life of the process
(one connection pool per instance). Nothing is evicted; close_redis_clients()
releases them at shutdown.

Undecodable bytes are replaced rather than raised so a corrupt record fails
JSON parsing and reads as absent.
"""
from __future__ import annotations

import redis.asyncio as aioredis

_clients: dict[str, aioredis.Redis] = {}


def get_redis_client(redis_url: str) -> aioredis.Redis:
    """Return (and lazily create) the async Redis client for ``redis_url``."""
    client = _clients.get(redis_url)
    if client is None:
        client = aioredis.from_url(redis_url, decode_responses=True, encoding_errors="replace")
        _clients[redis_url] = client
    return client


async def close_redis_clients() -> None:
    clients = list(_clients.values())
    _clients.clear()
    for client in clients:
        await client.aclose()
