"""
Collections — pure business logic over a tenant's Redis.

Zero FastAPI imports. Membership is authoritative in
``assets:by-collection:{id}``; every member Asset carries the collection id in
its ``collections`` list as a back-reference kept in step by the operations
below. Pipelines run without MULTI/EXEC: one batch saves round-trips but is
not atomic.
"""
from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Iterable
from datetime import datetime, timezone
from typing import Any

from redis.asyncio import Redis
from redis.exceptions import RedisError

from openmam import keys
from openmam.asset.models import Asset, parse_asset
from openmam.collection.constants import UPDATABLE_FIELDS, MembershipOutcome
from openmam.collection.models import Collection, parse_collection

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


async def _get_asset(redis: Redis, asset_id: str) -> Asset | None:
    return parse_asset(await redis.get(keys.asset_key(asset_id)))


# ── CRUD ─────────────────────────────────────────────────────────────────────

async def create_collection(
    redis: Redis,
    name: str,
    description: str | None = None,
) -> Collection:
    now = _now()
    collection = Collection(
        id=str(uuid.uuid4()),
        name=name,
        description=description or "",
        created_at=now,
        updated_at=now,
    )

    pipeline = redis.pipeline(transaction=False)
    pipeline.set(keys.collection_key(collection.id), collection.model_dump_json())
    pipeline.zadd(keys.COLLECTIONS_INDEX, {collection.id: now.timestamp()})
    await pipeline.execute()

    logger.info("Collection created: %s (%s)", collection.id, name)
    return collection


async def get_collection(redis: Redis, collection_id: str) -> Collection | None:
    return parse_collection(await redis.get(keys.collection_key(collection_id)))


async def update_collection(
    redis: Redis,
    collection_id: str,
    updates: dict[str, Any],
) -> Collection | None:
    """Merge ``updates`` over the stored record. Unknown fields are ignored."""
    existing = await get_collection(redis, collection_id)
    if existing is None:
        return None

    changes = {k: v for k, v in updates.items() if k in UPDATABLE_FIELDS}
    merged = Collection.model_validate(
        {**existing.model_dump(), **changes, "updated_at": _now()}
    )
    await redis.set(keys.collection_key(collection_id), merged.model_dump_json())

    logger.info("Collection updated: %s", collection_id)
    return merged


async def delete_collection(redis: Redis, collection_id: str) -> bool:
    """
    Delete the collection, its index entry and its membership set, then
    rewrite every former member to drop the back-reference.

    The rewrite is a separate unit: if it fails the collection is still gone
    and the stale back-references are logged.
    """
    collection = await get_collection(redis, collection_id)
    if collection is None:
        return False

    members_key = keys.collection_members_key(collection_id)
    asset_ids = await redis.smembers(members_key)

    pipeline = redis.pipeline(transaction=False)
    pipeline.delete(keys.collection_key(collection_id))
    pipeline.zrem(keys.COLLECTIONS_INDEX, collection_id)
    pipeline.delete(members_key)
    await pipeline.execute()

    await _detach_members(redis, collection_id, asset_ids)

    logger.info("Collection deleted: %s (%s)", collection_id, collection.name)
    return True


async def _detach_members(
    redis: Redis,
    collection_id: str,
    asset_ids: Iterable[str],
) -> None:
    ids = sorted(asset_ids)
    if not ids:
        return
    try:
        reads = redis.pipeline(transaction=False)
        for asset_id in ids:
            reads.get(keys.asset_key(asset_id))
        raws = await reads.execute()

        now = _now()
        writes = redis.pipeline(transaction=False)
        for raw in raws:
            asset = parse_asset(raw)
            if asset is None or collection_id not in asset.collections:
                continue
            asset.collections = [c for c in asset.collections if c != collection_id]
            asset.updated_at = now
            writes.set(keys.asset_key(asset.id), asset.model_dump_json())
        await writes.execute()
    except RedisError:
        logger.exception(
            "Failed to detach %d asset(s) from deleted collection %s",
            len(ids),
            collection_id,
        )


async def list_collections(redis: Redis) -> list[Collection]:
    """All collections, newest first."""
    ids = await redis.zrange(keys.COLLECTIONS_INDEX, 0, -1)
    if not ids:
        return []

    pipeline = redis.pipeline(transaction=False)
    for collection_id in ids:
        pipeline.get(keys.collection_key(collection_id))
    raws = await pipeline.execute()

    collections = [c for c in (parse_collection(raw) for raw in raws) if c is not None]
    collections.sort(key=lambda c: c.created_at, reverse=True)
    return collections


# ── Membership ───────────────────────────────────────────────────────────────

async def member_ids(redis: Redis, collection_id: str) -> set[str]:
    return set(await redis.smembers(keys.collection_members_key(collection_id)))


async def is_member(redis: Redis, collection_id: str, asset_id: str) -> bool:
    return bool(
        await redis.sismember(keys.collection_members_key(collection_id), asset_id)
    )


async def add_asset_to_collection(
    redis: Redis,
    collection_id: str,
    asset_id: str,
) -> MembershipOutcome:
    collection, asset = await asyncio.gather(
        get_collection(redis, collection_id),
        _get_asset(redis, asset_id),
    )
    if collection is None:
        return MembershipOutcome.COLLECTION_NOT_FOUND
    if asset is None:
        return MembershipOutcome.ASSET_NOT_FOUND

    if await is_member(redis, collection_id, asset_id):
        return MembershipOutcome.UNCHANGED

    now = _now()
    if collection_id not in asset.collections:
        asset.collections = [*asset.collections, collection_id]
    asset.updated_at = now
    collection.asset_count += 1
    collection.updated_at = now

    pipeline = redis.pipeline(transaction=False)
    pipeline.sadd(keys.collection_members_key(collection_id), asset_id)
    pipeline.set(keys.asset_key(asset_id), asset.model_dump_json())
    pipeline.set(keys.collection_key(collection_id), collection.model_dump_json())
    await pipeline.execute()

    logger.info("Asset %s added to collection %s", asset_id, collection_id)
    return MembershipOutcome.ADDED


async def remove_asset_from_collection(
    redis: Redis,
    collection_id: str,
    asset_id: str,
) -> MembershipOutcome:
    collection, asset = await asyncio.gather(
        get_collection(redis, collection_id),
        _get_asset(redis, asset_id),
    )
    if collection is None:
        return MembershipOutcome.COLLECTION_NOT_FOUND
    if asset is None:
        return MembershipOutcome.ASSET_NOT_FOUND

    if not await is_member(redis, collection_id, asset_id):
        return MembershipOutcome.UNCHANGED

    now = _now()
    asset.collections = [c for c in asset.collections if c != collection_id]
    asset.updated_at = now
    collection.asset_count = max(0, collection.asset_count - 1)
    collection.updated_at = now
    if collection.cover_asset_id == asset_id:
        collection.cover_asset_id = None

    pipeline = redis.pipeline(transaction=False)
    pipeline.srem(keys.collection_members_key(collection_id), asset_id)
    pipeline.set(keys.asset_key(asset_id), asset.model_dump_json())
    pipeline.set(keys.collection_key(collection_id), collection.model_dump_json())
    await pipeline.execute()

    logger.info("Asset %s removed from collection %s", asset_id, collection_id)
    return MembershipOutcome.REMOVED


async def sync_collection_counts(redis: Redis, collection_ids: Iterable[str]) -> None:
    """
    Recompute ``asset_count`` from the membership sets and clear covers that
    no longer point at a member. Used after asset writes that change
    memberships without going through add/remove.
    """
    ids = list(dict.fromkeys(collection_ids))
    if not ids:
        return
    try:
        reads = redis.pipeline(transaction=False)
        for collection_id in ids:
            reads.get(keys.collection_key(collection_id))
            reads.smembers(keys.collection_members_key(collection_id))
        results = await reads.execute()

        now = _now()
        writes = redis.pipeline(transaction=False)
        for i, collection_id in enumerate(ids):
            collection = parse_collection(results[2 * i])
            if collection is None:
                continue
            members = set(results[2 * i + 1])
            cover = collection.cover_asset_id
            if cover is not None and cover not in members:
                cover = None
            if collection.asset_count == len(members) and cover == collection.cover_asset_id:
                continue
            collection.asset_count = len(members)
            collection.cover_asset_id = cover
            collection.updated_at = now
            writes.set(keys.collection_key(collection_id), collection.model_dump_json())
        await writes.execute()
    except RedisError:
        logger.exception("Failed to sync asset counts for collections %s", ids)
