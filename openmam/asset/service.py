"""
Media asset — metadata store over a tenant's Redis.

Zero FastAPI imports. Receives the Redis handle via parameters.

Every mutation touches several independently stored keys (see openmam.keys):
the record, the ordering index, tag counters, collection membership sets and
the word index. Redis gives no atomicity across them, so each operation is a
fixed sequence of idempotent sub-steps. Batches use pipelines without
MULTI/EXEC. A failure between steps can leave a derived index stale until the
next write to the same asset; search re-indexing failures are logged and not
retried.
"""
from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable
from datetime import datetime, timezone
from typing import Any, Callable

from redis.asyncio import Redis
from redis.exceptions import RedisError

from openmam import keys
from openmam.asset import search
from openmam.asset.constants import SortField, SortOrder
from openmam.asset.models import Asset, AssetFields, parse_asset
from openmam.collection.service import sync_collection_counts
from openmam.pagination import clamp_page, paginate

logger = logging.getLogger(__name__)

_IMMUTABLE_FIELDS = frozenset({"id", "created_at", "updated_at"})

_SORT_KEYS: dict[SortField, Callable[[Asset], Any]] = {
    SortField.CREATED_AT: lambda a: a.created_at,
    SortField.TITLE: lambda a: a.title.casefold(),
    SortField.FILE_SIZE: lambda a: a.file_size,
    SortField.DURATION: lambda a: a.duration or 0,
}


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _folded_tags(tags: Iterable[str]) -> set[str]:
    return {t.lower() for t in tags if t.strip()}


async def _reindex_words(redis: Redis, asset: Asset) -> None:
    try:
        await search.index_asset_words(redis, asset)
    except RedisError:
        logger.exception("Search indexing failed for asset %s", asset.id)


async def _fetch_assets(redis: Redis, asset_ids: Iterable[str]) -> list[Asset]:
    """Bulk-fetch records in one pipeline round-trip; missing/corrupt ones are skipped."""
    ids = list(asset_ids)
    if not ids:
        return []
    pipeline = redis.pipeline(transaction=False)
    for asset_id in ids:
        pipeline.get(keys.asset_key(asset_id))
    raws = await pipeline.execute()
    return [a for a in (parse_asset(raw) for raw in raws) if a is not None]


def _filter_by_type(assets: list[Asset], type_filter: str | None) -> list[Asset]:
    if not type_filter:
        return assets
    prefix = type_filter.lower()
    return [a for a in assets if a.mime_type.lower().startswith(prefix)]


# ── CRUD ─────────────────────────────────────────────────────────────────────

async def create_asset(redis: Redis, fields: AssetFields) -> Asset:
    """
    Store a new asset and register it in every derived index.

    The record, ordering entry, tag counters and membership sets go out in one
    batch; word indexing is a second batch. A crash between the two leaves the
    asset listed but not yet searchable.
    """
    now = _now()
    asset = Asset(
        **fields.model_dump(exclude=set(_IMMUTABLE_FIELDS)),
        id=str(uuid.uuid4()),
        created_at=now,
        updated_at=now,
    )

    pipeline = redis.pipeline(transaction=False)
    pipeline.set(keys.asset_key(asset.id), asset.model_dump_json())
    pipeline.zadd(keys.ASSETS_INDEX, {asset.id: now.timestamp()})
    for tag in sorted(_folded_tags(asset.tags)):
        pipeline.zincrby(keys.TAGS_ALL, 1, tag)
    for collection_id in asset.collections:
        pipeline.sadd(keys.collection_members_key(collection_id), asset.id)
    await pipeline.execute()

    await _reindex_words(redis, asset)
    if asset.collections:
        await sync_collection_counts(redis, asset.collections)

    logger.info("Asset created: %s (%s)", asset.id, asset.filename)
    return asset


async def get_asset(redis: Redis, asset_id: str) -> Asset | None:
    return parse_asset(await redis.get(keys.asset_key(asset_id)))


async def update_asset(
    redis: Redis,
    asset_id: str,
    updates: dict[str, Any],
) -> Asset | None:
    """
    Merge ``updates`` over the stored asset and apply minimal index deltas.

    Order: drop old word entries, adjust tag counters, adjust membership sets,
    persist the merged record (tags/memberships/record share one batch), then
    re-index words. Fields absent from ``updates`` are left untouched; id and
    created_at can never change.
    """
    existing = await get_asset(redis, asset_id)
    if existing is None:
        return None

    changes = {k: v for k, v in updates.items() if k not in _IMMUTABLE_FIELDS}
    merged = Asset.model_validate(
        {
            **existing.model_dump(),
            **changes,
            "id": existing.id,
            "created_at": existing.created_at,
            "updated_at": _now(),
        }
    )

    # 1. Old text may no longer apply
    await search.remove_asset_words(redis, existing)

    pipeline = redis.pipeline(transaction=False)

    # 2. Tag counters
    old_tags = _folded_tags(existing.tags)
    new_tags = _folded_tags(merged.tags)
    for tag in sorted(new_tags - old_tags):
        pipeline.zincrby(keys.TAGS_ALL, 1, tag)
    removed_tags = old_tags - new_tags
    for tag in sorted(removed_tags):
        pipeline.zincrby(keys.TAGS_ALL, -1, tag)
    if removed_tags:
        pipeline.zremrangebyscore(keys.TAGS_ALL, "-inf", 0)

    # 3. Collection membership
    old_collections = set(existing.collections)
    new_collections = set(merged.collections)
    for collection_id in sorted(new_collections - old_collections):
        pipeline.sadd(keys.collection_members_key(collection_id), asset_id)
    for collection_id in sorted(old_collections - new_collections):
        pipeline.srem(keys.collection_members_key(collection_id), asset_id)

    # 4-5. Persist merged record
    pipeline.set(keys.asset_key(asset_id), merged.model_dump_json())
    await pipeline.execute()

    # 6. Re-index
    await _reindex_words(redis, merged)

    touched = old_collections ^ new_collections
    if touched:
        await sync_collection_counts(redis, sorted(touched))

    logger.info("Asset updated: %s", asset_id)
    return merged


async def delete_asset(redis: Redis, asset_id: str) -> bool:
    """Remove the asset and every index reference to it. False if absent."""
    asset = await get_asset(redis, asset_id)
    if asset is None:
        return False

    await search.remove_asset_words(redis, asset)

    pipeline = redis.pipeline(transaction=False)
    pipeline.delete(keys.asset_key(asset_id))
    pipeline.zrem(keys.ASSETS_INDEX, asset_id)
    tags = _folded_tags(asset.tags)
    for tag in sorted(tags):
        pipeline.zincrby(keys.TAGS_ALL, -1, tag)
    if tags:
        pipeline.zremrangebyscore(keys.TAGS_ALL, "-inf", 0)
    for collection_id in asset.collections:
        pipeline.srem(keys.collection_members_key(collection_id), asset_id)
    await pipeline.execute()

    if asset.collections:
        await sync_collection_counts(redis, asset.collections)

    logger.info("Asset deleted: %s (%s)", asset_id, asset.filename)
    return True


# ── Listing & search ─────────────────────────────────────────────────────────

async def list_assets(
    redis: Redis,
    *,
    page: int | None = 1,
    limit: int | None = None,
    sort: SortField | str = SortField.CREATED_AT,
    order: SortOrder | str = SortOrder.DESC,
    type_filter: str | None = None,
    collection_id: str | None = None,
) -> tuple[list[Asset], int]:
    """Return one page of assets and the filtered total.

    Sorting happens in process after a bulk fetch of every candidate.
    """
    page, limit = clamp_page(page, limit)
    sort = SortField(sort)
    order = SortOrder(order)

    if collection_id:
        asset_ids = await redis.smembers(keys.collection_members_key(collection_id))
    else:
        asset_ids = await redis.zrange(keys.ASSETS_INDEX, 0, -1)

    assets = _filter_by_type(await _fetch_assets(redis, asset_ids), type_filter)
    assets.sort(key=_SORT_KEYS[sort], reverse=order == SortOrder.DESC)
    return paginate(assets, page, limit), len(assets)


async def search_assets(
    redis: Redis,
    query: str,
    *,
    page: int | None = 1,
    limit: int | None = None,
    type_filter: str | None = None,
) -> tuple[list[Asset], int]:
    """AND-search over indexed words, newest first. No relevance ranking."""
    page, limit = clamp_page(page, limit)

    words = search.tokenize(query)
    if not words:
        return [], 0

    matching = await search.matching_ids(redis, words)
    if not matching:
        return [], 0

    assets = _filter_by_type(await _fetch_assets(redis, sorted(matching)), type_filter)
    assets.sort(key=lambda a: a.created_at, reverse=True)
    return paginate(assets, page, limit), len(assets)


async def count_assets(redis: Redis) -> int:
    return int(await redis.zcard(keys.ASSETS_INDEX))


# ── Tags ─────────────────────────────────────────────────────────────────────

async def get_all_tags(redis: Redis) -> list[str]:
    """Tags ordered by usage count, highest first."""
    return list(await redis.zrevrange(keys.TAGS_ALL, 0, -1))


async def get_tag_counts(redis: Redis) -> list[tuple[str, int]]:
    pairs = await redis.zrevrange(keys.TAGS_ALL, 0, -1, withscores=True)
    return [(tag, int(score)) for tag, score in pairs]
