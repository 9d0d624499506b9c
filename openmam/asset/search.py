"""Word-level inverted index over asset text fields.

Each normalized word maps to ``search:word:{word}``, a set of asset ids. The
same tokenizer runs at index time and at query time, so a query matches
exactly the words that were indexed.
"""
from __future__ import annotations

import re

from redis.asyncio import Redis

from openmam import keys
from openmam.asset.constants import MIN_WORD_LENGTH, WORD_PATTERN
from openmam.asset.models import Asset, AssetFields

_WORD_RE = re.compile(WORD_PATTERN)


def tokenize(text: str) -> list[str]:
    """Lowercase, split into words, drop short ones and duplicates (order kept)."""
    words = _WORD_RE.findall(text.lower())
    return [w for w in dict.fromkeys(words) if len(w) >= MIN_WORD_LENGTH]


def extract_words(asset: AssetFields) -> list[str]:
    return tokenize(" ".join([asset.title, asset.description, *asset.tags]))


async def index_asset_words(redis: Redis, asset: Asset) -> None:
    words = extract_words(asset)
    if not words:
        return
    pipeline = redis.pipeline(transaction=False)
    for word in words:
        pipeline.sadd(keys.search_word_key(word), asset.id)
    await pipeline.execute()


async def remove_asset_words(redis: Redis, asset: Asset) -> None:
    words = extract_words(asset)
    if not words:
        return
    pipeline = redis.pipeline(transaction=False)
    for word in words:
        pipeline.srem(keys.search_word_key(word), asset.id)
    await pipeline.execute()


async def matching_ids(redis: Redis, words: list[str]) -> set[str]:
    """Ids of assets containing every word (AND semantics)."""
    if not words:
        return set()
    word_keys = [keys.search_word_key(w) for w in words]
    if len(word_keys) == 1:
        return set(await redis.smembers(word_keys[0]))
    return set(await redis.sinter(word_keys))
