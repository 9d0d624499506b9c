"""Redis key helpers for a tenant's metadata store.

Key schema
----------
asset:{id}                      JSON string   primary Asset record
assets:index                    sorted set    asset ids, score = created_at epoch
assets:by-collection:{cid}      set           collection membership (authoritative)
collection:{id}                 JSON string   primary Collection record
collections:index               sorted set    collection ids, score = created_at epoch
tags:all                        sorted set    case-folded tag -> usage count
search:word:{word}              set           asset ids whose text contains word
"""

ASSETS_INDEX = "assets:index"
COLLECTIONS_INDEX = "collections:index"
TAGS_ALL = "tags:all"


def asset_key(asset_id: str) -> str:
    return f"asset:{asset_id}"


def collection_key(collection_id: str) -> str:
    return f"collection:{collection_id}"


def collection_members_key(collection_id: str) -> str:
    return f"assets:by-collection:{collection_id}"


def search_word_key(word: str) -> str:
    return f"search:word:{word}"
