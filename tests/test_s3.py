import re
from datetime import datetime, timezone

import pytest

from openmam import s3
from openmam.asset.constants import AssetVariant
from openmam.asset.models import Asset


def _asset(**overrides) -> Asset:
    now = datetime.now(timezone.utc)
    data = {
        "id": "a1",
        "filename": "clip.mp4",
        "mime_type": "video/mp4",
        "storage_key": "originals/0123abcd/clip.mp4",
        "created_at": now,
        "updated_at": now,
    }
    data.update(overrides)
    return Asset(**data)


def test_original_key_layout() -> None:
    key = s3.original_key("My Holiday (1).MOV")
    assert re.fullmatch(r"originals/[0-9a-f]{32}/My_Holiday_1_\.MOV", key)
    assert s3.original_key("a.mp4") != s3.original_key("a.mp4")


def test_original_key_strips_directories() -> None:
    key = s3.original_key("../../etc/passwd")
    assert key.startswith("originals/")
    assert key.endswith("/passwd")
    assert ".." not in key


def test_original_key_falls_back_for_empty_names() -> None:
    assert s3.original_key("...").endswith("/upload")


@pytest.mark.parametrize(
    "variant,expected",
    [
        (AssetVariant.PROXY, "proxies/a1/proxy.mp4"),
        (AssetVariant.THUMBNAIL, "thumbnails/a1/thumb.jpg"),
        (AssetVariant.POSTER, "posters/a1/poster.jpg"),
    ],
)
def test_derived_keys(variant: AssetVariant, expected: str) -> None:
    assert s3.derived_key("a1", variant) == expected


def test_derived_key_rejects_original() -> None:
    with pytest.raises(ValueError):
        s3.derived_key("a1", AssetVariant.ORIGINAL)


def test_s3_uri() -> None:
    assert s3.s3_uri("media-assets", "proxies/a1/proxy.mp4") == "s3://media-assets/proxies/a1/proxy.mp4"


@pytest.mark.parametrize(
    "key,category",
    [
        ("originals/x/clip.mp4", "originals"),
        ("proxies/a1/proxy.mp4", "proxies"),
        ("thumbnails/a1/thumb.jpg", "thumbnails"),
        ("posters/a1/poster.jpg", "posters"),
        ("exports/a1/edl.xml", "other"),
        ("loose-file.txt", "other"),
    ],
)
def test_categorise_key(key: str, category: str) -> None:
    assert s3.categorise_key(key) == category


def test_summarise_objects_groups_by_category() -> None:
    info = s3.summarise_objects(
        [
            s3.StoredObject("originals/x/a.mp4", 100),
            s3.StoredObject("originals/y/b.mp4", 50),
            s3.StoredObject("proxies/a/proxy.mp4", 20),
            s3.StoredObject("readme.txt", 1),
        ]
    )

    assert info.total_objects == 4
    assert info.total_size == 171
    assert info.by_category["originals"].count == 2
    assert info.by_category["originals"].size == 150
    assert info.by_category["proxies"].size == 20
    assert info.by_category["thumbnails"].count == 0
    assert info.by_category["other"].count == 1


def test_asset_prefixes_cover_original_and_derived() -> None:
    assert s3.asset_prefixes(_asset()) == [
        "originals/0123abcd/",
        "proxies/a1/",
        "thumbnails/a1/",
        "posters/a1/",
    ]


def test_asset_prefixes_for_foreign_storage_key() -> None:
    prefixes = s3.asset_prefixes(_asset(storage_key="imports/clip.mp4"))
    assert prefixes[0] == "imports/clip.mp4"


def test_variant_key() -> None:
    asset = _asset(proxy_key="proxies/a1/proxy.mp4")
    assert s3.variant_key(asset, AssetVariant.ORIGINAL) == asset.storage_key
    assert s3.variant_key(asset, AssetVariant.PROXY) == "proxies/a1/proxy.mp4"
    assert s3.variant_key(asset, AssetVariant.THUMBNAIL) is None
