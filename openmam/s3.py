"""
Object storage utilities — S3-compatible access to a tenant's MinIO instance.

Object key layout inside the media bucket:

  originals/{upload_id}/{filename}    uploaded blob
  proxies/{asset_id}/proxy.mp4        browser-playable proxy
  thumbnails/{asset_id}/thumb.jpg     poster frame for listings
  posters/{asset_id}/poster.jpg       full-size poster

Upload flow:
  1. Client requests a presigned PUT URL from the API (asset is created pending).
  2. Client uploads the file directly to storage using the presigned URL.
  3. Client confirms; the API schedules the derived-artifact pipeline.

MinIO needs path-style addressing; the region is nominal.
"""
from __future__ import annotations

import logging
import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime

import aioboto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from openmam.asset.constants import AssetVariant
from openmam.asset.models import Asset
from openmam.exceptions import StorageUnavailable
from openmam.platform.types import StorageCredentials

logger = logging.getLogger(__name__)

_REGION = "us-east-1"
_DELETE_BATCH = 1000  # DeleteObjects limit

# Key prefixes by variant
_KEY_PREFIXES = {
    AssetVariant.ORIGINAL: "originals",
    AssetVariant.PROXY: "proxies",
    AssetVariant.THUMBNAIL: "thumbnails",
    AssetVariant.POSTER: "posters",
}

# Fixed object names for derived artifacts
_DERIVED_FILENAMES = {
    AssetVariant.PROXY: "proxy.mp4",
    AssetVariant.THUMBNAIL: "thumb.jpg",
    AssetVariant.POSTER: "poster.jpg",
}

STORAGE_CATEGORIES = ("originals", "proxies", "thumbnails", "posters", "other")

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


@dataclass(frozen=True, slots=True)
class StoredObject:
    key: str
    size: int
    last_modified: datetime | None = None


@dataclass(slots=True)
class CategoryUsage:
    count: int = 0
    size: int = 0


@dataclass(slots=True)
class StorageInfo:
    total_objects: int = 0
    total_size: int = 0
    by_category: dict[str, CategoryUsage] = field(
        default_factory=lambda: {c: CategoryUsage() for c in STORAGE_CATEGORIES}
    )


# ── Key helpers ──────────────────────────────────────────────────────────────

def _safe_filename(filename: str) -> str:
    name = filename.replace("\\", "/").rsplit("/", 1)[-1]
    name = _UNSAFE_FILENAME_CHARS.sub("_", name).strip("._")
    return name or "upload"


def original_key(filename: str) -> str:
    """Build a unique key for a new upload."""
    return f"{_KEY_PREFIXES[AssetVariant.ORIGINAL]}/{uuid.uuid4().hex}/{_safe_filename(filename)}"


def derived_key(asset_id: str, variant: AssetVariant) -> str:
    """Key of a derived artifact (proxy/thumbnail/poster) for an asset."""
    if variant == AssetVariant.ORIGINAL:
        raise ValueError("Originals are keyed by upload, not by asset")
    return f"{_KEY_PREFIXES[variant]}/{asset_id}/{_DERIVED_FILENAMES[variant]}"


def s3_uri(bucket: str, key: str) -> str:
    return f"s3://{bucket}/{key}"


def categorise_key(key: str) -> str:
    prefix = key.split("/", 1)[0]
    return prefix if prefix in STORAGE_CATEGORIES else "other"


def variant_key(asset: Asset, variant: AssetVariant) -> str | None:
    """The stored key for one of the asset's renditions, if it has one."""
    return {
        AssetVariant.ORIGINAL: asset.storage_key,
        AssetVariant.PROXY: asset.proxy_key,
        AssetVariant.THUMBNAIL: asset.thumbnail_key,
        AssetVariant.POSTER: asset.poster_key,
    }[variant]


# ── Client ───────────────────────────────────────────────────────────────────

def _s3_session(credentials: StorageCredentials) -> aioboto3.Session:
    return aioboto3.Session(
        aws_access_key_id=credentials.access_key_id,
        aws_secret_access_key=credentials.secret_access_key,
        region_name=_REGION,
    )


def _s3_client(credentials: StorageCredentials):
    return _s3_session(credentials).client(
        "s3",
        endpoint_url=credentials.endpoint,
        config=BotoConfig(signature_version="s3v4", s3={"addressing_style": "path"}),
    )


def _error_code(exc: ClientError) -> str:
    return exc.response.get("Error", {}).get("Code", "")


# ── Bucket ───────────────────────────────────────────────────────────────────

async def ensure_bucket(credentials: StorageCredentials, bucket: str) -> None:
    """Create the bucket if missing. Losing a creation race is not an error."""
    try:
        async with _s3_client(credentials) as s3:
            try:
                await s3.head_bucket(Bucket=bucket)
                return
            except ClientError as exc:
                if _error_code(exc) not in ("404", "NoSuchBucket", "NotFound"):
                    raise
            try:
                await s3.create_bucket(Bucket=bucket)
                logger.info("Created bucket %s", bucket)
            except ClientError as exc:
                if _error_code(exc) not in ("BucketAlreadyOwnedByYou", "BucketAlreadyExists"):
                    raise
    except (BotoCoreError, ClientError) as exc:
        logger.error("ensure_bucket failed for %s: %s", bucket, exc)
        raise StorageUnavailable()


# ── Presigned URLs ───────────────────────────────────────────────────────────

async def generate_presigned_put_url(
    credentials: StorageCredentials,
    bucket: str,
    key: str,
    content_type: str,
    expiry_seconds: int = 3600,
) -> str:
    try:
        async with _s3_client(credentials) as s3:
            url: str = await s3.generate_presigned_url(
                "put_object",
                Params={"Bucket": bucket, "Key": key, "ContentType": content_type},
                ExpiresIn=expiry_seconds,
            )
    except (BotoCoreError, ClientError):
        raise StorageUnavailable()
    return url


async def generate_presigned_get_url(
    credentials: StorageCredentials,
    bucket: str,
    key: str,
    expiry_seconds: int = 3600,
) -> str:
    try:
        async with _s3_client(credentials) as s3:
            url: str = await s3.generate_presigned_url(
                "get_object",
                Params={"Bucket": bucket, "Key": key},
                ExpiresIn=expiry_seconds,
            )
    except (BotoCoreError, ClientError):
        raise StorageUnavailable()
    return url


# ── Listing / deletion ───────────────────────────────────────────────────────

async def list_objects(
    credentials: StorageCredentials,
    bucket: str,
    prefix: str = "",
) -> list[StoredObject]:
    """Every object under ``prefix``, following continuation tokens."""
    objects: list[StoredObject] = []
    try:
        async with _s3_client(credentials) as s3:
            paginator = s3.get_paginator("list_objects_v2")
            async for page in paginator.paginate(Bucket=bucket, Prefix=prefix):
                for item in page.get("Contents", []):
                    objects.append(
                        StoredObject(
                            key=item["Key"],
                            size=int(item.get("Size", 0)),
                            last_modified=item.get("LastModified"),
                        )
                    )
    except (BotoCoreError, ClientError):
        raise StorageUnavailable()
    return objects


async def delete_prefix(credentials: StorageCredentials, bucket: str, prefix: str) -> int:
    """Delete every object under ``prefix``. Returns the number deleted."""
    keys = [obj.key for obj in await list_objects(credentials, bucket, prefix)]
    if not keys:
        return 0
    try:
        async with _s3_client(credentials) as s3:
            for start in range(0, len(keys), _DELETE_BATCH):
                batch = keys[start:start + _DELETE_BATCH]
                await s3.delete_objects(
                    Bucket=bucket,
                    Delete={"Objects": [{"Key": k} for k in batch], "Quiet": True},
                )
    except (BotoCoreError, ClientError):
        raise StorageUnavailable()
    logger.info("Deleted %d object(s) under %s", len(keys), prefix)
    return len(keys)


def asset_prefixes(asset: Asset) -> list[str]:
    """Every storage prefix that can hold a blob belonging to ``asset``."""
    prefixes = []
    original_dir, sep, _ = asset.storage_key.rpartition("/")
    if sep and original_dir.startswith(f"{_KEY_PREFIXES[AssetVariant.ORIGINAL]}/"):
        prefixes.append(f"{original_dir}/")
    else:
        prefixes.append(asset.storage_key)
    for variant in (AssetVariant.PROXY, AssetVariant.THUMBNAIL, AssetVariant.POSTER):
        prefixes.append(f"{_KEY_PREFIXES[variant]}/{asset.id}/")
    return prefixes


async def delete_asset_objects(credentials: StorageCredentials, bucket: str, asset: Asset) -> int:
    """Delete the original and all derived artifacts. Best-effort: never raises."""
    deleted = 0
    for prefix in asset_prefixes(asset):
        try:
            deleted += await delete_prefix(credentials, bucket, prefix)
        except StorageUnavailable:
            logger.error("Failed to delete objects under %s for asset %s", prefix, asset.id)
    return deleted


# ── Usage ────────────────────────────────────────────────────────────────────

def summarise_objects(objects: list[StoredObject]) -> StorageInfo:
    info = StorageInfo()
    for obj in objects:
        usage = info.by_category[categorise_key(obj.key)]
        usage.count += 1
        usage.size += obj.size
        info.total_objects += 1
        info.total_size += obj.size
    return info


async def get_storage_info(credentials: StorageCredentials, bucket: str) -> StorageInfo:
    return summarise_objects(await list_objects(credentials, bucket))
