"""
Derived-artifact pipeline — proxy and thumbnail generation for video assets.

Runs detached from the request that triggered it (background task or ARQ
worker), so its only output is the asset's ``proxy_status``:

  non-video                         → none
  video: processing → proxy job ─┬─ complete → thumbnail job (best-effort) → ready
                                 └─ anything else                          → failed

Any unexpected error also ends in failed. The thumbnail is optional: when its
job fails the asset is still ready, just without ``thumbnail_key``. Job
instances are removed once their outcome is known.
"""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from openmam.asset import service
from openmam.asset.constants import AssetVariant, ProxyStatus
from openmam.platform import jobs
from openmam.platform.constants import JobState
from openmam.s3 import derived_key, s3_uri

if TYPE_CHECKING:
    from redis.asyncio import Redis

    from openmam.asset.models import Asset
    from openmam.config import Settings
    from openmam.platform.client import PlatformContext
    from openmam.platform.types import StorageCredentials

logger = logging.getLogger(__name__)

PROXY_HEIGHT = 720
THUMBNAIL_WIDTH = 640
THUMBNAIL_OFFSET = "00:00:01"


def proxy_command(source_uri: str, output_uri: str) -> str:
    """H.264/AAC MP4 at 720p with faststart, playable in any browser."""
    return (
        f"-i {source_uri} -c:v libx264 -preset fast -crf 28 "
        f"-vf scale=-2:{PROXY_HEIGHT} -c:a aac -b:a 128k "
        f"-movflags +faststart -y {output_uri}"
    )


def thumbnail_command(source_uri: str, output_uri: str) -> str:
    """Single JPEG frame one second in."""
    return (
        f"-ss {THUMBNAIL_OFFSET} -i {source_uri} -frames:v 1 "
        f"-vf scale={THUMBNAIL_WIDTH}:-2 -q:v 3 -y {output_uri}"
    )


async def _set_status(redis: Redis, asset_id: str, status: ProxyStatus, **fields: str) -> None:
    await service.update_asset(redis, asset_id, {"proxy_status": status, **fields})


async def _run_job(
    ctx: PlatformContext,
    name: str,
    command: str,
    credentials: StorageCredentials,
    settings: Settings,
) -> JobState:
    await jobs.create_job(ctx, name, command, credentials)
    return await jobs.poll_until_terminal(
        ctx,
        name,
        max_wait=settings.job_max_wait_seconds,
        interval=settings.job_poll_interval_seconds,
    )


async def _generate_thumbnail(
    ctx: PlatformContext,
    asset: Asset,
    job_name: str,
    credentials: StorageCredentials,
    settings: Settings,
) -> str | None:
    """Thumbnail key on success, None otherwise. Never raises."""
    key = derived_key(asset.id, AssetVariant.THUMBNAIL)
    command = thumbnail_command(
        s3_uri(settings.media_bucket, asset.storage_key),
        s3_uri(settings.media_bucket, key),
    )
    try:
        state = await _run_job(ctx, job_name, command, credentials, settings)
    except Exception:
        logger.exception("Thumbnail generation failed for asset %s", asset.id)
        return None
    if state != JobState.COMPLETE:
        logger.warning("Thumbnail job %s for asset %s ended %s", job_name, asset.id, state.value)
        return None
    return key


async def run_derived_artifact_pipeline(
    redis: Redis,
    ctx: PlatformContext,
    asset: Asset,
    credentials: StorageCredentials,
    settings: Settings,
) -> ProxyStatus:
    """Generate derived artifacts for ``asset`` and return its final proxy status."""
    try:
        if not asset.is_video:
            await _set_status(redis, asset.id, ProxyStatus.NONE)
            return ProxyStatus.NONE

        await _set_status(redis, asset.id, ProxyStatus.PROCESSING)

        proxy_job = jobs.generate_job_name("proxy")
        proxy_key = derived_key(asset.id, AssetVariant.PROXY)
        command = proxy_command(
            s3_uri(settings.media_bucket, asset.storage_key),
            s3_uri(settings.media_bucket, proxy_key),
        )
        logger.info("Starting proxy job %s for asset %s", proxy_job, asset.id)
        state = await _run_job(ctx, proxy_job, command, credentials, settings)

        if state != JobState.COMPLETE:
            logger.error("Proxy job %s for asset %s ended %s", proxy_job, asset.id, state.value)
            await jobs.remove_job(ctx, proxy_job)
            await _set_status(redis, asset.id, ProxyStatus.FAILED)
            return ProxyStatus.FAILED

        thumb_job = jobs.generate_job_name("thumb")
        thumbnail_key = await _generate_thumbnail(ctx, asset, thumb_job, credentials, settings)

        await jobs.remove_job(ctx, proxy_job)
        await jobs.remove_job(ctx, thumb_job)

        fields = {"proxy_key": proxy_key}
        if thumbnail_key:
            fields["thumbnail_key"] = thumbnail_key
        await _set_status(redis, asset.id, ProxyStatus.READY, **fields)
        logger.info("Derived artifacts ready for asset %s", asset.id)
        return ProxyStatus.READY

    except Exception:
        logger.exception("Derived artifact pipeline failed for asset %s", asset.id)
        try:
            await _set_status(redis, asset.id, ProxyStatus.FAILED)
        except Exception:
            logger.exception("Failed to record failed status for asset %s", asset.id)
        return ProxyStatus.FAILED
