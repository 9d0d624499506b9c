import pytest

from conftest import FakePlatform, make_asset
from openmam.asset import service
from openmam.asset.constants import ProxyStatus
from openmam.asset.pipeline import proxy_command, run_derived_artifact_pipeline, thumbnail_command
from openmam.platform.constants import FFMPEG_SERVICE_ID
from openmam.platform.exceptions import PlatformError


async def _run(redis, platform, credentials, settings, **asset_fields):
    asset = await make_asset(redis, **asset_fields)
    status = await run_derived_artifact_pipeline(redis, platform, asset, credentials, settings)
    return status, await service.get_asset(redis, asset.id)


@pytest.mark.asyncio
async def test_non_video_is_marked_none_without_jobs(redis, platform, credentials, settings) -> None:
    status, stored = await _run(
        redis, platform, credentials, settings, mime_type="image/jpeg", filename="still.jpg",
    )

    assert status == ProxyStatus.NONE
    assert stored.proxy_status == ProxyStatus.NONE
    assert platform.jobs_created() == []


@pytest.mark.asyncio
async def test_video_gets_proxy_and_thumbnail(redis, platform: FakePlatform, credentials, settings) -> None:
    platform.job_statuses["proxy"] = ["Running", "Complete"]
    platform.job_statuses["thumb"] = ["Complete"]

    status, stored = await _run(redis, platform, credentials, settings)

    assert status == ProxyStatus.READY
    assert stored.proxy_status == ProxyStatus.READY
    assert stored.proxy_key == f"proxies/{stored.id}/proxy.mp4"
    assert stored.thumbnail_key == f"thumbnails/{stored.id}/thumb.jpg"

    names = platform.jobs_created()
    assert len(names) == 2
    assert names[0].startswith("proxy") and names[1].startswith("thumb")
    assert sorted(platform.removed) == sorted((FFMPEG_SERVICE_ID, n) for n in names)


@pytest.mark.asyncio
async def test_job_commands_read_and_write_the_bucket(redis, platform: FakePlatform, credentials, settings) -> None:
    status, stored = await _run(redis, platform, credentials, settings)
    assert status == ProxyStatus.READY

    proxy_args = platform.created[0][1]["cmdLineArgs"]
    assert f"s3://{settings.media_bucket}/{stored.storage_key}" in proxy_args
    assert f"s3://{settings.media_bucket}/proxies/{stored.id}/proxy.mp4" in proxy_args


@pytest.mark.asyncio
async def test_thumbnail_failure_still_ready(redis, platform: FakePlatform, credentials, settings) -> None:
    platform.job_statuses["proxy"] = ["Complete"]
    platform.job_statuses["thumb"] = ["Error"]

    status, stored = await _run(redis, platform, credentials, settings)

    assert status == ProxyStatus.READY
    assert stored.proxy_key is not None
    assert stored.thumbnail_key is None


@pytest.mark.asyncio
async def test_thumbnail_submit_error_still_ready(redis, platform: FakePlatform, credentials, settings) -> None:
    platform.create_errors["thumb"] = [PlatformError("quota")]

    status, stored = await _run(redis, platform, credentials, settings)

    assert status == ProxyStatus.READY
    assert stored.thumbnail_key is None


@pytest.mark.asyncio
async def test_proxy_failure_marks_failed(redis, platform: FakePlatform, credentials, settings) -> None:
    platform.job_statuses["proxy"] = ["Running", "Failed"]

    status, stored = await _run(redis, platform, credentials, settings)

    assert status == ProxyStatus.FAILED
    assert stored.proxy_status == ProxyStatus.FAILED
    assert stored.proxy_key is None
    assert stored.thumbnail_key is None
    assert len(platform.jobs_created()) == 1
    assert platform.removed == [(FFMPEG_SERVICE_ID, platform.jobs_created()[0])]


@pytest.mark.asyncio
async def test_proxy_timeout_marks_failed(redis, platform: FakePlatform, credentials, settings) -> None:
    platform.job_statuses["proxy"] = ["Running"]
    settings.job_max_wait_seconds = 0.05

    status, stored = await _run(redis, platform, credentials, settings)

    assert status == ProxyStatus.FAILED
    assert stored.proxy_key is None


@pytest.mark.asyncio
async def test_proxy_submit_error_marks_failed(redis, platform: FakePlatform, credentials, settings) -> None:
    platform.create_errors["proxy"] = [PlatformError("platform down")]

    status, stored = await _run(redis, platform, credentials, settings)

    assert status == ProxyStatus.FAILED
    assert stored.proxy_status == ProxyStatus.FAILED


@pytest.mark.asyncio
async def test_job_cleanup_failure_does_not_fail_pipeline(redis, platform: FakePlatform, credentials, settings) -> None:
    platform.fail_remove = True

    status, _ = await _run(redis, platform, credentials, settings)

    assert status == ProxyStatus.READY


@pytest.mark.asyncio
async def test_deleted_asset_does_not_crash_pipeline(redis, platform: FakePlatform, credentials, settings) -> None:
    asset = await make_asset(redis)
    await service.delete_asset(redis, asset.id)

    status = await run_derived_artifact_pipeline(redis, platform, asset, credentials, settings)

    assert status == ProxyStatus.READY
    assert await service.get_asset(redis, asset.id) is None


def test_commands_reference_input_and_output() -> None:
    proxy = proxy_command("s3://b/in.mov", "s3://b/out.mp4")
    assert proxy.startswith("-i s3://b/in.mov ")
    assert proxy.endswith("-y s3://b/out.mp4")
    assert "libx264" in proxy

    thumb = thumbnail_command("s3://b/in.mov", "s3://b/thumb.jpg")
    assert "-i s3://b/in.mov" in thumb
    assert "-frames:v 1" in thumb
    assert thumb.endswith("s3://b/thumb.jpg")
