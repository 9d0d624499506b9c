from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from conftest import FakePlatform
from openmam import s3
from openmam.dependencies import get_tenant
from openmam.main import create_app
from openmam.platform.constants import FFMPEG_SERVICE_ID
from openmam.task_queue import PipelineQueue
from openmam.tenancy import TenantHandles


@pytest.fixture
def deleted_blobs() -> list[str]:
    return []


@pytest.fixture
def app(redis, platform: FakePlatform, credentials, settings, monkeypatch, deleted_blobs) -> FastAPI:
    async def fake_put(creds, bucket, key, content_type, expiry_seconds=3600):
        return f"https://upload.test/{bucket}/{key}"

    async def fake_get(creds, bucket, key, expiry_seconds=3600):
        return f"https://download.test/{bucket}/{key}"

    async def fake_delete(creds, bucket, asset):
        deleted_blobs.append(asset.id)
        return 1

    async def fake_info(creds, bucket):
        return s3.summarise_objects(
            [s3.StoredObject("originals/x/a.mp4", 100), s3.StoredObject("proxies/a/proxy.mp4", 10)]
        )

    monkeypatch.setattr(s3, "generate_presigned_put_url", fake_put)
    monkeypatch.setattr(s3, "generate_presigned_get_url", fake_get)
    monkeypatch.setattr(s3, "delete_asset_objects", fake_delete)
    monkeypatch.setattr(s3, "get_storage_info", fake_info)

    app = create_app(settings)
    tenant = TenantHandles(redis=redis, platform=platform, storage=credentials, bucket=settings.media_bucket)
    app.dependency_overrides[get_tenant] = lambda: tenant
    return app


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport,
        base_url="http://test",
        headers={"Authorization": "Bearer pat-token"},
    ) as ac:
        yield ac


async def _upload(client: AsyncClient, **body) -> dict:
    payload = {"filename": "clip.mp4", "mime_type": "video/mp4", "file_size": 2048}
    payload.update(body)
    response = await client.post("/api/assets/upload-url", json=payload)
    assert response.status_code == 201, response.text
    return response.json()


async def _create_collection(client: AsyncClient, name: str = "Reel") -> str:
    response = await client.post("/api/collections", json={"name": name})
    assert response.status_code == 201
    return response.json()["collection"]["id"]


# ── Health / auth / errors ───────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_health(client: AsyncClient) -> None:
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "service": "openmam"}


@pytest.mark.asyncio
async def test_missing_token_is_401(settings) -> None:
    app = create_app(settings)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        response = await ac.get("/api/assets")

    assert response.status_code == 401
    body = response.json()
    assert "error" in body
    assert body["request_id"] == response.headers["X-Request-ID"]


@pytest.mark.asyncio
async def test_not_found_uses_error_envelope(client: AsyncClient) -> None:
    response = await client.get("/api/assets/missing", headers={"X-Request-ID": "req-1"})

    assert response.status_code == 404
    assert response.json() == {"error": "Asset not found.", "request_id": "req-1"}


@pytest.mark.asyncio
async def test_validation_error_uses_error_envelope(client: AsyncClient) -> None:
    response = await client.post("/api/assets/upload-url", json={"mime_type": "video/mp4"})

    assert response.status_code == 400
    assert "filename" in response.json()["error"]


# ── Upload flow ──────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_upload_url_creates_pending_asset(client: AsyncClient, settings) -> None:
    body = await _upload(client, tags=["Promo"])

    assert body["ok"] is True
    assert body["storage_key"].startswith("originals/")
    assert body["storage_key"].endswith("/clip.mp4")
    assert body["upload_url"] == f"https://upload.test/{settings.media_bucket}/{body['storage_key']}"
    assert body["expires_in"] == settings.s3_upload_expiry_seconds

    asset = (await client.get(f"/api/assets/{body['asset_id']}")).json()["asset"]
    assert asset["proxy_status"] == "pending"
    assert asset["title"] == "clip.mp4"
    assert asset["tags"] == ["Promo"]


@pytest.mark.asyncio
async def test_upload_with_unknown_collection_is_400(client: AsyncClient) -> None:
    response = await client.post(
        "/api/assets/upload-url",
        json={"filename": "a.mp4", "mime_type": "video/mp4", "collections": ["nope"]},
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_confirm_video_runs_pipeline(client: AsyncClient, platform: FakePlatform) -> None:
    asset_id = (await _upload(client))["asset_id"]

    response = await client.post(f"/api/assets/{asset_id}/confirm", json={"duration": 42.0})
    assert response.status_code == 202
    assert response.json()["scheduled"] is True

    asset = (await client.get(f"/api/assets/{asset_id}")).json()["asset"]
    assert asset["proxy_status"] == "ready"
    assert asset["duration"] == 42.0
    assert asset["proxy_key"] == f"proxies/{asset_id}/proxy.mp4"
    assert asset["thumbnail_key"] == f"thumbnails/{asset_id}/thumb.jpg"
    assert len([sid for sid, _ in platform.created if sid == FFMPEG_SERVICE_ID]) == 2


@pytest.mark.asyncio
async def test_confirm_non_video_marks_none(client: AsyncClient, platform: FakePlatform) -> None:
    asset_id = (await _upload(client, filename="still.png", mime_type="image/png"))["asset_id"]

    response = await client.post(f"/api/assets/{asset_id}/confirm")

    assert response.status_code == 202
    body = response.json()
    assert body["scheduled"] is False
    assert body["asset"]["proxy_status"] == "none"
    assert platform.created == []


@pytest.mark.asyncio
async def test_confirm_missing_asset_is_404(client: AsyncClient) -> None:
    response = await client.post("/api/assets/missing/confirm")
    assert response.status_code == 404


# ── Asset CRUD ───────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_list_assets_paginates(client: AsyncClient) -> None:
    for i in range(3):
        await _upload(client, filename=f"clip{i}.mp4")

    body = (await client.get("/api/assets", params={"limit": 2})).json()
    assert body["total"] == 3
    assert body["pages"] == 2
    assert len(body["assets"]) == 2


@pytest.mark.asyncio
async def test_list_assets_clamps_oversized_limit(client: AsyncClient) -> None:
    await _upload(client)

    response = await client.get("/api/assets", params={"limit": 200})

    assert response.status_code == 200
    body = response.json()
    assert body["limit"] == 100
    assert body["total"] == 1


@pytest.mark.asyncio
async def test_list_assets_clamps_page_below_one(client: AsyncClient) -> None:
    await _upload(client)

    response = await client.get("/api/assets", params={"page": 0, "limit": 0})

    assert response.status_code == 200
    body = response.json()
    assert body["page"] == 1
    assert body["limit"] == 1
    assert len(body["assets"]) == 1


@pytest.mark.asyncio
async def test_search_clamps_pagination(client: AsyncClient) -> None:
    await _upload(client, filename="harbour.mp4", title="Harbour sunrise")

    body = (await client.get("/api/search", params={"q": "harbour", "page": -3, "limit": 500})).json()

    assert body["page"] == 1
    assert body["limit"] == 100
    assert body["total"] == 1


@pytest.mark.asyncio
async def test_update_metadata(client: AsyncClient) -> None:
    asset_id = (await _upload(client))["asset_id"]

    response = await client.put(
        f"/api/assets/{asset_id}/metadata",
        json={"title": "Final cut", "tags": ["Final"], "custom_meta": {"client": "ACME"}},
    )

    assert response.status_code == 200
    asset = response.json()["asset"]
    assert asset["title"] == "Final cut"
    assert asset["custom_meta"] == {"client": "ACME"}
    assert asset["filename"] == "clip.mp4"


@pytest.mark.asyncio
async def test_update_metadata_rejects_null_title(client: AsyncClient) -> None:
    asset_id = (await _upload(client))["asset_id"]
    response = await client.put(f"/api/assets/{asset_id}/metadata", json={"title": None})
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_update_metadata_missing_asset(client: AsyncClient) -> None:
    response = await client.put("/api/assets/missing/metadata", json={"title": "x"})
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_delete_asset_removes_record_and_blobs(client: AsyncClient, deleted_blobs) -> None:
    asset_id = (await _upload(client))["asset_id"]

    response = await client.delete(f"/api/assets/{asset_id}")

    assert response.status_code == 200
    assert response.json() == {"ok": True}
    assert deleted_blobs == [asset_id]
    assert (await client.get(f"/api/assets/{asset_id}")).status_code == 404


@pytest.mark.asyncio
async def test_signed_url_per_variant(client: AsyncClient, settings) -> None:
    body = await _upload(client)
    asset_id = body["asset_id"]

    original = (await client.get(f"/api/assets/{asset_id}/url")).json()
    assert original["url"] == f"https://download.test/{settings.media_bucket}/{body['storage_key']}"
    assert original["variant"] == "original"

    response = await client.get(f"/api/assets/{asset_id}/url", params={"variant": "proxy"})
    assert response.status_code == 404

    response = await client.get(f"/api/assets/{asset_id}/url", params={"variant": "bogus"})
    assert response.status_code == 400


# ── Search & tags ────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_search_and_tags(client: AsyncClient) -> None:
    await _upload(client, title="Harbour at dawn", tags=["Boats"])
    await _upload(client, title="City at dawn", tags=["boats", "Traffic"])

    body = (await client.get("/api/search", params={"q": "DAWN harbour"})).json()
    assert body["total"] == 1
    assert body["results"][0]["title"] == "Harbour at dawn"

    body = (await client.get("/api/search", params={"q": "x"})).json()
    assert body["total"] == 0

    tags = (await client.get("/api/tags")).json()["tags"]
    assert tags[0] == {"tag": "boats", "count": 2}
    assert {"tag": "traffic", "count": 1} in tags


# ── Collections ──────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_collection_crud(client: AsyncClient) -> None:
    collection_id = await _create_collection(client, "Reel")

    listed = (await client.get("/api/collections")).json()["collections"]
    assert [c["id"] for c in listed] == [collection_id]

    response = await client.put(f"/api/collections/{collection_id}", json={"description": "Best of"})
    assert response.json()["collection"]["description"] == "Best of"
    assert response.json()["collection"]["name"] == "Reel"

    assert (await client.delete(f"/api/collections/{collection_id}")).status_code == 200
    assert (await client.get(f"/api/collections/{collection_id}")).status_code == 404
    assert (await client.delete(f"/api/collections/{collection_id}")).status_code == 404


@pytest.mark.asyncio
async def test_collection_membership(client: AsyncClient) -> None:
    collection_id = await _create_collection(client)
    asset_id = (await _upload(client))["asset_id"]

    added = await client.put(f"/api/collections/{collection_id}/assets/{asset_id}")
    assert added.json()["outcome"] == "added"
    again = await client.put(f"/api/collections/{collection_id}/assets/{asset_id}")
    assert again.json()["outcome"] == "unchanged"

    collection = (await client.get(f"/api/collections/{collection_id}")).json()["collection"]
    assert collection["asset_count"] == 1

    listed = (await client.get("/api/assets", params={"collection": collection_id})).json()
    assert [a["id"] for a in listed["assets"]] == [asset_id]

    removed = await client.delete(f"/api/collections/{collection_id}/assets/{asset_id}")
    assert removed.json()["outcome"] == "removed"

    missing = await client.put(f"/api/collections/{collection_id}/assets/nope")
    assert missing.status_code == 404
    missing = await client.put(f"/api/collections/nope/assets/{asset_id}")
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_cover_must_be_a_member(client: AsyncClient) -> None:
    collection_id = await _create_collection(client)
    asset_id = (await _upload(client))["asset_id"]

    response = await client.put(f"/api/collections/{collection_id}", json={"cover_asset_id": asset_id})
    assert response.status_code == 400

    await client.put(f"/api/collections/{collection_id}/assets/{asset_id}")
    response = await client.put(f"/api/collections/{collection_id}", json={"cover_asset_id": asset_id})
    assert response.status_code == 200
    assert response.json()["collection"]["cover_asset_id"] == asset_id


@pytest.mark.asyncio
async def test_update_missing_collection_is_404(client: AsyncClient) -> None:
    response = await client.put("/api/collections/nope", json={"name": "x"})
    assert response.status_code == 404


# ── Storage ──────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_storage_status(client: AsyncClient, settings) -> None:
    await _upload(client)

    body = (await client.get("/api/storage/status")).json()

    assert body["ok"] is True
    storage = body["storage"]
    assert storage["bucket"] == settings.media_bucket
    assert storage["used"] == 110
    assert storage["total_objects"] == 2
    assert storage["asset_count"] == 1
    assert storage["health"] == "running"
    assert storage["by_category"]["originals"] == {"count": 1, "size": 100}
    assert storage["by_category"]["other"] == {"count": 0, "size": 0}


# ── Pipeline queue ───────────────────────────────────────────────────────────

class RecordingQueue:
    def __init__(self, job_id: str | None = "job-1") -> None:
        self.job_id = job_id
        self.enqueued: list[tuple[str, str]] = []

    async def enqueue_pipeline(self, token: str, asset_id: str) -> str | None:
        self.enqueued.append((token, asset_id))
        return self.job_id


def test_queue_backend_creates_pipeline_queue(settings) -> None:
    settings.pipeline_backend = "queue"
    app = create_app(settings)

    assert isinstance(app.state.pipeline_queue, PipelineQueue)
    assert not app.state.pipeline_queue.connected


def test_inline_backend_has_no_pipeline_queue(settings) -> None:
    assert create_app(settings).state.pipeline_queue is None


@pytest.mark.asyncio
async def test_confirm_with_queue_enqueues(app: FastAPI, client: AsyncClient, platform: FakePlatform) -> None:
    queue = RecordingQueue()
    app.state.pipeline_queue = queue
    asset_id = (await _upload(client))["asset_id"]

    response = await client.post(f"/api/assets/{asset_id}/confirm")

    assert response.json()["scheduled"] is True
    assert queue.enqueued == [("pat-token", asset_id)]
    assert platform.created == []


@pytest.mark.asyncio
async def test_confirm_runs_inline_when_enqueue_fails(
    app: FastAPI, client: AsyncClient, platform: FakePlatform,
) -> None:
    app.state.pipeline_queue = RecordingQueue(job_id=None)
    asset_id = (await _upload(client))["asset_id"]

    response = await client.post(f"/api/assets/{asset_id}/confirm")

    assert response.json()["scheduled"] is True
    assert platform.created
    asset = (await client.get(f"/api/assets/{asset_id}")).json()["asset"]
    assert asset["proxy_status"] == "ready"
