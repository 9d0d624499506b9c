import os
import uuid

os.environ.setdefault("ENV_NAME", "development")

from collections.abc import AsyncGenerator
from typing import Any

import pytest
import pytest_asyncio
from fakeredis import FakeAsyncRedis, FakeServer

from openmam.asset import service as asset_service
from openmam.asset.models import AssetFields
from openmam.config import Settings
from openmam.platform.constants import FFMPEG_SERVICE_ID
from openmam.platform.exceptions import InstanceAlreadyExists, PlatformError
from openmam.platform.types import StorageCredentials


class FakePlatform:
    """
    In-memory stand-in for PlatformContext.

    FFmpeg job status is scripted per job-name prefix: ``job_statuses["proxy"]
    = ["Running", "Complete"]`` makes every proxy job report Running on the
    first poll and Complete from then on.
    """

    def __init__(self, account_key: str | None = None) -> None:
        self.account_key = account_key or uuid.uuid4().hex
        self.instances: dict[tuple[str, str], dict[str, Any]] = {}
        self.health: dict[tuple[str, str], list[str]] = {}
        self.ports: dict[tuple[str, str], list[dict[str, Any]]] = {}
        self.job_statuses: dict[str, list[str]] = {}
        self.create_errors: dict[str, list[Exception]] = {}
        self.created: list[tuple[str, dict[str, Any]]] = []
        self.removed: list[tuple[str, str]] = []
        self.fail_remove = False
        self._job_queues: dict[str, list[str]] = {}

    def _prefix_match(self, table: dict[str, Any], name: str) -> Any:
        for prefix, value in table.items():
            if name.startswith(prefix):
                return value
        return None

    async def create_instance(self, service_id: str, params: dict[str, Any]) -> dict[str, Any]:
        name = params["name"]
        errors = self._prefix_match(self.create_errors, name)
        if errors:
            raise errors.pop(0)
        if (service_id, name) in self.instances:
            raise InstanceAlreadyExists("exists", status_code=409)
        self.created.append((service_id, dict(params)))
        record = dict(params)
        if service_id == FFMPEG_SERVICE_ID:
            statuses = list(self._prefix_match(self.job_statuses, name) or ["Complete"])
            self._job_queues[name] = statuses
            record["status"] = "Running"
        self.instances[(service_id, name)] = record
        return dict(record)

    async def get_instance(self, service_id: str, name: str) -> dict[str, Any] | None:
        record = self.instances.get((service_id, name))
        if record is None:
            return None
        queue = self._job_queues.get(name)
        if queue:
            record["status"] = queue.pop(0) if len(queue) > 1 else queue[0]
        return dict(record)

    async def remove_instance(self, service_id: str, name: str) -> None:
        if self.fail_remove:
            raise PlatformError("remove failed", status_code=500)
        self.removed.append((service_id, name))
        self.instances.pop((service_id, name), None)

    async def get_instance_health(self, service_id: str, name: str) -> str:
        statuses = self.health.get((service_id, name))
        if not statuses:
            return "running"
        return statuses.pop(0) if len(statuses) > 1 else statuses[0]

    async def get_instance_ports(self, service_id: str, name: str) -> list[dict[str, Any]]:
        return self.ports.get((service_id, name), [])

    async def aclose(self) -> None:
        pass

    def jobs_created(self) -> list[str]:
        return [params["name"] for sid, params in self.created if sid == FFMPEG_SERVICE_ID]


@pytest_asyncio.fixture
async def redis() -> AsyncGenerator[FakeAsyncRedis, None]:
    client = FakeAsyncRedis(server=FakeServer(), decode_responses=True, encoding_errors="replace")
    yield client
    await client.flushall()
    await client.aclose()


@pytest.fixture
def platform() -> FakePlatform:
    return FakePlatform()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        env_name="development",
        job_max_wait_seconds=1.0,
        job_poll_interval_seconds=0.0,
        provision_base_delay_seconds=0.0,
        instance_ready_timeout_seconds=1.0,
    )


@pytest.fixture
def credentials() -> StorageCredentials:
    return StorageCredentials(
        endpoint="https://tenant-mamstorage.minio-minio.auto.prod.osaas.io",
        access_key_id="root",
        secret_access_key="secret",
        console_url="https://console.example",
    )


def make_fields(**overrides: Any) -> AssetFields:
    data: dict[str, Any] = {
        "filename": "clip.mp4",
        "mime_type": "video/mp4",
        "file_size": 1024,
        "storage_key": "originals/abc/clip.mp4",
    }
    data.update(overrides)
    return AssetFields(**data)


async def make_asset(redis, **overrides: Any):
    return await asset_service.create_asset(redis, make_fields(**overrides))
