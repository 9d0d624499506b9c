"""
Storage status — usage by category, asset count and instance health.
"""
from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from openmam import s3
from openmam.asset import service as asset_service
from openmam.platform import instances
from openmam.platform.constants import InstanceKind
from openmam.storage.schemas import CategoryUsageResponse, StorageStatus, StorageStatusResponse

if TYPE_CHECKING:
    from openmam.config import Settings
    from openmam.tenancy import TenantHandles


async def get_storage_status(tenant: TenantHandles, settings: Settings) -> StorageStatusResponse:
    info, asset_count, health = await asyncio.gather(
        s3.get_storage_info(tenant.storage, tenant.bucket),
        asset_service.count_assets(tenant.redis),
        instances.get_instance_health(tenant.platform, InstanceKind.STORAGE, settings.storage_instance_name),
    )
    return StorageStatusResponse(
        storage=StorageStatus(
            bucket=tenant.bucket,
            endpoint=tenant.storage.endpoint,
            console_url=tenant.storage.console_url,
            health=health,
            total_objects=info.total_objects,
            used=info.total_size,
            asset_count=asset_count,
            by_category={
                name: CategoryUsageResponse(count=usage.count, size=usage.size)
                for name, usage in info.by_category.items()
            },
        )
    )
