"""
Storage status — HTTP routes.
"""
from __future__ import annotations

from fastapi import APIRouter, Depends

from openmam.config import Settings
from openmam.dependencies import get_settings, get_tenant
from openmam.storage import controller
from openmam.storage.schemas import StorageStatusResponse
from openmam.tenancy import TenantHandles

router = APIRouter(prefix="/storage", tags=["storage"])


@router.get(
    "/status",
    response_model=StorageStatusResponse,
    summary="Storage usage and health",
    description="Object counts and bytes per category (originals, proxies, thumbnails, posters, other).",
)
async def storage_status(
    tenant: TenantHandles = Depends(get_tenant),
    settings: Settings = Depends(get_settings),
) -> StorageStatusResponse:
    return await controller.get_storage_status(tenant, settings)
