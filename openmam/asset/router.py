"""
Media asset — HTTP routes.

All endpoints require the caller's platform token (Bearer).
"""
from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status

from openmam.asset import controller
from openmam.asset.constants import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE, AssetVariant, SortField, SortOrder
from openmam.asset.schemas import (
    AssetEnvelope,
    AssetListResponse,
    ConfirmUploadRequest,
    ConfirmUploadResponse,
    MetadataUpdateRequest,
    OkResponse,
    SearchResponse,
    SignedUrlResponse,
    TagListResponse,
    UploadUrlRequest,
    UploadUrlResponse,
)
from openmam.config import Settings
from openmam.dependencies import get_pipeline_queue, get_platform_token, get_settings, get_tenant
from openmam.task_queue import PipelineQueue
from openmam.tenancy import TenantHandles

router = APIRouter(tags=["assets"])


# ── Upload flow ──────────────────────────────────────────────────────────────

@router.post(
    "/assets/upload-url",
    response_model=UploadUrlResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Request a presigned upload URL",
    description=(
        "Creates a pending asset and returns a presigned PUT URL for uploading "
        "the original directly to object storage. After uploading, call "
        "POST /assets/{id}/confirm."
    ),
)
async def request_upload(
    request: UploadUrlRequest,
    tenant: TenantHandles = Depends(get_tenant),
    settings: Settings = Depends(get_settings),
) -> UploadUrlResponse:
    return await controller.request_upload(request, tenant, settings)


@router.post(
    "/assets/{asset_id}/confirm",
    response_model=ConfirmUploadResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Confirm upload and generate derived artifacts",
)
async def confirm_upload(
    asset_id: str,
    background_tasks: BackgroundTasks,
    request: ConfirmUploadRequest | None = None,
    tenant: TenantHandles = Depends(get_tenant),
    token: str = Depends(get_platform_token),
    settings: Settings = Depends(get_settings),
    queue: PipelineQueue | None = Depends(get_pipeline_queue),
) -> ConfirmUploadResponse:
    return await controller.confirm_upload(
        asset_id, request or ConfirmUploadRequest(), tenant, token, settings, background_tasks, queue,
    )


# ── Asset CRUD ───────────────────────────────────────────────────────────────

@router.get(
    "/assets",
    response_model=AssetListResponse,
    summary="List assets",
)
async def list_assets(
    page: int = Query(default=1, description="Clamped to at least 1"),
    limit: int = Query(default=DEFAULT_PAGE_SIZE, description=f"Clamped to 1..{MAX_PAGE_SIZE}"),
    sort: SortField = Query(default=SortField.CREATED_AT),
    order: SortOrder = Query(default=SortOrder.DESC),
    type_filter: str | None = Query(default=None, alias="type", description="MIME prefix, e.g. video/ or image"),
    collection: str | None = Query(default=None, description="Only assets in this collection"),
    tenant: TenantHandles = Depends(get_tenant),
) -> AssetListResponse:
    return await controller.list_assets(
        tenant,
        page=page,
        limit=limit,
        sort=sort,
        order=order,
        type_filter=type_filter,
        collection_id=collection,
    )


@router.get("/assets/{asset_id}", response_model=AssetEnvelope, summary="Get asset details")
async def get_asset(
    asset_id: str,
    tenant: TenantHandles = Depends(get_tenant),
) -> AssetEnvelope:
    return await controller.get_asset(asset_id, tenant)


@router.put(
    "/assets/{asset_id}/metadata",
    response_model=AssetEnvelope,
    summary="Update asset metadata",
)
async def update_metadata(
    asset_id: str,
    request: MetadataUpdateRequest,
    tenant: TenantHandles = Depends(get_tenant),
) -> AssetEnvelope:
    return await controller.update_metadata(asset_id, request, tenant)


@router.delete(
    "/assets/{asset_id}",
    response_model=OkResponse,
    summary="Delete an asset",
    description="Removes the asset record, its index entries and every stored rendition.",
)
async def delete_asset(
    asset_id: str,
    tenant: TenantHandles = Depends(get_tenant),
) -> OkResponse:
    return await controller.delete_asset(asset_id, tenant)


@router.get(
    "/assets/{asset_id}/url",
    response_model=SignedUrlResponse,
    summary="Get signed download URL",
)
async def get_asset_url(
    asset_id: str,
    variant: AssetVariant = Query(default=AssetVariant.ORIGINAL),
    tenant: TenantHandles = Depends(get_tenant),
    settings: Settings = Depends(get_settings),
) -> SignedUrlResponse:
    return await controller.get_asset_url(asset_id, variant, tenant, settings)


# ── Search & tags ────────────────────────────────────────────────────────────

@router.get("/search", response_model=SearchResponse, summary="Full-text asset search")
async def search_assets(
    q: str = Query(min_length=1, max_length=500),
    page: int = Query(default=1, description="Clamped to at least 1"),
    limit: int = Query(default=DEFAULT_PAGE_SIZE, description=f"Clamped to 1..{MAX_PAGE_SIZE}"),
    type_filter: str | None = Query(default=None, alias="type"),
    tenant: TenantHandles = Depends(get_tenant),
) -> SearchResponse:
    return await controller.search_assets(q, tenant, page=page, limit=limit, type_filter=type_filter)


@router.get("/tags", response_model=TagListResponse, summary="Tags by usage")
async def list_tags(tenant: TenantHandles = Depends(get_tenant)) -> TagListResponse:
    return await controller.list_tags(tenant)
