"""
Media asset — controller layer.

Receives validated input from router, calls service functions, composes
the response. Thin glue layer between HTTP and business logic.
"""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from openmam import s3
from openmam.asset import service
from openmam.asset.constants import AssetVariant, ProxyStatus, SortField, SortOrder
from openmam.asset.models import AssetFields
from openmam.asset.pipeline import run_derived_artifact_pipeline
from openmam.asset.schemas import (
    AssetEnvelope,
    AssetListResponse,
    AssetResponse,
    ConfirmUploadRequest,
    ConfirmUploadResponse,
    MetadataUpdateRequest,
    OkResponse,
    SearchResponse,
    SignedUrlResponse,
    TagCount,
    TagListResponse,
    UploadUrlRequest,
    UploadUrlResponse,
)
from openmam.collection.service import get_collection
from openmam.exceptions import AssetNotFound, InvalidRequest, VariantNotAvailable
from openmam.pagination import clamp_page, page_count

if TYPE_CHECKING:
    from fastapi import BackgroundTasks
    from redis.asyncio import Redis

    from openmam.asset.models import Asset
    from openmam.config import Settings
    from openmam.task_queue import PipelineQueue
    from openmam.tenancy import TenantHandles

logger = logging.getLogger(__name__)


async def _require_collections(redis: Redis, collection_ids: list[str]) -> None:
    for collection_id in dict.fromkeys(collection_ids):
        if await get_collection(redis, collection_id) is None:
            raise InvalidRequest(f"Unknown collection: {collection_id}")


async def _require_asset(redis: Redis, asset_id: str) -> Asset:
    asset = await service.get_asset(redis, asset_id)
    if asset is None:
        raise AssetNotFound()
    return asset


# ── Upload flow ──────────────────────────────────────────────────────────────

async def request_upload(
    request: UploadUrlRequest,
    tenant: TenantHandles,
    settings: Settings,
) -> UploadUrlResponse:
    """Generate a presigned PUT URL and create a pending asset record."""
    await _require_collections(tenant.redis, request.collections)

    storage_key = s3.original_key(request.filename)
    upload_url = await s3.generate_presigned_put_url(
        tenant.storage,
        tenant.bucket,
        storage_key,
        request.mime_type,
        settings.s3_upload_expiry_seconds,
    )

    asset = await service.create_asset(
        tenant.redis,
        AssetFields(
            filename=request.filename,
            mime_type=request.mime_type,
            file_size=request.file_size,
            title=request.title or request.filename,
            description=request.description,
            tags=request.tags,
            custom_meta=request.custom_meta,
            collections=request.collections,
            storage_key=storage_key,
        ),
    )

    return UploadUrlResponse(
        asset_id=asset.id,
        upload_url=upload_url,
        storage_key=storage_key,
        expires_in=settings.s3_upload_expiry_seconds,
    )


async def confirm_upload(
    asset_id: str,
    request: ConfirmUploadRequest,
    tenant: TenantHandles,
    token: str,
    settings: Settings,
    background_tasks: BackgroundTasks,
    queue: PipelineQueue | None = None,
) -> ConfirmUploadResponse:
    """
    Record technical metadata and start derived-artifact generation.

    Non-video assets are marked ``none`` right away. Video assets are handed
    to the pipeline (the ARQ worker when a queue is configured, otherwise a
    background task) and the response returns immediately.
    """
    asset = await _require_asset(tenant.redis, asset_id)

    updates = request.model_dump(exclude_none=True)
    if updates:
        asset = await service.update_asset(tenant.redis, asset_id, updates) or asset

    if not asset.is_video:
        await run_derived_artifact_pipeline(tenant.redis, tenant.platform, asset, tenant.storage, settings)
        asset = await _require_asset(tenant.redis, asset_id)
        return ConfirmUploadResponse(asset=AssetResponse.model_validate(asset), scheduled=False)

    if asset.proxy_status == ProxyStatus.PROCESSING:
        return ConfirmUploadResponse(asset=AssetResponse.model_validate(asset), scheduled=False)

    job_id = None
    if queue is not None:
        job_id = await queue.enqueue_pipeline(token, asset_id)
        if job_id is None:
            logger.warning("Queue unavailable, running pipeline for %s in-process", asset_id)
    if job_id is None:
        background_tasks.add_task(
            run_derived_artifact_pipeline,
            tenant.redis,
            tenant.platform,
            asset,
            tenant.storage,
            settings,
        )

    return ConfirmUploadResponse(asset=AssetResponse.model_validate(asset), scheduled=True)


# ── Asset CRUD ───────────────────────────────────────────────────────────────

async def list_assets(
    tenant: TenantHandles,
    *,
    page: int,
    limit: int,
    sort: SortField,
    order: SortOrder,
    type_filter: str | None,
    collection_id: str | None,
) -> AssetListResponse:
    page, limit = clamp_page(page, limit)
    assets, total = await service.list_assets(
        tenant.redis,
        page=page,
        limit=limit,
        sort=sort,
        order=order,
        type_filter=type_filter,
        collection_id=collection_id,
    )
    return AssetListResponse(
        assets=[AssetResponse.model_validate(a) for a in assets],
        total=total,
        page=page,
        limit=limit,
        pages=page_count(total, limit),
    )


async def get_asset(asset_id: str, tenant: TenantHandles) -> AssetEnvelope:
    asset = await _require_asset(tenant.redis, asset_id)
    return AssetEnvelope(asset=AssetResponse.model_validate(asset))


async def update_metadata(
    asset_id: str,
    request: MetadataUpdateRequest,
    tenant: TenantHandles,
) -> AssetEnvelope:
    updates = request.model_dump(exclude_unset=True)
    for field in ("title", "description", "tags", "custom_meta", "collections"):
        if field in updates and updates[field] is None:
            raise InvalidRequest(f"{field} cannot be null")
    if "collections" in updates:
        await _require_collections(tenant.redis, updates["collections"])

    asset = await service.update_asset(tenant.redis, asset_id, updates)
    if asset is None:
        raise AssetNotFound()
    return AssetEnvelope(asset=AssetResponse.model_validate(asset))


async def delete_asset(asset_id: str, tenant: TenantHandles) -> OkResponse:
    """Delete metadata first, then every stored blob (best-effort)."""
    asset = await _require_asset(tenant.redis, asset_id)
    await service.delete_asset(tenant.redis, asset_id)
    await s3.delete_asset_objects(tenant.storage, tenant.bucket, asset)
    return OkResponse()


async def get_asset_url(
    asset_id: str,
    variant: AssetVariant,
    tenant: TenantHandles,
    settings: Settings,
) -> SignedUrlResponse:
    asset = await _require_asset(tenant.redis, asset_id)
    key = s3.variant_key(asset, variant)
    if not key:
        raise VariantNotAvailable(variant.value)
    url = await s3.generate_presigned_get_url(
        tenant.storage, tenant.bucket, key, settings.s3_download_expiry_seconds,
    )
    return SignedUrlResponse(url=url, variant=variant, expires_in=settings.s3_download_expiry_seconds)


# ── Search & tags ────────────────────────────────────────────────────────────

async def search_assets(
    query: str,
    tenant: TenantHandles,
    *,
    page: int,
    limit: int,
    type_filter: str | None,
) -> SearchResponse:
    page, limit = clamp_page(page, limit)
    assets, total = await service.search_assets(
        tenant.redis, query, page=page, limit=limit, type_filter=type_filter,
    )
    return SearchResponse(
        results=[AssetResponse.model_validate(a) for a in assets],
        total=total,
        page=page,
        limit=limit,
        pages=page_count(total, limit),
    )


async def list_tags(tenant: TenantHandles) -> TagListResponse:
    counts = await service.get_tag_counts(tenant.redis)
    return TagListResponse(tags=[TagCount(tag=tag, count=count) for tag, count in counts])
