"""
Collections — HTTP routes.
"""
from __future__ import annotations

from fastapi import APIRouter, Depends, status

from openmam.asset.schemas import OkResponse
from openmam.collection import controller
from openmam.collection.schemas import (
    CollectionCreateRequest,
    CollectionEnvelope,
    CollectionListResponse,
    CollectionUpdateRequest,
    MembershipResponse,
)
from openmam.dependencies import get_tenant
from openmam.tenancy import TenantHandles

router = APIRouter(prefix="/collections", tags=["collections"])


@router.get("", response_model=CollectionListResponse, summary="List collections (newest first)")
async def list_collections(tenant: TenantHandles = Depends(get_tenant)) -> CollectionListResponse:
    return await controller.list_collections(tenant)


@router.post(
    "",
    response_model=CollectionEnvelope,
    status_code=status.HTTP_201_CREATED,
    summary="Create a collection",
)
async def create_collection(
    request: CollectionCreateRequest,
    tenant: TenantHandles = Depends(get_tenant),
) -> CollectionEnvelope:
    return await controller.create_collection(request, tenant)


@router.get("/{collection_id}", response_model=CollectionEnvelope, summary="Get a collection")
async def get_collection(
    collection_id: str,
    tenant: TenantHandles = Depends(get_tenant),
) -> CollectionEnvelope:
    return await controller.get_collection(collection_id, tenant)


@router.put("/{collection_id}", response_model=CollectionEnvelope, summary="Update a collection")
async def update_collection(
    collection_id: str,
    request: CollectionUpdateRequest,
    tenant: TenantHandles = Depends(get_tenant),
) -> CollectionEnvelope:
    return await controller.update_collection(collection_id, request, tenant)


@router.delete(
    "/{collection_id}",
    response_model=OkResponse,
    summary="Delete a collection",
    description="Member assets are kept; only their membership is removed.",
)
async def delete_collection(
    collection_id: str,
    tenant: TenantHandles = Depends(get_tenant),
) -> OkResponse:
    return await controller.delete_collection(collection_id, tenant)


@router.put(
    "/{collection_id}/assets/{asset_id}",
    response_model=MembershipResponse,
    summary="Add an asset to a collection",
)
async def add_asset(
    collection_id: str,
    asset_id: str,
    tenant: TenantHandles = Depends(get_tenant),
) -> MembershipResponse:
    return await controller.add_asset(collection_id, asset_id, tenant)


@router.delete(
    "/{collection_id}/assets/{asset_id}",
    response_model=MembershipResponse,
    summary="Remove an asset from a collection",
)
async def remove_asset(
    collection_id: str,
    asset_id: str,
    tenant: TenantHandles = Depends(get_tenant),
) -> MembershipResponse:
    return await controller.remove_asset(collection_id, asset_id, tenant)
