"""
Collections — controller layer.

Maps service results (None / False / MembershipOutcome) to HTTP errors and
response envelopes.
"""
from __future__ import annotations

from typing import TYPE_CHECKING

from openmam.asset.schemas import OkResponse
from openmam.collection import service
from openmam.collection.constants import MembershipOutcome
from openmam.collection.schemas import (
    CollectionCreateRequest,
    CollectionEnvelope,
    CollectionListResponse,
    CollectionResponse,
    CollectionUpdateRequest,
    MembershipResponse,
)
from openmam.exceptions import AssetNotFound, CollectionNotFound, InvalidRequest

if TYPE_CHECKING:
    from openmam.tenancy import TenantHandles


def _membership_response(outcome: MembershipOutcome) -> MembershipResponse:
    if outcome == MembershipOutcome.COLLECTION_NOT_FOUND:
        raise CollectionNotFound()
    if outcome == MembershipOutcome.ASSET_NOT_FOUND:
        raise AssetNotFound()
    return MembershipResponse(outcome=outcome)


async def list_collections(tenant: TenantHandles) -> CollectionListResponse:
    collections = await service.list_collections(tenant.redis)
    return CollectionListResponse(
        collections=[CollectionResponse.model_validate(c) for c in collections],
    )


async def create_collection(
    request: CollectionCreateRequest,
    tenant: TenantHandles,
) -> CollectionEnvelope:
    collection = await service.create_collection(tenant.redis, request.name, request.description)
    return CollectionEnvelope(collection=CollectionResponse.model_validate(collection))


async def get_collection(collection_id: str, tenant: TenantHandles) -> CollectionEnvelope:
    collection = await service.get_collection(tenant.redis, collection_id)
    if collection is None:
        raise CollectionNotFound()
    return CollectionEnvelope(collection=CollectionResponse.model_validate(collection))


async def update_collection(
    collection_id: str,
    request: CollectionUpdateRequest,
    tenant: TenantHandles,
) -> CollectionEnvelope:
    updates = request.model_dump(exclude_unset=True)
    if "name" in updates and updates["name"] is None:
        raise InvalidRequest("name cannot be null")
    if updates.get("description", "") is None:
        updates["description"] = ""

    if await service.get_collection(tenant.redis, collection_id) is None:
        raise CollectionNotFound()
    cover = updates.get("cover_asset_id")
    if cover is not None and not await service.is_member(tenant.redis, collection_id, cover):
        raise InvalidRequest("Cover asset must be a member of the collection")

    collection = await service.update_collection(tenant.redis, collection_id, updates)
    if collection is None:
        raise CollectionNotFound()
    return CollectionEnvelope(collection=CollectionResponse.model_validate(collection))


async def delete_collection(collection_id: str, tenant: TenantHandles) -> OkResponse:
    if not await service.delete_collection(tenant.redis, collection_id):
        raise CollectionNotFound()
    return OkResponse()


async def add_asset(collection_id: str, asset_id: str, tenant: TenantHandles) -> MembershipResponse:
    outcome = await service.add_asset_to_collection(tenant.redis, collection_id, asset_id)
    return _membership_response(outcome)


async def remove_asset(collection_id: str, asset_id: str, tenant: TenantHandles) -> MembershipResponse:
    outcome = await service.remove_asset_from_collection(tenant.redis, collection_id, asset_id)
    return _membership_response(outcome)
