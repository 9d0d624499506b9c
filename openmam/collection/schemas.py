"""
Collections — Pydantic V2 request/response schemas.
"""
from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from openmam.collection.constants import MembershipOutcome


class _Base(BaseModel):
    model_config = ConfigDict(
        str_strip_whitespace=True,
        extra="forbid",
    )


# ── Requests ─────────────────────────────────────────────────────────────────

class CollectionCreateRequest(_Base):
    name: str = Field(min_length=1, max_length=200)
    description: str = Field(default="", max_length=5000)


class CollectionUpdateRequest(_Base):
    """Partial update. Send ``cover_asset_id: null`` to clear the cover."""
    name: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=5000)
    cover_asset_id: str | None = None


# ── Responses ────────────────────────────────────────────────────────────────

class CollectionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    description: str
    cover_asset_id: str | None = None
    asset_count: int
    created_at: datetime
    updated_at: datetime


class CollectionEnvelope(BaseModel):
    ok: bool = True
    collection: CollectionResponse


class CollectionListResponse(BaseModel):
    ok: bool = True
    collections: list[CollectionResponse]


class MembershipResponse(BaseModel):
    ok: bool = True
    outcome: MembershipOutcome
