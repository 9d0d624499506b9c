"""
Media asset — Pydantic V2 request/response schemas.
"""
from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from openmam.asset.constants import AssetVariant, ProxyStatus


# ── Base ─────────────────────────────────────────────────────────────────────

class _Base(BaseModel):
    model_config = ConfigDict(
        str_strip_whitespace=True,
        extra="forbid",
    )


# ── Requests ─────────────────────────────────────────────────────────────────

class UploadUrlRequest(_Base):
    """Request a presigned PUT URL and register a pending asset."""
    filename: str = Field(min_length=1, max_length=255, description="Original filename with extension")
    mime_type: str = Field(min_length=3, max_length=100, description="MIME type (e.g. video/mp4)")
    file_size: int = Field(default=0, ge=0, description="Size in bytes, if known")
    title: str = Field(default="", max_length=500)
    description: str = Field(default="", max_length=5000)
    tags: list[str] = Field(default_factory=list, max_length=100)
    custom_meta: dict[str, str] = Field(default_factory=dict)
    collections: list[str] = Field(default_factory=list)


class ConfirmUploadRequest(_Base):
    """Technical metadata the client may know after uploading."""
    file_size: int | None = Field(default=None, ge=0)
    duration: float | None = Field(default=None, ge=0)
    resolution: str | None = Field(default=None, max_length=20)
    codec: str | None = Field(default=None, max_length=50)


class MetadataUpdateRequest(_Base):
    """Partial metadata update. Omitted fields are left unchanged."""
    title: str | None = Field(default=None, max_length=500)
    description: str | None = Field(default=None, max_length=5000)
    tags: list[str] | None = Field(default=None, max_length=100)
    custom_meta: dict[str, str] | None = None
    collections: list[str] | None = None
    duration: float | None = Field(default=None, ge=0)
    resolution: str | None = Field(default=None, max_length=20)
    codec: str | None = Field(default=None, max_length=50)


# ── Responses ────────────────────────────────────────────────────────────────

class AssetResponse(BaseModel):
    """Full asset record."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    filename: str
    mime_type: str
    file_size: int
    duration: float | None = None
    resolution: str | None = None
    codec: str | None = None
    title: str
    description: str
    tags: list[str]
    custom_meta: dict[str, str]
    storage_key: str
    proxy_key: str | None = None
    thumbnail_key: str | None = None
    poster_key: str | None = None
    proxy_status: ProxyStatus
    collections: list[str]
    created_at: datetime
    updated_at: datetime


class AssetEnvelope(BaseModel):
    ok: bool = True
    asset: AssetResponse


class UploadUrlResponse(BaseModel):
    ok: bool = True
    asset_id: str
    upload_url: str
    storage_key: str
    expires_in: int = Field(description="URL expiry in seconds")


class ConfirmUploadResponse(BaseModel):
    ok: bool = True
    asset: AssetResponse
    scheduled: bool = Field(description="Whether derived-artifact generation was scheduled")


class AssetListResponse(BaseModel):
    ok: bool = True
    assets: list[AssetResponse]
    total: int
    page: int
    limit: int
    pages: int


class SearchResponse(BaseModel):
    ok: bool = True
    results: list[AssetResponse]
    total: int
    page: int
    limit: int
    pages: int


class TagCount(BaseModel):
    tag: str
    count: int


class TagListResponse(BaseModel):
    ok: bool = True
    tags: list[TagCount]


class SignedUrlResponse(BaseModel):
    ok: bool = True
    url: str
    variant: AssetVariant
    expires_in: int


class OkResponse(BaseModel):
    ok: bool = True
