"""
Asset document model.

Assets live in the tenant's Redis as JSON under ``asset:{id}``. The original
blob and derived artifacts live in object storage; this record tracks their
keys and the proxy generation state.
"""
from __future__ import annotations

import logging
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from openmam.asset.constants import VIDEO_MIME_PREFIX, ProxyStatus

logger = logging.getLogger(__name__)


class AssetFields(BaseModel):
    """Caller-supplied asset attributes (everything but id and timestamps)."""
    model_config = ConfigDict(extra="ignore")

    filename: str
    mime_type: str
    file_size: int = Field(default=0, ge=0)
    duration: float | None = None
    resolution: str | None = None
    codec: str | None = None
    title: str = ""
    description: str = ""
    tags: list[str] = Field(default_factory=list)
    custom_meta: dict[str, str] = Field(default_factory=dict)
    storage_key: str
    proxy_key: str | None = None
    thumbnail_key: str | None = None
    poster_key: str | None = None
    proxy_status: ProxyStatus = ProxyStatus.PENDING
    collections: list[str] = Field(default_factory=list)

    @field_validator("collections")
    @classmethod
    def _unique_collections(cls, value: list[str]) -> list[str]:
        return list(dict.fromkeys(value))

    @property
    def is_video(self) -> bool:
        return self.mime_type.lower().startswith(VIDEO_MIME_PREFIX)


class Asset(AssetFields):
    id: str
    created_at: datetime
    updated_at: datetime

    def __repr__(self) -> str:
        return f"<Asset {self.id} mime={self.mime_type} proxy={self.proxy_status.value}>"


def parse_asset(raw: str | None) -> Asset | None:
    """Decode a stored record; corrupt records are logged and treated as absent."""
    if not raw:
        return None
    try:
        return Asset.model_validate_json(raw)
    except ValidationError:
        logger.error("Failed to parse asset JSON")
        return None
