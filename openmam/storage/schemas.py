"""
Storage status — response schemas.
"""
from __future__ import annotations

from pydantic import BaseModel


class CategoryUsageResponse(BaseModel):
    count: int
    size: int


class StorageStatus(BaseModel):
    bucket: str
    endpoint: str
    console_url: str
    health: str
    total_objects: int
    used: int
    asset_count: int
    by_category: dict[str, CategoryUsageResponse]


class StorageStatusResponse(BaseModel):
    ok: bool = True
    storage: StorageStatus
