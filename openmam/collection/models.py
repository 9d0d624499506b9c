"""
Collection document model.

Stored as JSON under ``collection:{id}``. ``asset_count`` is denormalized;
the authoritative membership is the ``assets:by-collection:{id}`` set.
"""
from __future__ import annotations

import logging
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, ValidationError

logger = logging.getLogger(__name__)


class Collection(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    name: str
    description: str = ""
    cover_asset_id: str | None = None
    asset_count: int = Field(default=0, ge=0)
    created_at: datetime
    updated_at: datetime

    def __repr__(self) -> str:
        return f"<Collection {self.id} name={self.name!r} assets={self.asset_count}>"


def parse_collection(raw: str | None) -> Collection | None:
    if not raw:
        return None
    try:
        return Collection.model_validate_json(raw)
    except ValidationError:
        logger.error("Failed to parse collection JSON")
        return None
