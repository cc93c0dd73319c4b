"""Request/response schemas for the avatar item store."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class ItemResponse(BaseModel):
    item_key: str
    name: str
    description: str | None
    category: str
    rarity: str
    unlock_method: str
    talent_cost: int | None
    achievement_key: str | None


class StoreItemResponse(ItemResponse):
    owned: bool
    can_afford: bool
    can_claim: bool


class StoreResponse(BaseModel):
    talents: int
    items: list[StoreItemResponse]


class OwnedItemResponse(ItemResponse):
    acquired_via: str
    acquired_at: datetime


class ItemActionRequest(BaseModel):
    item_key: str = Field(..., min_length=1, max_length=64)


class PurchaseResponse(BaseModel):
    success: bool
    already_owned: bool
    talents_remaining: int
    item: ItemResponse


class ClaimResponse(BaseModel):
    success: bool
    already_owned: bool
    item: ItemResponse


class AvatarConfigRequest(BaseModel):
    config: dict[str, Any]


class AvatarConfigResponse(BaseModel):
    avatar_config: dict[str, Any]
