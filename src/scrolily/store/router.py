"""Avatar item store endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from scrolily.auth.dependencies import get_current_user
from scrolily.database import get_session
from scrolily.db.models import User
from scrolily.store.schemas import (
    AvatarConfigRequest,
    AvatarConfigResponse,
    ClaimResponse,
    ItemActionRequest,
    OwnedItemResponse,
    PurchaseResponse,
    StoreResponse,
)
from scrolily.store.service import (
    claim_achievement_item,
    get_user_items,
    list_store_items,
    purchase_item,
    update_avatar_config,
)

router = APIRouter(prefix="/api/v1/store", tags=["Store"])


@router.get("/items", response_model=StoreResponse)
async def store_items(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> StoreResponse:
    return StoreResponse(**await list_store_items(db, user.id))


@router.get("/my-items", response_model=list[OwnedItemResponse])
async def my_items(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> list[OwnedItemResponse]:
    return [OwnedItemResponse(**item) for item in await get_user_items(db, user.id)]


@router.post("/purchase", response_model=PurchaseResponse)
async def purchase(
    body: ItemActionRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> PurchaseResponse:
    result = await purchase_item(db, user.id, body.item_key)
    await db.commit()
    return PurchaseResponse(**result)


@router.post("/claim", response_model=ClaimResponse)
async def claim(
    body: ItemActionRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> ClaimResponse:
    result = await claim_achievement_item(db, user.id, body.item_key)
    await db.commit()
    return ClaimResponse(**result)


@router.put("/avatar", response_model=AvatarConfigResponse)
async def save_avatar(
    body: AvatarConfigRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> AvatarConfigResponse:
    config = await update_avatar_config(db, user.id, body.config)
    await db.commit()
    return AvatarConfigResponse(avatar_config=config)
