# app/api/wardrobe.py

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.database import get_db
from app.dependencies import get_current_user
from app.models.user import User
from app.models.wardrobe import WARDROBE_CATEGORIES, WardrobeItem
from app.services.dev_event_log import log_user_event

router = APIRouter(prefix="/wardrobe", tags=["Wardrobe"])

_CATEGORY_ALIASES: dict[str, str] = {
    "top": "tops",
    "bottom": "bottoms",
    "shoe": "shoes",
    "accessory": "accessories",
    "dress": "dresses",
}


def _wardrobe_item_to_dict(item: WardrobeItem) -> dict[str, Any]:
    return {
        "id": item.id,
        "name": item.name,
        "category": item.category,
        "subcategory": item.subcategory,
        "colors": item.colors or [],
        "tags": item.tags or [],
        "brand": item.brand,
        "image_url": item.image_url,
        "purchase_price": item.purchase_price,
        "total_wears": item.total_wears,
        "last_worn_at": item.last_worn_at,
        "average_rating": item.average_rating,
        "rating_count": item.rating_count,
        "compliments_received": item.compliments_received,
        "is_active": item.is_active,
        "created_at": item.created_at,
        "updated_at": item.updated_at,
    }


def _normalize_category(value: str) -> str:
    category = value.strip().lower()
    category = _CATEGORY_ALIASES.get(category, category)
    if category not in WARDROBE_CATEGORIES:
        raise HTTPException(
            status_code=422,
            detail=f"Invalid category. Allowed: {list(WARDROBE_CATEGORIES)}",
        )
    return category


def _normalize_labels(values: list[str] | None) -> list[str]:
    return [v.strip().lower() for v in (values or []) if v and v.strip()]


def _check_rating(value: float | None) -> None:
    if value is not None and not 0 <= value <= 5:
        raise HTTPException(status_code=422, detail="average_rating must be between 0 and 5.")


class WardrobeItemCreate(BaseModel):
    category: str
    name: str | None = None
    subcategory: str | None = None
    colors: list[str] = []
    tags: list[str] = []
    brand: str | None = None
    image_url: str | None = None
    purchase_price: float | None = None
    average_rating: float | None = None
    last_worn_at: datetime | None = None


class WardrobeItemUpdate(BaseModel):
    name: str | None = None
    category: str | None = None
    subcategory: str | None = None
    colors: list[str] | None = None
    tags: list[str] | None = None
    brand: str | None = None
    image_url: str | None = None
    purchase_price: float | None = None
    average_rating: float | None = None
    is_active: bool | None = None


@router.get("")
def list_wardrobe(
    include_inactive: bool = False,
    category: str | None = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    query = db.query(WardrobeItem).filter(WardrobeItem.user_id == current_user.id)
    if not include_inactive:
        query = query.filter(WardrobeItem.is_active.is_(True))
    if category:
        query = query.filter(WardrobeItem.category == _normalize_category(category))

    items = query.order_by(WardrobeItem.created_at.desc()).all()
    return {"count": len(items), "items": [_wardrobe_item_to_dict(i) for i in items]}


@router.post("")
def create_wardrobe_item(
    payload: WardrobeItemCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    _check_rating(payload.average_rating)
    item = WardrobeItem(
        user_id=current_user.id,
        name=payload.name,
        category=_normalize_category(payload.category),
        subcategory=payload.subcategory.strip().lower() if payload.subcategory else None,
        colors=_normalize_labels(payload.colors),
        tags=_normalize_labels(payload.tags),
        brand=payload.brand,
        image_url=payload.image_url,
        purchase_price=payload.purchase_price,
        average_rating=payload.average_rating or 0.0,
        rating_count=1 if payload.average_rating else 0,
        last_worn_at=payload.last_worn_at,
    )
    db.add(item)
    db.commit()
    db.refresh(item)
    log_user_event(
        user_id=current_user.id,
        event="wardrobe_create",
        meta={"item_id": str(item.id), "category": item.category},
    )
    return {"created": True, **_wardrobe_item_to_dict(item)}


@router.put("/{item_id}")
def update_wardrobe_item(
    item_id: UUID,
    payload: WardrobeItemUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    item = (
        db.query(WardrobeItem)
        .filter(
            WardrobeItem.id == item_id,
            WardrobeItem.user_id == current_user.id,
        )
        .first()
    )
    if not item:
        raise HTTPException(status_code=404, detail="Wardrobe item not found")

    updates = (
        payload.model_dump(exclude_unset=True)
        if hasattr(payload, "model_dump")
        else payload.dict(exclude_unset=True)
    )
    if not updates:
        raise HTTPException(status_code=400, detail="No fields provided to update")

    if updates.get("category") is not None:
        updates["category"] = _normalize_category(updates["category"])
    for key in ("colors", "tags"):
        if key in updates:
            updates[key] = _normalize_labels(updates[key])
    if "average_rating" in updates:
        _check_rating(updates["average_rating"])

    for field, value in updates.items():
        setattr(item, field, value)

    db.add(item)
    db.commit()
    db.refresh(item)
    log_user_event(
        user_id=current_user.id,
        event="wardrobe_update",
        meta={"item_id": str(item.id), "fields": sorted(list(updates.keys()))},
    )
    return _wardrobe_item_to_dict(item)


@router.delete("/{item_id}")
def delete_wardrobe_item(
    item_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    item = (
        db.query(WardrobeItem)
        .filter(
            WardrobeItem.id == item_id,
            WardrobeItem.user_id == current_user.id,
        )
        .first()
    )
    if not item:
        raise HTTPException(status_code=404, detail="Wardrobe item not found")

    item.is_active = False
    db.add(item)
    db.commit()
    log_user_event(
        user_id=current_user.id,
        event="wardrobe_soft_delete",
        meta={"item_id": str(item.id)},
    )
    return {"deleted": True, "id": item.id}
