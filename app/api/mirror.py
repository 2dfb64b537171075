# app/api/mirror.py

from __future__ import annotations

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.database import get_db
from app.dependencies import get_current_user
from app.models.user import User
from app.services import mirror
from app.services.dev_event_log import log_user_event
from app.services.error_handling import (
    NotificationSchedulingError,
    WardrobeUnavailableError,
    get_recovery_actions,
    get_user_friendly_error_message,
)
from app.services.notifications import schedule_feedback_prompt, serialize_notification
from app.services.preferences import get_notification_preferences

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/mirror", tags=["Mirror"])


def _get_outfit_or_404(db: Session, user_id: UUID, outfit_id: UUID):
    outfit = mirror.get_outfit(db, user_id, outfit_id)
    if not outfit:
        raise HTTPException(status_code=404, detail="Outfit recommendation not found")
    return outfit


@router.post("/daily")
def create_daily_recommendations(
    force: bool = False,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    try:
        daily = mirror.generate_daily_recommendations(db, current_user.id, force=force)
    except WardrobeUnavailableError:
        raise HTTPException(
            status_code=503,
            detail=get_user_friendly_error_message("network"),
        ) from None

    log_user_event(
        user_id=current_user.id,
        event="mirror_daily_generated",
        meta={
            "daily_recommendation_id": str(daily.id) if daily.id else None,
            "count": len(daily.recommendations),
            "cached": daily.cached,
            "weather": daily.weather.condition,
        },
    )
    return daily.to_public()


@router.get("/daily")
def get_daily_recommendations(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    daily = mirror.get_latest_recommendations(db, current_user.id)
    if not daily:
        raise HTTPException(status_code=404, detail="No recommendations generated yet")
    return daily.to_public()


@router.post("/outfits/{outfit_id}/wear")
def wear_outfit(
    outfit_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    outfit = _get_outfit_or_404(db, current_user.id, outfit_id)
    log = mirror.log_outfit_as_worn(db, outfit)

    prompt_id = None
    try:
        prefs = get_notification_preferences(db, current_user.id)
        prompt = schedule_feedback_prompt(db, current_user.id, outfit.id, tz_name=prefs.timezone)
        prompt_id = prompt.id
    except Exception:
        db.rollback()
        logger.exception("Could not schedule feedback prompt for outfit %s", outfit.id)

    log_user_event(
        user_id=current_user.id,
        event="mirror_outfit_worn",
        meta={"outfit_id": str(outfit.id), "items": len(log.item_ids)},
    )
    return {
        "created": True,
        "log_id": log.id,
        "worn_at": log.worn_at,
        "feedback_prompt_id": prompt_id,
    }


@router.post("/outfits/{outfit_id}/save")
def save_outfit(
    outfit_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    outfit = _get_outfit_or_404(db, current_user.id, outfit_id)
    favorite, created = mirror.save_outfit_to_favorites(db, outfit)
    log_user_event(
        user_id=current_user.id,
        event="mirror_outfit_saved" if created else "mirror_outfit_saved_duplicate",
        meta={"outfit_id": str(outfit.id)},
    )
    return {"created": created, "favorite_id": favorite.id}


@router.get("/outfits/{outfit_id}/share")
def share_outfit(
    outfit_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    outfit = _get_outfit_or_404(db, current_user.id, outfit_id)
    shareable = mirror.generate_shareable_outfit(outfit)
    return {"outfit_id": outfit.id, "item_ids": list(outfit.item_ids or []), **shareable}


@router.post("/schedule")
def schedule_next_session(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    try:
        notification = mirror.schedule_next_mirror_session(db, current_user.id)
    except NotificationSchedulingError:
        raise HTTPException(
            status_code=503,
            detail=get_user_friendly_error_message("notification"),
        ) from None
    return serialize_notification(notification)


@router.get("/errors/{context}")
def describe_error(context: str):
    return {
        "context": context,
        "message": get_user_friendly_error_message(context),
        "recovery_actions": get_recovery_actions(context),
    }
