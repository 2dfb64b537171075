# app/api/notifications.py

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.database import get_db
from app.dependencies import get_current_user
from app.models.user import User
from app.services import notifications
from app.services import preferences as preferences_service
from app.services.dev_event_log import log_user_event
from app.services.mirror import get_outfit

router = APIRouter(prefix="/notifications", tags=["Notifications"])

_STATUSES = {"scheduled", "sent", "cancelled", "pending"}


class FeedbackPromptCreate(BaseModel):
    outfit_id: UUID
    delay_hours: float = 3


class ReEngagementCreate(BaseModel):
    days_since_last_use: int


@router.get("")
def list_notifications(
    status: str | None = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    if status is not None and status not in _STATUSES:
        raise HTTPException(status_code=422, detail=f"Invalid status. Allowed: {sorted(_STATUSES)}")

    rows = notifications.list_scheduled_notifications(db, current_user.id, status=status)
    return {"count": len(rows), "notifications": [notifications.serialize_notification(n) for n in rows]}


@router.post("/feedback-prompt")
def create_feedback_prompt(
    payload: FeedbackPromptCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    if payload.delay_hours < 0:
        raise HTTPException(status_code=422, detail="delay_hours must not be negative.")
    if not get_outfit(db, current_user.id, payload.outfit_id):
        raise HTTPException(status_code=404, detail="Outfit recommendation not found")

    prefs = preferences_service.get_notification_preferences(db, current_user.id)
    row = notifications.schedule_feedback_prompt(
        db,
        current_user.id,
        payload.outfit_id,
        payload.delay_hours,
        tz_name=prefs.timezone,
    )
    log_user_event(
        user_id=current_user.id,
        event="notification_feedback_prompt",
        meta={"outfit_id": str(payload.outfit_id), "delay_hours": payload.delay_hours},
    )
    return {"created": True, **notifications.serialize_notification(row)}


@router.post("/re-engagement")
def create_re_engagement(
    payload: ReEngagementCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    if payload.days_since_last_use < 0:
        raise HTTPException(status_code=422, detail="days_since_last_use must not be negative.")

    row = notifications.send_re_engagement_message(db, current_user.id, payload.days_since_last_use)
    return {"created": True, **notifications.serialize_notification(row)}


@router.post("/cancel")
def cancel_notifications(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    count = notifications.cancel_scheduled_notifications(db, current_user.id)
    log_user_event(
        user_id=current_user.id,
        event="notifications_cancelled",
        meta={"count": count},
    )
    return {"cancelled": count}


@router.get("/optimal-time")
def get_optimal_time(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    prefs = preferences_service.get_user_preferences(db, current_user.id)
    engagement = preferences_service.serialize_preferences(prefs)["engagement_history"]
    return {"optimal_time": notifications.optimize_notification_timing(engagement)}
