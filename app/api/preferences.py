# app/api/preferences.py

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.database import get_db
from app.dependencies import get_current_user
from app.models.user import User
from app.services import preferences as preferences_service
from app.services.dev_event_log import log_user_event

router = APIRouter(prefix="/preferences", tags=["Preferences"])


def _updates(payload: BaseModel) -> dict[str, Any]:
    updates = (
        payload.model_dump(exclude_unset=True)
        if hasattr(payload, "model_dump")
        else payload.dict(exclude_unset=True)
    )
    if not updates:
        raise HTTPException(status_code=400, detail="No fields provided to update")
    return updates


class PreferencesUpdate(BaseModel):
    notification_time: str | None = None
    timezone: str | None = None
    enable_weekends: bool | None = None
    enable_quick_options: bool | None = None
    style_preferences: dict[str, Any] | None = None
    privacy_settings: dict[str, Any] | None = None


class NotificationPreferencesUpdate(BaseModel):
    preferred_time: str | None = None
    timezone: str | None = None
    enable_weekends: bool | None = None
    enable_quick_options: bool | None = None
    confidence_note_style: str | None = None


class PrivacySettingsUpdate(BaseModel):
    share_usage_data: bool | None = None
    allow_location_tracking: bool | None = None
    enable_social_features: bool | None = None
    data_retention_days: int | None = None


class TimezoneUpdate(BaseModel):
    timezone: str | None = None


class LocationUpdate(BaseModel):
    city: str | None = None
    latitude: float | None = None
    longitude: float | None = None


@router.get("")
def get_preferences(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    prefs = preferences_service.get_user_preferences(db, current_user.id)
    return preferences_service.serialize_preferences(prefs)


@router.put("")
def update_preferences(
    payload: PreferencesUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    updates = {k: v for k, v in _updates(payload).items() if v is not None}
    try:
        prefs = preferences_service.update_user_preferences(db, current_user.id, updates)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from None

    log_user_event(
        user_id=current_user.id,
        event="preferences_update",
        meta={"fields": sorted(updates.keys())},
    )
    return preferences_service.serialize_preferences(prefs)


@router.get("/notifications")
def get_notification_preferences(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return preferences_service.get_notification_preferences(db, current_user.id).to_public()


@router.put("/notifications")
def update_notification_preferences(
    payload: NotificationPreferencesUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    updates = _updates(payload)
    try:
        prefs = preferences_service.update_notification_preferences(db, current_user.id, updates)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from None

    log_user_event(
        user_id=current_user.id,
        event="notification_preferences_update",
        meta={"fields": sorted(updates.keys())},
    )
    return prefs.to_public()


@router.get("/privacy")
def get_privacy_settings(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return preferences_service.get_privacy_settings(db, current_user.id)


@router.put("/privacy")
def update_privacy_settings(
    payload: PrivacySettingsUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    updates = {k: v for k, v in _updates(payload).items() if v is not None}
    if updates.get("data_retention_days") is not None and updates["data_retention_days"] < 1:
        raise HTTPException(status_code=422, detail="data_retention_days must be positive.")

    settings = preferences_service.update_privacy_settings(db, current_user.id, updates)
    log_user_event(
        user_id=current_user.id,
        event="privacy_update",
        meta={"fields": sorted(updates.keys())},
    )
    return settings


@router.get("/location")
def get_location(current_user: User = Depends(get_current_user)):
    return preferences_service.serialize_location(current_user)


@router.put("/location")
def update_location(
    payload: LocationUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    try:
        location = preferences_service.update_home_location(
            db,
            current_user,
            city=payload.city,
            latitude=payload.latitude,
            longitude=payload.longitude,
        )
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from None

    log_user_event(
        user_id=current_user.id,
        event="location_update",
        meta={"location": location},
    )
    return location


@router.put("/timezone")
def change_timezone(
    payload: TimezoneUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    if not payload.timezone:
        raise HTTPException(status_code=400, detail="timezone is required")
    if not preferences_service.is_valid_timezone(payload.timezone):
        raise HTTPException(status_code=422, detail=f"Unknown timezone: {payload.timezone}")

    prefs = preferences_service.handle_timezone_change(db, current_user.id, payload.timezone)
    log_user_event(
        user_id=current_user.id,
        event="timezone_change",
        meta={"timezone": prefs.timezone},
    )
    return {"timezone": prefs.timezone}


@router.post("/timezone/detect")
def detect_timezone(
    payload: TimezoneUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    tz_name = preferences_service.detect_and_update_timezone(db, current_user.id, payload.timezone)
    return {"timezone": tz_name, "detected": tz_name == payload.timezone}


@router.get("/engagement")
def get_engagement(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    prefs = preferences_service.get_user_preferences(db, current_user.id)
    return preferences_service.serialize_preferences(prefs)["engagement_history"]


@router.post("/engagement/track")
def track_engagement(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    engagement = preferences_service.track_daily_engagement(db, current_user.id)
    if not engagement:
        raise HTTPException(status_code=503, detail="Could not record engagement right now")
    return engagement


@router.post("/sync")
def sync_preferences(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    prefs = preferences_service.sync_preferences(db, current_user.id)
    return preferences_service.serialize_preferences(prefs)
