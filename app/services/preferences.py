from __future__ import annotations

import copy
import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Any, Mapping
from uuid import UUID
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy.orm import Session

from app.models.preferences import UserPreferences
from app.models.user import User
from app.services import notifications

logger = logging.getLogger(__name__)

DEFAULT_NOTIFICATION_TIME = "06:00"
DEFAULT_TIMEZONE = "UTC"
DEFAULT_NOTE_STYLE = "encouraging"
NOTE_STYLES = ("encouraging", "witty", "poetic", "friendly")

DEFAULT_PRIVACY_SETTINGS: dict[str, Any] = {
    "share_usage_data": False,
    "allow_location_tracking": True,
    "enable_social_features": True,
    "data_retention_days": 365,
}

DEFAULT_ENGAGEMENT_HISTORY: dict[str, Any] = {
    "total_days_active": 0,
    "streak_days": 0,
    "average_rating": 0,
    "last_active_date": None,
    "preferred_interaction_times": [DEFAULT_NOTIFICATION_TIME],
}


@dataclass(frozen=True)
class NotificationPreferences:
    preferred_time: str
    timezone: str
    enable_weekends: bool
    enable_quick_options: bool
    confidence_note_style: str

    def to_public(self) -> dict[str, Any]:
        return {
            "preferred_time": self.preferred_time,
            "timezone": self.timezone,
            "enable_weekends": self.enable_weekends,
            "enable_quick_options": self.enable_quick_options,
            "confidence_note_style": self.confidence_note_style,
        }


def default_notification_preferences() -> NotificationPreferences:
    return NotificationPreferences(
        preferred_time=DEFAULT_NOTIFICATION_TIME,
        timezone=DEFAULT_TIMEZONE,
        enable_weekends=True,
        enable_quick_options=True,
        confidence_note_style=DEFAULT_NOTE_STYLE,
    )


def is_valid_timezone(name: str | None) -> bool:
    if not name:
        return False
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        return False
    return True


def serialize_preferences(prefs: UserPreferences) -> dict[str, Any]:
    return {
        "user_id": prefs.user_id,
        "notification_time": prefs.notification_time,
        "timezone": prefs.timezone,
        "enable_weekends": prefs.enable_weekends,
        "enable_quick_options": prefs.enable_quick_options,
        "style_preferences": dict(prefs.style_preferences or {}),
        "privacy_settings": dict(prefs.privacy_settings or {}),
        "engagement_history": dict(prefs.engagement_history or {}),
        "created_at": prefs.created_at,
        "updated_at": prefs.updated_at,
    }


# -------------------------
# CORE
# -------------------------

def get_user_preferences(db: Session, user_id: UUID) -> UserPreferences:
    """Stored preferences, created with defaults on first access."""
    prefs = db.query(UserPreferences).filter(UserPreferences.user_id == user_id).first()
    if prefs:
        return prefs

    prefs = UserPreferences(
        user_id=user_id,
        notification_time=DEFAULT_NOTIFICATION_TIME,
        timezone=DEFAULT_TIMEZONE,
        enable_weekends=True,
        enable_quick_options=True,
        style_preferences={"confidence_note_style": DEFAULT_NOTE_STYLE},
        privacy_settings=dict(DEFAULT_PRIVACY_SETTINGS),
        engagement_history=copy.deepcopy(DEFAULT_ENGAGEMENT_HISTORY),
    )
    db.add(prefs)
    db.commit()
    db.refresh(prefs)
    logger.info("Created default preferences for user %s", user_id)
    return prefs


_UPDATABLE_FIELDS = (
    "notification_time",
    "timezone",
    "enable_weekends",
    "enable_quick_options",
    "style_preferences",
    "privacy_settings",
    "engagement_history",
)


def update_user_preferences(db: Session, user_id: UUID, updates: Mapping[str, Any]) -> UserPreferences:
    prefs = get_user_preferences(db, user_id)

    unknown = set(updates) - set(_UPDATABLE_FIELDS)
    if unknown:
        raise ValueError(f"Unknown preference fields: {sorted(unknown)}")
    if "timezone" in updates and not is_valid_timezone(updates["timezone"]):
        raise ValueError(f"Unknown timezone: {updates['timezone']}")
    if "notification_time" in updates:
        parse_notification_time(updates["notification_time"])

    for key, value in updates.items():
        # JSON columns are replaced wholesale so the change is detected.
        setattr(prefs, key, copy.deepcopy(value))
    db.commit()
    db.refresh(prefs)
    return prefs


def parse_notification_time(value: str) -> tuple[int, int]:
    try:
        hh, mm = str(value).split(":", 1)
        hour, minute = int(hh), int(mm)
    except ValueError:
        raise ValueError(f"Invalid notification time: {value!r}") from None
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        raise ValueError(f"Invalid notification time: {value!r}")
    return hour, minute


# -------------------------
# NOTIFICATIONS
# -------------------------

def get_notification_preferences(db: Session, user_id: UUID) -> NotificationPreferences:
    try:
        prefs = get_user_preferences(db, user_id)
    except Exception:
        logger.exception("Failed to load notification preferences for %s", user_id)
        return default_notification_preferences()

    style = (prefs.style_preferences or {}).get("confidence_note_style") or DEFAULT_NOTE_STYLE
    return NotificationPreferences(
        preferred_time=prefs.notification_time or DEFAULT_NOTIFICATION_TIME,
        timezone=prefs.timezone or DEFAULT_TIMEZONE,
        enable_weekends=bool(prefs.enable_weekends),
        enable_quick_options=bool(prefs.enable_quick_options),
        confidence_note_style=style,
    )


def update_notification_preferences(
    db: Session, user_id: UUID, changes: Mapping[str, Any]
) -> NotificationPreferences:
    prefs = get_user_preferences(db, user_id)
    updates: dict[str, Any] = {}

    if changes.get("preferred_time"):
        updates["notification_time"] = changes["preferred_time"]
    if changes.get("timezone"):
        updates["timezone"] = changes["timezone"]
    if changes.get("enable_weekends") is not None:
        updates["enable_weekends"] = bool(changes["enable_weekends"])
    if changes.get("enable_quick_options") is not None:
        updates["enable_quick_options"] = bool(changes["enable_quick_options"])

    style = changes.get("confidence_note_style")
    if style:
        if style not in NOTE_STYLES:
            raise ValueError(f"Invalid confidence note style: {style}")
        style_prefs = dict(prefs.style_preferences or {})
        style_prefs["confidence_note_style"] = style
        updates["style_preferences"] = style_prefs

    if updates:
        update_user_preferences(db, user_id, updates)
    return get_notification_preferences(db, user_id)


# -------------------------
# PRIVACY
# -------------------------

def get_privacy_settings(db: Session, user_id: UUID) -> dict[str, Any]:
    try:
        prefs = get_user_preferences(db, user_id)
    except Exception:
        logger.exception("Failed to load privacy settings for %s", user_id)
        return dict(DEFAULT_PRIVACY_SETTINGS)
    return {**DEFAULT_PRIVACY_SETTINGS, **(prefs.privacy_settings or {})}


def update_privacy_settings(db: Session, user_id: UUID, changes: Mapping[str, Any]) -> dict[str, Any]:
    merged = {**get_privacy_settings(db, user_id), **dict(changes)}
    update_user_preferences(db, user_id, {"privacy_settings": merged})
    return merged


# -------------------------
# TIMEZONE
# -------------------------

def detect_and_update_timezone(db: Session, user_id: UUID, detected: str | None = None) -> str:
    """Store the client-reported timezone; anything unrecognized becomes UTC."""
    tz_name = detected if is_valid_timezone(detected) else DEFAULT_TIMEZONE
    try:
        update_user_preferences(db, user_id, {"timezone": tz_name})
    except Exception:
        logger.exception("Failed to store detected timezone for %s", user_id)
        return DEFAULT_TIMEZONE
    logger.info("Updated timezone for user %s", user_id)
    return tz_name


def handle_timezone_change(db: Session, user_id: UUID, new_timezone: str) -> UserPreferences:
    prefs = update_user_preferences(db, user_id, {"timezone": new_timezone})
    try:
        notifications.handle_timezone_change(
            db, user_id, new_timezone, get_notification_preferences(db, user_id)
        )
    except Exception:
        # The timezone itself is saved; rescheduling can catch up later.
        logger.exception("Failed to reschedule notifications for %s", user_id)
    return prefs


# -------------------------
# ENGAGEMENT
# -------------------------

def _engagement(prefs: UserPreferences) -> dict[str, Any]:
    return {**copy.deepcopy(DEFAULT_ENGAGEMENT_HISTORY), **(prefs.engagement_history or {})}


def _parse_day(value: Any) -> date | None:
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return datetime.fromisoformat(str(value)).date()


def update_engagement_history(
    db: Session, user_id: UUID, changes: Mapping[str, Any], *, now: datetime | None = None
) -> dict[str, Any]:
    now = now or datetime.now(timezone.utc)
    prefs = get_user_preferences(db, user_id)
    engagement = {**_engagement(prefs), **dict(changes)}
    engagement["last_active_date"] = now.isoformat()
    update_user_preferences(db, user_id, {"engagement_history": engagement})
    return engagement


def track_daily_engagement(db: Session, user_id: UUID, *, now: datetime | None = None) -> dict[str, Any]:
    """Count a new active day once per calendar day and keep the streak going."""
    now = now or datetime.now(timezone.utc)
    try:
        prefs = get_user_preferences(db, user_id)
        engagement = _engagement(prefs)
        today = now.date()
        last_active = _parse_day(engagement.get("last_active_date"))

        if last_active == today:
            return engagement

        continues = last_active == today - timedelta(days=1)
        return update_engagement_history(
            db,
            user_id,
            {
                "total_days_active": int(engagement.get("total_days_active") or 0) + 1,
                "streak_days": int(engagement.get("streak_days") or 0) + 1 if continues else 1,
            },
            now=now,
        )
    except Exception:
        logger.exception("Failed to track daily engagement for %s", user_id)
        return {}


# -------------------------
# STYLE + SYNC
# -------------------------

def update_style_preferences(
    db: Session, user_id: UUID, changes: Mapping[str, Any], *, now: datetime | None = None
) -> dict[str, Any]:
    now = now or datetime.now(timezone.utc)
    prefs = get_user_preferences(db, user_id)
    style = {
        **(prefs.style_preferences or {}),
        **dict(changes),
        "user_id": str(user_id),
        "last_updated": now.isoformat(),
    }
    update_user_preferences(db, user_id, {"style_preferences": style})
    return style


def sync_preferences(db: Session, user_id: UUID) -> UserPreferences:
    """Re-read from the database, dropping anything the session holds."""
    db.expire_all()
    return get_user_preferences(db, user_id)


# -------------------------
# HOME LOCATION
# -------------------------

def serialize_location(user: User) -> dict[str, Any]:
    return {
        "city": user.home_city,
        "latitude": user.home_latitude,
        "longitude": user.home_longitude,
    }


def update_home_location(
    db: Session,
    user: User,
    *,
    city: str | None = None,
    latitude: float | None = None,
    longitude: float | None = None,
) -> dict[str, Any]:
    """Set or clear the home location used for weather lookups."""
    if (latitude is None) != (longitude is None):
        raise ValueError("Provide both latitude and longitude, or neither.")
    if latitude is not None and not (-90 <= latitude <= 90 and -180 <= longitude <= 180):
        raise ValueError("latitude/longitude out of range")

    user.home_city = city.strip() if city and city.strip() else None
    user.home_latitude = latitude
    user.home_longitude = longitude
    db.add(user)
    db.commit()
    db.refresh(user)
    return serialize_location(user)
