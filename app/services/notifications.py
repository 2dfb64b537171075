from __future__ import annotations

import logging
from datetime import datetime, time, timedelta, timezone
from typing import Any, Mapping
from uuid import UUID
from zoneinfo import ZoneInfo

from sqlalchemy.orm import Session

from app.models.notification import ScheduledNotification
from app.services.context import to_utc
from app.services.error_handling import NotificationSchedulingError, execute_with_retry

logger = logging.getLogger(__name__)

DAILY_MIRROR = "daily_mirror"
FEEDBACK_PROMPT = "feedback_prompt"
RE_ENGAGEMENT = "re_engagement"

DAILY_TITLE = "Your AYNA Mirror is ready ✨"
DAILY_BODY = "3 confidence-building outfits await you. Start your day feeling ready for anything."
DAILY_URL = "aynamoda://ayna-mirror"

FEEDBACK_TITLE = "How did your outfit make you feel? 💫"
FEEDBACK_BODY = "Your feedback helps AYNA learn your style. It takes just 30 seconds."

DEFAULT_TIME = "06:00"


def _pref(prefs: Any, name: str, default: Any) -> Any:
    if isinstance(prefs, Mapping):
        value = prefs.get(name)
    else:
        value = getattr(prefs, name, None)
    return default if value is None else value


def _parse_hhmm(value: str) -> tuple[int, int]:
    hh, mm = str(value).split(":", 1)
    return int(hh), int(mm)


def serialize_notification(n: ScheduledNotification) -> dict[str, Any]:
    return {
        "id": n.id,
        "notification_type": n.notification_type,
        "scheduled_for": n.scheduled_for,
        "timezone": n.timezone,
        "title": n.title,
        "body": n.body,
        "payload": n.payload,
        "status": n.status,
        "created_at": n.created_at,
    }


def next_notification_time(
    preferred_time: str,
    tz_name: str,
    enable_weekends: bool,
    now: datetime | None = None,
) -> datetime:
    """
    Next occurrence of `preferred_time` in the user's timezone, returned in UTC.

    A time already passed today rolls to tomorrow; Saturday and Sunday are
    skipped when weekends are disabled.
    """
    tz = ZoneInfo(tz_name or "UTC")
    now = to_utc(now) if now else datetime.now(timezone.utc)
    local_now = now.astimezone(tz)
    hour, minute = _parse_hhmm(preferred_time)

    candidate = datetime.combine(local_now.date(), time(hour, minute), tzinfo=tz)
    if candidate <= local_now:
        candidate = datetime.combine(local_now.date() + timedelta(days=1), time(hour, minute), tzinfo=tz)

    if not enable_weekends:
        # weekday(): Saturday=5, Sunday=6
        while candidate.weekday() >= 5:
            candidate = datetime.combine(candidate.date() + timedelta(days=1), time(hour, minute), tzinfo=tz)

    return candidate.astimezone(timezone.utc)


def _store(
    db: Session,
    *,
    user_id: UUID,
    notification_type: str,
    scheduled_for: datetime,
    tz_name: str,
    title: str,
    body: str,
    payload: dict[str, Any],
    status: str = "scheduled",
) -> ScheduledNotification:
    row = ScheduledNotification(
        user_id=user_id,
        notification_type=notification_type,
        scheduled_for=scheduled_for,
        timezone=tz_name,
        title=title,
        body=body,
        payload=payload,
        status=status,
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


def _cancel_by_type(db: Session, user_id: UUID, notification_type: str | None = None) -> int:
    q = db.query(ScheduledNotification).filter(
        ScheduledNotification.user_id == user_id,
        ScheduledNotification.status.in_(("scheduled", "pending")),
    )
    if notification_type:
        q = q.filter(ScheduledNotification.notification_type == notification_type)
    rows = q.all()
    for row in rows:
        row.status = "cancelled"
    db.commit()
    return len(rows)


# -------------------------
# DAILY MIRROR
# -------------------------

def schedule_daily_mirror_notification(
    db: Session,
    user_id: UUID,
    prefs: Any,
    *,
    now: datetime | None = None,
) -> ScheduledNotification:
    tz_name = _pref(prefs, "timezone", "UTC")
    preferred_time = _pref(prefs, "preferred_time", DEFAULT_TIME)
    enable_weekends = bool(_pref(prefs, "enable_weekends", True))

    def _schedule() -> ScheduledNotification:
        try:
            _cancel_by_type(db, user_id, DAILY_MIRROR)
            when = next_notification_time(preferred_time, tz_name, enable_weekends, now=now)
        except Exception:
            db.rollback()
            raise
        return _store(
            db,
            user_id=user_id,
            notification_type=DAILY_MIRROR,
            scheduled_for=when,
            tz_name=tz_name,
            title=DAILY_TITLE,
            body=DAILY_BODY,
            payload={"type": DAILY_MIRROR, "user_id": str(user_id), "url": DAILY_URL},
        )

    try:
        row = execute_with_retry(
            _schedule, operation="schedule_daily_mirror_notification", max_retries=2
        )
    except Exception as exc:
        db.rollback()
        try:
            _store(
                db,
                user_id=user_id,
                notification_type=DAILY_MIRROR,
                scheduled_for=now or datetime.now(timezone.utc),
                tz_name=tz_name,
                title=DAILY_TITLE,
                body=DAILY_BODY,
                payload={"type": DAILY_MIRROR, "user_id": str(user_id), "url": DAILY_URL},
                status="pending",
            )
        except Exception:
            db.rollback()
            logger.exception("Could not record pending daily notification for %s", user_id)
        raise NotificationSchedulingError(str(exc)) from exc

    logger.info("Scheduled daily mirror for user %s at %s", user_id, row.scheduled_for)
    return row


# -------------------------
# FEEDBACK + RE-ENGAGEMENT
# -------------------------

def schedule_feedback_prompt(
    db: Session,
    user_id: UUID,
    outfit_id: UUID,
    delay_hours: float = 3,
    *,
    tz_name: str = "UTC",
    now: datetime | None = None,
) -> ScheduledNotification:
    now = to_utc(now) if now else datetime.now(timezone.utc)
    return _store(
        db,
        user_id=user_id,
        notification_type=FEEDBACK_PROMPT,
        scheduled_for=now + timedelta(hours=delay_hours),
        tz_name=tz_name,
        title=FEEDBACK_TITLE,
        body=FEEDBACK_BODY,
        payload={
            "type": FEEDBACK_PROMPT,
            "user_id": str(user_id),
            "outfit_id": str(outfit_id),
            "url": f"aynamoda://ayna-mirror?feedback={outfit_id}",
        },
    )


def re_engagement_message(days_since_last_use: int) -> tuple[str, str]:
    if days_since_last_use <= 3:
        return (
            "Your AYNA Mirror misses you ✨",
            "Ready to feel confident again? Your personalized outfits are waiting.",
        )
    if days_since_last_use <= 7:
        return (
            "Time to rediscover your style 🌟",
            "AYNA has learned new things about your wardrobe. Come see what's new!",
        )
    return (
        "Your confidence ritual awaits 💫",
        "Remember how good it felt to start your day with confidence? Let's bring that back.",
    )


def send_re_engagement_message(
    db: Session, user_id: UUID, days_since_last_use: int, *, now: datetime | None = None
) -> ScheduledNotification:
    """Re-engagement messages go out immediately, so they are stored as sent."""
    title, body = re_engagement_message(days_since_last_use)
    return _store(
        db,
        user_id=user_id,
        notification_type=RE_ENGAGEMENT,
        scheduled_for=to_utc(now) if now else datetime.now(timezone.utc),
        tz_name="UTC",
        title=title,
        body=body,
        payload={
            "type": RE_ENGAGEMENT,
            "user_id": str(user_id),
            "days_since_last_use": days_since_last_use,
        },
        status="sent",
    )


# -------------------------
# TIMING
# -------------------------

def optimize_notification_timing(engagement: Mapping[str, Any] | None) -> str:
    """Mean of the preferred interaction times as HH:MM."""
    try:
        times = list((engagement or {}).get("preferred_interaction_times") or [])
        if not times:
            return DEFAULT_TIME
        minutes = [h * 60 + m for h, m in (_parse_hhmm(t) for t in times)]
        average = sum(minutes) / len(minutes)
        return f"{int(average // 60):02d}:{int(average % 60):02d}"
    except Exception:
        logger.exception("Failed to optimize notification timing")
        return DEFAULT_TIME


def handle_timezone_change(
    db: Session, user_id: UUID, new_timezone: str, prefs: Any
) -> ScheduledNotification:
    updated = {
        "preferred_time": _pref(prefs, "preferred_time", DEFAULT_TIME),
        "timezone": new_timezone,
        "enable_weekends": _pref(prefs, "enable_weekends", True),
    }
    return schedule_daily_mirror_notification(db, user_id, updated)


def cancel_scheduled_notifications(db: Session, user_id: UUID) -> int:
    count = _cancel_by_type(db, user_id)
    logger.info("Cancelled %d notifications for user %s", count, user_id)
    return count


def list_scheduled_notifications(
    db: Session, user_id: UUID, status: str | None = None
) -> list[ScheduledNotification]:
    q = db.query(ScheduledNotification).filter(ScheduledNotification.user_id == user_id)
    if status:
        q = q.filter(ScheduledNotification.status == status)
    return q.order_by(ScheduledNotification.scheduled_for.asc()).all()
