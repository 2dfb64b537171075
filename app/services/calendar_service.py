from __future__ import annotations

import logging
from collections import Counter
from datetime import date, datetime, time, timedelta, timezone
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from app.models.calendar import CalendarEvent
from app.services.context import CalendarContext, CalendarEventInfo, to_utc

logger = logging.getLogger(__name__)

_FORMALITY_SCORES: dict[str, int] = {
    "casual": 1,
    "business-casual": 2,
    "business": 3,
    "formal": 4,
    "black-tie": 5,
}
_SCORE_TO_FORMALITY = {v: k for k, v in _FORMALITY_SCORES.items()}

# Collapse event formality onto the four levels the recommender understands.
_CONTEXT_FORMALITY: dict[str, str] = {
    "casual": "casual",
    "business-casual": "business",
    "business": "business",
    "formal": "formal",
    "black-tie": "formal",
}


def _day_bounds(day: date) -> tuple[datetime, datetime]:
    start = datetime.combine(day, time.min, tzinfo=timezone.utc)
    return start, start + timedelta(days=1)


def _to_info(event: CalendarEvent) -> CalendarEventInfo:
    return CalendarEventInfo(
        title=event.title,
        starts_at=to_utc(event.starts_at),
        ends_at=to_utc(event.ends_at),
        location=event.location,
        event_type=event.category if event.category in {"work", "social", "personal", "special"} else "personal",
    )


def select_primary_event(events: list[CalendarEvent]) -> CalendarEvent:
    """Most formal event wins; earlier start breaks ties."""
    return sorted(
        events,
        key=lambda e: (-_FORMALITY_SCORES.get(e.formality_level, 1), to_utc(e.starts_at)),
    )[0]


def overall_formality_level(events: list[CalendarEvent]) -> str:
    if not events:
        return "casual"
    top = max(_FORMALITY_SCORES.get(e.formality_level, 1) for e in events)
    return _SCORE_TO_FORMALITY[top]


def list_events(db: Session, user_id: UUID, day: date) -> list[CalendarEvent]:
    start, end = _day_bounds(day)
    return (
        db.query(CalendarEvent)
        .filter(
            CalendarEvent.user_id == user_id,
            CalendarEvent.starts_at >= start,
            CalendarEvent.starts_at < end,
        )
        .order_by(CalendarEvent.starts_at.asc())
        .all()
    )


def get_calendar_context(db: Session, user_id: UUID, day: date | None = None) -> CalendarContext | None:
    day = day or datetime.now(timezone.utc).date()
    try:
        events = list_events(db, user_id, day)
        if not events:
            return CalendarContext(events=[], primary_event=None, formality_level="casual")

        primary = select_primary_event(events)
        formality = overall_formality_level(events)
        logger.debug(
            "Calendar context for %s on %s: %d events, formality=%s",
            user_id,
            day,
            len(events),
            formality,
        )
        return CalendarContext(
            events=[_to_info(e) for e in events],
            primary_event=_to_info(primary),
            formality_level=_CONTEXT_FORMALITY[formality],
        )
    except Exception:
        logger.exception("Failed to get calendar context")
        return None


def create_event(db: Session, user_id: UUID, **fields: Any) -> CalendarEvent:
    event = CalendarEvent(user_id=user_id, **fields)
    db.add(event)
    db.commit()
    db.refresh(event)
    return event


def delete_event(db: Session, user_id: UUID, event_id: UUID) -> bool:
    event = (
        db.query(CalendarEvent)
        .filter(CalendarEvent.id == event_id, CalendarEvent.user_id == user_id)
        .first()
    )
    if not event:
        return False
    db.delete(event)
    db.commit()
    return True


def analyze_calendar_patterns(
    db: Session, user_id: UUID, days: int = 30, now: datetime | None = None
) -> dict[str, Any]:
    """Summarize the last `days` of stored events."""
    now = to_utc(now) if now else datetime.now(timezone.utc)
    events = (
        db.query(CalendarEvent)
        .filter(
            CalendarEvent.user_id == user_id,
            CalendarEvent.starts_at >= now - timedelta(days=days),
            CalendarEvent.starts_at <= now,
        )
        .all()
    )
    if not events:
        return {
            "work_days": [],
            "common_event_types": [],
            "average_formality_level": "casual",
            "busy_hours": [],
            "event_count": 0,
        }

    starts = [to_utc(e.starts_at) for e in events]
    # isoweekday: Monday=1 .. Sunday=7
    work_days = sorted({s.isoweekday() for e, s in zip(events, starts) if e.category == "work"})
    type_counts = Counter(e.category for e in events)
    hour_counts = Counter(s.hour for s in starts)
    mean_score = sum(_FORMALITY_SCORES.get(e.formality_level, 1) for e in events) / len(events)

    return {
        "work_days": work_days,
        "common_event_types": [name for name, _ in type_counts.most_common(3)],
        "average_formality_level": _SCORE_TO_FORMALITY[int(round(mean_score))],
        "busy_hours": sorted(h for h, c in hour_counts.items() if c >= 2),
        "event_count": len(events),
    }
