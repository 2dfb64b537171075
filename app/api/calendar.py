# app/api/calendar.py

from __future__ import annotations

from datetime import date, datetime
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.database import get_db
from app.dependencies import get_current_user
from app.models.calendar import EVENT_CATEGORIES, FORMALITY_LEVELS, CalendarEvent
from app.models.user import User
from app.services import calendar_service
from app.services.dev_event_log import log_user_event

router = APIRouter(prefix="/calendar", tags=["Calendar"])


class CalendarEventCreate(BaseModel):
    title: str
    starts_at: datetime
    ends_at: datetime
    location: str | None = None
    formality_level: str = "casual"
    category: str = "personal"


def _event_to_dict(event: CalendarEvent) -> dict[str, Any]:
    return {
        "id": event.id,
        "title": event.title,
        "starts_at": event.starts_at,
        "ends_at": event.ends_at,
        "location": event.location,
        "formality_level": event.formality_level,
        "category": event.category,
        "created_at": event.created_at,
    }


@router.get("/events")
def list_events(
    day: date | None = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    day = day or date.today()
    events = calendar_service.list_events(db, current_user.id, day)
    return {"date": day.isoformat(), "count": len(events), "events": [_event_to_dict(e) for e in events]}


@router.post("/events")
def create_event(
    payload: CalendarEventCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    formality = payload.formality_level.strip().lower()
    if formality not in FORMALITY_LEVELS:
        raise HTTPException(
            status_code=422,
            detail=f"Invalid formality_level. Allowed: {list(FORMALITY_LEVELS)}",
        )
    category = payload.category.strip().lower()
    if category not in EVENT_CATEGORIES:
        raise HTTPException(
            status_code=422,
            detail=f"Invalid category. Allowed: {list(EVENT_CATEGORIES)}",
        )
    if payload.ends_at < payload.starts_at:
        raise HTTPException(status_code=422, detail="ends_at must not be before starts_at")

    event = calendar_service.create_event(
        db,
        current_user.id,
        title=payload.title.strip(),
        starts_at=payload.starts_at,
        ends_at=payload.ends_at,
        location=payload.location,
        formality_level=formality,
        category=category,
    )
    log_user_event(
        user_id=current_user.id,
        event="calendar_event_create",
        meta={"event_id": str(event.id), "formality_level": formality, "location": event.location},
    )
    return {"created": True, **_event_to_dict(event)}


@router.delete("/events/{event_id}")
def delete_event(
    event_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    if not calendar_service.delete_event(db, current_user.id, event_id):
        raise HTTPException(status_code=404, detail="Calendar event not found")
    return {"deleted": True, "id": event_id}


@router.get("/context")
def get_context(
    day: date | None = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    context = calendar_service.get_calendar_context(db, current_user.id, day)
    if context is None:
        raise HTTPException(status_code=503, detail="Calendar is temporarily unavailable")
    return context.to_public()


@router.get("/patterns")
def get_patterns(
    days: int = 30,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    if days < 1:
        raise HTTPException(status_code=422, detail="days must be positive")
    return calendar_service.analyze_calendar_patterns(db, current_user.id, days=days)
