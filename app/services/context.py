# app/services/context.py

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import SimpleNamespace
from typing import Any, Mapping
from uuid import UUID


# -------------------------
# DATA INTERFACES (Duck Typing)
# -------------------------
# Scoring code accepts ORM WardrobeItem rows or cached snapshots of them.

class WardrobeItemLike:
    id: UUID
    name: str | None
    category: str            # "tops", "bottoms", "shoes", ...
    subcategory: str | None  # "t-shirt", "jeans", ...
    colors: list[str] | None
    tags: list[str] | None
    total_wears: int
    last_worn_at: datetime | None
    average_rating: float    # 0-5, 0 means unrated
    compliments_received: int


NEVER_WORN_DAYS = 999

QUICK_ACTIONS: list[dict[str, str]] = [
    {"type": "wear", "label": "Wear This", "icon": "checkmark-circle"},
    {"type": "save", "label": "Save for Later", "icon": "bookmark"},
    {"type": "share", "label": "Share", "icon": "share"},
]


def to_utc(ts: datetime) -> datetime:
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def days_since_worn(item: WardrobeItemLike, now: datetime) -> float:
    """Whole days since the item was last worn; NEVER_WORN_DAYS if never."""
    if not item.last_worn_at:
        return NEVER_WORN_DAYS
    return max(0.0, (to_utc(now) - to_utc(item.last_worn_at)).total_seconds() / 86400.0) // 1


def item_tags(item: WardrobeItemLike) -> list[str]:
    return [str(t).strip().lower() for t in (item.tags or []) if t]


def item_colors(item: WardrobeItemLike) -> list[str]:
    return [str(c).strip().lower() for c in (item.colors or []) if c]


def has_red_pink_clash(items: list[Any]) -> bool:
    colors = {c for i in items for c in item_colors(i)}
    return "red" in colors and "pink" in colors


def snapshot_item(item: WardrobeItemLike) -> SimpleNamespace:
    """Session-independent copy of a wardrobe item for caching."""
    return SimpleNamespace(
        id=item.id,
        name=item.name,
        category=item.category,
        subcategory=item.subcategory,
        colors=list(item.colors or []),
        tags=list(item.tags or []),
        total_wears=int(item.total_wears or 0),
        last_worn_at=item.last_worn_at,
        average_rating=float(item.average_rating or 0.0),
        compliments_received=int(item.compliments_received or 0),
    )


def serialize_item(item: WardrobeItemLike) -> dict[str, Any]:
    return {
        "id": item.id,
        "name": item.name,
        "category": item.category,
        "subcategory": item.subcategory,
        "colors": list(item.colors or []),
        "tags": list(item.tags or []),
        "total_wears": int(item.total_wears or 0),
        "last_worn_at": item.last_worn_at,
        "average_rating": float(item.average_rating or 0.0),
        "compliments_received": int(item.compliments_received or 0),
    }


# -------------------------
# CONTEXT
# -------------------------

@dataclass(frozen=True)
class WeatherContext:
    temperature: float   # Fahrenheit
    condition: str       # sunny | cloudy | rainy | snowy | windy | stormy
    humidity: float
    location: str
    timestamp: datetime
    wind_speed: float = 0.0

    def to_public(self) -> dict[str, Any]:
        return {
            "temperature": self.temperature,
            "condition": self.condition,
            "humidity": self.humidity,
            "wind_speed": self.wind_speed,
            "location": self.location,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_public(cls, data: Mapping[str, Any]) -> "WeatherContext":
        ts = data.get("timestamp")
        if isinstance(ts, str):
            ts = datetime.fromisoformat(ts)
        return cls(
            temperature=float(data.get("temperature", 0)),
            condition=str(data.get("condition") or "cloudy"),
            humidity=float(data.get("humidity", 50)),
            wind_speed=float(data.get("wind_speed") or 0),
            location=str(data.get("location") or "Unknown"),
            timestamp=ts or datetime.now(timezone.utc),
        )


@dataclass(frozen=True)
class CalendarEventInfo:
    title: str
    starts_at: datetime
    ends_at: datetime
    event_type: str
    location: str | None = None

    def to_public(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "starts_at": self.starts_at.isoformat(),
            "ends_at": self.ends_at.isoformat(),
            "location": self.location,
            "type": self.event_type,
        }

    @classmethod
    def from_public(cls, data: Mapping[str, Any]) -> "CalendarEventInfo":
        return cls(
            title=str(data.get("title") or ""),
            starts_at=datetime.fromisoformat(data["starts_at"]),
            ends_at=datetime.fromisoformat(data["ends_at"]),
            location=data.get("location"),
            event_type=str(data.get("type") or "personal"),
        )


@dataclass(frozen=True)
class CalendarContext:
    events: list[CalendarEventInfo]
    primary_event: CalendarEventInfo | None
    formality_level: str  # casual | business | formal | special

    def to_public(self) -> dict[str, Any]:
        return {
            "events": [e.to_public() for e in self.events],
            "primary_event": self.primary_event.to_public() if self.primary_event else None,
            "formality_level": self.formality_level,
        }

    @classmethod
    def from_public(cls, data: Mapping[str, Any]) -> "CalendarContext":
        primary = data.get("primary_event")
        return cls(
            events=[CalendarEventInfo.from_public(e) for e in data.get("events") or []],
            primary_event=CalendarEventInfo.from_public(primary) if primary else None,
            formality_level=str(data.get("formality_level") or "casual"),
        )


@dataclass(frozen=True)
class ConfidencePattern:
    item_combination: list[str]
    average_rating: float
    context_factors: list[str]
    emotional_response: list[str]

    def to_public(self) -> dict[str, Any]:
        return {
            "item_combination": list(self.item_combination),
            "average_rating": self.average_rating,
            "context_factors": list(self.context_factors),
            "emotional_response": list(self.emotional_response),
        }

    @classmethod
    def from_public(cls, data: Mapping[str, Any]) -> "ConfidencePattern":
        return cls(
            item_combination=[str(i) for i in data.get("item_combination") or []],
            average_rating=float(data.get("average_rating") or 0.0),
            context_factors=list(data.get("context_factors") or []),
            emotional_response=list(data.get("emotional_response") or []),
        )


@dataclass(frozen=True)
class StyleProfile:
    user_id: UUID
    preferred_colors: list[str]
    preferred_styles: list[str]
    body_type_preferences: list[str]
    occasion_preferences: dict[str, float]
    confidence_patterns: list[ConfidencePattern]
    last_updated: datetime
    confidence_note_style: str | None = None

    def to_public(self) -> dict[str, Any]:
        return {
            "user_id": str(self.user_id),
            "preferred_colors": list(self.preferred_colors),
            "preferred_styles": list(self.preferred_styles),
            "body_type_preferences": list(self.body_type_preferences),
            "occasion_preferences": dict(self.occasion_preferences),
            "confidence_patterns": [p.to_public() for p in self.confidence_patterns],
            "confidence_note_style": self.confidence_note_style,
            "last_updated": self.last_updated.isoformat(),
        }

    @classmethod
    def empty(cls, user_id: UUID) -> "StyleProfile":
        return cls(
            user_id=user_id,
            preferred_colors=[],
            preferred_styles=[],
            body_type_preferences=[],
            occasion_preferences={},
            confidence_patterns=[],
            last_updated=datetime.now(timezone.utc),
        )


@dataclass(frozen=True)
class FeedbackRecord:
    """One past feedback row joined with the outfit it rated."""

    item_ids: list[str]
    confidence_rating: float
    created_at: datetime
    occasion: str | None = None
    primary_emotion: str | None = None
    weather: dict[str, Any] | None = None
    calendar: dict[str, Any] | None = None


@dataclass(frozen=True)
class RecommendationContext:
    user_id: UUID
    date: datetime
    weather: WeatherContext
    calendar: CalendarContext | None
    user_history: StyleProfile


# -------------------------
# OUTFIT CANDIDATES
# -------------------------

@dataclass
class OutfitCandidate:
    items: list[Any]
    confidence_note: str
    confidence_score: float
    reasoning: list[str] = field(default_factory=list)
    quick_actions: list[dict[str, str]] = field(default_factory=lambda: [dict(a) for a in QUICK_ACTIONS])
    is_quick_option: bool = False
    id: UUID | None = None
    created_at: datetime | None = None

    @property
    def item_ids(self) -> list[str]:
        return [str(i.id) for i in self.items]

    def to_public(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "item_ids": self.item_ids,
            "items": [serialize_item(i) for i in self.items],
            "confidence_note": self.confidence_note,
            "confidence_score": self.confidence_score,
            "reasoning": list(self.reasoning),
            "quick_actions": list(self.quick_actions),
            "is_quick_option": self.is_quick_option,
            "created_at": self.created_at,
        }
