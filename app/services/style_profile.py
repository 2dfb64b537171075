from __future__ import annotations

import logging
from collections import Counter
from datetime import datetime, timezone
from typing import Any, Iterable, Sequence
from uuid import UUID

from sqlalchemy.orm import Session

from app.models.feedback import OutfitFeedback
from app.models.preferences import UserPreferences
from app.models.recommendation import DailyRecommendation, OutfitRecommendation
from app.models.wardrobe import WardrobeItem
from app.services import preferences as preferences_service
from app.services.context import (
    ConfidencePattern,
    FeedbackRecord,
    StyleProfile,
    WardrobeItemLike,
    item_tags,
    to_utc,
)

logger = logging.getLogger(__name__)

_MAX_FEEDBACK_ROWS = 100
_MAX_PREFERRED = 10
_MIN_PATTERN_FEEDBACK = 2
_MAX_PATTERN_EMOTIONS = 5
_DEFAULT_OCCASION_RATING = 2.5
_DEFAULT_BODY_TYPES = ["regular-fit", "versatile"]

_FIT_KEYWORDS: dict[str, tuple[str, ...]] = {
    "slim-fit": ("slim", "fitted"),
    "relaxed-fit": ("loose", "relaxed", "oversized"),
    "regular-fit": ("regular", "standard"),
}
_SILHOUETTE_KEYWORDS: dict[str, tuple[str, ...]] = {
    "a-line": ("a-line", "flare"),
    "straight": ("straight", "column"),
    "empire": ("empire", "high-waist"),
}


def _top_by_frequency(counts: Counter, threshold: int) -> list[str]:
    ranked = counts.most_common()
    qualifying = [(k, c) for k, c in ranked if c >= threshold]
    chosen = qualifying if len(qualifying) >= 3 else ranked
    return [k for k, _ in chosen[:_MAX_PREFERRED]]


def _time_of_day(hour: int) -> str:
    if hour < 12:
        return "morning"
    if hour < 17:
        return "afternoon"
    if hour < 21:
        return "evening"
    return "night"


def _season(month: int) -> str:
    if month in (12, 1, 2):
        return "winter"
    if month in (3, 4, 5):
        return "spring"
    if month in (6, 7, 8):
        return "summer"
    return "autumn"


# -------------------------
# HISTORY
# -------------------------

def load_feedback_history(
    db: Session, user_id: UUID, limit: int = _MAX_FEEDBACK_ROWS
) -> list[FeedbackRecord]:
    """Newest-first feedback joined with the outfit and the day it was recommended for."""
    rows = (
        db.query(OutfitFeedback, OutfitRecommendation, DailyRecommendation)
        .join(OutfitRecommendation, OutfitRecommendation.id == OutfitFeedback.outfit_recommendation_id)
        .join(DailyRecommendation, DailyRecommendation.id == OutfitRecommendation.daily_recommendation_id)
        .filter(OutfitFeedback.user_id == user_id)
        .order_by(OutfitFeedback.created_at.desc())
        .limit(limit)
        .all()
    )
    return [
        FeedbackRecord(
            item_ids=[str(i) for i in (rec.item_ids or [])],
            confidence_rating=float(fb.confidence_rating),
            created_at=to_utc(fb.created_at),
            occasion=fb.occasion,
            primary_emotion=(fb.emotional_response or {}).get("primary"),
            weather=daily.weather_context,
            calendar=daily.calendar_context,
        )
        for fb, rec, daily in rows
    ]


def extract_context_factors(records: Iterable[FeedbackRecord]) -> list[str]:
    factors: dict[str, None] = {}
    for record in records:
        weather = record.weather or {}
        if weather.get("condition"):
            factors[f"weather_{weather['condition']}"] = None
        if isinstance(weather.get("temperature"), (int, float)):
            # Stored in Fahrenheit; the bands are Celsius.
            temp_c = (float(weather["temperature"]) - 32.0) * 5.0 / 9.0
            if temp_c < 10:
                factors["weather_cold"] = None
            elif temp_c > 25:
                factors["weather_hot"] = None
            else:
                factors["weather_mild"] = None
        if isinstance(weather.get("humidity"), (int, float)) and weather["humidity"] > 70:
            factors["weather_humid"] = None

        calendar = record.calendar or {}
        event = calendar.get("primary_event") or {}
        if event.get("type"):
            factors[f"occasion_{event['type']}"] = None
        if event and calendar.get("formality_level"):
            factors[f"formality_{calendar['formality_level']}"] = None

        factors[f"time_{_time_of_day(record.created_at.hour)}"] = None
        if record.primary_emotion:
            factors[f"emotion_{record.primary_emotion}"] = None
        factors[f"season_{_season(record.created_at.month)}"] = None
    return list(factors)


# -------------------------
# ANALYSIS
# -------------------------

def analyze_color_preferences(items: Sequence[WardrobeItemLike]) -> list[str]:
    counts = Counter(c for i in items for c in (i.colors or []) if c and str(c).strip())
    return _top_by_frequency(counts, 2)


def analyze_style_preferences(items: Sequence[WardrobeItemLike]) -> list[str]:
    counts = Counter(t for i in items for t in (i.tags or []) if t and str(t).strip())

    # Scale the cutoff with wardrobe size to keep noise out of large wardrobes.
    n = len(items)
    if n < 10:
        threshold = 1
    elif n < 20:
        threshold = max(1, int(n * 0.15))
    else:
        threshold = max(2, int(n * 0.1))
    return _top_by_frequency(counts, threshold)


def analyze_body_type_preferences(items: Sequence[WardrobeItemLike]) -> list[str]:
    fits: Counter = Counter()
    silhouettes: Counter = Counter()
    for item in items:
        text = " ".join(item_tags(item))
        if not text:
            continue
        for name, words in _FIT_KEYWORDS.items():
            if any(w in text for w in words):
                fits[name] += 1
        for name, words in _SILHOUETTE_KEYWORDS.items():
            if any(w in text for w in words):
                silhouettes[name] += 1

    prefs = [k for k, _ in fits.most_common(2)] + [k for k, _ in silhouettes.most_common(2)]
    return prefs or list(_DEFAULT_BODY_TYPES)


def analyze_confidence_patterns(records: Sequence[FeedbackRecord]) -> list[ConfidencePattern]:
    groups: dict[tuple[str, ...], list[FeedbackRecord]] = {}
    for record in records:
        groups.setdefault(tuple(sorted(record.item_ids)), []).append(record)

    patterns: list[ConfidencePattern] = []
    for combination, group in groups.items():
        if len(group) < _MIN_PATTERN_FEEDBACK:
            continue
        patterns.append(
            ConfidencePattern(
                item_combination=list(combination),
                average_rating=sum(r.confidence_rating for r in group) / len(group),
                context_factors=extract_context_factors(group),
                emotional_response=[r.primary_emotion for r in group if r.primary_emotion],
            )
        )
    return patterns


def analyze_occasion_preferences(records: Sequence[FeedbackRecord]) -> dict[str, float]:
    ratings: dict[str, list[float]] = {}
    for record in records:
        if record.occasion:
            ratings.setdefault(record.occasion, []).append(record.confidence_rating)
    return {occasion: sum(r) / len(r) for occasion, r in ratings.items()}


# -------------------------
# PROFILE
# -------------------------

def _active_wardrobe(db: Session, user_id: UUID) -> list[WardrobeItem]:
    return (
        db.query(WardrobeItem)
        .filter(WardrobeItem.user_id == user_id, WardrobeItem.is_active.is_(True))
        .all()
    )


def _cache_profile(db: Session, profile: StyleProfile) -> None:
    payload = profile.to_public()
    if payload.get("confidence_note_style") is None:
        payload.pop("confidence_note_style", None)
    try:
        preferences_service.update_style_preferences(db, profile.user_id, payload, now=profile.last_updated)
    except Exception:
        db.rollback()
        logger.exception("Failed to cache style profile for %s", profile.user_id)


def profile_from_cache(user_id: UUID, data: dict[str, Any] | None) -> StyleProfile:
    if not data:
        return StyleProfile.empty(user_id)
    last_updated = data.get("last_updated")
    return StyleProfile(
        user_id=user_id,
        preferred_colors=list(data.get("preferred_colors") or []),
        preferred_styles=list(data.get("preferred_styles") or []),
        body_type_preferences=list(data.get("body_type_preferences") or []),
        occasion_preferences=dict(data.get("occasion_preferences") or {}),
        confidence_patterns=[
            ConfidencePattern.from_public(p) for p in data.get("confidence_patterns") or []
        ],
        last_updated=datetime.fromisoformat(last_updated) if last_updated else datetime.now(timezone.utc),
        confidence_note_style=data.get("confidence_note_style"),
    )


def load_style_profile(db: Session, user_id: UUID) -> StyleProfile:
    prefs = db.query(UserPreferences).filter(UserPreferences.user_id == user_id).first()
    return profile_from_cache(user_id, prefs.style_preferences if prefs else None)


def analyze_user_style_profile(
    db: Session, user_id: UUID, *, now: datetime | None = None
) -> StyleProfile:
    """
    Derive a style profile from the active wardrobe and recent feedback.

    Colors, styles and fit come from the wardrobe; confidence patterns and
    occasion ratings come from feedback. The result is cached on the user's
    preferences, keeping any saved confidence note style.
    """
    now = now or datetime.now(timezone.utc)
    items = _active_wardrobe(db, user_id)
    records = load_feedback_history(db, user_id)

    cached_style = load_style_profile(db, user_id).confidence_note_style
    profile = StyleProfile(
        user_id=user_id,
        preferred_colors=analyze_color_preferences(items),
        preferred_styles=analyze_style_preferences(items),
        body_type_preferences=analyze_body_type_preferences(items),
        occasion_preferences=analyze_occasion_preferences(records),
        confidence_patterns=analyze_confidence_patterns(records),
        last_updated=now,
        confidence_note_style=cached_style,
    )
    _cache_profile(db, profile)
    logger.debug(
        "Style profile for %s: %d items, %d feedback rows, %d patterns",
        user_id,
        len(items),
        len(records),
        len(profile.confidence_patterns),
    )
    return profile


def update_confidence_patterns(
    patterns: Sequence[ConfidencePattern],
    item_ids: Sequence[str],
    rating: float,
    occasion: str | None,
    primary_emotion: str | None,
) -> list[ConfidencePattern]:
    if not item_ids:
        return list(patterns)

    key = sorted(str(i) for i in item_ids)
    updated: list[ConfidencePattern] = []
    found = False
    for p in patterns:
        if not found and list(p.item_combination) == key:
            found = True
            emotions = [e for e in [*p.emotional_response, primary_emotion] if e]
            p = ConfidencePattern(
                item_combination=list(p.item_combination),
                average_rating=(p.average_rating + rating) / 2,
                context_factors=list(p.context_factors),
                emotional_response=emotions[-_MAX_PATTERN_EMOTIONS:],
            )
        updated.append(p)

    if not found:
        updated.append(
            ConfidencePattern(
                item_combination=key,
                average_rating=float(rating),
                context_factors=[occasion or "general"],
                emotional_response=[primary_emotion] if primary_emotion else [],
            )
        )
    return updated


def update_occasion_preferences(
    current: dict[str, float], occasion: str | None, rating: float
) -> dict[str, float]:
    if not occasion:
        return dict(current)
    previous = current.get(occasion) or _DEFAULT_OCCASION_RATING
    return {**current, occasion: (previous + rating) / 2}


def update_style_preferences(
    db: Session, user_id: UUID, feedback: OutfitFeedback, *, now: datetime | None = None
) -> StyleProfile:
    """Fold one new feedback row into a freshly analyzed profile."""
    now = now or datetime.now(timezone.utc)
    current = analyze_user_style_profile(db, user_id, now=now)

    rec = (
        db.query(OutfitRecommendation)
        .filter(OutfitRecommendation.id == feedback.outfit_recommendation_id)
        .first()
    )
    item_ids = [str(i) for i in (rec.item_ids or [])] if rec else []
    rating = float(feedback.confidence_rating)
    primary = (feedback.emotional_response or {}).get("primary")

    profile = StyleProfile(
        user_id=user_id,
        preferred_colors=current.preferred_colors,
        preferred_styles=current.preferred_styles,
        body_type_preferences=current.body_type_preferences,
        occasion_preferences=update_occasion_preferences(
            current.occasion_preferences, feedback.occasion, rating
        ),
        confidence_patterns=update_confidence_patterns(
            current.confidence_patterns, item_ids, rating, feedback.occasion, primary
        ),
        last_updated=now,
        confidence_note_style=current.confidence_note_style,
    )
    _cache_profile(db, profile)
    return profile
