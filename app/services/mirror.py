# app/services/mirror.py

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Sequence
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.models.feedback import OutfitFeedback
from app.models.outfit_log import FavoriteOutfit, OutfitLog
from app.models.recommendation import DailyRecommendation, OutfitRecommendation
from app.models.user import User
from app.models.wardrobe import WardrobeItem
from app.services import calendar_service, notifications, preferences as preferences_service
from app.services import style_profile as style_profile_service
from app.services.confidence_notes import generate_confidence_note, generate_personalized_note
from app.services.context import (
    QUICK_ACTIONS,
    CalendarContext,
    FeedbackRecord,
    OutfitCandidate,
    RecommendationContext,
    StyleProfile,
    WardrobeItemLike,
    WeatherContext,
    days_since_worn,
    has_red_pink_clash,
    item_colors,
    item_tags,
    to_utc,
)
from app.services.dev_event_log import log_user_event
from app.services.error_handling import (
    WardrobeUnavailableError,
    cache_wardrobe_data,
    execute_with_retry,
    get_cached_wardrobe_data,
    handle_ai_service_error,
    handle_weather_service_error,
)
from app.services.outfit_engine import (
    confidence_score,
    generate_style_recommendations,
    outfit_compatibility_score,
    predict_user_satisfaction,
)
from app.services.preferences import NotificationPreferences
from app.services.weather_service import (
    Location,
    WeatherService,
    analyze_weather_appropriateness,
    get_weather_service,
    location_for_user,
    outfit_weather_score,
)

logger = logging.getLogger(__name__)

RECOMMENDATION_TTL = timedelta(hours=24)
MAX_RECOMMENDATIONS = 3

LOW_RATING = 3.3
UNRATED = 3.0
BAD_PATTERN_RATING = 3.0
COLD_F = 50
WEATHER_OK = 0.4

_FORMAL_TAGS = {"formal", "business", "elegant"}
_CASUAL_TAGS = {"casual", "everyday", "relaxed"}
_WORK_TAGS = {"work", "business", "professional"}
_EVENING_TAGS = {"evening", "elegant", "dressy"}
_FALLBACK_STYLES = ("casual", "professional", "creative")
_STYLE_TAGS: dict[str, set[str]] = {
    "casual": {"casual", "everyday", "relaxed"},
    "professional": {"business", "professional", "work", "formal"},
    "creative": {"creative", "bold", "artsy", "statement", "bohemian"},
}


@dataclass
class DailyRecommendations:
    user_id: UUID
    date: datetime
    recommendations: list[OutfitCandidate]
    weather: WeatherContext
    calendar: CalendarContext | None
    generated_at: datetime
    id: UUID | None = None
    cached: bool = False

    def to_public(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "date": self.date.date().isoformat(),
            "generated_at": self.generated_at,
            "cached": self.cached,
            "weather": self.weather.to_public(),
            "calendar": self.calendar.to_public() if self.calendar else None,
            "recommendations": [r.to_public() for r in self.recommendations],
        }


def _rating(item: WardrobeItemLike) -> float:
    """Average rating, with unrated items treated as middling."""
    value = float(item.average_rating or 0)
    return value if value > 0 else UNRATED


# -------------------------
# LOADING
# -------------------------

def load_wardrobe(db: Session, user_id: UUID) -> list[Any]:
    """Active wardrobe items, or the last cached snapshot when the database fails."""
    try:
        items = (
            db.query(WardrobeItem)
            .filter(WardrobeItem.user_id == user_id, WardrobeItem.is_active.is_(True))
            .order_by(WardrobeItem.created_at.asc())
            .all()
        )
    except SQLAlchemyError as exc:
        db.rollback()
        logger.warning("Failed to load wardrobe for %s, trying cache: %s", user_id, exc)
        cached = get_cached_wardrobe_data(user_id)
        if cached:
            return cached
        raise WardrobeUnavailableError("Unable to get wardrobe data") from exc
    return items


def _load_preferences(db: Session, user_id: UUID) -> NotificationPreferences:
    try:
        return preferences_service.get_notification_preferences(db, user_id)
    except Exception:
        db.rollback()
        logger.exception("Failed to get preferences for %s, using defaults", user_id)
        return preferences_service.default_notification_preferences()


def user_location(db: Session, user_id: UUID) -> Location | None:
    try:
        user = db.query(User).filter(User.id == user_id).first()
        privacy = preferences_service.get_privacy_settings(db, user_id)
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Failed to load location for %s", user_id)
        return None
    return location_for_user(user, allow_tracking=bool(privacy.get("allow_location_tracking", True)))


def build_recommendation_context(
    db: Session,
    user_id: UUID,
    now: datetime,
    weather_service: WeatherService | None = None,
) -> RecommendationContext:
    service = weather_service or get_weather_service()
    location = user_location(db, user_id)
    try:
        weather = service.get_current_weather(user_id, location)
    except Exception:
        logger.exception("Weather lookup failed for %s", user_id)
        weather = handle_weather_service_error(user_id, location.city if location else None, now=now)

    calendar = calendar_service.get_calendar_context(db, user_id, now.date())

    try:
        profile = style_profile_service.analyze_user_style_profile(db, user_id, now=now)
    except Exception:
        db.rollback()
        logger.exception("Style profile unavailable for %s", user_id)
        profile = StyleProfile.empty(user_id)

    return RecommendationContext(
        user_id=user_id,
        date=now,
        weather=weather,
        calendar=calendar,
        user_history=profile,
    )


# -------------------------
# SCORING
# -------------------------

def _occasion_appropriateness(items: Sequence[WardrobeItemLike], calendar: CalendarContext) -> float:
    has_formal = any(set(item_tags(i)) & _FORMAL_TAGS for i in items)
    has_casual = any(set(item_tags(i)) & _CASUAL_TAGS for i in items)
    score = 0.5
    level = calendar.formality_level
    if level == "formal":
        score += (0.4 if has_formal else 0) - (0.2 if has_casual else 0)
    elif level == "business":
        score += (0.3 if has_formal else 0) - (0.1 if has_casual else 0)
    elif level == "casual":
        score += (0.3 if has_casual else 0) - (0.1 if has_formal else 0)
    return max(0.0, min(1.0, score))


def _time_appropriateness(items: Sequence[WardrobeItemLike], when: datetime) -> float:
    score = 0.5
    hour = when.hour
    if 6 <= hour < 12 and any(set(item_tags(i)) & _WORK_TAGS for i in items):
        score += 0.2
    if hour >= 18 and any(set(item_tags(i)) & _EVENING_TAGS for i in items):
        score += 0.2
    return score


def calculate_contextual_relevance(
    items: Sequence[WardrobeItemLike], context: RecommendationContext
) -> float:
    """Weather, occasion, time of day and preference fit folded into 0..1."""
    score = 0.5
    score += outfit_weather_score(items, context.weather) * 0.4
    if context.calendar is not None:
        score += _occasion_appropriateness(items, context.calendar) * 0.3
    score += _time_appropriateness(items, context.date) * 0.3

    preference = (
        sum(min(max(_rating(i) / 5.0, 0.0), 1.0) for i in items) / len(items) if items else 0.5
    )
    preferred = [c.lower() for c in context.user_history.preferred_colors]
    if preferred and any(p in c for i in items for c in item_colors(i) for p in preferred):
        preference += 0.1
    score += min(1.0, preference) * 0.2

    return max(0.0, min(1.0, score))


def calculate_novelty_score(
    db: Session, user_id: UUID, items: Sequence[WardrobeItemLike], now: datetime | None = None
) -> float:
    now = now or datetime.now(timezone.utc)
    try:
        key = sorted(str(i.id) for i in items)
        worn = (
            db.query(OutfitRecommendation.item_ids, OutfitRecommendation.selected_at)
            .filter(
                OutfitRecommendation.user_id == user_id,
                OutfitRecommendation.selected_at.isnot(None),
            )
            .all()
        )
        matches = [to_utc(selected_at) for ids, selected_at in worn if sorted(map(str, ids or [])) == key]
        if not matches:
            return 0.8

        days = int((to_utc(now) - max(matches)).total_seconds() // 86400)
        if days > 30:
            return 0.6
        if days > 14:
            return 0.4
        if days > 7:
            return 0.2
        return 0.1
    except Exception:
        db.rollback()
        logger.exception("Failed to calculate novelty score")
        return 0.5


def ensure_recommendation_diversity(recs: Sequence[OutfitCandidate]) -> list[OutfitCandidate]:
    """Prefer picks that add new categories or several new colors."""
    if len(recs) <= MAX_RECOMMENDATIONS:
        return list(recs)

    diverse = [recs[0]]
    used_categories = {i.category for i in recs[0].items}
    used_colors = {c for i in recs[0].items for c in (i.colors or [])}

    for rec in recs[1:]:
        if len(diverse) >= MAX_RECOMMENDATIONS:
            break
        new_categories = [i for i in rec.items if i.category not in used_categories]
        new_colors = [c for i in rec.items for c in (i.colors or []) if c not in used_colors]
        if new_categories or len(new_colors) > 2 or len(diverse) < 2:
            diverse.append(rec)
            used_categories.update(i.category for i in rec.items)
            used_colors.update(c for i in rec.items for c in (i.colors or []))

    for rec in recs:
        if len(diverse) >= MAX_RECOMMENDATIONS:
            break
        if rec not in diverse:
            diverse.append(rec)
    return diverse


def rank_recommendations(
    db: Session,
    recs: Sequence[OutfitCandidate],
    context: RecommendationContext,
    feedback_history: Sequence[FeedbackRecord] = (),
) -> list[OutfitCandidate]:
    try:
        profile = context.user_history
        preferred = [c.lower() for c in profile.preferred_colors]

        scored: list[tuple[float, OutfitCandidate]] = []
        for rec in recs:
            compat = outfit_compatibility_score(rec.items)
            ai_confidence = confidence_score(rec.items, feedback_history, now=context.date)
            satisfaction = predict_user_satisfaction(rec.items, profile)
            contextual = calculate_contextual_relevance(rec.items, context)
            novelty = calculate_novelty_score(db, context.user_id, rec.items, now=context.date)

            colors = {c for i in rec.items for c in item_colors(i)}
            has_preferred = bool(preferred) and any(p in c for c in colors for p in preferred)

            final = (
                compat * 0.25
                + ai_confidence * 0.3
                + satisfaction * 0.25
                + contextual * 0.15
                + novelty * 0.05
                + (0.03 if has_preferred else 0.0)
                - (0.25 if has_red_pink_clash(rec.items) else 0.0)
            )
            rec.confidence_score = max(0.0, min(1.0, final))
            scored.append((final, rec))

        bad_patterns = [p for p in profile.confidence_patterns if p.average_rating < BAD_PATTERN_RATING]

        def _matches_bad_pattern(rec: OutfitCandidate) -> bool:
            ids = set(rec.item_ids)
            need = min(2, len(rec.items))
            return any(
                sum(1 for x in p.item_combination if x in ids) >= need for p in bad_patterns
            )

        filtered = [
            (s, r) for s, r in scored
            if not has_red_pink_clash(r.items) and not _matches_bad_pattern(r)
        ]
        base = filtered or scored
        by_rating = [
            (s, r) for s, r in base
            if not any(_rating(i) < LOW_RATING for i in r.items) or len(scored) <= MAX_RECOMMENDATIONS
        ]
        pool = by_rating or filtered or scored
        pool = sorted(pool, key=lambda x: x[0], reverse=True)

        ranked = [r for _, r in pool if not has_red_pink_clash(r.items)]
        return ensure_recommendation_diversity(ranked)[:MAX_RECOMMENDATIONS]
    except Exception:
        logger.exception("Failed to rank recommendations")
        return list(recs)[:MAX_RECOMMENDATIONS]


# -------------------------
# FALLBACK OUTFITS
# -------------------------

def is_cold_weather_safe(item: WardrobeItemLike) -> bool:
    sub = (item.subcategory or "").lower()
    tags = item_tags(item)
    return not (
        any(s in sub for s in ("t-shirt", "tank", "shorts")) or "sleeveless" in tags or "summer" in tags
    )


def is_item_appropriate_for_weather(item: WardrobeItemLike, weather: WeatherContext) -> bool:
    if weather.temperature < COLD_F and not is_cold_weather_safe(item):
        return False
    return analyze_weather_appropriateness(item, weather) >= WEATHER_OK


def select_item_by_style(
    items: Sequence[WardrobeItemLike],
    style: str,
    now: datetime,
    exclude: set[str] | None = None,
) -> WardrobeItemLike | None:
    """
    Items tagged for the style come first, then the highest rated, the
    longest unworn and the most worn.
    """
    wanted = _STYLE_TAGS.get(style, set())
    ranked = sorted(
        items,
        key=lambda i: (
            bool(set(item_tags(i)) & wanted),
            _rating(i),
            days_since_worn(i, now),
            int(i.total_wears or 0),
        ),
        reverse=True,
    )
    pool = [i for i in ranked if _rating(i) >= LOW_RATING] or ranked
    if exclude:
        fresh = [i for i in pool if str(i.id) not in exclude]
        pool = fresh or pool
    return pool[0] if pool else None


def generate_outfit_for_style(
    wardrobe: Sequence[WardrobeItemLike],
    context: RecommendationContext,
    style: str,
    exclude: set[str] | None = None,
) -> list[WardrobeItemLike] | None:
    weekend = context.date.weekday() >= 5
    formality = context.calendar.formality_level if context.calendar else ("casual" if weekend else "business")

    available = [i for i in wardrobe if is_item_appropriate_for_weather(i, context.weather)]
    if formality == "casual":
        available = [i for i in available if not set(item_tags(i)) & _FORMAL_TAGS]
    if len(available) < 2:
        return None

    outfit: list[WardrobeItemLike] = []
    for category in ("tops", "bottoms", "shoes"):
        candidates = [i for i in available if i.category == category]
        picked = select_item_by_style(candidates, style, context.date, exclude) if candidates else None
        if picked is not None:
            outfit.append(picked)
    return outfit if len(outfit) >= 2 else None


def basic_confidence_score(items: Sequence[WardrobeItemLike]) -> float:
    """Five-point average rating plus completeness bonuses, scaled to 0..1."""
    if not items:
        return 0.0
    average = sum(float(i.average_rating or 0) for i in items) / len(items)
    categories = {i.category for i in items}
    bonus = 0.0
    if "tops" in categories and "bottoms" in categories:
        bonus += 0.5
    if "shoes" in categories:
        bonus += 0.3
    return min(5.0, average + bonus) / 5.0


def generate_reasoning_for_outfit(
    items: Sequence[WardrobeItemLike], context: RecommendationContext
) -> list[str]:
    reasons: list[str] = []
    temp = context.weather.temperature
    if temp < 50:
        reasons.append("Perfect for cold weather - keeps you warm and stylish")
    elif temp < 65:
        reasons.append("Ideal for cool weather conditions")
    elif temp > 80:
        reasons.append("Light and breathable for warm weather")
    elif temp > 75:
        reasons.append("Comfortable for warm temperature")

    condition_reasons = {
        "rainy": "Weather-appropriate for rainy conditions",
        "sunny": "Perfect for sunny weather",
        "cloudy": "Great for overcast conditions",
        "windy": "Suitable for windy weather",
    }
    if context.weather.condition in condition_reasons:
        reasons.append(condition_reasons[context.weather.condition])

    if any(days_since_worn(i, context.date) > 14 for i in items):
        reasons.append("Features items you haven't worn recently")
    if len({c for i in items for c in (i.colors or [])}) <= 3:
        reasons.append("Harmonious color palette")
    if any(float(i.average_rating or 0) > 4 for i in items):
        reasons.append("Includes your favorite high-confidence pieces")
    return reasons


def create_fallback_recommendations(
    wardrobe: Sequence[WardrobeItemLike],
    context: RecommendationContext,
    prefs: NotificationPreferences,
) -> list[OutfitCandidate]:
    recs: list[OutfitCandidate] = []
    used: set[str] = set()
    for index, style in enumerate(_FALLBACK_STYLES):
        items = generate_outfit_for_style(wardrobe, context, style, exclude=used)
        if not items or has_red_pink_clash(items):
            continue
        ids = [str(i.id) for i in items]
        if any(sorted(ids) == sorted(r.item_ids) for r in recs):
            continue
        used.update(ids)
        recs.append(
            OutfitCandidate(
                items=items,
                confidence_note=generate_confidence_note(
                    items,
                    weather=context.weather,
                    style=style,
                    note_style=prefs.confidence_note_style,
                    preferred_styles=context.user_history.preferred_styles,
                    now=context.date,
                ),
                confidence_score=basic_confidence_score(items),
                reasoning=generate_reasoning_for_outfit(items, context),
                is_quick_option=index == 0,
            )
        )
    return recs


# -------------------------
# GENERATION
# -------------------------

def _apply_day_filters(recs: list[OutfitCandidate], context: RecommendationContext) -> list[OutfitCandidate]:
    if context.date.weekday() >= 5:
        for rec in recs:
            rec.items = [i for i in rec.items if not set(item_tags(i)) & _FORMAL_TAGS]
        recs = [r for r in recs if r.items]

    if context.weather.temperature < COLD_F:
        for rec in recs:
            rec.items = [i for i in rec.items if is_cold_weather_safe(i)]
        recs = [r for r in recs if r.items]
    return [r for r in recs if not has_red_pink_clash(r.items)]


def create_outfit_recommendations(
    db: Session,
    wardrobe: Sequence[WardrobeItemLike],
    context: RecommendationContext,
    prefs: NotificationPreferences,
    feedback_history: Sequence[FeedbackRecord] = (),
) -> list[OutfitCandidate]:
    try:
        generated = generate_style_recommendations(wardrobe, context, feedback_history)
        if generated:
            filtered = _apply_day_filters(generated, context)
            ranked = rank_recommendations(db, filtered, context, feedback_history)
            for index, rec in enumerate(ranked):
                rec.confidence_note = generate_personalized_note(
                    rec.items,
                    weather=context.weather,
                    note_style=prefs.confidence_note_style,
                    preferred_styles=context.user_history.preferred_styles,
                    now=context.date,
                )
                rec.quick_actions = [dict(a) for a in QUICK_ACTIONS]
                rec.is_quick_option = index == 0
            if ranked:
                return ranked

        logger.info("Falling back to rule-based recommendations for %s", context.user_id)
        return create_fallback_recommendations(wardrobe, context, prefs)
    except Exception:
        logger.exception("Recommendation engine failed for %s", context.user_id)
        return handle_ai_service_error(wardrobe, context.weather)


def _persist(db: Session, daily: DailyRecommendations) -> None:
    row = DailyRecommendation(
        user_id=daily.user_id,
        recommendation_date=daily.date.date(),
        weather_context=daily.weather.to_public(),
        calendar_context=daily.calendar.to_public() if daily.calendar else None,
        generated_at=daily.generated_at,
    )
    for position, rec in enumerate(daily.recommendations):
        row.outfits.append(
            OutfitRecommendation(
                user_id=daily.user_id,
                position=position,
                item_ids=rec.item_ids,
                confidence_note=rec.confidence_note,
                confidence_score=rec.confidence_score,
                reasoning=list(rec.reasoning),
                quick_actions=list(rec.quick_actions),
                is_quick_option=rec.is_quick_option,
                created_at=daily.generated_at,
            )
        )
    try:
        db.add(row)
        db.commit()
        db.refresh(row)
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Failed to persist daily recommendations for %s", daily.user_id)
        return

    daily.id = row.id
    for rec, stored in zip(daily.recommendations, row.outfits):
        rec.id = stored.id
        rec.created_at = stored.created_at


def _hydrate(db: Session, row: DailyRecommendation) -> DailyRecommendations:
    all_ids = {i for outfit in row.outfits for i in (outfit.item_ids or [])}
    items = (
        db.query(WardrobeItem)
        .filter(WardrobeItem.user_id == row.user_id)
        .all()
        if all_ids
        else []
    )
    by_id = {str(i.id): i for i in items if str(i.id) in all_ids}

    recs = [
        OutfitCandidate(
            items=[by_id[i] for i in (outfit.item_ids or []) if i in by_id],
            confidence_note=outfit.confidence_note,
            confidence_score=outfit.confidence_score,
            reasoning=list(outfit.reasoning or []),
            quick_actions=list(outfit.quick_actions or []),
            is_quick_option=outfit.is_quick_option,
            id=outfit.id,
            created_at=outfit.created_at,
        )
        for outfit in row.outfits
    ]
    generated_at = to_utc(row.generated_at)
    return DailyRecommendations(
        id=row.id,
        user_id=row.user_id,
        date=generated_at,
        recommendations=recs,
        weather=WeatherContext.from_public(row.weather_context or {}),
        calendar=CalendarContext.from_public(row.calendar_context) if row.calendar_context else None,
        generated_at=generated_at,
        cached=True,
    )


def get_latest_recommendations(db: Session, user_id: UUID) -> DailyRecommendations | None:
    row = (
        db.query(DailyRecommendation)
        .filter(DailyRecommendation.user_id == user_id)
        .order_by(DailyRecommendation.generated_at.desc())
        .first()
    )
    return _hydrate(db, row) if row else None


def generate_daily_recommendations(
    db: Session,
    user_id: UUID,
    *,
    now: datetime | None = None,
    weather_service: WeatherService | None = None,
    force: bool = False,
) -> DailyRecommendations:
    """
    Today's three outfits for the user.

    A batch generated within the last 24 hours is returned as is unless
    `force` is set. Otherwise the wardrobe, preferences and context are
    loaded, the engine runs, and the result is stored best-effort.
    """
    now = to_utc(now) if now else datetime.now(timezone.utc)

    def _generate() -> DailyRecommendations:
        if not force:
            latest = get_latest_recommendations(db, user_id)
            if latest is not None and now - latest.generated_at < RECOMMENDATION_TTL:
                logger.debug("Using cached recommendations for %s", user_id)
                return latest

        wardrobe = load_wardrobe(db, user_id)
        prefs = _load_preferences(db, user_id)
        context = build_recommendation_context(db, user_id, now, weather_service)
        try:
            history = style_profile_service.load_feedback_history(db, user_id)
        except SQLAlchemyError:
            db.rollback()
            history = []

        recs = create_outfit_recommendations(db, wardrobe, context, prefs, history)
        recs = [r for r in recs if not has_red_pink_clash(r.items)]
        if not recs:
            recs = handle_ai_service_error(wardrobe, context.weather)
        if not prefs.enable_quick_options:
            for rec in recs:
                rec.is_quick_option = False

        daily = DailyRecommendations(
            user_id=user_id,
            date=now,
            recommendations=recs[:MAX_RECOMMENDATIONS],
            weather=context.weather,
            calendar=context.calendar,
            generated_at=now,
        )
        _persist(db, daily)
        cache_wardrobe_data(user_id, wardrobe)
        logger.info("Generated %d recommendations for %s", len(daily.recommendations), user_id)
        return daily

    return execute_with_retry(_generate, operation="generate_daily_recommendations", max_retries=2)


# -------------------------
# OUTFIT ACTIONS
# -------------------------

def get_outfit(db: Session, user_id: UUID, outfit_id: UUID) -> OutfitRecommendation | None:
    return (
        db.query(OutfitRecommendation)
        .filter(OutfitRecommendation.id == outfit_id, OutfitRecommendation.user_id == user_id)
        .first()
    )


def outfit_items(db: Session, outfit: OutfitRecommendation) -> list[WardrobeItem]:
    ids = [str(i) for i in (outfit.item_ids or [])]
    if not ids:
        return []
    rows = db.query(WardrobeItem).filter(WardrobeItem.user_id == outfit.user_id).all()
    by_id = {str(r.id): r for r in rows}
    return [by_id[i] for i in ids if i in by_id]


def log_outfit_as_worn(
    db: Session, outfit: OutfitRecommendation, *, now: datetime | None = None
) -> OutfitLog:
    now = now or datetime.now(timezone.utc)
    items = outfit_items(db, outfit)

    outfit.selected_at = now
    for item in items:
        item.total_wears = int(item.total_wears or 0) + 1
        item.last_worn_at = now

    log = OutfitLog(
        user_id=outfit.user_id,
        outfit_recommendation_id=outfit.id,
        item_ids=list(outfit.item_ids or []),
        confidence_score=outfit.confidence_score,
        worn_at=now,
    )
    db.add(log)
    db.commit()
    db.refresh(log)
    return log


def save_outfit_to_favorites(db: Session, outfit: OutfitRecommendation) -> tuple[FavoriteOutfit, bool]:
    existing = (
        db.query(FavoriteOutfit)
        .filter(
            FavoriteOutfit.user_id == outfit.user_id,
            FavoriteOutfit.outfit_recommendation_id == outfit.id,
        )
        .first()
    )
    if existing:
        return existing, False

    favorite = FavoriteOutfit(
        user_id=outfit.user_id,
        outfit_recommendation_id=outfit.id,
        item_ids=list(outfit.item_ids or []),
        confidence_note=outfit.confidence_note,
    )
    db.add(favorite)
    db.commit()
    db.refresh(favorite)
    return favorite, True


def generate_shareable_outfit(outfit: OutfitRecommendation) -> dict[str, str]:
    score = float(outfit.confidence_score or 0)
    if score >= 0.8:
        level = "High"
    elif score >= 0.6:
        level = "Medium"
    else:
        level = "Building"
    return {
        "title": "My Outfit Look",
        "description": (
            f"Feeling confident in this outfit! {outfit.confidence_note} Confidence Level: {level} ✨"
        ),
    }


def schedule_next_mirror_session(db: Session, user_id: UUID):
    prefs = preferences_service.get_notification_preferences(db, user_id)
    return notifications.schedule_daily_mirror_notification(db, user_id, prefs)


# -------------------------
# FEEDBACK
# -------------------------

@dataclass
class FeedbackInput:
    outfit_recommendation_id: UUID
    confidence_rating: int
    emotional_response: dict[str, Any]
    social_feedback: dict[str, Any] | None = None
    occasion: str | None = None
    comfort: dict[str, Any] | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


def analyze_feedback_patterns(feedback: FeedbackInput) -> dict[str, Any]:
    comfort = feedback.comfort or {}
    emotional = feedback.emotional_response or {}
    return {
        "fit_preferences": {
            "fit_rating": comfort.get("physical"),
            "comfort_level": comfort.get("confidence"),
        },
        "occasion_context": {"occasion": feedback.occasion},
        "confidence_factors": {
            "overall_confidence": feedback.confidence_rating,
            "confidence_boosting_factors": list(emotional.get("additional_emotions") or []),
            "mood": emotional.get("primary"),
        },
    }


def _update_item_ratings(
    db: Session, outfit: OutfitRecommendation, rating: float, compliments: int
) -> None:
    for item in outfit_items(db, outfit):
        count = int(item.rating_count or 0)
        current = float(item.average_rating or 0)
        item.average_rating = (current * count + rating) / (count + 1)
        item.rating_count = count + 1
        if compliments:
            item.compliments_received = int(item.compliments_received or 0) + compliments
    db.commit()


def _update_engagement(db: Session, user_id: UUID, rating: float, now: datetime) -> None:
    preferences_service.track_daily_engagement(db, user_id, now=now)
    ratings = (
        db.query(OutfitFeedback.confidence_rating)
        .filter(OutfitFeedback.user_id == user_id)
        .all()
    )
    values = [r[0] for r in ratings] or [rating]
    preferences_service.update_engagement_history(
        db,
        user_id,
        {"average_rating": round(sum(values) / len(values), 2)},
        now=now,
    )


def process_user_feedback(
    db: Session, user_id: UUID, feedback: FeedbackInput
) -> OutfitFeedback | None:
    """
    Store feedback and let every learning step run best-effort.

    Returns the stored row, or None when even saving failed.
    """
    patterns = analyze_feedback_patterns(feedback)

    comfort = feedback.comfort or {}
    row = OutfitFeedback(
        user_id=user_id,
        outfit_recommendation_id=feedback.outfit_recommendation_id,
        confidence_rating=feedback.confidence_rating,
        emotional_response=dict(feedback.emotional_response),
        social_feedback=dict(feedback.social_feedback) if feedback.social_feedback else None,
        occasion=feedback.occasion,
        comfort=dict(comfort) if comfort else None,
        comfort_rating=comfort.get("confidence"),
        created_at=feedback.created_at,
    )
    try:
        db.add(row)
        db.commit()
        db.refresh(row)
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Failed to save feedback for %s", user_id)
        return None

    log_user_event(
        user_id=user_id,
        event="feedback_learning_data",
        meta={
            "feedback_id": str(row.id),
            "rating": feedback.confidence_rating,
            "patterns": patterns,
            "context": {
                "occasion": feedback.occasion,
                "mood": (feedback.emotional_response or {}).get("primary"),
            },
        },
    )

    steps = (
        ("style preferences", lambda: style_profile_service.update_style_preferences(db, user_id, row)),
        ("engagement", lambda: _update_engagement(db, user_id, float(feedback.confidence_rating), feedback.created_at)),
        ("item ratings", lambda: _rate_items(db, user_id, feedback)),
        ("wardrobe cache", lambda: cache_wardrobe_data(user_id, load_wardrobe(db, user_id))),
    )
    for name, step in steps:
        try:
            step()
        except Exception:
            db.rollback()
            logger.exception("Non-fatal: %s update failed after feedback %s", name, row.id)
    return row


def _rate_items(db: Session, user_id: UUID, feedback: FeedbackInput) -> None:
    outfit = get_outfit(db, user_id, feedback.outfit_recommendation_id)
    if outfit is None:
        return
    compliments = int((feedback.social_feedback or {}).get("compliments_received") or 0)
    _update_item_ratings(db, outfit, float(feedback.confidence_rating), compliments)
