# app/services/outfit_engine.py

from __future__ import annotations

import logging
from collections import Counter
from datetime import datetime, timezone
from typing import Sequence

from app.services.confidence_notes import generate_template_note
from app.services.context import (
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
)

logger = logging.getLogger(__name__)

# -------------------------
# CONSTANTS
# -------------------------

NEUTRAL_COLORS = ("black", "white", "gray", "grey", "beige", "navy", "brown")
COMPLEMENTARY_PAIRS = (("red", "green"), ("blue", "orange"), ("yellow", "purple"))
ANALOGOUS_GROUPS = (
    ("red", "orange", "yellow"),
    ("blue", "green", "purple"),
    ("yellow", "green", "blue"),
)
TRIADIC_GROUPS = (("red", "blue", "yellow"), ("orange", "green", "purple"))

_HEX_NEUTRALS = {
    "#000000": "black",
    "#000": "black",
    "#ffffff": "white",
    "#fff": "white",
    "#808080": "gray",
    "#888888": "gray",
}

# Pair harmony scores
SINGLE_COLOR_SCORE = 0.9
NEUTRAL_SCORE = 0.99
COMPLEMENTARY_SCORE = 0.9
ANALOGOUS_SCORE = 0.85
TRIADIC_SCORE = 0.8
MONOCHROMATIC_SCORE = 0.92
UNRELATED_COLOR_SCORE = 0.6
DEFAULT_HARMONY = 0.8

# Celsius
FREEZING_C = 0
COLD_C = 10
MILD_C = 25
WARM_C = 30

NEUTRAL_CONFIDENCE = 0.5
MIN_CONFIDENCE = 0.1
MAX_CONFIDENCE = 1.0
HIGH_SCORE_THRESHOLD = 0.8

RECENTLY_WORN_DAYS = 7
NEGLECTED_DAYS = 30
AVERAGE_WEARS_DIVISOR = 12
MAX_USAGE_BONUS = 0.25
REDISCOVERY_BONUS = 0.1
FEEDBACK_WINDOW = 50

DRESS_COMBINATION_CAP = 50
TRIPLE_COMBINATION_CAP = 50
PAIR_FALLBACK_CAP = 10
COMBINATION_LIMIT = 20

FORMAL_TAGS = ("formal", "business", "elegant", "dressy")
CASUAL_TAGS = ("casual", "everyday", "relaxed", "comfortable")
_OCCASION_FORMAL_TAGS = ("formal", "business", "elegant")
_OCCASION_CASUAL_TAGS = ("casual", "everyday", "relaxed")
_NEEDS_CLEANING_TAGS = {"needs-cleaning", "dirty", "stained", "at-cleaner", "dry-cleaning"}


def fahrenheit_to_celsius(value: float) -> float:
    return (float(value) - 32.0) * 5.0 / 9.0


def _clamp(value: float, lo: float = 0.0, hi: float = 1.0) -> float:
    return max(lo, min(hi, value))


# -------------------------
# FILTERING
# -------------------------

def is_weather_appropriate(item: WardrobeItemLike, weather: WeatherContext | None) -> bool:
    if weather is None:
        return True

    temp_c = fahrenheit_to_celsius(weather.temperature)
    tags = item_tags(item)
    category = item.category

    if temp_c < COLD_C:
        if category == "outerwear" or "warm" in tags or "winter" in tags:
            return True
        if category == "tops" and ("tank" in tags or "sleeveless" in tags):
            return False
    elif temp_c > MILD_C:
        if "heavy" in tags or "winter" in tags or "wool" in tags:
            return False
        if category == "outerwear" and "light" not in tags:
            return False

    if weather.condition in ("rainy", "snowy"):
        if category == "shoes" and "waterproof" not in tags and "boots" not in tags:
            return False
        if "suede" in tags or "delicate" in tags:
            return False

    if weather.condition == "windy" and ("loose" in tags or "flowy" in tags):
        return False

    return True


def is_item_clean(item: WardrobeItemLike, now: datetime) -> bool:
    if _NEEDS_CLEANING_TAGS & set(item_tags(item)):
        return False
    # Worn heavily and very recently: probably in the laundry.
    wears = int(item.total_wears or 0)
    if wears > 10 and item.last_worn_at and days_since_worn(item, now) < 2:
        return False
    return True


def filter_available_items(
    wardrobe: Sequence[WardrobeItemLike],
    context: RecommendationContext,
) -> list[WardrobeItemLike]:
    """Not worn in the last week, weather appropriate, clean."""
    now = context.date
    return [
        item for item in wardrobe
        if days_since_worn(item, now) > RECENTLY_WORN_DAYS
        and is_weather_appropriate(item, context.weather)
        and is_item_clean(item, now)
    ]


# -------------------------
# CANDIDATE GENERATION
# -------------------------

def generate_outfit_combinations(items: Sequence[WardrobeItemLike]) -> list[list[WardrobeItemLike]]:
    by_category: dict[str, list[WardrobeItemLike]] = {}
    for item in items:
        by_category.setdefault(item.category, []).append(item)

    tops = by_category.get("tops", [])
    bottoms = by_category.get("bottoms", [])
    shoes = by_category.get("shoes", [])
    dresses = by_category.get("dresses", [])
    outerwear = by_category.get("outerwear", [])

    combinations: list[list[WardrobeItemLike]] = []
    for dress in dresses:
        for shoe in shoes:
            if len(combinations) >= DRESS_COMBINATION_CAP:
                break
            outfit = [dress, shoe]
            if outerwear:
                outfit.append(outerwear[0])
            if has_red_pink_clash(outfit):
                continue
            combinations.append(outfit)

    # dress outfits count toward the separates cap too
    for top in tops:
        for bottom in bottoms:
            for shoe in shoes:
                if len(combinations) >= TRIPLE_COMBINATION_CAP:
                    break
                outfit = [top, bottom, shoe]
                if outerwear:
                    outfit.append(outerwear[0])
                if has_red_pink_clash(outfit):
                    continue
                combinations.append(outfit)

    if not combinations and len(items) >= 2:
        for i, first in enumerate(items):
            for second in items[i + 1:]:
                if len(combinations) >= PAIR_FALLBACK_CAP:
                    break
                if has_red_pink_clash([first, second]):
                    continue
                combinations.append([first, second])

    while len(combinations) < 3 and items:
        combinations.append([items[0]])

    return combinations[:COMBINATION_LIMIT]


# -------------------------
# COMPATIBILITY SCORING
# -------------------------

def _matches_pair(a: str, b: str, x: str, y: str) -> bool:
    return (x in a and y in b) or (y in a and x in b)


def _pair_harmony(raw_a: str, raw_b: str) -> float:
    a = _HEX_NEUTRALS.get(raw_a, raw_a)
    b = _HEX_NEUTRALS.get(raw_b, raw_b)

    if any(n in a for n in NEUTRAL_COLORS) or any(n in b for n in NEUTRAL_COLORS):
        return NEUTRAL_SCORE
    if any(_matches_pair(a, b, x, y) for x, y in COMPLEMENTARY_PAIRS):
        return COMPLEMENTARY_SCORE
    for group in ANALOGOUS_GROUPS:
        if any(c in a for c in group) and any(c in b for c in group):
            return ANALOGOUS_SCORE
    for group in TRIADIC_GROUPS:
        if any(c in raw_a for c in group) and any(c in raw_b for c in group):
            return TRIADIC_SCORE
    if raw_a == raw_b or raw_a in raw_b or raw_b in raw_a:
        return MONOCHROMATIC_SCORE
    return UNRELATED_COLOR_SCORE


def color_harmony_score(items: Sequence[WardrobeItemLike]) -> float:
    colors = [c for i in items for c in item_colors(i)]
    if len(colors) < 2:
        return SINGLE_COLOR_SCORE

    total = 0.0
    comparisons = 0
    for i, a in enumerate(colors):
        for b in colors[i + 1:]:
            total += _pair_harmony(a, b)
            comparisons += 1
    if comparisons == 0:
        return DEFAULT_HARMONY
    return min(total / comparisons, 1.0)


def style_consistency_score(items: Sequence[WardrobeItemLike]) -> float:
    """Share of tags that recur across items, relative to outfit size."""
    if not items:
        return 0.0
    counts = Counter(t for i in items for t in item_tags(i))
    repeated = sum(1 for c in counts.values() if c > 1)
    return min(repeated / len(items), 1.0)


def category_balance_score(items: Sequence[WardrobeItemLike]) -> float:
    unique = len({i.category for i in items})
    if 2 <= unique <= 4:
        return 1.0
    if unique == 1:
        return 0.3
    return 0.6


def formality_consistency_score(items: Sequence[WardrobeItemLike]) -> float:
    if not items:
        return 0.0
    formal = sum(1 for i in items if set(item_tags(i)) & set(FORMAL_TAGS))
    casual = sum(1 for i in items if set(item_tags(i)) & set(CASUAL_TAGS))
    return max(formal / len(items), casual / len(items))


def outfit_compatibility_score(items: Sequence[WardrobeItemLike]) -> float:
    """Color harmony, style consistency, category balance and formality, 0..1."""
    try:
        if len(items) < 2:
            return NEUTRAL_CONFIDENCE
        score = (
            color_harmony_score(items) * 0.4
            + style_consistency_score(items) * 0.3
            + category_balance_score(items) * 0.2
            + formality_consistency_score(items) * 0.1
        )
        return _clamp(score)
    except Exception:
        logger.exception("Failed to calculate outfit compatibility")
        return NEUTRAL_CONFIDENCE


def _item_weather_score(item: WardrobeItemLike, weather: WeatherContext) -> float:
    temp_c = fahrenheit_to_celsius(weather.temperature)
    tags = item_tags(item)
    category = item.category
    score = 0.5

    if temp_c <= FREEZING_C:
        if category == "outerwear" and ("winter" in tags or "heavy" in tags):
            score = 1.0
        elif "warm" in tags or "wool" in tags or "fleece" in tags:
            score = 0.9
        elif "light" in tags or "summer" in tags:
            score = 0.1
    elif temp_c <= COLD_C:
        if category == "outerwear" or "jacket" in tags:
            score = 0.9
        elif "warm" in tags or "long-sleeve" in tags:
            score = 0.8
        elif "light" in tags or "tank" in tags:
            score = 0.3
    elif temp_c <= MILD_C:
        if "light-jacket" in tags or "cardigan" in tags:
            score = 0.9
        elif "long-sleeve" in tags or "sweater" in tags:
            score = 0.8
        elif "short-sleeve" in tags:
            score = 0.7
    elif temp_c <= WARM_C:
        if "light" in tags or "breathable" in tags or "cotton" in tags:
            score = 0.9
        elif "short-sleeve" in tags or "summer" in tags:
            score = 0.8
        elif "heavy" in tags or "wool" in tags:
            score = 0.2
    else:
        if "tank" in tags or "sleeveless" in tags or "linen" in tags:
            score = 1.0
        elif "light" in tags or "summer" in tags:
            score = 0.9
        elif "heavy" in tags or category == "outerwear":
            score = 0.1

    if weather.condition == "rainy":
        if "waterproof" in tags or "rain-resistant" in tags:
            score = min(score + 0.2, MAX_CONFIDENCE)
        elif "delicate" in tags or "silk" in tags:
            score = max(score - 0.3, MIN_CONFIDENCE)
    elif weather.condition == "snowy":
        if "waterproof" in tags or "winter-boots" in tags:
            score = min(score + 0.3, MAX_CONFIDENCE)
        elif category == "shoes":
            score = max(score - 0.4, MIN_CONFIDENCE)
    elif weather.condition == "windy":
        if category == "outerwear" or "wind-resistant" in tags:
            score = min(score + 0.1, MAX_CONFIDENCE)
        elif "loose" in tags or "flowy" in tags:
            score = max(score - 0.2, MIN_CONFIDENCE)

    return score


def weather_compatibility_score(
    items: Sequence[WardrobeItemLike], weather: WeatherContext | None
) -> float:
    if weather is None:
        return NEUTRAL_CONFIDENCE
    if not items:
        return 0.0
    return sum(_item_weather_score(i, weather) for i in items) / len(items)


def occasion_compatibility_score(
    items: Sequence[WardrobeItemLike], calendar: CalendarContext | None
) -> float:
    if calendar is None or calendar.primary_event is None:
        return 0.8
    if not items:
        return 0.0

    level = calendar.formality_level
    aligned = 0
    for item in items:
        tags = set(item_tags(item))
        if tags & set(_OCCASION_FORMAL_TAGS):
            formality = "formal"
        elif tags & set(_OCCASION_CASUAL_TAGS):
            formality = "casual"
        else:
            formality = "neutral"

        if level == "formal" and formality == "formal":
            aligned += 1
        elif level == "casual" and formality in ("casual", "neutral"):
            aligned += 1
        elif level == "business" and formality in ("formal", "neutral"):
            aligned += 1
    return aligned / len(items)


# -------------------------
# CONFIDENCE + SATISFACTION
# -------------------------

def confidence_score(
    items: Sequence[WardrobeItemLike],
    feedback_history: Sequence[FeedbackRecord],
    now: datetime | None = None,
) -> float:
    """
    Blend overlapping past ratings with usage and rediscovery bonuses.

    Each past feedback adds `rating/5` weighted by how much of the outfit it
    shares; the sum is then averaged together with the neutral prior.
    """
    now = now or datetime.now(timezone.utc)
    try:
        if not items:
            return NEUTRAL_CONFIDENCE
        item_ids = [str(i.id) for i in items]
        base = NEUTRAL_CONFIDENCE
        relevant = 0
        for fb in list(feedback_history)[:FEEDBACK_WINDOW]:
            fb_ids = [str(x) for x in fb.item_ids]
            overlap = sum(1 for i in item_ids if i in fb_ids)
            if overlap <= 0:
                continue
            weight = overlap / max(len(item_ids), len(fb_ids))
            base += (float(fb.confidence_rating) / 5.0) * weight
            relevant += 1
        if relevant:
            base = base / (relevant + 1)

        avg_wears = sum(int(i.total_wears or 0) for i in items) / len(items)
        usage_bonus = min(avg_wears / AVERAGE_WEARS_DIVISOR, MAX_USAGE_BONUS)
        rediscovery = (
            REDISCOVERY_BONUS
            if any(days_since_worn(i, now) > NEGLECTED_DAYS for i in items)
            else 0.0
        )
        score = min(base + usage_bonus + rediscovery, MAX_CONFIDENCE)
        return max(score, MIN_CONFIDENCE)
    except Exception:
        logger.exception("Failed to calculate confidence score")
        return NEUTRAL_CONFIDENCE


def predict_user_satisfaction(items: Sequence[WardrobeItemLike], profile: StyleProfile) -> float:
    try:
        colors = [c for i in items for c in item_colors(i)]
        preferred_colors = {c.lower() for c in profile.preferred_colors}
        aligned_colors = [c for c in colors if c in preferred_colors]
        color_alignment = min(1.0, (len(aligned_colors) / len(colors)) * 1.2) if colors else 0.0

        tags = [t for i in items for t in item_tags(i)]
        preferred_styles = {s.lower() for s in profile.preferred_styles}
        aligned_tags = [t for t in tags if t in preferred_styles]
        style_alignment = len(aligned_tags) / len(tags) if tags else 0.0

        ids = {str(i.id) for i in items}
        matching = [
            p for p in profile.confidence_patterns
            if any(str(x) in ids for x in p.item_combination)
        ]
        pattern_alignment = (
            sum(p.average_rating for p in matching) / len(matching) / 5.0 if matching else 0.0
        )

        score = 0.5 + color_alignment * 0.3 + style_alignment * 0.3 + pattern_alignment * 0.4
        return _clamp(score)
    except Exception:
        logger.exception("Failed to predict user satisfaction")
        return NEUTRAL_CONFIDENCE


# -------------------------
# EXPLANATION DATA
# -------------------------

def build_reasoning(compatibility: float, confidence: float, weather: float) -> list[str]:
    reasons: list[str] = []
    if compatibility > HIGH_SCORE_THRESHOLD:
        reasons.append("Perfect color harmony and style consistency")
    if confidence > HIGH_SCORE_THRESHOLD:
        reasons.append("Based on your previous positive feedback")
    if weather > HIGH_SCORE_THRESHOLD:
        reasons.append("Ideal for today's weather conditions")
    if not reasons:
        reasons.append("A fresh combination to try something new")
    return reasons


# -------------------------
# STYLE RECOMMENDATIONS
# -------------------------

def generate_style_recommendations(
    wardrobe: Sequence[WardrobeItemLike],
    context: RecommendationContext,
    feedback_history: Sequence[FeedbackRecord] = (),
) -> list[OutfitCandidate]:
    """Score every viable combination and keep the best three."""
    available = filter_available_items(wardrobe, context)
    combinations = generate_outfit_combinations(available)

    scored = []
    for items in combinations:
        compat = outfit_compatibility_score(items)
        weather = weather_compatibility_score(items, context.weather)
        occasion = occasion_compatibility_score(items, context.calendar)
        confidence = confidence_score(items, feedback_history, now=context.date)
        total = compat * 0.3 + confidence * 0.4 + weather * 0.2 + occasion * 0.1
        scored.append((total, items, compat, confidence, weather))

    scored.sort(key=lambda s: s[0], reverse=True)

    recommendations: list[OutfitCandidate] = []
    for index, (_, items, compat, confidence, weather) in enumerate(scored[:3]):
        recommendations.append(
            OutfitCandidate(
                items=list(items),
                confidence_note=generate_template_note(items, context.weather),
                confidence_score=confidence,
                reasoning=build_reasoning(compat, confidence, weather),
                is_quick_option=index == 0,
            )
        )
    logger.debug(
        "Generated %d recommendations from %d available items for %s",
        len(recommendations),
        len(available),
        context.user_id,
    )
    return recommendations
