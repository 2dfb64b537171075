"""Retry, caching and fallback helpers shared by the mirror services."""

from __future__ import annotations

import logging
import random
import threading
import time
from datetime import datetime, timezone
from typing import Any, Callable, Generic, Hashable, Sequence, TypeVar
from uuid import UUID

from app.config.settings import get_settings
from app.services.context import (
    OutfitCandidate,
    QUICK_ACTIONS,
    WardrobeItemLike,
    WeatherContext,
    has_red_pink_clash,
    item_tags,
    snapshot_item,
    to_utc,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class MirrorError(Exception):
    """Base error for mirror services."""


class WardrobeUnavailableError(MirrorError):
    pass


class WeatherServiceError(MirrorError):
    pass


class NotificationSchedulingError(MirrorError):
    pass


WEATHER_CACHE_TTL_SECONDS = 2 * 60 * 60
WARDROBE_CACHE_TTL_SECONDS = 7 * 24 * 60 * 60

_ERROR_MESSAGES: dict[str, str] = {
    "network": "We're having trouble connecting. Your AYNA Mirror will use your recent preferences to create recommendations.",
    "weather": "Weather service is temporarily unavailable. We'll use seasonal patterns to suggest appropriate outfits.",
    "ai": "Our styling AI is taking a quick break. We've prepared some classic combinations based on your wardrobe.",
    "notification": "Notifications are having issues, but your daily recommendations are ready in the app.",
    "storage": "We're having trouble saving your preferences right now, but everything will sync when connection improves.",
}
_DEFAULT_ERROR_MESSAGE = "Something went wrong, but we've got backup plans to keep your style game strong."

_RECOVERY_ACTIONS: dict[str, list[str]] = {
    "network": [
        "Check your internet connection",
        "Try again in a few moments",
        "Use offline mode for basic features",
    ],
    "weather": [
        "Check weather manually for today",
        "Use seasonal outfit suggestions",
        "Try refreshing in a few minutes",
    ],
    "ai": [
        "Browse your wardrobe manually",
        "Use quick outfit combinations",
        "Check back later for AI recommendations",
    ],
    "notification": [
        "Open the app to see your recommendations",
        "Check notification settings",
        "Set a manual reminder",
    ],
}
_DEFAULT_RECOVERY_ACTIONS = ["Try again later", "Contact support if the issue persists"]


# -------------------------
# RETRY
# -------------------------

def execute_with_retry(
    fn: Callable[[], T],
    *,
    operation: str,
    max_retries: int = 3,
    base_delay: float | None = None,
    max_delay: float | None = None,
    sleep: Callable[[float], None] = time.sleep,
    retry_on: tuple[type[Exception], ...] = (Exception,),
) -> T:
    """
    Call `fn`, retrying up to `max_retries` times with exponential backoff.

    Only exceptions in `retry_on` are retried; anything else propagates at
    once. The final exception is re-raised unchanged once retries are exhausted.
    """
    settings = get_settings()
    base = settings.retry_base_delay_seconds if base_delay is None else base_delay
    cap = settings.retry_max_delay_seconds if max_delay is None else max_delay

    attempt = 0
    while True:
        try:
            return fn()
        except retry_on as exc:
            if attempt >= max_retries:
                logger.error("%s failed after %d attempts: %s", operation, attempt + 1, exc)
                raise
            delay = min(base * (2 ** attempt) + random.uniform(0, base), cap)
            logger.warning(
                "%s failed (attempt %d/%d): %s; retrying in %.2fs",
                operation,
                attempt + 1,
                max_retries + 1,
                exc,
                delay,
            )
            if delay > 0:
                sleep(delay)
            attempt += 1


# -------------------------
# CACHES
# -------------------------

class TTLCache(Generic[T]):
    """Small thread-safe in-process cache with per-entry expiry."""

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._data: dict[Hashable, tuple[float, T]] = {}
        self._lock = threading.Lock()

    def get(self, key: Hashable) -> T | None:
        with self._lock:
            entry = self._data.get(key)
            if entry is None:
                return None
            stored_at, value = entry
            if self._clock() - stored_at >= self.ttl_seconds:
                del self._data[key]
                return None
            return value

    def set(self, key: Hashable, value: T) -> None:
        with self._lock:
            self._data[key] = (self._clock(), value)

    def pop(self, key: Hashable) -> None:
        with self._lock:
            self._data.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._data.clear()


weather_cache: TTLCache[WeatherContext] = TTLCache(WEATHER_CACHE_TTL_SECONDS)
wardrobe_cache: TTLCache[list[Any]] = TTLCache(WARDROBE_CACHE_TTL_SECONDS)


def cache_weather(user_id: UUID, weather: WeatherContext) -> None:
    weather_cache.set(str(user_id), weather)


def cache_wardrobe_data(user_id: UUID, items: Sequence[WardrobeItemLike]) -> None:
    wardrobe_cache.set(str(user_id), [snapshot_item(i) for i in items])


def get_cached_wardrobe_data(user_id: UUID) -> list[Any] | None:
    return wardrobe_cache.get(str(user_id))


def clear_caches() -> None:
    weather_cache.clear()
    wardrobe_cache.clear()


# -------------------------
# WEATHER FALLBACK
# -------------------------

def seasonal_weather_fallback(
    location: str | None = None, now: datetime | None = None
) -> WeatherContext:
    now = to_utc(now) if now else datetime.now(timezone.utc)
    month = now.month
    if month in (12, 1, 2):
        temperature, condition = 45, "cloudy"
    elif month in (3, 4, 5):
        temperature, condition = 65, "sunny"
    elif month in (6, 7, 8):
        temperature, condition = 80, "sunny"
    else:
        temperature, condition = 60, "cloudy"

    return WeatherContext(
        temperature=temperature,
        condition=condition,
        humidity=50,
        wind_speed=5,
        location=location or "Unknown",
        timestamp=now,
    )


def handle_weather_service_error(
    user_id: UUID, location: str | None = None, now: datetime | None = None
) -> WeatherContext:
    cached = weather_cache.get(str(user_id))
    if cached is not None:
        return cached
    return seasonal_weather_fallback(location, now=now)


# -------------------------
# RECOMMENDATION FALLBACK
# -------------------------

_TOP_CATEGORIES = {"shirt", "blouse", "sweater", "tops"}
_BOTTOM_CATEGORIES = {"pants", "skirt", "shorts", "bottoms"}


def _rule_based_appropriate(item: WardrobeItemLike, weather: WeatherContext) -> bool:
    sub = (item.subcategory or "").lower()
    cat = (item.category or "").lower()
    tags = item_tags(item)
    if weather.temperature < 50:
        if any(s in sub for s in ("t-shirt", "tank", "shorts")):
            return False
        if "sleeveless" in tags or "summer" in tags:
            return False
    elif weather.temperature > 80:
        if any(s in sub or s in cat for s in ("coat", "sweater", "boots")):
            return False
        if "winter" in tags:
            return False
    return True


def generate_rule_based_recommendations(
    wardrobe: Sequence[WardrobeItemLike], weather: WeatherContext
) -> list[OutfitCandidate]:
    appropriate = [i for i in wardrobe if _rule_based_appropriate(i, weather)]
    tops = [i for i in appropriate if i.category in _TOP_CATEGORIES]
    bottoms = [i for i in appropriate if i.category in _BOTTOM_CATEGORIES]

    recs: list[OutfitCandidate] = []
    if bottoms:
        for idx, top in enumerate(tops[:3]):
            bottom = bottoms[idx % len(bottoms)]
            if has_red_pink_clash([top, bottom]):
                continue
            recs.append(
                OutfitCandidate(
                    items=[top, bottom],
                    confidence_note="A classic combination that always works well together.",
                    confidence_score=0.7,
                    reasoning=["Weather appropriate", "Classic combination"],
                    is_quick_option=idx == 0,
                )
            )

    if not recs:
        for idx, item in enumerate(appropriate[:3]):
            recs.append(
                OutfitCandidate(
                    items=[item],
                    confidence_note="A versatile piece that works well with many combinations.",
                    confidence_score=0.6,
                    reasoning=["Weather appropriate", "Versatile piece"],
                    is_quick_option=idx == 0,
                )
            )
    return recs


def get_emergency_recommendations(wardrobe: Sequence[WardrobeItemLike]) -> list[OutfitCandidate]:
    """The three most recently worn items, one per recommendation."""
    worn = [i for i in wardrobe if i.last_worn_at]
    worn.sort(key=lambda i: to_utc(i.last_worn_at), reverse=True)
    return [
        OutfitCandidate(
            items=[item],
            confidence_note="One of your recent favorites - you know it works!",
            confidence_score=0.6,
            reasoning=["Recently worn", "Proven choice"],
            quick_actions=[dict(a) for a in QUICK_ACTIONS if a["type"] != "share"],
            is_quick_option=idx == 0,
        )
        for idx, item in enumerate(worn[:3])
    ]


def handle_ai_service_error(
    wardrobe: Sequence[WardrobeItemLike], weather: WeatherContext
) -> list[OutfitCandidate]:
    try:
        recs = generate_rule_based_recommendations(wardrobe, weather)
    except Exception:
        logger.exception("Rule-based fallback failed")
        recs = []
    if recs:
        return recs
    return get_emergency_recommendations(wardrobe)


# -------------------------
# USER-FACING MESSAGES
# -------------------------

def get_user_friendly_error_message(context: str) -> str:
    return _ERROR_MESSAGES.get(context, _DEFAULT_ERROR_MESSAGE)


def get_recovery_actions(context: str) -> list[str]:
    return list(_RECOVERY_ACTIONS.get(context, _DEFAULT_RECOVERY_ACTIONS))
