"""Current weather, forecasts and weather-appropriateness scoring."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Any, Sequence, TypeVar
from uuid import UUID

import httpx

from app.config.settings import get_settings
from app.services.context import WardrobeItemLike, WeatherContext, item_tags
from app.services.error_handling import (
    TTLCache,
    WeatherServiceError,
    cache_weather,
    execute_with_retry,
    seasonal_weather_fallback,
)

logger = logging.getLogger(__name__)

WEATHER_CACHE_SECONDS = 30 * 60
DEFAULT_MIN_WEATHER_SCORE = 0.35

R = TypeVar("R")


class Location:
    __slots__ = ("latitude", "longitude", "city")

    def __init__(self, latitude: float, longitude: float, city: str | None = None):
        self.latitude = latitude
        self.longitude = longitude
        self.city = city

    @property
    def cache_key(self) -> str:
        return f"{self.latitude}_{self.longitude}"


def location_for_user(user: Any, *, allow_tracking: bool = True) -> Location | None:
    """The user's saved home location, if set and location tracking is allowed."""
    if user is None or not allow_tracking:
        return None
    if user.home_latitude is None or user.home_longitude is None:
        return None
    return Location(user.home_latitude, user.home_longitude, user.home_city)


def map_weather_condition(main: str | None, description: str | None) -> str:
    main_l = (main or "").lower()
    desc_l = (description or "").lower()

    if "rain" in main_l or "rain" in desc_l:
        return "rainy"
    if "snow" in main_l or "snow" in desc_l:
        return "snowy"
    if "storm" in main_l or "storm" in desc_l or "thunder" in desc_l:
        return "stormy"
    if "cloud" in main_l or "cloud" in desc_l:
        return "cloudy"
    if "clear" in main_l or "clear" in desc_l or "sun" in desc_l:
        return "sunny"
    if "wind" in desc_l:
        return "windy"
    return "cloudy"


def _parse_entry(entry: dict[str, Any], location_name: str, timestamp: datetime) -> WeatherContext:
    weather = (entry.get("weather") or [{}])[0] or {}
    main = entry.get("main") or {}
    wind = entry.get("wind") or {}
    return WeatherContext(
        temperature=round(float(main["temp"])),
        condition=map_weather_condition(weather.get("main"), weather.get("description")),
        humidity=float(main.get("humidity", 0)),
        wind_speed=float(wind.get("speed") or 0),
        location=location_name,
        timestamp=timestamp,
    )


def parse_current_weather(data: dict[str, Any], location: Location) -> WeatherContext:
    name = location.city or data.get("name") or "Unknown"
    return _parse_entry(data, name, datetime.now(timezone.utc))


def parse_forecast(data: dict[str, Any], location: Location) -> list[WeatherContext]:
    """One forecast per calendar day, preferring the 10:00-14:00 slots."""
    daily: dict[str, dict[str, Any]] = {}
    for entry in data.get("list") or []:
        ts = datetime.fromtimestamp(int(entry["dt"]), tz=timezone.utc)
        key = ts.date().isoformat()
        if key not in daily or 10 <= ts.hour <= 14:
            daily[key] = entry

    name = location.city or (data.get("city") or {}).get("name") or "Unknown"
    return [
        _parse_entry(entry, name, datetime.fromtimestamp(int(entry["dt"]), tz=timezone.utc))
        for entry in daily.values()
    ]


# -------------------------
# APPROPRIATENESS SCORING
# -------------------------

def _temperature_score(category: str, tags: list[str], temperature: float) -> float:
    score = 0.0
    if temperature < 32:
        if category == "outerwear" or "winter" in tags or "warm" in tags:
            score += 0.3
        if "light" in tags or "summer" in tags:
            score -= 0.3
        if "shorts" in tags or "sleeveless" in tags:
            score -= 0.3
    elif temperature < 50:
        if category == "outerwear" or "warm" in tags or "long-sleeve" in tags:
            score += 0.2
        if "light" in tags or "sleeveless" in tags:
            score -= 0.2
        if "shorts" in tags:
            score -= 0.2
        if "summer" in tags:
            score -= 0.1
    elif temperature < 65:
        if "light-layer" in tags or "cardigan" in tags:
            score += 0.1
        if "heavy" in tags or "winter" in tags:
            score -= 0.1
    elif temperature < 75:
        score += 0.1
    elif temperature < 85:
        if "light" in tags or "breathable" in tags or "summer" in tags:
            score += 0.25
        if category == "outerwear" or "heavy" in tags or "long-sleeve" in tags:
            score -= 0.25
    else:
        if "light" in tags or "breathable" in tags or "sleeveless" in tags:
            score += 0.3
        if category == "outerwear" or "heavy" in tags or "long-sleeve" in tags:
            score -= 0.35
    return score


def _condition_score(category: str, tags: list[str], condition: str) -> float:
    score = 0.0
    if condition == "rainy":
        if "waterproof" in tags or "water-resistant" in tags:
            score += 0.2
        if "suede" in tags or "delicate" in tags:
            score -= 0.2
        if category == "shoes" and "waterproof" not in tags:
            score -= 0.1
    elif condition == "snowy":
        if "waterproof" in tags or "winter" in tags or "warm" in tags:
            score += 0.2
        if "light" in tags or "delicate" in tags:
            score -= 0.2
        if category == "shoes" and "waterproof" not in tags:
            score -= 0.3
    elif condition == "windy":
        if "fitted" in tags or "structured" in tags:
            score += 0.1
        if "flowy" in tags or "loose" in tags:
            score -= 0.1
        if category == "accessories" and "hat" in tags:
            score -= 0.1
    elif condition == "sunny":
        if {"sun-protection", "light-color", "breathable", "light"} & set(tags):
            score += 0.1
        if "dark" in tags and category == "tops":
            score -= 0.05
    elif condition == "stormy":
        if "waterproof" in tags or category == "outerwear":
            score += 0.2
        if "delicate" in tags or "formal" in tags:
            score -= 0.2
    return score


def _environment_score(tags: list[str], humidity: float, wind_speed: float) -> float:
    score = 0.0
    if humidity > 70:
        if "breathable" in tags or "moisture-wicking" in tags:
            score += 0.1
        if "heavy" in tags or "non-breathable" in tags:
            score -= 0.1
    if wind_speed and wind_speed >= 15:
        if "wind-resistant" in tags or "fitted" in tags:
            score += 0.1
        if "flowy" in tags or "loose" in tags:
            score -= 0.1
    return score


def analyze_weather_appropriateness(item: WardrobeItemLike, weather: WeatherContext) -> float:
    """0..1 suitability of a single item for the given weather."""
    try:
        category = (item.category or "").lower()
        tags = item_tags(item)
        score = 0.5
        score += _temperature_score(category, tags, weather.temperature)
        score += _condition_score(category, tags, weather.condition)
        score += _environment_score(tags, weather.humidity, weather.wind_speed)
        return max(0.0, min(1.0, score))
    except Exception:
        logger.exception("Failed to analyze weather appropriateness")
        return 0.5


def outfit_weather_score(items: Sequence[WardrobeItemLike], weather: WeatherContext) -> float:
    if not items:
        return 0.0
    return sum(analyze_weather_appropriateness(i, weather) for i in items) / len(items)


def filter_recommendations_by_weather(
    recommendations: Sequence[R],
    weather: WeatherContext,
    min_score: float = DEFAULT_MIN_WEATHER_SCORE,
) -> list[R]:
    """Drop outfits below `min_score`, best weather fit first."""
    try:
        scored = [(rec, outfit_weather_score(rec.items, weather)) for rec in recommendations]
        scored = [s for s in scored if s[1] >= min_score]
        scored.sort(key=lambda s: s[1], reverse=True)
        return [rec for rec, _ in scored]
    except Exception:
        logger.exception("Failed to filter recommendations by weather")
        return list(recommendations)


def get_weather_based_suggestions(weather: WeatherContext | None) -> list[str]:
    if weather is None:
        return ["Check the weather and dress accordingly"]

    suggestions: list[str] = []
    temperature = weather.temperature
    if temperature < 32:
        suggestions += [
            "Layer up with warm outerwear",
            "Don't forget gloves and a hat",
            "Waterproof boots recommended",
        ]
    elif temperature < 50:
        suggestions += [
            "A warm jacket or coat is essential",
            "Consider layering for warmth",
            "Closed-toe shoes recommended",
        ]
    elif temperature < 65:
        suggestions += [
            "Light jacket or cardigan recommended",
            "Perfect weather for layering",
            "Comfortable for most clothing choices",
        ]
    elif temperature < 75:
        suggestions += [
            "Ideal weather for most outfits",
            "Light layers work well",
            "Great day for your favorite pieces",
        ]
    elif temperature < 85:
        suggestions += [
            "Light, breathable fabrics recommended",
            "Consider short sleeves or sleeveless",
            "Comfortable shoes for warm weather",
        ]
    else:
        suggestions += [
            "Stay cool with minimal, light clothing",
            "Breathable fabrics are essential",
            "Sun protection recommended",
        ]

    if weather.condition == "rainy":
        suggestions += [
            "Waterproof or water-resistant items",
            "Avoid light colors that show water stains",
            "Quick-dry fabrics are ideal",
        ]
    elif weather.condition == "snowy":
        suggestions += [
            "Waterproof boots are essential",
            "Dark colors hide salt stains",
            "Layer for warmth and protection",
        ]
    elif weather.condition == "windy":
        suggestions += [
            "Avoid loose, flowing garments",
            "Secure accessories and layers",
            "Consider wind-resistant outerwear",
        ]
    elif weather.condition == "sunny":
        suggestions += [
            "UV protection recommended",
            "Light colors reflect heat",
            "Perfect day to showcase your style",
        ]

    if weather.humidity > 70:
        suggestions += ["Breathable, moisture-wicking fabrics", "Avoid heavy layering"]
    if weather.wind_speed and weather.wind_speed > 15:
        suggestions += ["Secure loose items and accessories", "Consider wind-resistant outerwear"]

    return suggestions


# -------------------------
# SERVICE
# -------------------------

class WeatherService:
    """OpenWeatherMap client with caching and seasonal fallback."""

    def __init__(self, client: httpx.Client | None = None):
        self.settings = get_settings()
        self._client = client or httpx.Client(headers={"Accept": "application/json"})
        self._current_cache: TTLCache[WeatherContext] = TTLCache(WEATHER_CACHE_SECONDS)
        self._forecast_cache: TTLCache[list[WeatherContext]] = TTLCache(WEATHER_CACHE_SECONDS)

    def default_location(self) -> Location:
        return Location(
            self.settings.default_latitude,
            self.settings.default_longitude,
            self.settings.default_city,
        )

    def _get_json(self, path: str, params: dict[str, Any], timeout: float) -> dict[str, Any]:
        url = f"{self.settings.weather_base_url}/{path}"
        try:
            r = self._client.get(url, params=params, timeout=timeout)
            r.raise_for_status()
        except httpx.HTTPError as exc:
            raise WeatherServiceError(f"Weather request to /{path} failed: {exc}") from exc
        return r.json() or {}

    def fetch_current(self, location: Location) -> WeatherContext:
        data = self._get_json(
            "weather",
            {
                "lat": location.latitude,
                "lon": location.longitude,
                "appid": self.settings.weather_api_key,
                "units": "imperial",
            },
            self.settings.weather_timeout_seconds,
        )
        return parse_current_weather(data, location)

    def fetch_forecast(self, location: Location, days: int) -> list[WeatherContext]:
        data = self._get_json(
            "forecast",
            {
                "lat": location.latitude,
                "lon": location.longitude,
                "appid": self.settings.weather_api_key,
                "units": "imperial",
                "cnt": days * 8,  # 3-hour slots
            },
            self.settings.forecast_timeout_seconds,
        )
        return parse_forecast(data, location)

    def get_current_weather(
        self, user_id: UUID | None = None, location: Location | None = None
    ) -> WeatherContext:
        location = location or self.default_location()

        cached = self._current_cache.get(location.cache_key)
        if cached is not None:
            return cached

        if not self.settings.weather_api_key:
            logger.info("Weather API key not configured, using seasonal fallback")
            return seasonal_weather_fallback(location.city)

        try:
            weather = execute_with_retry(
                lambda: self.fetch_current(location),
                operation="weather.get_current_weather",
                retry_on=(WeatherServiceError,),
                max_retries=2,
            )
        except Exception:
            logger.warning("Weather unavailable for %s, using seasonal fallback", location.cache_key)
            return seasonal_weather_fallback(location.city)

        self._current_cache.set(location.cache_key, weather)
        if user_id is not None:
            cache_weather(user_id, weather)
        return weather

    def get_weather_forecast(
        self, days: int = 5, location: Location | None = None
    ) -> list[WeatherContext]:
        location = location or self.default_location()
        cache_key = f"{location.cache_key}_{days}"

        cached = self._forecast_cache.get(cache_key)
        if cached is not None:
            return cached

        if not self.settings.weather_api_key:
            return self._fallback_forecast(days, location)

        try:
            forecast = execute_with_retry(
                lambda: self.fetch_forecast(location, days),
                operation="weather.get_weather_forecast",
                retry_on=(WeatherServiceError,),
                max_retries=2,
            )
        except Exception:
            logger.warning("Forecast unavailable for %s, using seasonal fallback", location.cache_key)
            return self._fallback_forecast(days, location)

        self._forecast_cache.set(cache_key, forecast)
        return forecast

    def _fallback_forecast(self, days: int, location: Location) -> list[WeatherContext]:
        now = datetime.now(timezone.utc)
        result = []
        for offset in range(days):
            day = now + timedelta(days=offset)
            result.append(seasonal_weather_fallback(location.city, now=day))
        return result

    def close(self) -> None:
        self._client.close()


@lru_cache
def get_weather_service() -> WeatherService:
    return WeatherService()
