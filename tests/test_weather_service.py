"""Tests for the weather client, parsing and appropriateness scoring."""

from __future__ import annotations

from datetime import datetime, timezone
from types import SimpleNamespace
from uuid import uuid4

import httpx
import pytest

from app.config.settings import get_settings
from app.services.context import WeatherContext
from app.services.error_handling import handle_weather_service_error
from app.services.weather_service import (
    Location,
    WeatherService,
    analyze_weather_appropriateness,
    filter_recommendations_by_weather,
    get_weather_based_suggestions,
    map_weather_condition,
    parse_forecast,
)

NOW = datetime(2024, 1, 10, 12, 0, tzinfo=timezone.utc)

CURRENT_PAYLOAD = {
    "name": "Paris",
    "main": {"temp": 71.6, "humidity": 40},
    "weather": [{"main": "Clear", "description": "clear sky"}],
    "wind": {"speed": 3.2},
}


def _ts(day: int, hour: int) -> int:
    return int(datetime(2024, 1, day, hour, tzinfo=timezone.utc).timestamp())


FORECAST_PAYLOAD = {
    "city": {"name": "Paris"},
    "list": [
        {"dt": _ts(10, 9), "main": {"temp": 40, "humidity": 80}, "weather": [{"main": "Rain"}]},
        {"dt": _ts(10, 12), "main": {"temp": 44, "humidity": 70}, "weather": [{"main": "Clouds"}]},
        {"dt": _ts(10, 18), "main": {"temp": 39, "humidity": 75}, "weather": [{"main": "Clouds"}]},
        {"dt": _ts(11, 6), "main": {"temp": 30, "humidity": 60}, "weather": [{"main": "Snow"}]},
    ],
}


@pytest.fixture
def with_api_key(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("OPENWEATHER_API_KEY", "test-key")
    monkeypatch.setenv("WEATHER_BASE_URL", "https://weather.test/data/2.5")
    get_settings.cache_clear()


def _service(handler) -> tuple[WeatherService, list[httpx.Request]]:
    calls: list[httpx.Request] = []

    def _record(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return handler(request)

    client = httpx.Client(transport=httpx.MockTransport(_record))
    return WeatherService(client=client), calls


def _item(category: str, tags: list[str] | None = None) -> SimpleNamespace:
    return SimpleNamespace(id=uuid4(), category=category, tags=tags or [])


def _weather(temperature: float, condition: str = "cloudy", **fields) -> WeatherContext:
    return WeatherContext(
        temperature=temperature,
        condition=condition,
        humidity=fields.get("humidity", 50),
        wind_speed=fields.get("wind_speed", 0),
        location="Testville",
        timestamp=NOW,
    )


# -------------------------
# parsing
# -------------------------

@pytest.mark.parametrize(
    ("main", "description", "expected"),
    [
        ("Thunderstorm", "thunderstorm with rain", "rainy"),
        ("Snow", "light snow", "snowy"),
        ("Thunderstorm", "thunderstorm", "stormy"),
        ("Clouds", "broken clouds", "cloudy"),
        ("Clear", "clear sky", "sunny"),
        ("Squall", "windy gusts", "windy"),
        (None, None, "cloudy"),
    ],
)
def test_map_weather_condition(main, description, expected) -> None:
    assert map_weather_condition(main, description) == expected


def test_forecast_keeps_one_midday_entry_per_day() -> None:
    forecast = parse_forecast(FORECAST_PAYLOAD, Location(48.85, 2.35))

    assert [w.temperature for w in forecast] == [44, 30]
    assert [w.condition for w in forecast] == ["cloudy", "snowy"]
    assert forecast[0].location == "Paris"


# -------------------------
# client
# -------------------------

def test_current_weather_is_fetched_and_cached(with_api_key) -> None:
    service, calls = _service(lambda r: httpx.Response(200, json=CURRENT_PAYLOAD))
    location = Location(48.85, 2.35)
    user_id = uuid4()

    first = service.get_current_weather(user_id, location)
    second = service.get_current_weather(user_id, location)

    assert len(calls) == 1
    assert calls[0].url.path == "/data/2.5/weather"
    assert calls[0].url.params["units"] == "imperial"
    assert calls[0].url.params["appid"] == "test-key"
    assert first.temperature == 72
    assert first.condition == "sunny"
    assert first.wind_speed == pytest.approx(3.2)
    assert first.location == "Paris"
    assert second is first
    # user-level cache backs the weather error fallback
    assert handle_weather_service_error(user_id) == first


def test_current_weather_falls_back_after_retries(with_api_key) -> None:
    service, calls = _service(lambda r: httpx.Response(500, json={"message": "boom"}))

    weather = service.get_current_weather(location=Location(1.0, 2.0, "Lisbon"))

    assert len(calls) == 3
    assert weather.location == "Lisbon"
    assert weather.humidity == 50


def test_malformed_weather_payload_is_not_retried(with_api_key) -> None:
    service, calls = _service(lambda r: httpx.Response(200, json={"weather": [], "name": "Lisbon"}))

    weather = service.get_current_weather(location=Location(1.0, 2.0, "Lisbon"))

    assert len(calls) == 1
    assert weather.location == "Lisbon"
    assert weather.humidity == 50


def test_missing_api_key_never_calls_the_api() -> None:
    service, calls = _service(lambda r: httpx.Response(200, json=CURRENT_PAYLOAD))

    weather = service.get_current_weather()

    assert calls == []
    assert weather.location == "New York"


def test_forecast_requests_eight_slots_per_day(with_api_key) -> None:
    service, calls = _service(lambda r: httpx.Response(200, json=FORECAST_PAYLOAD))

    forecast = service.get_weather_forecast(2, Location(48.85, 2.35, "Paris"))

    assert calls[0].url.path == "/data/2.5/forecast"
    assert calls[0].url.params["cnt"] == "16"
    assert len(forecast) == 2


def test_forecast_fallback_repeats_seasonal_weather() -> None:
    service, _ = _service(lambda r: httpx.Response(500))

    forecast = service.get_weather_forecast(3)

    assert len(forecast) == 3
    assert all(w.location == "New York" for w in forecast)


# -------------------------
# scoring
# -------------------------

def test_outerwear_scores_high_in_freezing_weather() -> None:
    freezing = _weather(20)

    assert analyze_weather_appropriateness(_item("outerwear"), freezing) == pytest.approx(0.8)
    assert analyze_weather_appropriateness(_item("bottoms", ["shorts"]), freezing) == pytest.approx(0.2)


def test_rain_penalizes_regular_shoes() -> None:
    rainy = _weather(60, "rainy")

    assert analyze_weather_appropriateness(_item("shoes"), rainy) == pytest.approx(0.4)
    assert analyze_weather_appropriateness(_item("shoes", ["waterproof"]), rainy) == pytest.approx(0.7)


def test_humidity_and_wind_adjust_score() -> None:
    muggy = _weather(70, humidity=85, wind_speed=20)

    score = analyze_weather_appropriateness(_item("tops", ["breathable", "fitted"]), muggy)

    assert score == pytest.approx(0.8)


def test_bad_item_scores_neutral() -> None:
    assert analyze_weather_appropriateness(SimpleNamespace(category="tops"), _weather(60)) == 0.5


def test_filter_recommendations_by_weather_sorts_and_drops() -> None:
    hot = _weather(95)
    breezy = SimpleNamespace(items=[_item("tops", ["light"]), _item("bottoms", ["sleeveless"])])
    bundled = SimpleNamespace(items=[_item("outerwear", ["heavy"])])
    plain = SimpleNamespace(items=[_item("tops")])

    result = filter_recommendations_by_weather([plain, bundled, breezy], hot)

    assert result == [breezy, plain]


def test_weather_suggestions() -> None:
    assert get_weather_based_suggestions(None) == ["Check the weather and dress accordingly"]

    tips = get_weather_based_suggestions(_weather(20, "snowy", humidity=80, wind_speed=20))

    assert "Layer up with warm outerwear" in tips
    assert "Waterproof boots are essential" in tips
    assert "Avoid heavy layering" in tips
    assert "Secure loose items and accessories" in tips
