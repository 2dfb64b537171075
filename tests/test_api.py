"""HTTP tests for the FastAPI routers."""

from __future__ import annotations

from uuid import uuid4

import pytest


def _add_item(client, category: str, **fields) -> dict:
    body = {"category": category, "colors": ["Navy"], "tags": ["casual"], **fields}
    res = client.post("/wardrobe", json=body)
    assert res.status_code == 200, res.text
    return res.json()


@pytest.fixture
def api_wardrobe(client) -> list[dict]:
    return [
        _add_item(client, "top", subcategory="sweater", average_rating=4.5),
        _add_item(client, "tops", subcategory="blouse", colors=["white"], average_rating=4.0),
        _add_item(client, "bottom", subcategory="jeans", colors=["blue"], average_rating=4.2),
        _add_item(client, "bottoms", subcategory="chinos", colors=["beige"], average_rating=3.9),
        _add_item(client, "shoe", subcategory="boots", colors=["brown"], average_rating=4.0),
        _add_item(client, "shoes", subcategory="sneakers", colors=["white"], average_rating=3.8),
    ]


@pytest.fixture
def daily(client, api_wardrobe) -> dict:
    res = client.post("/mirror/daily")
    assert res.status_code == 200, res.text
    return res.json()


def test_health(client) -> None:
    assert client.get("/health").json() == {"status": "ok"}


# -------------------------
# wardrobe
# -------------------------

def test_wardrobe_create_normalizes_labels(client) -> None:
    item = _add_item(client, " Top ", colors=["Navy", " "], tags=["Casual"], average_rating=4.0)

    assert item["created"] is True
    assert item["category"] == "tops"
    assert item["colors"] == ["navy"]
    assert item["tags"] == ["casual"]
    assert item["rating_count"] == 1


@pytest.mark.parametrize("body", [{"category": "hats"}, {"category": "tops", "average_rating": 6}])
def test_wardrobe_create_validation(client, body) -> None:
    assert client.post("/wardrobe", json=body).status_code == 422


def test_wardrobe_update_and_soft_delete(client) -> None:
    item = _add_item(client, "tops")

    assert client.put(f"/wardrobe/{item['id']}", json={}).status_code == 400
    updated = client.put(f"/wardrobe/{item['id']}", json={"tags": ["Work"], "category": "outerwear"}).json()
    assert updated["tags"] == ["work"]
    assert updated["category"] == "outerwear"

    assert client.delete(f"/wardrobe/{item['id']}").json()["deleted"] is True
    assert client.get("/wardrobe").json()["count"] == 0
    assert client.get("/wardrobe", params={"include_inactive": True}).json()["count"] == 1


def test_wardrobe_missing_item(client) -> None:
    assert client.put(f"/wardrobe/{uuid4()}", json={"name": "x"}).status_code == 404
    assert client.delete(f"/wardrobe/{uuid4()}").status_code == 404


def test_wardrobe_list_filters_by_category(client, api_wardrobe) -> None:
    res = client.get("/wardrobe", params={"category": "shoe"}).json()

    assert res["count"] == 2
    assert {i["category"] for i in res["items"]} == {"shoes"}


# -------------------------
# mirror
# -------------------------

def test_daily_recommendations(client, daily) -> None:
    assert 1 <= len(daily["recommendations"]) <= 3
    assert daily["cached"] is False
    assert daily["weather"]["location"] == "New York"
    for rec in daily["recommendations"]:
        assert rec["id"]
        assert rec["confidence_note"]
        assert len(rec["items"]) == len(rec["item_ids"])

    again = client.get("/mirror/daily").json()
    assert again["id"] == daily["id"]
    assert again["cached"] is True


def test_daily_recommendations_missing(client) -> None:
    assert client.get("/mirror/daily").status_code == 404


def test_outfit_actions(client, daily) -> None:
    outfit_id = daily["recommendations"][0]["id"]

    worn = client.post(f"/mirror/outfits/{outfit_id}/wear").json()
    assert worn["created"] is True
    assert worn["feedback_prompt_id"]

    first = client.post(f"/mirror/outfits/{outfit_id}/save").json()
    second = client.post(f"/mirror/outfits/{outfit_id}/save").json()
    assert first["created"] is True
    assert second == {"created": False, "favorite_id": first["favorite_id"]}

    shared = client.get(f"/mirror/outfits/{outfit_id}/share").json()
    assert shared["title"] == "My Outfit Look"
    assert shared["description"].startswith("Feeling confident in this outfit!")

    prompts = client.get("/notifications", params={"status": "scheduled"}).json()
    assert [n["notification_type"] for n in prompts["notifications"]] == ["feedback_prompt"]


def test_outfit_actions_unknown_outfit(client) -> None:
    for path in ("wear", "save"):
        assert client.post(f"/mirror/outfits/{uuid4()}/{path}").status_code == 404
    assert client.get(f"/mirror/outfits/{uuid4()}/share").status_code == 404


def test_schedule_next_session(client) -> None:
    res = client.post("/mirror/schedule").json()

    assert res["notification_type"] == "daily_mirror"
    assert res["status"] == "scheduled"


def test_error_descriptions(client) -> None:
    res = client.get("/mirror/errors/weather").json()

    assert "seasonal patterns" in res["message"]
    assert res["recovery_actions"]


# -------------------------
# feedback
# -------------------------

def _feedback_body(outfit_id, **fields) -> dict:
    body = {
        "outfit_recommendation_id": outfit_id,
        "confidence_rating": 4,
        "emotional_response": {"primary": "comfy", "intensity": 7},
        "social_feedback": {"compliments_received": 1},
        "occasion": " Work ",
    }
    body.update(fields)
    return body


def test_feedback_is_recorded(client, daily) -> None:
    outfit_id = daily["recommendations"][0]["id"]

    res = client.post("/feedback", json=_feedback_body(outfit_id))

    assert res.status_code == 200, res.text
    data = res.json()
    assert data["created"] is True
    assert data["emotional_response"]["primary"] == "comfortable"
    assert client.get("/preferences/engagement").json()["average_rating"] == 4.0


@pytest.mark.parametrize(
    "fields",
    [
        {"confidence_rating": 6},
        {"emotional_response": {"primary": "confident", "intensity": 11}},
        {"emotional_response": {"primary": "sleepy"}},
        {"comfort": {"physical": 0, "emotional": 3, "confidence": 3}},
    ],
)
def test_feedback_validation(client, daily, fields) -> None:
    outfit_id = daily["recommendations"][0]["id"]

    assert client.post("/feedback", json=_feedback_body(outfit_id, **fields)).status_code == 422


def test_feedback_for_unknown_outfit(client) -> None:
    assert client.post("/feedback", json=_feedback_body(str(uuid4()))).status_code == 404


# -------------------------
# preferences + notifications
# -------------------------

def test_preferences_defaults_and_updates(client) -> None:
    prefs = client.get("/preferences").json()
    assert prefs["notification_time"] == "06:00"
    assert prefs["timezone"] == "UTC"

    assert client.put("/preferences", json={}).status_code == 400
    assert client.put("/preferences", json={"notification_time": "7am"}).status_code == 422

    updated = client.put("/preferences/notifications", json={"preferred_time": "07:30"}).json()
    assert updated["preferred_time"] == "07:30"
    assert client.put("/preferences/notifications", json={"confidence_note_style": "rude"}).status_code == 422


def test_privacy_settings(client) -> None:
    res = client.put("/preferences/privacy", json={"share_usage_data": True}).json()

    assert res["share_usage_data"] is True
    assert res["data_retention_days"] == 365
    assert client.put("/preferences/privacy", json={"data_retention_days": 0}).status_code == 422


def test_timezone_endpoints(client) -> None:
    assert client.put("/preferences/timezone", json={}).status_code == 400
    assert client.put("/preferences/timezone", json={"timezone": "Moon/Base"}).status_code == 422

    assert client.put("/preferences/timezone", json={"timezone": "Europe/Berlin"}).json() == {
        "timezone": "Europe/Berlin"
    }
    scheduled = client.get("/notifications", params={"status": "scheduled"}).json()
    assert scheduled["count"] == 1

    detected = client.post("/preferences/timezone/detect", json={"timezone": "Nope/Nowhere"}).json()
    assert detected == {"timezone": "UTC", "detected": False}


def test_engagement_tracking(client) -> None:
    tracked = client.post("/preferences/engagement/track").json()

    assert tracked["total_days_active"] == 1
    assert client.get("/notifications/optimal-time").json() == {"optimal_time": "06:00"}


def test_notification_endpoints(client, daily) -> None:
    outfit_id = daily["recommendations"][0]["id"]

    prompt = client.post("/notifications/feedback-prompt", json={"outfit_id": outfit_id, "delay_hours": 1})
    assert prompt.json()["created"] is True
    assert client.post(
        "/notifications/feedback-prompt", json={"outfit_id": str(uuid4())}
    ).status_code == 404

    sent = client.post("/notifications/re-engagement", json={"days_since_last_use": 9}).json()
    assert sent["status"] == "sent"

    assert client.get("/notifications", params={"status": "bogus"}).status_code == 422
    assert client.post("/notifications/cancel").json() == {"cancelled": 1}


# -------------------------
# weather + calendar + profile
# -------------------------

def test_weather_without_api_key_uses_fallback(client) -> None:
    current = client.get("/weather/current").json()
    assert current["location"] == "New York"

    assert client.get("/weather/forecast", params={"days": 2}).json()["days"] == 2
    assert client.get("/weather/forecast", params={"days": 6}).status_code == 422
    assert client.get("/weather/current", params={"lat": 10}).status_code == 422

    tips = client.get("/weather/suggestions").json()
    assert tips["suggestions"]


def test_calendar_events(client) -> None:
    base = {"title": "Offsite", "starts_at": "2024-04-17T09:00:00+00:00", "ends_at": "2024-04-17T11:00:00+00:00"}

    assert client.post("/calendar/events", json={**base, "formality_level": "pyjamas"}).status_code == 422
    assert client.post("/calendar/events", json={**base, "category": "chores"}).status_code == 422
    assert client.post(
        "/calendar/events", json={**base, "ends_at": "2024-04-17T08:00:00+00:00"}
    ).status_code == 422

    created = client.post("/calendar/events", json={**base, "formality_level": "formal", "category": "work"}).json()
    assert created["created"] is True

    context = client.get("/calendar/context", params={"day": "2024-04-17"}).json()
    assert context["formality_level"] == "formal"
    assert context["primary_event"]["title"] == "Offsite"

    listed = client.get("/calendar/events", params={"day": "2024-04-17"}).json()
    assert listed["count"] == 1

    assert client.delete(f"/calendar/events/{created['id']}").json()["deleted"] is True
    assert client.delete(f"/calendar/events/{created['id']}").status_code == 404


def test_style_profile(client, api_wardrobe) -> None:
    profile = client.get("/style-profile").json()

    assert profile["preferred_styles"] == ["casual"]
    assert "navy" in profile["preferred_colors"]


def test_style_profile_cached_read(client, api_wardrobe) -> None:
    fresh = client.get("/style-profile").json()
    cached = client.get("/style-profile", params={"cached": True}).json()

    assert cached["cached"] is True
    assert cached["preferred_styles"] == fresh["preferred_styles"]
    assert cached["last_updated"] == fresh["last_updated"]


# -------------------------
# users + location
# -------------------------

def test_user_header_selects_user(client, user) -> None:
    assert client.get("/preferences", headers={"X-User-Id": str(user.id)}).status_code == 200
    assert client.get("/preferences", headers={"X-User-Id": str(uuid4())}).status_code == 401


def test_home_location_drives_weather(client) -> None:
    assert client.put("/preferences/location", json={"latitude": 38.7}).status_code == 422
    assert client.put("/preferences/location", json={"latitude": 120, "longitude": 0}).status_code == 422

    saved = client.put(
        "/preferences/location", json={"city": "Lisbon", "latitude": 38.72, "longitude": -9.14}
    ).json()
    assert saved == {"city": "Lisbon", "latitude": 38.72, "longitude": -9.14}
    assert client.get("/preferences/location").json() == saved
    assert client.get("/weather/current").json()["location"] == "Lisbon"

    client.put("/preferences/privacy", json={"allow_location_tracking": False})
    assert client.get("/weather/current").json()["location"] == "New York"
