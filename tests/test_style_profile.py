"""Tests for style profile analysis."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from app.models.feedback import OutfitFeedback
from app.models.recommendation import DailyRecommendation, OutfitRecommendation
from app.services import preferences as preferences_service
from app.services import style_profile
from app.services.context import ConfidencePattern, FeedbackRecord

NOW = datetime(2024, 4, 17, 9, 0, tzinfo=timezone.utc)


def _item(colors=(), tags=()) -> SimpleNamespace:
    return SimpleNamespace(colors=list(colors), tags=list(tags))


def _record(item_ids, rating, **fields) -> FeedbackRecord:
    return FeedbackRecord(
        item_ids=list(item_ids),
        confidence_rating=rating,
        created_at=fields.pop("created_at", NOW),
        **fields,
    )


# -------------------------
# wardrobe analysis
# -------------------------

def test_colors_fall_back_to_ranking_when_few_repeat() -> None:
    items = [_item(["navy", "white"]), _item(["navy"]), _item(["white"]), _item(["red"])]

    assert style_profile.analyze_color_preferences(items) == ["navy", "white", "red"]


def test_colors_use_threshold_when_enough_repeat() -> None:
    items = [
        _item(["navy", "white"]),
        _item(["navy", "black"]),
        _item(["white", "black"]),
        _item(["red", " "]),
    ]

    assert style_profile.analyze_color_preferences(items) == ["navy", "white", "black"]


def test_small_wardrobe_keeps_every_style_tag() -> None:
    items = [_item(tags=["casual", "boho"]), _item(tags=["casual"])]

    assert style_profile.analyze_style_preferences(items) == ["casual", "boho"]


def test_body_type_preferences_from_tags() -> None:
    items = [_item(tags=["Slim"]), _item(tags=["fitted", "a-line"]), _item(tags=["oversized"])]

    prefs = style_profile.analyze_body_type_preferences(items)

    assert prefs == ["slim-fit", "relaxed-fit", "a-line"]


def test_body_type_defaults_without_tags() -> None:
    assert style_profile.analyze_body_type_preferences([_item()]) == ["regular-fit", "versatile"]


# -------------------------
# feedback analysis
# -------------------------

def test_context_factors() -> None:
    record = _record(
        ["a"],
        4,
        primary_emotion="confident",
        weather={"condition": "rainy", "temperature": 40, "humidity": 80},
        calendar={"primary_event": {"type": "work"}, "formality_level": "business"},
    )

    assert style_profile.extract_context_factors([record]) == [
        "weather_rainy",
        "weather_cold",
        "weather_humid",
        "occasion_work",
        "formality_business",
        "time_morning",
        "emotion_confident",
        "season_spring",
    ]


def test_confidence_patterns_need_repeat_feedback() -> None:
    records = [
        _record(["b", "a"], 4, primary_emotion="confident"),
        _record(["a", "b"], 5, primary_emotion="stylish"),
        _record(["c"], 2),
    ]

    patterns = style_profile.analyze_confidence_patterns(records)

    assert len(patterns) == 1
    assert patterns[0].item_combination == ["a", "b"]
    assert patterns[0].average_rating == pytest.approx(4.5)
    assert patterns[0].emotional_response == ["confident", "stylish"]


def test_occasion_preferences_average_ratings() -> None:
    records = [_record(["a"], 4, occasion="work"), _record(["b"], 2, occasion="work"), _record(["c"], 5)]

    assert style_profile.analyze_occasion_preferences(records) == {"work": 3.0}


def test_update_confidence_patterns() -> None:
    existing = [ConfidencePattern(["a", "b"], 2.0, ["work"], ["confident"])]

    updated = style_profile.update_confidence_patterns(existing, ["b", "a"], 4, "work", "stylish")
    added = style_profile.update_confidence_patterns(existing, ["c"], 5, None, None)

    assert updated[0].average_rating == pytest.approx(3.0)
    assert updated[0].emotional_response == ["confident", "stylish"]
    assert added[1] == ConfidencePattern(["c"], 5.0, ["general"], [])
    assert style_profile.update_confidence_patterns(existing, [], 5, None, None) == existing


def test_update_occasion_preferences() -> None:
    assert style_profile.update_occasion_preferences({}, "date", 4.5) == {"date": 3.5}
    assert style_profile.update_occasion_preferences({"date": 3.5}, "date", 4.5) == {"date": 4.0}
    assert style_profile.update_occasion_preferences({"date": 3.5}, None, 1) == {"date": 3.5}


# -------------------------
# full profile
# -------------------------

def _rated_outfit(db, user, items, ratings, occasion="work"):
    daily = DailyRecommendation(
        user_id=user.id,
        recommendation_date=date(2024, 4, 16),
        weather_context={"condition": "sunny", "temperature": 68, "humidity": 40},
        calendar_context=None,
    )
    db.add(daily)
    db.flush()
    outfit = OutfitRecommendation(
        daily_recommendation_id=daily.id,
        user_id=user.id,
        item_ids=[str(i.id) for i in items],
        confidence_note="You look great",
    )
    db.add(outfit)
    db.flush()
    for n, rating in enumerate(ratings):
        db.add(
            OutfitFeedback(
                user_id=user.id,
                outfit_recommendation_id=outfit.id,
                confidence_rating=rating,
                emotional_response={"primary": "confident", "intensity": 7},
                occasion=occasion,
                created_at=NOW - timedelta(hours=n + 1),
            )
        )
    db.commit()
    return outfit


def test_profile_combines_wardrobe_and_feedback(db, user, basic_wardrobe) -> None:
    preferences_service.update_notification_preferences(db, user.id, {"confidence_note_style": "witty"})
    _rated_outfit(db, user, basic_wardrobe[:2], [4, 5])

    profile = style_profile.analyze_user_style_profile(db, user.id, now=NOW)

    assert profile.preferred_styles == ["casual", "business"]
    assert "white" in profile.preferred_colors
    assert profile.occasion_preferences == {"work": 4.5}
    assert len(profile.confidence_patterns) == 1
    assert profile.confidence_patterns[0].average_rating == pytest.approx(4.5)
    assert profile.confidence_note_style == "witty"

    cached = style_profile.load_style_profile(db, user.id)
    assert cached.preferred_styles == profile.preferred_styles
    assert cached.confidence_patterns == profile.confidence_patterns
    assert cached.last_updated == NOW
    assert cached.confidence_note_style == "witty"


def test_profile_for_new_user_is_empty(db, user) -> None:
    profile = style_profile.analyze_user_style_profile(db, user.id, now=NOW)

    assert profile.preferred_colors == []
    assert profile.confidence_patterns == []
    assert profile.body_type_preferences == ["regular-fit", "versatile"]
    assert profile.confidence_note_style is None
