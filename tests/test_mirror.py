"""Tests for daily recommendation generation, outfit actions and feedback learning."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from uuid import uuid4

import pytest
from sqlalchemy.exc import SQLAlchemyError

from app.models.feedback import OutfitFeedback
from app.models.recommendation import DailyRecommendation, OutfitRecommendation
from app.services import calendar_service, mirror, notifications, style_profile
from app.services import preferences as preferences_service
from app.services.context import (
    ConfidencePattern,
    OutfitCandidate,
    RecommendationContext,
    StyleProfile,
    WeatherContext,
    has_red_pink_clash,
    item_tags,
)
from app.services.error_handling import WardrobeUnavailableError, cache_wardrobe_data


def _weather(temperature: float = 68, condition: str = "sunny") -> WeatherContext:
    return WeatherContext(
        temperature=temperature,
        condition=condition,
        humidity=45,
        location="Testville",
        timestamp=datetime(2024, 4, 17, 8, 0, tzinfo=timezone.utc),
    )


@pytest.fixture
def weather_service(mocker):
    service = mocker.Mock()
    service.get_current_weather.return_value = _weather()
    return service


@pytest.fixture
def generate(db, user, spring_now, weather_service):
    def _generate(**kwargs):
        kwargs.setdefault("now", spring_now)
        kwargs.setdefault("weather_service", weather_service)
        return mirror.generate_daily_recommendations(db, user.id, **kwargs)

    return _generate


def _context(user, now, *, profile=None, calendar=None, weather=None) -> RecommendationContext:
    return RecommendationContext(
        user_id=user.id,
        date=now,
        weather=weather or _weather(),
        calendar=calendar,
        user_history=profile or StyleProfile.empty(user.id),
    )


# -------------------------
# generation
# -------------------------

def test_daily_recommendations_are_generated_and_stored(db, basic_wardrobe, generate) -> None:
    daily = generate()

    assert len(daily.recommendations) == 3
    assert daily.cached is False
    assert daily.id is not None
    assert all(r.id is not None for r in daily.recommendations)
    assert all(r.confidence_note for r in daily.recommendations)
    assert all(0.0 <= r.confidence_score <= 1.0 for r in daily.recommendations)
    assert [r.is_quick_option for r in daily.recommendations] == [True, False, False]
    assert db.query(OutfitRecommendation).count() == 3


def test_recent_batch_is_reused(db, basic_wardrobe, generate, spring_now, weather_service) -> None:
    first = generate()
    again = generate(now=spring_now + timedelta(hours=2))

    assert again.cached is True
    assert again.id == first.id
    assert [r.id for r in again.recommendations] == [r.id for r in first.recommendations]
    assert [r.item_ids for r in again.recommendations] == [r.item_ids for r in first.recommendations]
    assert weather_service.get_current_weather.call_count == 1
    assert db.query(DailyRecommendation).count() == 1


def test_force_and_stale_batches_regenerate(db, basic_wardrobe, generate, spring_now) -> None:
    first = generate()
    forced = generate(force=True)
    tomorrow = generate(now=spring_now + timedelta(hours=25))

    assert len({first.id, forced.id, tomorrow.id}) == 3
    assert forced.cached is False
    assert db.query(DailyRecommendation).count() == 3


def test_quick_options_can_be_disabled(db, user, basic_wardrobe, generate) -> None:
    preferences_service.update_notification_preferences(db, user.id, {"enable_quick_options": False})

    daily = generate()

    assert daily.recommendations
    assert not any(r.is_quick_option for r in daily.recommendations)


def test_red_and_pink_are_never_paired(make_item, generate) -> None:
    make_item("tops", colors=["red"], average_rating=4.8)
    make_item("bottoms", colors=["pink"], average_rating=4.8)
    make_item("shoes", colors=["black"], average_rating=4.0)

    daily = generate()

    assert daily.recommendations
    assert not any(has_red_pink_clash(r.items) for r in daily.recommendations)


def test_empty_wardrobe_yields_no_outfits(db, user, generate) -> None:
    daily = generate()

    assert daily.recommendations == []
    assert daily.id is not None


def test_engine_failure_uses_rule_based_fallback(basic_wardrobe, generate, mocker) -> None:
    mocker.patch.object(mirror, "generate_style_recommendations", side_effect=RuntimeError("model down"))

    daily = generate()

    assert daily.recommendations
    assert daily.recommendations[0].reasoning == ["Weather appropriate", "Classic combination"]
    assert daily.recommendations[0].confidence_score == pytest.approx(0.7)


def test_weather_failure_uses_seasonal_fallback(basic_wardrobe, generate, weather_service) -> None:
    weather_service.get_current_weather.side_effect = RuntimeError("api down")

    daily = generate()

    # mid-April
    assert daily.weather.temperature == 65
    assert daily.weather.condition == "sunny"
    assert daily.recommendations


def test_stored_batch_keeps_weather_and_calendar(db, user, basic_wardrobe, generate, spring_now) -> None:
    calendar_service.create_event(
        db,
        user.id,
        title="Client pitch",
        starts_at=spring_now + timedelta(hours=3),
        ends_at=spring_now + timedelta(hours=4),
        formality_level="business",
        category="work",
    )
    daily = generate()

    latest = mirror.get_latest_recommendations(db, user.id)

    assert latest.cached is True
    assert latest.weather.temperature == 68
    assert latest.calendar.formality_level == "business"
    assert latest.calendar.primary_event.title == "Client pitch"
    assert [r.item_ids for r in latest.recommendations] == [r.item_ids for r in daily.recommendations]
    assert latest.to_public()["date"] == "2024-04-17"


# -------------------------
# wardrobe loading
# -------------------------

def test_wardrobe_falls_back_to_cache(db, user, basic_wardrobe, mocker) -> None:
    cache_wardrobe_data(user.id, basic_wardrobe)
    mocker.patch.object(db, "query", side_effect=SQLAlchemyError("db down"))

    items = mirror.load_wardrobe(db, user.id)

    assert [i.id for i in items] == [i.id for i in basic_wardrobe]


def test_wardrobe_unavailable_without_cache(db, user, mocker) -> None:
    mocker.patch.object(db, "query", side_effect=SQLAlchemyError("db down"))

    with pytest.raises(WardrobeUnavailableError):
        mirror.load_wardrobe(db, user.id)


def test_inactive_items_are_not_loaded(db, user, make_item) -> None:
    kept = make_item("tops")
    make_item("tops", is_active=False)

    assert mirror.load_wardrobe(db, user.id) == [kept]


# -------------------------
# scoring
# -------------------------

def test_novelty_drops_after_recent_wear(db, user, basic_wardrobe, generate, spring_now) -> None:
    daily = generate()
    outfit = mirror.get_outfit(db, user.id, daily.recommendations[0].id)
    mirror.log_outfit_as_worn(db, outfit, now=spring_now - timedelta(days=10))
    worn_items = mirror.outfit_items(db, outfit)

    assert mirror.calculate_novelty_score(db, user.id, worn_items, now=spring_now) == 0.2
    assert mirror.calculate_novelty_score(db, user.id, worn_items, now=spring_now + timedelta(days=40)) == 0.6
    assert mirror.calculate_novelty_score(db, user.id, worn_items[:1], now=spring_now) == 0.8


def _candidate(*items) -> OutfitCandidate:
    return OutfitCandidate(items=list(items), confidence_note="", confidence_score=0.5)


def _piece(category: str, *colors: str) -> SimpleNamespace:
    return SimpleNamespace(id=uuid4(), category=category, colors=list(colors))


def test_diversity_prefers_new_categories() -> None:
    a = _candidate(_piece("tops", "navy"))
    b = _candidate(_piece("tops", "navy"))
    c = _candidate(_piece("tops", "navy"))
    d = _candidate(_piece("shoes", "white"))
    e = _candidate(_piece("shoes", "white"))

    assert mirror.ensure_recommendation_diversity([a, b, c, d, e]) == [a, b, d]
    assert mirror.ensure_recommendation_diversity([a, b]) == [a, b]


def test_ranking_drops_low_rated_patterns(db, user, basic_wardrobe, spring_now) -> None:
    t0, t1, b0, b1, s0, s1 = basic_wardrobe
    liked = _candidate(t1, b1, s1)
    disliked = _candidate(t0, b0, s0)
    profile = StyleProfile(
        user_id=user.id,
        preferred_colors=[],
        preferred_styles=[],
        body_type_preferences=[],
        occasion_preferences={},
        confidence_patterns=[ConfidencePattern([str(t0.id), str(b0.id)], 2.0, [], [])],
        last_updated=spring_now,
    )

    ranked = mirror.rank_recommendations(db, [disliked, liked], _context(user, spring_now, profile=profile))

    assert ranked == [liked]
    assert 0.0 <= liked.confidence_score <= 1.0


def test_contextual_relevance_is_bounded(user, basic_wardrobe, spring_now) -> None:
    score = mirror.calculate_contextual_relevance(basic_wardrobe[:3], _context(user, spring_now))

    assert 0.0 <= score <= 1.0


# -------------------------
# rule-based outfits
# -------------------------

def test_fallback_builds_distinct_outfits_per_style(user, basic_wardrobe, spring_now) -> None:
    t0, t1, b0, b1, s0, s1 = basic_wardrobe
    prefs = preferences_service.default_notification_preferences()

    recs = mirror.create_fallback_recommendations(basic_wardrobe, _context(user, spring_now), prefs)

    assert [r.items for r in recs] == [[t0, b0, s0], [t1, b1, s1]]
    assert [r.is_quick_option for r in recs] == [True, False]
    assert recs[0].confidence_score == pytest.approx(1.0)
    assert recs[1].confidence_score == pytest.approx(0.94)
    assert "Includes your favorite high-confidence pieces" in recs[0].reasoning


def test_fallback_keeps_weekends_casual(user, basic_wardrobe) -> None:
    saturday = datetime(2024, 4, 20, 9, 0, tzinfo=timezone.utc)
    prefs = preferences_service.default_notification_preferences()

    recs = mirror.create_fallback_recommendations(basic_wardrobe, _context(user, saturday), prefs)

    assert recs
    assert not any("business" in item_tags(i) for r in recs for i in r.items)


def test_cold_weather_excludes_summer_pieces(user, make_item, spring_now) -> None:
    tee = make_item("tops", subcategory="t-shirt", average_rating=5.0)
    sweater = make_item("tops", subcategory="sweater", tags=["warm"], average_rating=4.0)
    jeans = make_item("bottoms", subcategory="jeans", average_rating=4.0)
    context = _context(user, spring_now, weather=_weather(40, "cloudy"))

    items = mirror.generate_outfit_for_style([tee, sweater, jeans], context, "casual")

    assert items == [sweater, jeans]


def test_basic_confidence_score() -> None:
    top = SimpleNamespace(category="tops", average_rating=3.0)
    bottom = SimpleNamespace(category="bottoms", average_rating=4.0)

    assert mirror.basic_confidence_score([top, bottom]) == pytest.approx(0.8)
    assert mirror.basic_confidence_score([]) == 0.0


# -------------------------
# outfit actions
# -------------------------

def test_wearing_an_outfit_updates_items(db, user, basic_wardrobe, generate, spring_now) -> None:
    daily = generate()
    outfit = mirror.get_outfit(db, user.id, daily.recommendations[0].id)

    log = mirror.log_outfit_as_worn(db, outfit, now=spring_now + timedelta(hours=1))

    assert log.item_ids == outfit.item_ids
    assert outfit.selected_at is not None
    for item in mirror.outfit_items(db, outfit):
        assert item.total_wears == 1
        assert item.last_worn_at is not None


def test_saving_a_favorite_is_idempotent(db, user, basic_wardrobe, generate) -> None:
    outfit = mirror.get_outfit(db, user.id, generate().recommendations[0].id)

    first, created = mirror.save_outfit_to_favorites(db, outfit)
    again, created_again = mirror.save_outfit_to_favorites(db, outfit)

    assert created is True
    assert created_again is False
    assert again.id == first.id


def test_outfit_lookup_is_scoped_to_user(db, user, basic_wardrobe, generate) -> None:
    outfit_id = generate().recommendations[0].id

    assert mirror.get_outfit(db, uuid4(), outfit_id) is None
    assert mirror.get_outfit(db, user.id, uuid4()) is None


@pytest.mark.parametrize(("score", "level"), [(0.85, "High"), (0.6, "Medium"), (0.2, "Building")])
def test_shareable_outfit(score, level) -> None:
    shared = mirror.generate_shareable_outfit(SimpleNamespace(confidence_score=score, confidence_note="Own it."))

    assert shared["title"] == "My Outfit Look"
    assert shared["description"] == f"Feeling confident in this outfit! Own it. Confidence Level: {level} ✨"


def test_next_mirror_session_is_scheduled(db, user) -> None:
    row = mirror.schedule_next_mirror_session(db, user.id)

    assert row.status == "scheduled"
    assert row.notification_type == notifications.DAILY_MIRROR


# -------------------------
# feedback
# -------------------------

def _feedback(outfit_id, spring_now, **fields) -> mirror.FeedbackInput:
    return mirror.FeedbackInput(
        outfit_recommendation_id=outfit_id,
        confidence_rating=fields.pop("confidence_rating", 5),
        emotional_response={"primary": "confident", "intensity": 8, "additional_emotions": ["stylish"]},
        occasion="work",
        created_at=spring_now + timedelta(hours=1),
        **fields,
    )


def test_feedback_updates_items_engagement_and_profile(db, user, basic_wardrobe, generate, spring_now) -> None:
    outfit = mirror.get_outfit(db, user.id, generate().recommendations[0].id)

    row = mirror.process_user_feedback(
        db, user.id, _feedback(outfit.id, spring_now, social_feedback={"compliments_received": 2})
    )

    assert row is not None
    assert db.query(OutfitFeedback).count() == 1
    for item in mirror.outfit_items(db, outfit):
        db.refresh(item)
        assert item.average_rating == pytest.approx(5.0)
        assert item.rating_count == 1
        assert item.compliments_received == 2

    engagement = preferences_service.get_user_preferences(db, user.id).engagement_history
    assert engagement["average_rating"] == 5.0
    assert engagement["total_days_active"] == 1
    assert style_profile.load_style_profile(db, user.id).occasion_preferences == {"work": 5.0}


def test_feedback_learning_failures_are_not_fatal(db, user, basic_wardrobe, generate, spring_now, mocker) -> None:
    mocker.patch.object(style_profile, "update_style_preferences", side_effect=RuntimeError("boom"))
    outfit = mirror.get_outfit(db, user.id, generate().recommendations[0].id)

    row = mirror.process_user_feedback(db, user.id, _feedback(outfit.id, spring_now, confidence_rating=4))

    assert row is not None
    assert all(i.rating_count == 1 for i in mirror.outfit_items(db, outfit))


def test_feedback_save_failure_returns_none(db, user, spring_now, mocker) -> None:
    mocker.patch.object(db, "commit", side_effect=SQLAlchemyError("db down"))

    assert mirror.process_user_feedback(db, user.id, _feedback(uuid4(), spring_now)) is None


def test_feedback_patterns() -> None:
    feedback = mirror.FeedbackInput(
        outfit_recommendation_id=uuid4(),
        confidence_rating=4,
        emotional_response={"primary": "comfortable", "additional_emotions": ["stylish"]},
        occasion="date",
        comfort={"physical": 4, "emotional": 5, "confidence": 3},
    )

    patterns = mirror.analyze_feedback_patterns(feedback)

    assert patterns["fit_preferences"] == {"fit_rating": 4, "comfort_level": 3}
    assert patterns["occasion_context"] == {"occasion": "date"}
    assert patterns["confidence_factors"] == {
        "overall_confidence": 4,
        "confidence_boosting_factors": ["stylish"],
        "mood": "comfortable",
    }


# -------------------------
# location
# -------------------------

def test_home_location_is_used_for_weather(db, user, basic_wardrobe, generate, weather_service) -> None:
    preferences_service.update_home_location(db, user, city="Lisbon", latitude=38.72, longitude=-9.14)

    generate()

    location = weather_service.get_current_weather.call_args.args[1]
    assert location.city == "Lisbon"
    assert (location.latitude, location.longitude) == (38.72, -9.14)


def test_home_location_respects_privacy(db, user) -> None:
    preferences_service.update_home_location(db, user, city="Lisbon", latitude=38.72, longitude=-9.14)
    preferences_service.update_privacy_settings(db, user.id, {"allow_location_tracking": False})

    assert mirror.user_location(db, user.id) is None


def test_clearing_home_location(db, user) -> None:
    preferences_service.update_home_location(db, user, city="Lisbon", latitude=38.72, longitude=-9.14)

    cleared = preferences_service.update_home_location(db, user)

    assert cleared == {"city": None, "latitude": None, "longitude": None}
    assert mirror.user_location(db, user.id) is None
