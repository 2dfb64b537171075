"""Shared fixtures: in-memory database, API client and wardrobe factories."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable, Iterator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.config.settings import get_settings
from app.database import Base, get_db
from app.main import app
from app.models.user import User
from app.models.wardrobe import WardrobeItem
from app.services.error_handling import clear_caches
from app.services.weather_service import get_weather_service


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    monkeypatch.setenv("DEV_EVENT_LOG", "0")
    monkeypatch.setenv("RETRY_BASE_DELAY_SECONDS", "0")
    monkeypatch.setenv("RETRY_MAX_DELAY_SECONDS", "0")
    monkeypatch.setenv("OPENWEATHER_API_KEY", "")
    get_settings.cache_clear()
    get_weather_service.cache_clear()
    clear_caches()
    yield
    clear_caches()
    get_weather_service.cache_clear()
    get_settings.cache_clear()


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine) -> Iterator[Session]:
    session = sessionmaker(bind=engine, autoflush=False, autocommit=False)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def user(db: Session) -> User:
    u = User(email="mirror@example.com", password_hash="x")
    db.add(u)
    db.commit()
    db.refresh(u)
    return u


@pytest.fixture
def client(engine, user: User) -> Iterator[TestClient]:
    testing_session = sessionmaker(bind=engine, autoflush=False, autocommit=False)

    def _override_get_db():
        session = testing_session()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _override_get_db
    # No startup hook: tables already exist on the test engine.
    c = TestClient(app)
    try:
        yield c
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def make_item(db: Session, user: User) -> Callable[..., WardrobeItem]:
    def _make(category: str, **fields: Any) -> WardrobeItem:
        fields.setdefault("name", f"{category} item")
        fields.setdefault("colors", ["navy"])
        fields.setdefault("tags", [])
        item = WardrobeItem(user_id=user.id, category=category, **fields)
        db.add(item)
        db.commit()
        db.refresh(item)
        return item

    return _make


@pytest.fixture
def basic_wardrobe(make_item) -> list[WardrobeItem]:
    return [
        make_item("tops", subcategory="blouse", colors=["white"], tags=["casual"], average_rating=4.5),
        make_item("tops", subcategory="sweater", colors=["navy"], tags=["casual"], average_rating=4.0),
        make_item("bottoms", subcategory="jeans", colors=["blue"], tags=["casual"], average_rating=4.2),
        make_item("bottoms", subcategory="trousers", colors=["black"], tags=["business"], average_rating=3.8),
        make_item("shoes", subcategory="sneakers", colors=["white"], tags=["casual"], average_rating=4.0),
        make_item("shoes", subcategory="loafers", colors=["brown"], tags=["business"], average_rating=3.9),
    ]


@pytest.fixture
def spring_now() -> datetime:
    # Wednesday
    return datetime(2024, 4, 17, 9, 0, tzinfo=timezone.utc)
