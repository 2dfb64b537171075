# app/api/weather.py

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.database import get_db
from app.dependencies import get_current_user
from app.models.user import User
from app.services.mirror import user_location
from app.services.weather_service import (
    Location,
    WeatherService,
    get_weather_based_suggestions,
    get_weather_service,
)

router = APIRouter(prefix="/weather", tags=["Weather"])


def _location(
    lat: float | None,
    lon: float | None,
    city: str | None,
    db: Session,
    user: User,
) -> Location | None:
    # No coordinates: the user's home location, else the configured default.
    if lat is None and lon is None:
        return user_location(db, user.id)
    if lat is None or lon is None:
        raise HTTPException(status_code=422, detail="Provide both lat and lon, or neither.")
    if not (-90 <= lat <= 90 and -180 <= lon <= 180):
        raise HTTPException(status_code=422, detail="lat/lon out of range")
    return Location(lat, lon, city)


@router.get("/current")
def get_current_weather(
    lat: float | None = None,
    lon: float | None = None,
    city: str | None = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    service: WeatherService = Depends(get_weather_service),
):
    weather = service.get_current_weather(current_user.id, _location(lat, lon, city, db, current_user))
    return weather.to_public()


@router.get("/forecast")
def get_forecast(
    days: int = 5,
    lat: float | None = None,
    lon: float | None = None,
    city: str | None = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    service: WeatherService = Depends(get_weather_service),
):
    if not 1 <= days <= 5:
        raise HTTPException(status_code=422, detail="days must be between 1 and 5")
    forecast = service.get_weather_forecast(days, _location(lat, lon, city, db, current_user))
    return {"days": len(forecast), "forecast": [w.to_public() for w in forecast]}


@router.get("/suggestions")
def get_suggestions(
    lat: float | None = None,
    lon: float | None = None,
    city: str | None = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    service: WeatherService = Depends(get_weather_service),
):
    weather = service.get_current_weather(current_user.id, _location(lat, lon, city, db, current_user))
    return {
        "weather": weather.to_public(),
        "suggestions": get_weather_based_suggestions(weather),
    }
