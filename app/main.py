from fastapi import FastAPI

from app.database import engine, Base, SessionLocal, ensure_sqlite_schema
from app.models import (  # noqa: F401  register tables
    calendar,
    feedback,
    notification,
    outfit_log,
    preferences,
    recommendation,
    user,
    wardrobe,
)
from app.monitoring.logging import configure_logging
from app.api import mirror as mirror_api
from app.api import wardrobe as wardrobe_api
from app.api import feedback as feedback_api
from app.api import preferences as preferences_api
from app.api import notifications as notifications_api
from app.api import weather as weather_api
from app.api import calendar as calendar_api
from app.api import style_profile as style_profile_api


configure_logging()

app = FastAPI(title="AYNA Mirror")


@app.get("/health")
def health():
    return {"status": "ok"}


@app.on_event("startup")
def on_startup():
    Base.metadata.create_all(bind=engine)
    ensure_sqlite_schema()
    db = SessionLocal()
    try:
        existing = db.query(user.User).first()
        if not existing:
            db.add(
                user.User(
                    email="dev@example.com",
                    password_hash="dev",
                )
            )
            db.commit()
    finally:
        db.close()

app.include_router(mirror_api.router)
app.include_router(wardrobe_api.router)
app.include_router(feedback_api.router)
app.include_router(preferences_api.router)
app.include_router(notifications_api.router)
app.include_router(weather_api.router)
app.include_router(calendar_api.router)
app.include_router(style_profile_api.router)
