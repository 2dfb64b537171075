# app/api/style_profile.py

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.database import get_db
from app.dependencies import get_current_user
from app.models.user import User
from app.services.style_profile import analyze_user_style_profile, load_style_profile


router = APIRouter(prefix="/style-profile", tags=["StyleProfile"])


@router.get("")
def get_style_profile(
    cached: bool = False,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    # cached=true skips re-analysis and returns what the last run stored
    if cached:
        profile = load_style_profile(db, current_user.id)
    else:
        profile = analyze_user_style_profile(db, current_user.id)
    return {"cached": cached, **profile.to_public()}
