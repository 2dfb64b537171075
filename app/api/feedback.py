# app/api/feedback.py

from __future__ import annotations

from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.database import get_db
from app.dependencies import get_current_user
from app.models.user import User
from app.services import mirror
from app.services.dev_event_log import log_user_event

router = APIRouter(prefix="/feedback", tags=["Feedback"])

_EMOTION_ALIASES: dict[str, str] = {
    "confident": "confident",
    "confidence": "confident",
    "comfortable": "comfortable",
    "comfy": "comfortable",
    "stylish": "stylish",
    "powerful": "powerful",
    "creative": "creative",
    "elegant": "elegant",
    "playful": "playful",
    "fun": "playful",
}


class EmotionalResponse(BaseModel):
    primary: str
    intensity: int = 5
    additional_emotions: list[str] = []


class SocialFeedback(BaseModel):
    compliments_received: int = 0
    positive_reactions: list[str] = []
    social_context: str | None = None


class ComfortRating(BaseModel):
    physical: int
    emotional: int
    confidence: int


class FeedbackCreate(BaseModel):
    outfit_recommendation_id: UUID
    confidence_rating: int
    emotional_response: EmotionalResponse
    social_feedback: SocialFeedback | None = None
    occasion: str | None = None
    comfort: ComfortRating | None = None


def _dump(model: BaseModel | None) -> dict[str, Any] | None:
    if model is None:
        return None
    return model.model_dump() if hasattr(model, "model_dump") else model.dict()


def _check_range(name: str, value: int, lo: int, hi: int) -> None:
    if not lo <= value <= hi:
        raise HTTPException(status_code=422, detail=f"{name} must be between {lo} and {hi}.")


@router.post("")
def create_feedback(
    payload: FeedbackCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    _check_range("confidence_rating", payload.confidence_rating, 1, 5)
    _check_range("emotional_response.intensity", payload.emotional_response.intensity, 1, 10)
    if payload.comfort is not None:
        for name in ("physical", "emotional", "confidence"):
            _check_range(f"comfort.{name}", getattr(payload.comfort, name), 1, 5)

    primary = _EMOTION_ALIASES.get(payload.emotional_response.primary.strip().lower())
    if not primary:
        raise HTTPException(
            status_code=422,
            detail=f"Invalid primary emotion. Use one of: {sorted(set(_EMOTION_ALIASES.values()))}.",
        )

    outfit = mirror.get_outfit(db, current_user.id, payload.outfit_recommendation_id)
    if not outfit:
        raise HTTPException(status_code=404, detail="Outfit recommendation not found")

    emotional = _dump(payload.emotional_response) or {}
    emotional["primary"] = primary

    feedback = mirror.process_user_feedback(
        db,
        current_user.id,
        mirror.FeedbackInput(
            outfit_recommendation_id=outfit.id,
            confidence_rating=payload.confidence_rating,
            emotional_response=emotional,
            social_feedback=_dump(payload.social_feedback),
            occasion=payload.occasion.strip().lower() if payload.occasion else None,
            comfort=_dump(payload.comfort),
        ),
    )
    if feedback is None:
        raise HTTPException(status_code=503, detail="Could not save feedback, please try again.")

    log_user_event(
        user_id=current_user.id,
        event="feedback_created",
        meta={
            "outfit_id": str(outfit.id),
            "rating": feedback.confidence_rating,
            "primary": primary,
        },
    )
    return {
        "created": True,
        "feedback_id": feedback.id,
        "confidence_rating": feedback.confidence_rating,
        "emotional_response": feedback.emotional_response,
    }
