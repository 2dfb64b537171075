from sqlalchemy import String, DateTime, ForeignKey, Integer, JSON
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime, timezone
import uuid

from app.database import Base
from app.db_types import GUID


class OutfitFeedback(Base):
    __tablename__ = "outfit_feedback"

    id: Mapped[uuid.UUID] = mapped_column(
        GUID(), primary_key=True, default=uuid.uuid4
    )

    user_id: Mapped[uuid.UUID] = mapped_column(
        GUID(),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    outfit_recommendation_id: Mapped[uuid.UUID] = mapped_column(
        GUID(),
        ForeignKey("outfit_recommendations.id", ondelete="CASCADE"),
        nullable=False,
    )

    confidence_rating: Mapped[int] = mapped_column(Integer, nullable=False)  # 1-5
    emotional_response: Mapped[dict] = mapped_column(JSON, nullable=False)
    social_feedback: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    occasion: Mapped[str | None] = mapped_column(String, nullable=True)
    comfort: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    comfort_rating: Mapped[int | None] = mapped_column(Integer, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
