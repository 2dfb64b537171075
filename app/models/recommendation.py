from sqlalchemy import String, DateTime, Date, ForeignKey, Boolean, Float, JSON
from sqlalchemy.orm import Mapped, mapped_column, relationship
from datetime import date, datetime, timezone
import uuid

from app.database import Base
from app.db_types import GUID


class DailyRecommendation(Base):
    __tablename__ = "daily_recommendations"

    id: Mapped[uuid.UUID] = mapped_column(
        GUID(), primary_key=True, default=uuid.uuid4
    )

    user_id: Mapped[uuid.UUID] = mapped_column(
        GUID(),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )

    recommendation_date: Mapped[date] = mapped_column(Date, nullable=False)
    weather_context: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    calendar_context: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    generated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )

    outfits: Mapped[list["OutfitRecommendation"]] = relationship(
        back_populates="daily_recommendation",
        cascade="all, delete-orphan",
        order_by="OutfitRecommendation.position",
    )


class OutfitRecommendation(Base):
    __tablename__ = "outfit_recommendations"

    id: Mapped[uuid.UUID] = mapped_column(
        GUID(), primary_key=True, default=uuid.uuid4
    )

    daily_recommendation_id: Mapped[uuid.UUID] = mapped_column(
        GUID(),
        ForeignKey("daily_recommendations.id", ondelete="CASCADE"),
        nullable=False,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        GUID(),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )

    position: Mapped[int] = mapped_column(default=0)
    item_ids: Mapped[list[str]] = mapped_column(JSON, nullable=False)
    confidence_note: Mapped[str] = mapped_column(String, nullable=False)
    confidence_score: Mapped[float] = mapped_column(Float, default=0.0)
    reasoning: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)
    quick_actions: Mapped[list[dict] | None] = mapped_column(JSON, nullable=True)
    is_quick_option: Mapped[bool] = mapped_column(Boolean, default=False)

    selected_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )

    daily_recommendation: Mapped[DailyRecommendation] = relationship(
        back_populates="outfits"
    )
