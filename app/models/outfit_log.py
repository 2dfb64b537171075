from sqlalchemy import String, DateTime, ForeignKey, Float, JSON, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime, timezone
import uuid

from app.database import Base
from app.db_types import GUID


class OutfitLog(Base):
    """An outfit the user actually wore."""

    __tablename__ = "outfit_logs"

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

    item_ids: Mapped[list[str]] = mapped_column(JSON, nullable=False)
    confidence_score: Mapped[float | None] = mapped_column(Float, nullable=True)

    worn_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )


class FavoriteOutfit(Base):
    __tablename__ = "favorite_outfits"
    __table_args__ = (
        UniqueConstraint("user_id", "outfit_recommendation_id", name="uq_favorite_outfit"),
    )

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

    item_ids: Mapped[list[str]] = mapped_column(JSON, nullable=False)
    confidence_note: Mapped[str | None] = mapped_column(String, nullable=True)

    saved_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
