from sqlalchemy import String, DateTime, ForeignKey, Boolean, JSON
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime, timezone
import uuid

from app.database import Base
from app.db_types import GUID


class UserPreferences(Base):
    __tablename__ = "user_preferences"

    id: Mapped[uuid.UUID] = mapped_column(
        GUID(), primary_key=True, default=uuid.uuid4
    )

    user_id: Mapped[uuid.UUID] = mapped_column(
        GUID(),
        ForeignKey("users.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )

    notification_time: Mapped[str] = mapped_column(String, default="06:00")  # HH:MM local
    timezone: Mapped[str] = mapped_column(String, default="UTC")
    enable_weekends: Mapped[bool] = mapped_column(Boolean, default=True)
    enable_quick_options: Mapped[bool] = mapped_column(Boolean, default=True)

    style_preferences: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    privacy_settings: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    engagement_history: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
