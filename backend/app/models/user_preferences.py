"""UserPreferences ORM model: one row per browser install."""

from datetime import datetime, timezone

from sqlalchemy import Integer, Float, Text, DateTime
from sqlalchemy.orm import Mapped, mapped_column

from .database import Base


class UserPreferencesModel(Base):
    __tablename__ = "user_preferences"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(Text, nullable=False, unique=True, index=True)

    temperature_unit: Mapped[str] = mapped_column(Text, nullable=False, default="C")
    theme: Mapped[str] = mapped_column(Text, nullable=False, default="light")
    location: Mapped[str | None] = mapped_column(Text, nullable=True)
    latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    longitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    api_key: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Palette
    theme_preset: Mapped[str | None] = mapped_column(Text, nullable=True)
    custom_background: Mapped[str | None] = mapped_column(Text, nullable=True)
    custom_foreground: Mapped[str | None] = mapped_column(Text, nullable=True)
    custom_primary: Mapped[str | None] = mapped_column(Text, nullable=True)

    # JSON array, most recent first
    search_history: Mapped[str] = mapped_column(Text, nullable=False, default="[]")

    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
