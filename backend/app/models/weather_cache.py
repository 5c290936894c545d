"""WeatherCache ORM model: raw provider JSON keyed by location."""

from sqlalchemy import Integer, Text, Float
from sqlalchemy.orm import Mapped, mapped_column

from .database import Base


class WeatherCacheModel(Base):
    __tablename__ = "weather_cache"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    location: Mapped[str] = mapped_column(Text, nullable=False, unique=True, index=True)
    data: Mapped[str] = mapped_column(Text, nullable=False)
    timestamp: Mapped[float] = mapped_column(Float, nullable=False)
