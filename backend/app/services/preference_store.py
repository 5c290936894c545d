"""Upsert/get access to per-user preference records.

Preferences are best-effort: every database failure is rolled back, logged
and re-raised as PreferenceStoreError so callers can keep going with their
in-memory state.
"""

import json
import logging
import time
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import settings
from ..models.user_preferences import UserPreferencesModel
from ..models.weather_cache import WeatherCacheModel
from ..schemas.preferences import CustomTheme, PreferencesUpdate, UserPreferences
from ..schemas.weather import WeatherCacheEntry

logger = logging.getLogger(__name__)

# Columns that cannot be cleared, only replaced
_REQUIRED = ("temperature_unit", "theme")


class PreferenceStoreError(Exception):
    """The preference store could not be read or written."""


def _to_schema(row: UserPreferencesModel) -> UserPreferences:
    custom = None
    if any(v is not None for v in (
        row.custom_background, row.custom_foreground, row.custom_primary,
    )):
        custom = CustomTheme(
            background=row.custom_background,
            foreground=row.custom_foreground,
            primary=row.custom_primary,
        )
    try:
        history = json.loads(row.search_history or "[]")
    except ValueError:
        logger.warning("Corrupt search history for %s, resetting", row.user_id)
        history = []
    return UserPreferences(
        id=row.id,
        user_id=row.user_id,
        temperature_unit=row.temperature_unit,
        theme=row.theme,
        location=row.location,
        latitude=row.latitude,
        longitude=row.longitude,
        api_key=row.api_key,
        theme_preset=row.theme_preset,
        custom_theme=custom,
        search_history=history,
    )


def _apply(row: UserPreferencesModel, fields: dict[str, Any]) -> None:
    """Write supplied fields onto a row. Explicit None clears optional columns."""
    for key, value in fields.items():
        if key in _REQUIRED and value is None:
            continue
        if key == "custom_theme":
            value = value or {}
            row.custom_background = value.get("background")
            row.custom_foreground = value.get("foreground")
            row.custom_primary = value.get("primary")
        elif key == "search_history":
            row.search_history = json.dumps(list(value or []))
        else:
            setattr(row, key, value)


class PreferenceStore:
    """Preference record access bound to one SQLAlchemy session."""

    def __init__(self, db: Session) -> None:
        self._db = db

    def get(self, user_id: str) -> Optional[UserPreferences]:
        """Return the record for user_id, or None when none exists yet."""
        try:
            row = self._db.query(UserPreferencesModel).filter_by(user_id=user_id).first()
        except SQLAlchemyError as exc:
            logger.error("Preference lookup failed for %s: %s", user_id, exc)
            raise PreferenceStoreError(str(exc)) from exc
        return _to_schema(row) if row is not None else None

    def save(self, user_id: str, fields: PreferencesUpdate | dict[str, Any]) -> int:
        """Upsert preferences for user_id and return the record id.

        Existing records are merge-patched with only the supplied fields.
        New records take the configured unit and theme and an empty history
        for anything omitted.
        """
        if isinstance(fields, dict):
            fields = PreferencesUpdate.model_validate(fields)
        supplied = fields.model_dump(exclude_unset=True)

        try:
            row = self._db.query(UserPreferencesModel).filter_by(user_id=user_id).first()
            if row is None:
                row = UserPreferencesModel(
                    user_id=user_id,
                    temperature_unit=settings.temperature_unit,
                    theme=settings.theme,
                    search_history="[]",
                )
                _apply(row, supplied)
                self._db.add(row)
                logger.info("Created preferences for %s", user_id)
            else:
                _apply(row, supplied)
                row.updated_at = datetime.now(timezone.utc)
                logger.debug("Patched preferences for %s: %s", user_id, sorted(supplied))
            self._db.commit()
        except SQLAlchemyError as exc:
            self._db.rollback()
            logger.error("Preference save failed for %s: %s", user_id, exc)
            raise PreferenceStoreError(str(exc)) from exc
        return row.id

    def get_cached_weather(self, location: str) -> Optional[WeatherCacheEntry]:
        """Return the cached provider payload for a location, if any."""
        try:
            row = self._db.query(WeatherCacheModel).filter_by(location=location).first()
        except SQLAlchemyError as exc:
            logger.error("Weather cache lookup failed for %s: %s", location, exc)
            raise PreferenceStoreError(str(exc)) from exc
        if row is None:
            return None
        return WeatherCacheEntry(location=row.location, data=row.data, timestamp=row.timestamp)

    def cache_weather(self, location: str, data: str, timestamp: Optional[float] = None) -> int:
        """Upsert the cached payload for a location."""
        if timestamp is None:
            timestamp = time.time()
        try:
            row = self._db.query(WeatherCacheModel).filter_by(location=location).first()
            if row is None:
                row = WeatherCacheModel(location=location, data=data, timestamp=timestamp)
                self._db.add(row)
            else:
                row.data = data
                row.timestamp = timestamp
            self._db.commit()
        except SQLAlchemyError as exc:
            self._db.rollback()
            logger.error("Weather cache write failed for %s: %s", location, exc)
            raise PreferenceStoreError(str(exc)) from exc
        return row.id
