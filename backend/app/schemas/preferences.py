"""Pydantic schemas for user preferences."""

from typing import Literal

from pydantic import BaseModel

TemperatureUnit = Literal["C", "F", "K"]
Theme = Literal["light", "dark"]
ThemePreset = Literal["sunny", "cloudy", "rainy", "custom"]


class CustomTheme(BaseModel):
    background: str | None = None
    foreground: str | None = None
    primary: str | None = None


class UserPreferences(BaseModel):
    id: int | None = None
    user_id: str
    temperature_unit: TemperatureUnit = "C"
    theme: Theme = "light"
    location: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    api_key: str | None = None
    theme_preset: ThemePreset | None = None
    custom_theme: CustomTheme | None = None
    search_history: list[str] = []


class PreferencesUpdate(BaseModel):
    """Fields to upsert. Only fields actually supplied are written."""

    temperature_unit: TemperatureUnit | None = None
    theme: Theme | None = None
    location: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    api_key: str | None = None
    theme_preset: ThemePreset | None = None
    custom_theme: CustomTheme | None = None
    search_history: list[str] | None = None
