"""Pydantic schemas for dashboard API."""

from typing import Literal

from pydantic import BaseModel

from .preferences import CustomTheme, TemperatureUnit, Theme, ThemePreset
from .weather import CompositeWeatherView, HourDisplay

Day = Literal["yesterday", "today", "tomorrow"]


class SearchRequest(BaseModel):
    query: str


class SelectRequest(BaseModel):
    suggestion: str


class LocationRequest(BaseModel):
    """Browser geolocation answer: coordinates, or an error message."""
    latitude: float | None = None
    longitude: float | None = None
    error: str | None = None


class ThemeRequest(BaseModel):
    theme: Theme


class UnitRequest(BaseModel):
    unit: TemperatureUnit


class ApiKeyRequest(BaseModel):
    api_key: str
    remember: bool = True


class PresetRequest(BaseModel):
    preset: ThemePreset
    custom: CustomTheme | None = None


class DayRequest(BaseModel):
    day: Day


class PaletteOut(BaseModel):
    background: str
    foreground: str
    primary: str


class NotificationOut(BaseModel):
    level: str
    message: str


class DaySummaryOut(BaseModel):
    date: str
    high: str
    low: str
    hours: list[HourDisplay]


class DashboardResponse(BaseModel):
    user_id: str
    location: str
    temperature_unit: TemperatureUnit
    theme: Theme
    theme_preset: ThemePreset | None = None
    custom_theme: CustomTheme | None = None
    palette: PaletteOut
    search_history: list[str]
    selected_day: Day
    loading: bool
    has_api_key: bool
    current_temperature: str
    day: DaySummaryOut | None = None
    view: CompositeWeatherView | None = None
    geolocation_requested: bool = False
    notifications: list[NotificationOut] = []
