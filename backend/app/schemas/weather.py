"""Pydantic schemas for WeatherAPI.com responses and the composite view."""

from typing import Any

from pydantic import BaseModel, ConfigDict


class Condition(BaseModel):
    model_config = ConfigDict(extra="allow")

    text: str = ""


class HourlyWeather(BaseModel):
    model_config = ConfigDict(extra="allow")

    time: str
    temp_c: float
    condition: Condition
    precip_mm: float = 0.0
    humidity: float = 0.0
    wind_kph: float = 0.0
    uv: float = 0.0
    pressure_mb: float = 0.0
    vis_km: float = 0.0


class DaySummary(BaseModel):
    model_config = ConfigDict(extra="allow")

    maxtemp_c: float
    mintemp_c: float


class ForecastDay(BaseModel):
    model_config = ConfigDict(extra="allow")

    date: str
    day: DaySummary
    hour: list[HourlyWeather] = []


class Location(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: str
    region: str | None = None
    country: str | None = None
    lat: float | None = None
    lon: float | None = None
    localtime: str | None = None


class CompositeWeatherView(BaseModel):
    """Yesterday/today/tomorrow for one location, assembled from three requests."""

    location: Location
    current: dict[str, Any] | None = None
    today: ForecastDay
    yesterday: ForecastDay
    tomorrow: ForecastDay


class HourDisplay(BaseModel):
    time: str
    temperature: str
    condition: str
    precip_mm: float
    humidity: float
    wind_kph: float
    uv: float
    pressure_mb: float
    vis_km: float


class WeatherCacheEntry(BaseModel):
    location: str
    data: str
    timestamp: float
