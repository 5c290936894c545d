"""Shared fixtures: in-memory database and a fake WeatherAPI.com."""

import asyncio
from datetime import date, timedelta

import httpx
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.models.database import Base
from app.models import user_preferences, weather_cache  # noqa: F401
from app.services.weather_client import WeatherClient

LOCATION = {
    "name": "London",
    "region": "City of London, Greater London",
    "country": "United Kingdom",
    "lat": 51.52,
    "lon": -0.11,
    "localtime": "2025-10-01 12:00",
}


def _hour(day: str, hour: int, temp: float) -> dict:
    return {
        "time": f"{day} {hour:02d}:00",
        "temp_c": temp,
        "condition": {"text": "Partly cloudy", "code": 1003},
        "precip_mm": 0.2,
        "humidity": 71,
        "wind_kph": 13.0,
        "uv": 2.0,
        "pressure_mb": 1014.0,
        "vis_km": 10.0,
    }


def _forecast_day(day: date, base: float) -> dict:
    iso = day.isoformat()
    return {
        "date": iso,
        "day": {"maxtemp_c": base + 4.0, "mintemp_c": base - 4.0},
        "hour": [_hour(iso, h, base) for h in range(0, 24, 6)],
    }


class FakeWeatherAPI:
    """MockTransport handler serving forecast.json and history.json."""

    def __init__(self, today: date = date(2025, 10, 1)) -> None:
        self.today = today
        self.calls: list[httpx.Request] = []
        self.fail: str | None = None  # "forecast1", "forecast2" or "history"
        self.fail_status = 400
        self.garbage: str | None = None  # endpoint returning non-JSON
        self.delay = 0.0  # seconds each response is held back

    @staticmethod
    def _name(request: httpx.Request) -> str:
        if request.url.path.endswith("history.json"):
            return "history"
        return f"forecast{request.url.params['days']}"

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        name = self._name(request)
        if self.fail == name:
            return httpx.Response(
                self.fail_status,
                json={"error": {"code": 1006, "message": "No matching location found."}},
            )
        if self.garbage == name:
            return httpx.Response(200, text="<html>gateway</html>")
        if name == "history":
            dt = date.fromisoformat(request.url.params["dt"])
            return httpx.Response(200, json={
                "location": LOCATION,
                "forecast": {"forecastday": [_forecast_day(dt, 9.0)]},
            })
        days = int(request.url.params["days"])
        return httpx.Response(200, json={
            "location": LOCATION,
            "current": {"temp_c": 14.0, "condition": {"text": "Partly cloudy"}},
            "forecast": {"forecastday": [
                _forecast_day(self.today + timedelta(days=i), 14.0 + i) for i in range(days)
            ]},
        })

    async def delayed_handler(self, request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(self.delay)
        return self.handler(request)

    def client(self) -> WeatherClient:
        return WeatherClient(
            base_url="https://api.weather.test/v1",
            timeout=5.0,
            transport=httpx.MockTransport(self.delayed_handler if self.delay else self.handler),
        )


@pytest.fixture
def fake_api() -> FakeWeatherAPI:
    return FakeWeatherAPI()


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(bind=engine, autocommit=False, autoflush=False)
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()
