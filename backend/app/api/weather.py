"""Weather lookup, unit conversion and raw cache endpoints.

GET /api/weather?q=&key=              - Yesterday/today/tomorrow for a location
GET /api/convert?celsius=&unit=       - Celsius -> display string
GET /api/weather-cache/{location}     - Cached provider payload
PUT /api/weather-cache/{location}     - Store a provider payload
"""

import logging
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..config import settings
from ..models.database import get_db
from ..schemas.weather import CompositeWeatherView, WeatherCacheEntry
from ..services.preference_store import PreferenceStore, PreferenceStoreError
from ..services.units import convert_temperature
from ..services.weather_client import ConfigurationError, WeatherClient, WeatherFetchError

logger = logging.getLogger(__name__)
router = APIRouter()

_client = WeatherClient()


def get_weather_client() -> WeatherClient:
    return _client


class CacheWrite(BaseModel):
    data: str
    timestamp: float | None = None


@router.get("/weather", response_model=CompositeWeatherView)
async def get_weather(
    q: str = Query(..., min_length=1),
    key: str | None = None,
    client: WeatherClient = Depends(get_weather_client),
):
    """Fetch the composite view. Falls back to the configured key when none is given."""
    try:
        return await client.fetch_composite(q, key or settings.weather_api_key)
    except ConfigurationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except WeatherFetchError as e:
        raise HTTPException(status_code=502, detail=str(e))


@router.get("/convert")
def convert(celsius: float | None = None, unit: Literal["C", "F", "K"] = "C"):
    return {"unit": unit, "value": convert_temperature(celsius, unit)}


@router.get("/weather-cache/{location}", response_model=WeatherCacheEntry)
def get_cached(location: str, db: Session = Depends(get_db)):
    try:
        entry = PreferenceStore(db).get_cached_weather(location)
    except PreferenceStoreError as e:
        raise HTTPException(status_code=503, detail=str(e))
    if entry is None:
        raise HTTPException(status_code=404, detail=f"Nothing cached for {location}")
    return entry


@router.put("/weather-cache/{location}", response_model=WeatherCacheEntry)
def put_cached(location: str, body: CacheWrite, db: Session = Depends(get_db)):
    store = PreferenceStore(db)
    try:
        store.cache_weather(location, body.data, body.timestamp)
        return store.get_cached_weather(location)
    except PreferenceStoreError as e:
        raise HTTPException(status_code=503, detail=str(e))
