"""WeatherAPI.com client assembling a yesterday/today/tomorrow view.

Three requests are issued concurrently for one location query:

    forecast.json?days=1&aqi=yes   -> location, current, today
    history.json?dt=<yesterday>    -> yesterday
    forecast.json?days=2&aqi=yes   -> tomorrow (second forecast day)

The result is all-or-nothing: if any request fails or returns data that
does not parse, the whole composite is discarded and a single
WeatherFetchError is raised. There is no retry.

API docs: https://www.weatherapi.com/docs/
"""

import asyncio
import logging
from datetime import date, timedelta
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from ..config import settings
from ..schemas.weather import CompositeWeatherView

logger = logging.getLogger(__name__)

DATE_FORMAT = "%Y-%m-%d"


class ConfigurationError(Exception):
    """No API key is available; no request was attempted."""


class WeatherFetchError(Exception):
    """A provider request failed or returned unusable data."""


def target_dates(today: Optional[date] = None) -> tuple[date, date, date]:
    """Return (yesterday, today, tomorrow) by local calendar-day arithmetic."""
    if today is None:
        today = date.today()
    return today - timedelta(days=1), today, today + timedelta(days=1)


def _require_key(api_key: Optional[str]) -> str:
    if api_key is None or not api_key.strip():
        raise ConfigurationError(
            "No weather API key configured. Add one in settings."
        )
    return api_key.strip()


class WeatherClient:
    """Async client for the three WeatherAPI.com calls behind one dashboard view."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = (base_url or settings.weather_api_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.request_timeout
        self._transport = transport

    async def _get_json(
        self,
        client: httpx.AsyncClient,
        endpoint: str,
        params: dict[str, Any],
    ) -> dict[str, Any]:
        """GET one endpoint and decode its JSON body, normalizing failures."""
        url = f"{self.base_url}/{endpoint}"
        try:
            resp = await client.get(url, params=params)
            resp.raise_for_status()
            data = resp.json()
        except httpx.HTTPStatusError as exc:
            detail = _provider_message(exc.response)
            logger.warning(
                "Weather request %s failed with HTTP %d: %s",
                endpoint, exc.response.status_code, detail,
            )
            raise WeatherFetchError(
                f"{endpoint} returned HTTP {exc.response.status_code}: {detail}"
            ) from exc
        except httpx.HTTPError as exc:
            logger.warning("Weather request %s failed: %s", endpoint, exc)
            raise WeatherFetchError(f"{endpoint} request failed: {exc}") from exc
        except ValueError as exc:
            logger.warning("Weather request %s returned invalid JSON", endpoint)
            raise WeatherFetchError(f"{endpoint} returned invalid JSON") from exc

        if not isinstance(data, dict):
            raise WeatherFetchError(f"{endpoint} returned an unexpected payload")
        return data

    async def fetch_composite(
        self,
        location: str,
        api_key: Optional[str],
        today: Optional[date] = None,
    ) -> CompositeWeatherView:
        """Fetch yesterday/today/tomorrow for a location query.

        Args:
            location: Free-text place name or "lat,lon".
            api_key: WeatherAPI.com key. Empty or None raises
                ConfigurationError before any request is made.
            today: Override of the local calendar date (tests).

        Returns:
            CompositeWeatherView assembled from all three responses.

        Raises:
            ConfigurationError: no API key.
            WeatherFetchError: any request or parse failure.
        """
        key = _require_key(api_key)
        yesterday, _, _ = target_dates(today)

        async with httpx.AsyncClient(
            timeout=self.timeout,
            transport=self._transport,
            follow_redirects=True,
        ) as client:
            tasks = [
                asyncio.ensure_future(self._get_json(client, "forecast.json", {
                    "key": key, "q": location, "days": 1, "aqi": "yes",
                })),
                asyncio.ensure_future(self._get_json(client, "history.json", {
                    "key": key, "q": location, "dt": yesterday.strftime(DATE_FORMAT),
                })),
                asyncio.ensure_future(self._get_json(client, "forecast.json", {
                    "key": key, "q": location, "days": 2, "aqi": "yes",
                })),
            ]
            try:
                today_data, yesterday_data, tomorrow_data = await asyncio.gather(*tasks)
            except WeatherFetchError:
                # First failure wins; drop the siblings before the client closes
                for task in tasks:
                    task.cancel()
                await asyncio.gather(*tasks, return_exceptions=True)
                raise

        try:
            view = CompositeWeatherView(
                location=today_data["location"],
                current=today_data.get("current"),
                today=today_data["forecast"]["forecastday"][0],
                yesterday=yesterday_data["forecast"]["forecastday"][0],
                tomorrow=tomorrow_data["forecast"]["forecastday"][1],
            )
        except (KeyError, IndexError, TypeError, ValidationError) as exc:
            logger.warning("Weather response for %r did not parse: %s", location, exc)
            raise WeatherFetchError(f"Unexpected weather data for {location!r}") from exc

        logger.info(
            "Weather fetched for %r (%s): %d/%d/%d hours",
            location, view.location.name,
            len(view.yesterday.hour), len(view.today.hour), len(view.tomorrow.hour),
        )
        return view


def _provider_message(resp: httpx.Response) -> str:
    """Pull the provider's error message out of an error body, if present."""
    try:
        body = resp.json()
    except ValueError:
        return resp.text[:200]
    if isinstance(body, dict):
        err = body.get("error")
        if isinstance(err, dict) and err.get("message"):
            return str(err["message"])
    return resp.text[:200]
