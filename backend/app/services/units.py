"""Temperature unit conversion and hourly display formatting.

Provider data is always Celsius; conversion happens only for display.
"""

from datetime import datetime
from typing import Optional

from ..schemas.weather import HourDisplay, HourlyWeather

PLACEHOLDER = "-"

VALID_UNITS = ("C", "F", "K")


def convert_temperature(celsius: Optional[float], unit: str) -> str:
    """Convert a Celsius value to a one-decimal display string.

    F = C * 9/5 + 32, K = C + 273.15, anything else is treated as C.
    Missing input renders as a dash instead of raising.

    Formatting rounds the exact binary value, so 273.15 (stored as
    273.14999...) renders as "273.1".
    """
    if celsius is None:
        return PLACEHOLDER
    if unit == "F":
        value = celsius * 9 / 5 + 32
    elif unit == "K":
        value = celsius + 273.15
    else:
        value = celsius
    return f"{value:.1f}"


def _clock_time(raw: str) -> str:
    """'2025-10-01 14:00' -> '14:00'. Unparseable input passes through."""
    try:
        return datetime.strptime(raw, "%Y-%m-%d %H:%M").strftime("%H:%M")
    except ValueError:
        return raw


def format_hour(hour: HourlyWeather, unit: str) -> HourDisplay:
    """Build the display row for one hourly record in the chosen unit."""
    return HourDisplay(
        time=_clock_time(hour.time),
        temperature=convert_temperature(hour.temp_c, unit),
        condition=hour.condition.text,
        precip_mm=hour.precip_mm,
        humidity=hour.humidity,
        wind_kph=hour.wind_kph,
        uv=hour.uv,
        pressure_mb=hour.pressure_mb,
        vis_km=hour.vis_km,
    )
