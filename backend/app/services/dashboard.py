"""Dashboard state machine and per-user controller.

All UI state for one user lives in an immutable DashboardState. User
actions and async results arrive as events; transition() is a pure
function returning the next state plus the side effects to run:

    FetchWeather       -> WeatherClient.fetch_composite
    SavePreferences    -> PreferenceStore.save (always the full known state)
    WriteScratch       -> ScratchStore.set
    RequestGeolocation -> geolocator, or flagged for the browser to answer
    Notify             -> transient message for the user

DashboardController owns the state and executes the effects. Results are
fed back in as WeatherLoaded / WeatherFailed / LocationResolved events.
Preference writes are best-effort: a store failure becomes a warning and
never blocks a fetch.
"""

import asyncio
import logging
from collections import OrderedDict
from dataclasses import dataclass, field, replace
from typing import Any, Awaitable, Callable, Optional

from sqlalchemy.orm import Session

from ..config import settings
from ..schemas.preferences import CustomTheme, UserPreferences
from ..schemas.weather import CompositeWeatherView, ForecastDay
from .preference_store import PreferenceStore, PreferenceStoreError
from .scratch import API_KEY_KEY, LOCATION_KEY, ScratchStore
from .suggestions import MAX_HISTORY, is_current_location, record_search
from .theme import DEFAULT_PALETTE, Palette, base_palette, resolve_palette
from .units import VALID_UNITS
from .weather_client import ConfigurationError, WeatherClient, WeatherFetchError

logger = logging.getLogger(__name__)

DAYS = ("yesterday", "today", "tomorrow")

MSG_NO_KEY = "No weather API key configured. Add one in settings."
MSG_FETCH_FAILED = "Failed to fetch weather data. Please check your API key."
MSG_FETCH_OK = "Weather data updated!"
MSG_GEO_FAILED = "Unable to get location. Please search manually."


class GeolocationError(Exception):
    """Position unavailable or permission denied."""


# --------------- State ---------------

@dataclass(frozen=True)
class DashboardState:
    user_id: str
    location: str = ""
    temperature_unit: str = "C"
    theme: str = "light"
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    theme_preset: Optional[str] = None
    custom_theme: Optional[CustomTheme] = None
    palette: Palette = DEFAULT_PALETTE
    search_history: tuple[str, ...] = ()
    history_limit: int = MAX_HISTORY

    # API key sources, highest priority first
    session_api_key: Optional[str] = None
    saved_api_key: Optional[str] = None
    scratch_api_key: Optional[str] = None
    default_api_key: Optional[str] = None

    selected_day: str = "today"
    view: Optional[CompositeWeatherView] = None
    loading: bool = False
    hydrated: bool = False

    @property
    def day(self) -> Optional[ForecastDay]:
        if self.view is None:
            return None
        return getattr(self.view, self.selected_day)


# --------------- Events ---------------

@dataclass(frozen=True)
class Hydrate:
    preferences: Optional[UserPreferences]
    scratch_location: Optional[str] = None
    scratch_api_key: Optional[str] = None


@dataclass(frozen=True)
class Search:
    query: str


@dataclass(frozen=True)
class SelectSuggestion:
    suggestion: str


@dataclass(frozen=True)
class LocationResolved:
    latitude: float
    longitude: float


@dataclass(frozen=True)
class LocationFailed:
    reason: str = ""


@dataclass(frozen=True)
class ChangeTheme:
    theme: str


@dataclass(frozen=True)
class ChangeUnit:
    unit: str


@dataclass(frozen=True)
class SaveApiKey:
    api_key: str
    remember: bool = True


@dataclass(frozen=True)
class SavePreset:
    preset: str
    custom: Optional[CustomTheme] = None


@dataclass(frozen=True)
class SelectDay:
    day: str


@dataclass(frozen=True)
class WeatherLoaded:
    location: str
    view: CompositeWeatherView


@dataclass(frozen=True)
class WeatherFailed:
    location: str
    message: str


# --------------- Effects ---------------

@dataclass(frozen=True)
class FetchWeather:
    location: str
    api_key: str


@dataclass(frozen=True)
class SavePreferences:
    fields: dict[str, Any]


@dataclass(frozen=True)
class WriteScratch:
    key: str
    value: Optional[str]


@dataclass(frozen=True)
class RequestGeolocation:
    pass


@dataclass(frozen=True)
class Notify:
    level: str  # success, info, warning, error
    message: str


Effects = list[Any]

# Effects that wait on the network or the user
_SLOW_EFFECTS = (FetchWeather, RequestGeolocation)


# --------------- Transitions ---------------

def resolve_api_key(state: DashboardState) -> Optional[str]:
    """Session override -> saved preference -> scratch fallback -> deployment default."""
    for candidate in (
        state.session_api_key,
        state.saved_api_key,
        state.scratch_api_key,
        state.default_api_key,
    ):
        if candidate and candidate.strip():
            return candidate.strip()
    return None


def preference_fields(state: DashboardState) -> dict[str, Any]:
    """Full known preference state; partial saves would reset history on insert."""
    return {
        "temperature_unit": state.temperature_unit,
        "theme": state.theme,
        "location": state.location or None,
        "latitude": state.latitude,
        "longitude": state.longitude,
        "api_key": state.saved_api_key,
        "theme_preset": state.theme_preset,
        "custom_theme": state.custom_theme.model_dump() if state.custom_theme else None,
        "search_history": list(state.search_history),
    }


def _save(state: DashboardState) -> SavePreferences:
    return SavePreferences(preference_fields(state))


def _fetch(state: DashboardState) -> tuple[DashboardState, Effects]:
    key = resolve_api_key(state)
    if key is None:
        return replace(state, loading=False), [Notify("error", MSG_NO_KEY)]
    return replace(state, loading=True), [FetchWeather(state.location, key)]


def _commit_query(state: DashboardState, text: str) -> tuple[DashboardState, Effects]:
    text = text.strip()
    if not text:
        return state, []
    state = replace(
        state,
        location=text,
        latitude=None,
        longitude=None,
        search_history=tuple(record_search(state.search_history, text, state.history_limit)),
    )
    state, fetch_effects = _fetch(state)
    return state, [WriteScratch(LOCATION_KEY, text), _save(state), *fetch_effects]


def _on_hydrate(state: DashboardState, event: Hydrate) -> tuple[DashboardState, Effects]:
    prefs = event.preferences
    if prefs is not None:
        state = replace(
            state,
            temperature_unit=prefs.temperature_unit,
            theme=prefs.theme,
            latitude=prefs.latitude,
            longitude=prefs.longitude,
            saved_api_key=prefs.api_key,
            theme_preset=prefs.theme_preset,
            custom_theme=prefs.custom_theme,
            search_history=tuple(prefs.search_history[:state.history_limit]),
        )
    state = replace(
        state,
        palette=resolve_palette(state.theme_preset, state.custom_theme, base_palette(state.theme)),
        scratch_api_key=event.scratch_api_key,
        hydrated=True,
    )

    location = (prefs.location if prefs is not None else None) or event.scratch_location
    if not location:
        return state, [RequestGeolocation()]
    state = replace(state, location=location)
    return _fetch(state)


def _on_search(state: DashboardState, event: Search) -> tuple[DashboardState, Effects]:
    return _commit_query(state, event.query)


def _on_select(state: DashboardState, event: SelectSuggestion) -> tuple[DashboardState, Effects]:
    if is_current_location(event.suggestion):
        return state, [RequestGeolocation()]
    return _commit_query(state, event.suggestion)


def _on_location_resolved(
    state: DashboardState, event: LocationResolved,
) -> tuple[DashboardState, Effects]:
    coords = f"{event.latitude},{event.longitude}"
    state = replace(
        state, location=coords, latitude=event.latitude, longitude=event.longitude,
    )
    state, fetch_effects = _fetch(state)
    return state, [WriteScratch(LOCATION_KEY, coords), _save(state), *fetch_effects]


def _on_location_failed(
    state: DashboardState, event: LocationFailed,
) -> tuple[DashboardState, Effects]:
    return state, [Notify("error", MSG_GEO_FAILED)]


def _on_change_theme(state: DashboardState, event: ChangeTheme) -> tuple[DashboardState, Effects]:
    if event.theme not in ("light", "dark"):
        return state, [Notify("error", f"Unknown theme {event.theme!r}")]
    state = replace(state, theme=event.theme)
    if state.theme_preset is None:
        state = replace(state, palette=base_palette(event.theme))
    return state, [_save(state)]


def _on_change_unit(state: DashboardState, event: ChangeUnit) -> tuple[DashboardState, Effects]:
    if event.unit not in VALID_UNITS:
        return state, [Notify("error", f"Unknown temperature unit {event.unit!r}")]
    state = replace(state, temperature_unit=event.unit)
    return state, [_save(state)]


def _on_save_api_key(state: DashboardState, event: SaveApiKey) -> tuple[DashboardState, Effects]:
    key = event.api_key.strip() or None
    if not event.remember:
        state = replace(state, session_api_key=key)
        effects: Effects = []
    else:
        # A remembered key also replaces any session-only key
        state = replace(state, session_api_key=None, saved_api_key=key, scratch_api_key=key)
        effects = [WriteScratch(API_KEY_KEY, key), _save(state)]
    effects.append(Notify("success", "API key saved" if key else "API key cleared"))
    if state.location:
        state, fetch_effects = _fetch(state)
        effects.extend(fetch_effects)
    return state, effects


def _on_save_preset(state: DashboardState, event: SavePreset) -> tuple[DashboardState, Effects]:
    custom = event.custom if event.preset == "custom" else state.custom_theme
    state = replace(
        state,
        theme_preset=event.preset,
        custom_theme=custom,
        palette=resolve_palette(event.preset, custom, state.palette),
    )
    return state, [_save(state)]


def _on_select_day(state: DashboardState, event: SelectDay) -> tuple[DashboardState, Effects]:
    if event.day not in DAYS:
        return state, [Notify("error", f"Unknown day {event.day!r}")]
    return replace(state, selected_day=event.day), []


def _on_weather_loaded(
    state: DashboardState, event: WeatherLoaded,
) -> tuple[DashboardState, Effects]:
    if event.location != state.location:
        logger.debug("Dropping stale weather for %r (now %r)", event.location, state.location)
        return state, []
    return replace(state, view=event.view, loading=False), [Notify("success", MSG_FETCH_OK)]


def _on_weather_failed(
    state: DashboardState, event: WeatherFailed,
) -> tuple[DashboardState, Effects]:
    if event.location != state.location:
        return state, []
    # Previous view stays on screen
    return replace(state, loading=False), [Notify("error", event.message)]


_HANDLERS: dict[type, Callable[[DashboardState, Any], tuple[DashboardState, Effects]]] = {
    Hydrate: _on_hydrate,
    Search: _on_search,
    SelectSuggestion: _on_select,
    LocationResolved: _on_location_resolved,
    LocationFailed: _on_location_failed,
    ChangeTheme: _on_change_theme,
    ChangeUnit: _on_change_unit,
    SaveApiKey: _on_save_api_key,
    SavePreset: _on_save_preset,
    SelectDay: _on_select_day,
    WeatherLoaded: _on_weather_loaded,
    WeatherFailed: _on_weather_failed,
}


def transition(state: DashboardState, event: Any) -> tuple[DashboardState, Effects]:
    """Pure state transition: (state, event) -> (next state, effects)."""
    handler = _HANDLERS.get(type(event))
    if handler is None:
        raise TypeError(f"Unhandled dashboard event: {type(event).__name__}")
    return handler(state, event)


# --------------- Controller ---------------

Geolocator = Callable[[], Awaitable[tuple[float, float]]]


class DashboardController:
    """Owns one user's DashboardState and runs its effects."""

    def __init__(
        self,
        user_id: str,
        session_factory: Callable[[], Session],
        weather_client: WeatherClient,
        scratch: Optional[ScratchStore] = None,
        geolocator: Optional[Geolocator] = None,
        default_api_key: Optional[str] = None,
    ) -> None:
        self.state = DashboardState(
            user_id=user_id,
            temperature_unit=settings.temperature_unit,
            theme=settings.theme,
            palette=base_palette(settings.theme),
            history_limit=settings.history_limit,
            default_api_key=default_api_key or None,
        )
        self._session_factory = session_factory
        self._weather = weather_client
        self._scratch = scratch
        self._geolocator = geolocator
        self._lock = asyncio.Lock()
        self.notifications: list[Notify] = []
        self.geolocation_requested = False

    def _load_preferences(self) -> Optional[UserPreferences]:
        try:
            with self._session_factory() as db:
                return PreferenceStore(db).get(self.state.user_id)
        except PreferenceStoreError as e:
            logger.warning("Could not load preferences for %s: %s", self.state.user_id, e)
            self.notifications.append(Notify("warning", "Saved preferences are unavailable"))
            return None

    async def hydrate(self) -> DashboardState:
        """Load stored preferences and scratch values, then start the first fetch."""
        prefs = self._load_preferences()
        event = Hydrate(
            preferences=prefs,
            scratch_location=self._scratch.get(LOCATION_KEY) if self._scratch else None,
            scratch_api_key=self._scratch.get(API_KEY_KEY) if self._scratch else None,
        )
        return await self.dispatch(event)

    async def dispatch(self, event: Any) -> DashboardState:
        """Apply an event and every follow-up event its effects produce.

        The lock covers the transition and the local effects only. Weather
        fetches and geolocation run with it released, so other events for
        this user are applied while a request is in flight. Their results
        come back through dispatch() like any other event.
        """
        slow: list[Any] = []
        async with self._lock:
            self.state, effects = transition(self.state, event)
            for effect in effects:
                if isinstance(effect, _SLOW_EFFECTS):
                    slow.append(effect)
                else:
                    await self._run(effect)

        follow_ups = await asyncio.gather(*(self._run(effect) for effect in slow))
        for follow_up in follow_ups:
            if follow_up is not None:
                await self.dispatch(follow_up)
        return self.state

    async def _run(self, effect: Any) -> Optional[Any]:
        if isinstance(effect, Notify):
            self.notifications.append(effect)
        elif isinstance(effect, WriteScratch):
            if self._scratch is not None:
                self._scratch.set(effect.key, effect.value)
        elif isinstance(effect, SavePreferences):
            self._save_preferences(effect.fields)
        elif isinstance(effect, FetchWeather):
            return await self._fetch_weather(effect)
        elif isinstance(effect, RequestGeolocation):
            return await self._locate()
        else:
            raise TypeError(f"Unhandled dashboard effect: {type(effect).__name__}")
        return None

    def _save_preferences(self, fields: dict[str, Any]) -> None:
        try:
            with self._session_factory() as db:
                PreferenceStore(db).save(self.state.user_id, fields)
        except PreferenceStoreError as e:
            logger.warning("Preferences not saved for %s: %s", self.state.user_id, e)
            self.notifications.append(Notify("warning", "Preferences could not be saved"))

    async def _fetch_weather(self, effect: FetchWeather) -> Any:
        try:
            view = await self._weather.fetch_composite(effect.location, effect.api_key)
        except ConfigurationError:
            return WeatherFailed(effect.location, MSG_NO_KEY)
        except WeatherFetchError as e:
            logger.warning("Weather fetch for %r failed: %s", effect.location, e)
            return WeatherFailed(effect.location, MSG_FETCH_FAILED)
        return WeatherLoaded(effect.location, view)

    async def _locate(self) -> Optional[Any]:
        if self._geolocator is None:
            # The browser answers with a LocationResolved/LocationFailed event
            self.geolocation_requested = True
            return None
        try:
            latitude, longitude = await self._geolocator()
        except GeolocationError as e:
            logger.info("Geolocation failed for %s: %s", self.state.user_id, e)
            return LocationFailed(str(e))
        return LocationResolved(latitude, longitude)

    def drain_notifications(self) -> list[Notify]:
        """Return and clear pending notifications."""
        pending, self.notifications = self.notifications, []
        return pending


@dataclass
class DashboardRegistry:
    """Lazily creates and hydrates one controller per user id.

    At most max_controllers are kept; the least recently used is dropped
    first. A dropped user is hydrated again from the store on next access.
    """

    session_factory: Callable[[], Session]
    weather_client: WeatherClient
    scratch: Optional[ScratchStore] = None
    default_api_key: Optional[str] = None
    max_controllers: int = 256
    _controllers: OrderedDict[str, DashboardController] = field(default_factory=OrderedDict)

    async def get(self, user_id: str) -> DashboardController:
        controller = self._controllers.get(user_id)
        if controller is not None:
            self._controllers.move_to_end(user_id)
            return controller

        # Scratch storage belongs to this install's own user only
        scratch = self.scratch
        if scratch is not None and scratch.user_id != user_id:
            scratch = None
        controller = DashboardController(
            user_id,
            self.session_factory,
            self.weather_client,
            scratch=scratch,
            default_api_key=self.default_api_key,
        )
        self._controllers[user_id] = controller
        while len(self._controllers) > self.max_controllers:
            evicted, _ = self._controllers.popitem(last=False)
            logger.debug("Dropped dashboard session for %s", evicted)
        await controller.hydrate()
        return controller

    def __len__(self) -> int:
        return len(self._controllers)

    def __contains__(self, user_id: str) -> bool:
        return user_id in self._controllers
