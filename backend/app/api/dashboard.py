"""Dashboard session API.

GET  /api/dashboard                       - State for this install's own user
GET  /api/dashboard/{user_id}             - State for a user (hydrates on first access)
POST /api/dashboard/{user_id}/search      - Submit free text
POST /api/dashboard/{user_id}/select      - Pick a suggestion
POST /api/dashboard/{user_id}/location    - Browser geolocation answer
POST /api/dashboard/{user_id}/theme       - Light/dark switch
POST /api/dashboard/{user_id}/unit        - Temperature unit
POST /api/dashboard/{user_id}/api-key     - Save or clear the weather API key
POST /api/dashboard/{user_id}/preset      - Palette preset / custom colors
POST /api/dashboard/{user_id}/day         - Yesterday/today/tomorrow selector
"""

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException

from ..schemas.dashboard import (
    ApiKeyRequest,
    DashboardResponse,
    DayRequest,
    DaySummaryOut,
    LocationRequest,
    NotificationOut,
    PaletteOut,
    PresetRequest,
    SearchRequest,
    SelectRequest,
    ThemeRequest,
    UnitRequest,
)
from ..services.dashboard import (
    ChangeTheme,
    ChangeUnit,
    DashboardController,
    DashboardRegistry,
    LocationFailed,
    LocationResolved,
    SaveApiKey,
    SavePreset,
    Search,
    SelectDay,
    SelectSuggestion,
    resolve_api_key,
)
from ..services.units import convert_temperature, format_hour

logger = logging.getLogger(__name__)
router = APIRouter()

# Set by main.py at startup
_registry: DashboardRegistry | None = None


def set_registry(registry: DashboardRegistry) -> None:
    global _registry
    _registry = registry


def get_registry() -> DashboardRegistry:
    if _registry is None:
        raise RuntimeError("Dashboard registry not initialised; is the app running?")
    return _registry


def _response(controller: DashboardController) -> DashboardResponse:
    state = controller.state
    unit = state.temperature_unit

    current_c = None
    if state.view is not None and state.view.current:
        current_c = state.view.current.get("temp_c")

    day = None
    if state.day is not None:
        day = DaySummaryOut(
            date=state.day.date,
            high=convert_temperature(state.day.day.maxtemp_c, unit),
            low=convert_temperature(state.day.day.mintemp_c, unit),
            hours=[format_hour(h, unit) for h in state.day.hour],
        )

    geolocation_requested = controller.geolocation_requested
    controller.geolocation_requested = False

    return DashboardResponse(
        user_id=state.user_id,
        location=state.location,
        temperature_unit=unit,
        theme=state.theme,
        theme_preset=state.theme_preset,
        custom_theme=state.custom_theme,
        palette=PaletteOut(
            background=state.palette.background,
            foreground=state.palette.foreground,
            primary=state.palette.primary,
        ),
        search_history=list(state.search_history),
        selected_day=state.selected_day,
        loading=state.loading,
        has_api_key=resolve_api_key(state) is not None,
        current_temperature=convert_temperature(current_c, unit),
        day=day,
        view=state.view,
        geolocation_requested=geolocation_requested,
        notifications=[
            NotificationOut(level=n.level, message=n.message)
            for n in controller.drain_notifications()
        ],
    )


async def _dispatch(registry: DashboardRegistry, user_id: str, event: Any) -> DashboardResponse:
    controller = await registry.get(user_id)
    await controller.dispatch(event)
    return _response(controller)


@router.get("/dashboard", response_model=DashboardResponse)
async def get_own_dashboard(registry: DashboardRegistry = Depends(get_registry)):
    """State for the user id held in local scratch storage."""
    if registry.scratch is None:
        raise HTTPException(status_code=404, detail="No local user configured")
    controller = await registry.get(registry.scratch.user_id)
    return _response(controller)


@router.get("/dashboard/{user_id}", response_model=DashboardResponse)
async def get_dashboard(user_id: str, registry: DashboardRegistry = Depends(get_registry)):
    controller = await registry.get(user_id)
    return _response(controller)


@router.post("/dashboard/{user_id}/search", response_model=DashboardResponse)
async def search(user_id: str, body: SearchRequest,
                 registry: DashboardRegistry = Depends(get_registry)):
    return await _dispatch(registry, user_id, Search(body.query))


@router.post("/dashboard/{user_id}/select", response_model=DashboardResponse)
async def select(user_id: str, body: SelectRequest,
                 registry: DashboardRegistry = Depends(get_registry)):
    return await _dispatch(registry, user_id, SelectSuggestion(body.suggestion))


@router.post("/dashboard/{user_id}/location", response_model=DashboardResponse)
async def location(user_id: str, body: LocationRequest,
                   registry: DashboardRegistry = Depends(get_registry)):
    if body.latitude is None or body.longitude is None:
        event: Any = LocationFailed(body.error or "position unavailable")
    else:
        event = LocationResolved(body.latitude, body.longitude)
    return await _dispatch(registry, user_id, event)


@router.post("/dashboard/{user_id}/theme", response_model=DashboardResponse)
async def theme(user_id: str, body: ThemeRequest,
                registry: DashboardRegistry = Depends(get_registry)):
    return await _dispatch(registry, user_id, ChangeTheme(body.theme))


@router.post("/dashboard/{user_id}/unit", response_model=DashboardResponse)
async def unit(user_id: str, body: UnitRequest,
               registry: DashboardRegistry = Depends(get_registry)):
    return await _dispatch(registry, user_id, ChangeUnit(body.unit))


@router.post("/dashboard/{user_id}/api-key", response_model=DashboardResponse)
async def api_key(user_id: str, body: ApiKeyRequest,
                  registry: DashboardRegistry = Depends(get_registry)):
    return await _dispatch(registry, user_id, SaveApiKey(body.api_key, body.remember))


@router.post("/dashboard/{user_id}/preset", response_model=DashboardResponse)
async def preset(user_id: str, body: PresetRequest,
                 registry: DashboardRegistry = Depends(get_registry)):
    return await _dispatch(registry, user_id, SavePreset(body.preset, body.custom))


@router.post("/dashboard/{user_id}/day", response_model=DashboardResponse)
async def day(user_id: str, body: DayRequest,
              registry: DashboardRegistry = Depends(get_registry)):
    return await _dispatch(registry, user_id, SelectDay(body.day))
