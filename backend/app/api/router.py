"""Top-level API router aggregation."""

from fastapi import APIRouter

from . import dashboard, preferences, suggestions, weather

api_router = APIRouter(prefix="/api")

api_router.include_router(dashboard.router)
api_router.include_router(preferences.router)
api_router.include_router(suggestions.router)
api_router.include_router(weather.router)
