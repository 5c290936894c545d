"""GET /api/suggestions and GET /api/theme/palette."""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..config import settings
from ..models.database import get_db
from ..schemas.preferences import CustomTheme, ThemePreset
from ..services.preference_store import PreferenceStore, PreferenceStoreError
from ..services.suggestions import build_suggestions
from ..services.theme import base_palette, resolve_palette, Palette

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/suggestions")
def get_suggestions(q: str = "", user_id: str | None = None, db: Session = Depends(get_db)):
    """Ranked suggestions for the search box, using the user's stored history."""
    history: list[str] = []
    if user_id:
        try:
            prefs = PreferenceStore(db).get(user_id)
        except PreferenceStoreError as e:
            # Suggestions still work from the popular list
            logger.warning("History unavailable for %s: %s", user_id, e)
            prefs = None
        if prefs is not None:
            history = prefs.search_history
    return {
        "query": q,
        "suggestions": build_suggestions(q, history, limit=settings.suggestion_limit),
    }


@router.get("/theme/palette")
def get_palette(
    preset: ThemePreset | None = None,
    background: str | None = None,
    foreground: str | None = None,
    primary: str | None = None,
    theme: str = "light",
):
    """Resolve a preset, or custom colors layered over the light/dark base."""
    custom = CustomTheme(background=background, foreground=foreground, primary=primary)
    palette: Palette = resolve_palette(preset, custom, base_palette(theme))
    return {
        "preset": preset,
        "background": palette.background,
        "foreground": palette.foreground,
        "primary": palette.primary,
    }
