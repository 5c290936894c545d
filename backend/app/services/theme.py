"""Theme preset -> color palette resolution."""

from dataclasses import dataclass
from typing import Optional

from ..schemas.preferences import CustomTheme


@dataclass(frozen=True)
class Palette:
    background: str
    foreground: str
    primary: str


DEFAULT_PALETTE = Palette(background="#e0e5ec", foreground="#1f2937", primary="#3b82f6")
DARK_PALETTE = Palette(background="#2c3e50", foreground="#ecf0f1", primary="#60a5fa")

PALETTES: dict[str, Palette] = {
    "sunny": Palette(background="#fff4d6", foreground="#3d2c00", primary="#f59e0b"),
    "cloudy": Palette(background="#d9dee5", foreground="#2d3748", primary="#718096"),
    "rainy": Palette(background="#34495e", foreground="#e8eef3", primary="#3498db"),
}


def base_palette(theme: str) -> Palette:
    """Surface colors for the light/dark switch before any preset is applied."""
    return DARK_PALETTE if theme == "dark" else DEFAULT_PALETTE


def resolve_palette(
    preset: Optional[str],
    custom: Optional[CustomTheme] = None,
    current: Optional[Palette] = None,
) -> Palette:
    """Resolve a preset (or custom override) to a concrete palette.

    For "custom", each channel falls back independently:
    custom value -> currently applied value -> default.
    Unknown or missing presets keep the current palette. Never raises.
    """
    if current is None:
        current = DEFAULT_PALETTE

    if preset in PALETTES:
        return PALETTES[preset]

    if preset == "custom":
        custom = custom or CustomTheme()
        return Palette(
            background=custom.background or current.background or DEFAULT_PALETTE.background,
            foreground=custom.foreground or current.foreground or DEFAULT_PALETTE.foreground,
            primary=custom.primary or current.primary or DEFAULT_PALETTE.primary,
        )

    return current
