"""Tests for palette resolution."""

from app.schemas.preferences import CustomTheme
from app.services.theme import (
    DARK_PALETTE,
    DEFAULT_PALETTE,
    PALETTES,
    Palette,
    base_palette,
    resolve_palette,
)


class TestResolvePalette:
    def test_fixed_presets(self):
        for name in ("sunny", "cloudy", "rainy"):
            assert resolve_palette(name) == PALETTES[name]

    def test_custom_uses_explicit_values(self):
        custom = CustomTheme(background="#000", foreground="#fff", primary="#f00")
        assert resolve_palette("custom", custom) == Palette("#000", "#fff", "#f00")

    def test_custom_falls_back_to_current_per_channel(self):
        current = Palette("#111", "#222", "#333")
        custom = CustomTheme(primary="#f00")
        assert resolve_palette("custom", custom, current) == Palette("#111", "#222", "#f00")

    def test_custom_falls_back_to_default(self):
        result = resolve_palette("custom", CustomTheme(background="#abc"), Palette("", "", ""))
        assert result == Palette("#abc", DEFAULT_PALETTE.foreground, DEFAULT_PALETTE.primary)

    def test_custom_without_override(self):
        assert resolve_palette("custom", None) == DEFAULT_PALETTE

    def test_no_preset_keeps_current(self):
        current = Palette("#1", "#2", "#3")
        assert resolve_palette(None, None, current) == current

    def test_unknown_preset_never_fails(self):
        assert resolve_palette("stormy") == DEFAULT_PALETTE

    def test_idempotent(self):
        custom = CustomTheme(foreground="#eee")
        once = resolve_palette("custom", custom, DARK_PALETTE)
        assert resolve_palette("custom", custom, once) == once


class TestBasePalette:
    def test_dark(self):
        assert base_palette("dark") == DARK_PALETTE

    def test_light(self):
        assert base_palette("light") == DEFAULT_PALETTE
