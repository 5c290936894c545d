"""Tests for the dashboard state machine and controller."""

import asyncio
import time
from dataclasses import replace

import pytest

from app.config import settings
from app.schemas.preferences import CustomTheme, UserPreferences
from app.services.dashboard import (
    ChangeTheme,
    ChangeUnit,
    DashboardController,
    DashboardRegistry,
    DashboardState,
    FetchWeather,
    GeolocationError,
    Hydrate,
    LocationFailed,
    LocationResolved,
    MSG_FETCH_FAILED,
    MSG_GEO_FAILED,
    MSG_NO_KEY,
    Notify,
    RequestGeolocation,
    SaveApiKey,
    SavePreferences,
    SavePreset,
    Search,
    SelectDay,
    SelectSuggestion,
    WeatherFailed,
    WriteScratch,
    preference_fields,
    resolve_api_key,
    transition,
)
from app.services.preference_store import PreferenceStore
from app.services.scratch import API_KEY_KEY, LOCATION_KEY, ScratchStore
from app.services.suggestions import CURRENT_LOCATION
from app.services.theme import DARK_PALETTE, PALETTES


def _state(**kw) -> DashboardState:
    return DashboardState(user_id="user_1", **kw)


def _of(effects, kind):
    return [e for e in effects if isinstance(e, kind)]


class TestResolveApiKey:
    def test_priority_order(self):
        state = _state(
            session_api_key="session", saved_api_key="saved",
            scratch_api_key="scratch", default_api_key="env",
        )
        assert resolve_api_key(state) == "session"
        assert resolve_api_key(replace(state, session_api_key=None)) == "saved"
        assert resolve_api_key(replace(state, session_api_key=None, saved_api_key="")) == "scratch"
        assert resolve_api_key(_state(default_api_key="env")) == "env"

    def test_absent(self):
        assert resolve_api_key(_state(saved_api_key="   ")) is None


class TestTransition:
    def test_search_commits_query(self):
        state, effects = transition(_state(saved_api_key="k"), Search("  Paris "))
        assert state.location == "Paris"
        assert state.search_history == ("Paris",)
        assert state.loading is True
        assert _of(effects, WriteScratch) == [WriteScratch(LOCATION_KEY, "Paris")]
        assert _of(effects, FetchWeather) == [FetchWeather("Paris", "k")]
        saved = _of(effects, SavePreferences)[0].fields
        assert saved["location"] == "Paris"
        assert saved["search_history"] == ["Paris"]

    def test_blank_search_is_noop(self):
        state = _state()
        assert transition(state, Search("   ")) == (state, [])

    def test_search_without_key_reports_configuration_error(self):
        state, effects = transition(_state(), Search("Paris"))
        assert _of(effects, FetchWeather) == []
        assert Notify("error", MSG_NO_KEY) in effects
        assert state.loading is False

    def test_history_deduplicated_case_insensitively(self):
        state = _state(saved_api_key="k", search_history=("London", "Rome"))
        state, _ = transition(state, SelectSuggestion("london"))
        assert state.search_history == ("london", "Rome")

    def test_sentinel_requests_geolocation(self):
        state = _state(search_history=("Rome",))
        new_state, effects = transition(state, SelectSuggestion(CURRENT_LOCATION))
        assert effects == [RequestGeolocation()]
        assert new_state == state

    def test_location_resolved_fetches_coordinates(self):
        state, effects = transition(_state(saved_api_key="k"), LocationResolved(48.85, 2.35))
        assert state.location == "48.85,2.35"
        assert (state.latitude, state.longitude) == (48.85, 2.35)
        assert state.search_history == ()
        assert FetchWeather("48.85,2.35", "k") in effects
        assert _of(effects, SavePreferences)[0].fields["latitude"] == 48.85

    def test_location_failed_notifies(self):
        state = _state(location="Rome")
        assert transition(state, LocationFailed("denied")) == (state, [Notify("error", MSG_GEO_FAILED)])

    def test_change_unit_saves_full_state(self):
        state = _state(location="Rome", theme="dark", search_history=("Rome",))
        state, effects = transition(state, ChangeUnit("K"))
        assert state.temperature_unit == "K"
        assert effects == [SavePreferences(preference_fields(state))]
        assert effects[0].fields["search_history"] == ["Rome"]
        assert effects[0].fields["theme"] == "dark"

    def test_change_unit_rejects_unknown(self):
        state = _state()
        new_state, effects = transition(state, ChangeUnit("R"))
        assert new_state == state
        assert effects[0].level == "error"

    def test_change_theme_switches_base_palette(self):
        state, _ = transition(_state(), ChangeTheme("dark"))
        assert state.palette == DARK_PALETTE

    def test_change_theme_keeps_preset_palette(self):
        state = _state(theme_preset="sunny", palette=PALETTES["sunny"])
        state, _ = transition(state, ChangeTheme("dark"))
        assert state.palette == PALETTES["sunny"]

    def test_save_preset_custom(self):
        state, effects = transition(_state(), SavePreset("custom", CustomTheme(primary="#f00")))
        assert state.palette.primary == "#f00"
        assert state.palette.background == "#e0e5ec"
        assert effects[0].fields["custom_theme"]["primary"] == "#f00"

    def test_save_api_key_refetches(self):
        state, effects = transition(_state(location="Rome"), SaveApiKey("new-key"))
        assert state.saved_api_key == "new-key"
        assert WriteScratch(API_KEY_KEY, "new-key") in effects
        assert FetchWeather("Rome", "new-key") in effects

    def test_session_api_key_not_persisted(self):
        state, effects = transition(_state(), SaveApiKey("temp", remember=False))
        assert state.session_api_key == "temp"
        assert _of(effects, SavePreferences) == []

    def test_clearing_remembered_key_drops_session_key(self):
        state, _ = transition(_state(saved_api_key="saved"), SaveApiKey("temp", remember=False))
        state, effects = transition(state, SaveApiKey("  ", remember=True))
        assert state.session_api_key is None
        assert state.saved_api_key is None
        assert resolve_api_key(state) is None
        assert Notify("success", "API key cleared") in effects

    def test_remembered_key_replaces_session_key(self):
        state = _state(session_api_key="temp")
        state, _ = transition(state, SaveApiKey("kept"))
        assert resolve_api_key(state) == "kept"

    def test_history_limit_caps_search_history(self):
        state = _state(history_limit=2)
        for query in ("Oslo", "Rome", "Lima"):
            state, _ = transition(state, Search(query))
        assert state.search_history == ("Lima", "Rome")

    def test_select_day(self):
        state, _ = transition(_state(), SelectDay("tomorrow"))
        assert state.selected_day == "tomorrow"

    def test_failure_keeps_previous_view(self):
        state = _state(location="Rome", view=object(), loading=True)
        new_state, effects = transition(state, WeatherFailed("Rome", MSG_FETCH_FAILED))
        assert new_state.view is state.view
        assert new_state.loading is False
        assert effects == [Notify("error", MSG_FETCH_FAILED)]

    def test_hydrate_prefers_stored_location(self):
        prefs = UserPreferences(user_id="user_1", theme="dark", location="Oslo",
                                api_key="k", search_history=["Oslo"])
        state, effects = transition(_state(), Hydrate(prefs, scratch_location="Rome"))
        assert state.hydrated
        assert state.theme == "dark"
        assert state.palette == DARK_PALETTE
        assert effects == [FetchWeather("Oslo", "k")]

    def test_hydrate_without_location_requests_geolocation(self):
        state, effects = transition(_state(), Hydrate(None))
        assert effects == [RequestGeolocation()]
        assert state.hydrated

    def test_hydrate_uses_scratch_key(self):
        _, effects = transition(_state(), Hydrate(None, scratch_location="Rome", scratch_api_key="sk"))
        assert effects == [FetchWeather("Rome", "sk")]

    def test_unknown_event(self):
        with pytest.raises(TypeError):
            transition(_state(), object())


def _controller(session_factory, fake_api, **kw):
    return DashboardController("user_1", session_factory, fake_api.client(), **kw)


class TestController:
    def test_search_fetches_and_persists(self, session_factory, fake_api):
        controller = _controller(session_factory, fake_api, default_api_key="env")
        state = asyncio.run(controller.dispatch(Search("London")))
        assert state.view is not None
        assert state.view.location.name == "London"
        assert state.loading is False
        assert [n.level for n in controller.drain_notifications()] == ["success"]

        with session_factory() as db:
            prefs = PreferenceStore(db).get("user_1")
        assert prefs.location == "London"
        assert prefs.search_history == ["London"]

    def test_failed_fetch_keeps_previous_view(self, session_factory, fake_api):
        controller = _controller(session_factory, fake_api, default_api_key="env")
        asyncio.run(controller.dispatch(Search("London")))
        previous = controller.state.view

        fake_api.fail = "history"
        state = asyncio.run(controller.dispatch(Search("Nowhere")))
        assert state.view is previous
        assert state.location == "Nowhere"
        assert controller.drain_notifications()[-1] == Notify("error", MSG_FETCH_FAILED)

    def test_missing_key_never_calls_provider(self, session_factory, fake_api):
        controller = _controller(session_factory, fake_api)
        state = asyncio.run(controller.dispatch(Search("London")))
        assert fake_api.calls == []
        assert state.view is None
        assert controller.drain_notifications() == [Notify("error", MSG_NO_KEY)]

    def test_store_failure_does_not_block_fetch(self, session_factory, fake_api, monkeypatch):
        from app.services import preference_store

        def broken_save(self, user_id, fields):
            raise preference_store.PreferenceStoreError("disk full")

        monkeypatch.setattr(preference_store.PreferenceStore, "save", broken_save)
        controller = _controller(session_factory, fake_api, default_api_key="env")
        state = asyncio.run(controller.dispatch(Search("London")))
        assert state.view is not None
        levels = [n.level for n in controller.drain_notifications()]
        assert "warning" in levels
        assert "success" in levels

    def test_geolocator_success(self, session_factory, fake_api):
        async def locate():
            return 51.5, -0.12

        controller = _controller(session_factory, fake_api, geolocator=locate,
                                 default_api_key="env")
        state = asyncio.run(controller.dispatch(SelectSuggestion(CURRENT_LOCATION)))
        assert state.location == "51.5,-0.12"
        assert state.view is not None
        assert all(c.url.params["q"] == "51.5,-0.12" for c in fake_api.calls)

    def test_geolocator_failure(self, session_factory, fake_api):
        async def locate():
            raise GeolocationError("permission denied")

        controller = _controller(session_factory, fake_api, geolocator=locate)
        asyncio.run(controller.dispatch(SelectSuggestion(CURRENT_LOCATION)))
        assert controller.drain_notifications() == [Notify("error", MSG_GEO_FAILED)]

    def test_without_geolocator_flags_request(self, session_factory, fake_api):
        controller = _controller(session_factory, fake_api)
        asyncio.run(controller.hydrate())
        assert controller.geolocation_requested is True

    def test_hydrate_restores_preferences(self, session_factory, fake_api, tmp_path):
        with session_factory() as db:
            PreferenceStore(db).save("user_1", {
                "temperature_unit": "F", "location": "Paris", "api_key": "k",
                "search_history": ["Paris"],
            })
        scratch = ScratchStore(tmp_path / "scratch.json")
        controller = _controller(session_factory, fake_api, scratch=scratch)
        state = asyncio.run(controller.hydrate())
        assert state.temperature_unit == "F"
        assert state.search_history == ("Paris",)
        assert state.view is not None
        assert len(fake_api.calls) == 3

    def test_scratch_written_on_search(self, session_factory, fake_api, tmp_path):
        scratch = ScratchStore(tmp_path / "scratch.json")
        controller = _controller(session_factory, fake_api, scratch=scratch,
                                 default_api_key="env")
        asyncio.run(controller.dispatch(Search("Lisbon")))
        assert ScratchStore(tmp_path / "scratch.json").get(LOCATION_KEY) == "Lisbon"

    def test_new_user_starts_from_configured_defaults(self, session_factory, fake_api, monkeypatch):
        monkeypatch.setattr(settings, "temperature_unit", "F")
        monkeypatch.setattr(settings, "theme", "dark")
        monkeypatch.setattr(settings, "history_limit", 2)
        controller = _controller(session_factory, fake_api)
        assert controller.state.temperature_unit == "F"
        assert controller.state.palette == DARK_PALETTE

        asyncio.run(controller.hydrate())
        for query in ("Oslo", "Rome", "Lima"):
            asyncio.run(controller.dispatch(Search(query)))
        assert controller.state.search_history == ("Lima", "Rome")
        assert controller.state.theme == "dark"

        with session_factory() as db:
            prefs = PreferenceStore(db).get("user_1")
        assert prefs.search_history == ["Lima", "Rome"]
        assert prefs.temperature_unit == "F"

    def test_hydrate_truncates_stored_history(self, session_factory, fake_api, monkeypatch):
        with session_factory() as db:
            PreferenceStore(db).save("user_1", {"search_history": ["A", "B", "C"]})
        monkeypatch.setattr(settings, "history_limit", 2)
        controller = _controller(session_factory, fake_api)
        state = asyncio.run(controller.hydrate())
        assert state.search_history == ("A", "B")


class TestConcurrentEvents:
    def test_unit_change_applies_while_fetch_in_flight(self, session_factory, fake_api):
        fake_api.delay = 0.5
        controller = _controller(session_factory, fake_api, default_api_key="env")

        async def scenario():
            fetch = asyncio.ensure_future(controller.dispatch(Search("London")))
            await asyncio.sleep(0.05)
            started = time.monotonic()
            state = await controller.dispatch(ChangeUnit("F"))
            elapsed = time.monotonic() - started
            assert state.temperature_unit == "F"
            assert state.loading is True
            assert state.view is None
            await fetch
            return elapsed

        elapsed = asyncio.run(scenario())
        assert elapsed < 0.3
        assert controller.state.view is not None
        assert controller.state.loading is False
        assert controller.state.temperature_unit == "F"

    def test_overlapping_searches_keep_latest(self, session_factory, fake_api):
        fake_api.delay = 0.2
        controller = _controller(session_factory, fake_api, default_api_key="env")

        async def scenario():
            first = asyncio.ensure_future(controller.dispatch(Search("London")))
            await asyncio.sleep(0.05)
            await controller.dispatch(Search("Paris"))
            await first

        asyncio.run(scenario())
        state = controller.state
        assert state.location == "Paris"
        assert state.loading is False
        assert state.view is not None
        assert state.search_history == ("Paris", "London")
        assert len(fake_api.calls) == 6
        assert [n.level for n in controller.drain_notifications()] == ["success"]


class TestRegistry:
    def test_one_controller_per_user(self, session_factory, fake_api):
        registry = DashboardRegistry(session_factory, fake_api.client())

        async def both():
            return await registry.get("a"), await registry.get("a"), await registry.get("b")

        a1, a2, b = asyncio.run(both())
        assert a1 is a2
        assert a1 is not b
        assert a1.state.hydrated

    def test_scratch_only_for_own_user(self, session_factory, fake_api, tmp_path):
        scratch = ScratchStore(tmp_path / "scratch.json")
        scratch.set(LOCATION_KEY, "Rome")
        registry = DashboardRegistry(session_factory, fake_api.client(),
                                     scratch=scratch, default_api_key="env")
        own = asyncio.run(registry.get(scratch.user_id))
        other = asyncio.run(registry.get("someone_else"))
        assert own.state.location == "Rome"
        assert other.state.location == ""

    def test_least_recently_used_evicted(self, session_factory, fake_api):
        registry = DashboardRegistry(session_factory, fake_api.client(), max_controllers=3)

        async def visit(*user_ids):
            return [await registry.get(u) for u in user_ids]

        first = asyncio.run(visit("u1"))[0]
        asyncio.run(visit("u2", "u3", "u1", "u4", "u5"))
        assert len(registry) == 3
        assert "u1" in registry
        assert "u2" not in registry
        assert "u3" not in registry
        assert "u4" in registry and "u5" in registry
        again = asyncio.run(visit("u1"))[0]
        assert again is first

    def test_evicted_user_rehydrates_from_store(self, session_factory, fake_api):
        registry = DashboardRegistry(session_factory, fake_api.client(), max_controllers=1)

        async def scenario():
            a = await registry.get("a")
            await a.dispatch(ChangeUnit("K"))
            await registry.get("b")
            return a, await registry.get("a")

        before, after = asyncio.run(scenario())
        assert after is not before
        assert after.state.temperature_unit == "K"
