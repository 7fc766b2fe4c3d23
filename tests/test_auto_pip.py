"""
Tests for the visibility auto-trigger and the boss-key shortcut.
"""
from dataclasses import replace

import pytest

from auto_pip import (
    NO_CANDIDATE_NOTICE, AutoPipEngine, KeyEvent, combo_from_event, parse_shortcut, shortcut_matches
)
from conftest import FakeDocument, FakeVideo, playing_video
from media_control_sync import MediaControlSync
from pip_session import PipSessionController, SessionState
from pip_settings import PipSettings


@pytest.fixture
def video():
    return playing_video("main")


@pytest.fixture
def page(video):
    return FakeDocument([video])


@pytest.fixture
def controller(pip, media_session, store, page, notices):
    return PipSessionController(pip, MediaControlSync(media_session, page), store, page,
                                store.load(), notify=notices.append)


def make_engine(controller, page, scheduler, notices, hovered=None, **overrides):
    settings = replace(PipSettings(auto_pip_enabled=True), **overrides)
    controller.apply_settings(settings)
    return AutoPipEngine(controller, page, scheduler, settings,
                         hovered=lambda: hovered, notify=notices.append)


def hide(engine, page, hidden=True):
    page.hidden = hidden
    engine.on_visibility_changed(hidden)


class TestVisibilityTrigger:
    def test_returning_before_delay_cancels(self, controller, page, scheduler, pip, notices):
        """Coming back at 999 ms means the trigger must not start a session."""
        engine = make_engine(controller, page, scheduler, notices)
        hide(engine, page)
        scheduler.advance(999)
        hide(engine, page, hidden=False)
        scheduler.advance(1)

        assert pip.entries == []
        assert controller.state is SessionState.IDLE

    def test_staying_hidden_starts_session(self, controller, page, scheduler, pip, video, notices):
        engine = make_engine(controller, page, scheduler, notices)
        hide(engine, page)
        scheduler.advance(999)
        assert pip.entries == []
        scheduler.advance(1)

        assert pip.entries[0][0] is video
        pip.grant()
        assert controller.active_video is video

    def test_disabled(self, controller, page, scheduler, pip, notices):
        engine = make_engine(controller, page, scheduler, notices, auto_pip_enabled=False)
        hide(engine, page)
        scheduler.advance(5000)
        assert pip.entries == []

    def test_blacklisted_host(self, controller, page, scheduler, pip, notices):
        page.hostname = "www.tiktok.com"
        engine = make_engine(controller, page, scheduler, notices)
        hide(engine, page)
        scheduler.advance(5000)
        assert pip.entries == []

    def test_short_clip_is_skipped(self, controller, page, scheduler, pip, video, notices):
        video.duration = 5.0
        engine = make_engine(controller, page, scheduler, notices)
        hide(engine, page)
        scheduler.advance(5000)
        assert pip.entries == []

    def test_paused_video_is_skipped(self, controller, page, scheduler, pip, video, notices):
        video.paused = True
        engine = make_engine(controller, page, scheduler, notices)
        hide(engine, page)
        scheduler.advance(5000)
        assert pip.entries == []

    def test_video_paused_during_delay(self, controller, page, scheduler, pip, video, notices):
        engine = make_engine(controller, page, scheduler, notices)
        hide(engine, page)
        video.paused = True
        scheduler.advance(1000)
        assert pip.entries == []

    def test_video_removed_during_delay(self, controller, page, scheduler, pip, video, notices):
        engine = make_engine(controller, page, scheduler, notices)
        hide(engine, page)
        video.is_connected = False
        scheduler.advance(1000)
        assert pip.entries == []

    def test_zero_delay(self, controller, page, scheduler, pip, notices):
        engine = make_engine(controller, page, scheduler, notices, auto_trigger_delay_ms=0)
        hide(engine, page)
        scheduler.advance(0)
        assert len(pip.entries) == 1

    def test_visible_again_exits_session(self, controller, page, scheduler, pip, video, notices):
        engine = make_engine(controller, page, scheduler, notices)
        hide(engine, page)
        scheduler.advance(1000)
        pip.grant()

        hide(engine, page, hidden=False)
        assert controller.state is SessionState.EXITING

    def test_visible_again_while_entering_leaves_on_ack(self, controller, page, scheduler, pip, video, notices):
        """Coming back while the auto entry is in flight closes the window once it opens."""
        engine = make_engine(controller, page, scheduler, notices)
        hide(engine, page)
        scheduler.advance(1000)
        assert controller.state is SessionState.ENTERING

        hide(engine, page, hidden=False)
        pip.grant()

        assert controller.state is SessionState.EXITING
        assert len(pip.exits) == 1

    def test_refused_auto_entry_does_not_affect_manual_session(self, controller, page, scheduler, pip, video,
                                                               notices):
        engine = make_engine(controller, page, scheduler, notices)
        hide(engine, page)
        scheduler.advance(1000)
        pip.refuse()
        hide(engine, page, hidden=False)

        controller.request(video)
        pip.grant()

        assert controller.state is SessionState.ACTIVE
        assert pip.exits == []

    def test_manual_entry_on_visible_page_is_kept(self, controller, page, scheduler, pip, video, notices):
        make_engine(controller, page, scheduler, notices)
        controller.request(video)
        pip.grant()
        assert controller.state is SessionState.ACTIVE

    def test_busy_controller_is_not_disturbed(self, controller, page, scheduler, pip, video, notices):
        engine = make_engine(controller, page, scheduler, notices)
        controller.request(video)
        hide(engine, page)
        scheduler.advance(1000)
        assert len(pip.entries) == 1

    def test_settings_change_applies_to_next_trigger(self, controller, page, scheduler, pip, notices):
        engine = make_engine(controller, page, scheduler, notices)
        engine.apply_settings(replace(engine.settings, auto_trigger_delay_ms=3000))
        hide(engine, page)
        scheduler.advance(1000)
        assert pip.entries == []
        scheduler.advance(2000)
        assert len(pip.entries) == 1


class TestShortcutParsing:
    def test_combo_from_event(self):
        assert combo_from_event(KeyEvent("p", alt=True)) == "Alt+P"
        assert combo_from_event(KeyEvent("F9", ctrl=True, shift=True)) == "Ctrl+Shift+F9"

    def test_bare_modifier_is_not_a_combo(self):
        assert combo_from_event(KeyEvent("Alt", alt=True)) is None

    def test_parse_shortcut(self):
        assert parse_shortcut("Alt+P") == (frozenset({"Alt"}), "P")
        assert parse_shortcut("ctrl+shift+x") == (frozenset({"Ctrl", "Shift"}), "X")
        assert parse_shortcut("Ctrl++") == (frozenset({"Ctrl"}), "+")

    def test_invalid_shortcuts(self):
        assert parse_shortcut("") is None
        assert parse_shortcut("Ctrl+Alt") is None
        assert parse_shortcut("Hyper+P") is None

    def test_matching(self):
        assert shortcut_matches("Alt+P", KeyEvent("p", alt=True))
        assert shortcut_matches("Alt+P", KeyEvent("P", alt=True))
        assert not shortcut_matches("Alt+P", KeyEvent("p", alt=True, ctrl=True))
        assert not shortcut_matches("Alt+P", KeyEvent("p"))
        assert not shortcut_matches("", KeyEvent("p", alt=True))


class TestBossKey:
    def test_shortcut_activates_best_candidate(self, controller, page, scheduler, pip, video, notices):
        engine = make_engine(controller, page, scheduler, notices)
        assert engine.on_key_down(KeyEvent("p", alt=True))
        assert pip.entries[0][0] is video
        assert notices == ["Boss Key: Activated"]

    def test_shortcut_toggles_off(self, controller, page, scheduler, pip, video, notices):
        engine = make_engine(controller, page, scheduler, notices)
        engine.on_key_down(KeyEvent("p", alt=True))
        pip.grant()
        engine.on_key_down(KeyEvent("p", alt=True))

        assert controller.state is SessionState.EXITING
        assert notices[-1] == "Boss Key: Toggled"

    def test_hovered_video_preferred(self, controller, page, scheduler, pip, video, notices):
        hovered = FakeVideo("hovered")
        page.videos.append(hovered)
        engine = make_engine(controller, page, scheduler, notices, hovered=hovered)
        engine.on_key_down(KeyEvent("p", alt=True))
        assert pip.entries[0][0] is hovered

    def test_no_candidate(self, controller, scheduler, pip, notices):
        empty = FakeDocument([])
        engine = make_engine(controller, empty, scheduler, notices)
        assert engine.on_key_down(KeyEvent("p", alt=True))
        assert pip.entries == []
        assert notices == [NO_CANDIDATE_NOTICE]

    def test_other_keys_pass_through(self, controller, page, scheduler, pip, notices):
        engine = make_engine(controller, page, scheduler, notices)
        assert engine.on_key_down(KeyEvent("o", alt=True)) is False
        assert pip.entries == []

    def test_empty_shortcut_disables(self, controller, page, scheduler, pip, notices):
        engine = make_engine(controller, page, scheduler, notices, shortcut="")
        assert engine.on_key_down(KeyEvent("p", alt=True)) is False

    def test_busy_controller_gets_no_activation_notice(self, controller, page, scheduler, pip, video, notices):
        engine = make_engine(controller, page, scheduler, notices)
        controller.request(video)

        assert engine.on_key_down(KeyEvent("p", alt=True))
        assert engine.toggle_best() is False
        assert len(pip.entries) == 1
        assert "Boss Key: Activated" not in notices
