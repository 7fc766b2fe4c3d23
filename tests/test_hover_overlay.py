"""
Tests for button placement and hover tracking.
"""
from unittest.mock import MagicMock

import pytest

from conftest import FakeDocument, FakeVideo
from hover_overlay import BUTTON_MARGIN, BUTTON_SIZE, HOVER_TIMEOUT_MS, HoverTracker, button_origin
from pip_capabilities import Rect
from pip_settings import PipSettings

RECT = Rect(100, 50, 640, 360)


class TestButtonOrigin:
    @pytest.mark.parametrize("position, expected", [
        ("top-left", (100 + BUTTON_MARGIN, 50 + BUTTON_MARGIN)),
        ("top-right", (740 - BUTTON_SIZE - BUTTON_MARGIN, 50 + BUTTON_MARGIN)),
        ("mid-center", (420 - BUTTON_SIZE / 2, 230 - BUTTON_SIZE / 2)),
        ("bot-left", (100 + BUTTON_MARGIN, 410 - BUTTON_SIZE - BUTTON_MARGIN)),
    ])
    def test_grid_positions(self, position, expected):
        assert button_origin(RECT, position) == expected


@pytest.fixture
def video():
    return FakeVideo("main", rect=RECT)


@pytest.fixture
def tracker(video, overlay, scheduler):
    return HoverTracker(FakeDocument([video]), overlay, scheduler, PipSettings())


class TestHoverTracker:
    def test_hovering_eligible_video_shows_button(self, tracker, overlay, video):
        tracker.on_pointer_moved(300, 200)
        assert tracker.hovered is video
        assert tracker.click_target is video
        assert overlay.visible
        assert overlay.placed[2] == 0.7

    def test_small_video_gets_no_button(self, overlay, scheduler):
        small = FakeVideo("small", rect=Rect(0, 0, 120, 90))
        tracker = HoverTracker(FakeDocument([small]), overlay, scheduler, PipSettings())
        tracker.on_pointer_moved(10, 10)
        assert not overlay.visible
        assert tracker.hovered is None

    def test_button_hides_after_timeout(self, tracker, overlay, scheduler):
        tracker.on_pointer_moved(300, 200)
        tracker.on_pointer_moved(5, 5)
        scheduler.advance(HOVER_TIMEOUT_MS - 1)
        assert overlay.visible
        scheduler.advance(1)
        assert not overlay.visible

    def test_returning_to_video_cancels_hide(self, tracker, overlay, scheduler):
        tracker.on_pointer_moved(300, 200)
        tracker.on_pointer_moved(5, 5)
        scheduler.advance(1000)
        tracker.on_pointer_moved(300, 200)
        scheduler.advance(HOVER_TIMEOUT_MS)
        assert overlay.visible

    def test_button_hover_keeps_it_visible(self, tracker, overlay, scheduler):
        tracker.on_pointer_moved(300, 200)
        tracker.on_pointer_moved(5, 5)
        tracker.on_button_enter()
        scheduler.advance(HOVER_TIMEOUT_MS * 2)
        assert overlay.visible
        assert overlay.placed[2] == 1.0

        tracker.on_button_leave()
        scheduler.advance(HOVER_TIMEOUT_MS)
        assert not overlay.visible

    def test_blacklisted_page_is_ignored(self, tracker, overlay):
        tracker.document.hostname = "www.tiktok.com"
        tracker.on_pointer_moved(300, 200)
        assert not overlay.visible

    def test_fullscreen_hides_button(self, tracker, overlay):
        tracker.on_pointer_moved(300, 200)
        tracker.on_fullscreen_changed(True)
        assert not overlay.visible

        tracker.document.fullscreen = True
        tracker.on_pointer_moved(300, 200)
        assert not overlay.visible

    def test_video_out_clears_hover(self, tracker, video):
        tracker.on_pointer_moved(300, 200)
        tracker.on_video_out(video)
        assert tracker.hovered is None
        assert tracker.click_target is video


class TestSessionFeedback:
    def test_hide_while_active_suppresses_button(self, video, overlay, scheduler):
        settings = PipSettings(hide_button_while_active=True)
        tracker = HoverTracker(FakeDocument([video]), overlay, scheduler, settings, pip_video=lambda: video)

        tracker.on_session_started(video)
        assert overlay.suppressed
        tracker.on_pointer_moved(300, 200)
        assert not overlay.visible

        tracker.on_session_ended(video)
        assert not overlay.suppressed

    def test_button_stays_by_default(self, tracker, overlay, video):
        tracker.on_session_started(video)
        assert not overlay.suppressed

    def test_session_end_clears_click_target(self, tracker, video):
        tracker.on_pointer_moved(300, 200)
        tracker.on_session_ended(video)
        assert tracker.click_target is None


class TestOverlayCalls:
    def test_fullscreen_hides_through_overlay(self, video, scheduler):
        overlay = MagicMock()
        tracker = HoverTracker(FakeDocument([video]), overlay, scheduler, PipSettings())
        tracker.on_fullscreen_changed(True)
        overlay.hide.assert_called_once_with()
        overlay.place.assert_not_called()

    def test_place_uses_configured_position(self, video, scheduler):
        overlay = MagicMock()
        settings = PipSettings(button_position="bot-left", idle_opacity=0.3)
        tracker = HoverTracker(FakeDocument([video]), overlay, scheduler, settings)
        tracker.on_pointer_moved(300, 200)
        overlay.place.assert_called_once_with(*button_origin(RECT, "bot-left"), 0.3)
