"""
Floating PiP button feedback.

Decides where the in-page button sits and when it is shown, based on the
hovered video and the eligibility rules. Drawing is left to the overlay
object handed in by the host.
"""
import logging
from typing import Callable, Optional, Protocol, Tuple

from pip_eligibility import find_video_at, is_blacklisted, is_eligible
from pip_settings import PipSettings

logger = logging.getLogger(__name__)

BUTTON_SIZE = 38
BUTTON_MARGIN = 15
HOVER_TIMEOUT_MS = 2000


class ButtonOverlay(Protocol):
    def place(self, left: float, top: float, opacity: float) -> None: ...
    def hide(self) -> None: ...
    def set_suppressed(self, suppressed: bool) -> None: ...


def button_origin(rect, position: str, size: int = BUTTON_SIZE, margin: int = BUTTON_MARGIN) -> Tuple[float, float]:
    """Top-left corner of the button for a 'row-column' grid position"""
    y_pos, _, x_pos = position.partition("-")

    if y_pos == "top":
        top = rect.top + margin
    elif y_pos == "mid":
        top = rect.top + rect.height / 2 - size / 2
    else:
        top = rect.bottom - size - margin

    if x_pos == "left":
        left = rect.left + margin
    elif x_pos == "center":
        left = rect.left + rect.width / 2 - size / 2
    else:
        left = rect.right - size - margin

    return left, top


class HoverTracker:
    def __init__(self, document, overlay: ButtonOverlay, scheduler, settings: PipSettings,
                 pip_video: Callable[[], Optional[object]] = lambda: None):
        self.document = document
        self.overlay = overlay
        self.scheduler = scheduler
        self.settings = settings
        self._pip_video = pip_video

        self.hovered = None
        self.click_target = None
        self.over_button = False
        self._hide_generation = 0

    def apply_settings(self, settings: PipSettings):
        self.settings = settings

    # Hide timer
    def start_hide_timer(self):
        self._hide_generation += 1
        generation = self._hide_generation
        self.scheduler.schedule(HOVER_TIMEOUT_MS, lambda: self._hide_if_current(generation))

    def clear_hide_timer(self):
        self._hide_generation += 1

    def _hide_if_current(self, generation):
        if generation == self._hide_generation and not self.over_button:
            self.overlay.hide()

    # Pointer
    def on_pointer_moved(self, x: float, y: float):
        if is_blacklisted(self.document.hostname, self.settings):
            return

        video = find_video_at(self.document.media_elements(), x, y)

        if self.settings.hide_button_while_active and video is not None and video is self._pip_video():
            return

        if video is not None and is_eligible(video, self.settings, self.document.viewport):
            self.hovered = video
            self.click_target = video
            self.show_over(video)
        elif not self.over_button:
            self.hovered = None
            self.start_hide_timer()

    def on_video_out(self, video):
        if self.hovered is video:
            self.hovered = None
        if not self.over_button:
            self.start_hide_timer()

    def on_video_play(self, video):
        if self.hovered is video:
            self.show_over(video)

    def on_button_enter(self):
        self.over_button = True
        self.clear_hide_timer()
        if self.click_target is not None:
            self.show_over(self.click_target)

    def on_button_leave(self):
        self.over_button = False
        self.start_hide_timer()

    def show_over(self, video):
        """Place the button over a video, or hide it when it may not be offered"""
        if self.document.fullscreen:
            self.overlay.hide()
            return
        if not is_eligible(video, self.settings, self.document.viewport):
            self.overlay.hide()
            return

        left, top = button_origin(video.rect, self.settings.button_position)
        opacity = 1.0 if self.over_button else self.settings.idle_opacity
        self.overlay.place(left, top, opacity)
        self.clear_hide_timer()

    def on_fullscreen_changed(self, fullscreen: bool):
        if fullscreen:
            self.overlay.hide()

    # Session feedback
    def on_session_started(self, video):
        if self.settings.hide_button_while_active:
            self.overlay.set_suppressed(True)

    def on_session_ended(self, video):
        self.overlay.set_suppressed(False)
        if self.click_target is video:
            self.click_target = None
        self.start_hide_timer()
