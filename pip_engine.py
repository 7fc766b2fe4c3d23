"""
Composition root for the PiP engine.

One PipEngine is built per page with its host capabilities injected: the
page document, the PiP capability, the media-control surface, the settings
store, a scheduler and the button overlay. The host forwards page events to
the on_* methods.
"""
import logging
from typing import Callable, Optional

from auto_pip import AutoPipEngine, KeyEvent
from hover_overlay import HoverTracker
from media_control_sync import MediaControlSync
from pip_capabilities import CapabilityGuard, FailureKind
from pip_session import PipSessionController
from pip_settings import PipSettings
from video_registry import VideoRegistry

logger = logging.getLogger(__name__)


class PipEngine:
    def __init__(self, document, pip, media_session, store, scheduler, overlay,
                 notify: Optional[Callable[[str], None]] = None,
                 settings: Optional[PipSettings] = None):
        self.document = document
        self.store = store
        self.guard = CapabilityGuard()
        self._notify = notify or (lambda message: logger.info("Notice: %s", message))
        self.settings = settings if settings is not None else store.load()

        self.media_sync = MediaControlSync(media_session, document, self.guard)
        self.controller = PipSessionController(pip, self.media_sync, store, document, self.settings,
                                               guard=self.guard, notify=self._notify)
        self.hover = HoverTracker(document, overlay, scheduler, self.settings,
                                  pip_video=lambda: self.controller.active_video)
        self.registry = VideoRegistry(
            observers={
                "play": self.hover.on_video_play,
                "mouseout": self.hover.on_video_out,
            },
            guard=self.guard,
        )
        self.automation = AutoPipEngine(self.controller, document, scheduler, self.settings,
                                        hovered=lambda: self.hover.hovered, notify=self._notify)
        self.controller.add_observer(started=self.hover.on_session_started, ended=self.hover.on_session_ended)

    def start(self):
        found = self.registry.scan(self.document)
        logger.info("PiP engine ready on %s (%d videos)", self.document.hostname or "page", found)

    # Host events
    def on_dom_changed(self):
        self.registry.scan(self.document)

    def on_visibility_changed(self, hidden: Optional[bool] = None):
        self.automation.on_visibility_changed(hidden)

    def on_key_down(self, event: KeyEvent) -> bool:
        return self.automation.on_key_down(event)

    def toggle_best(self) -> bool:
        return self.automation.toggle_best()

    def on_pointer_moved(self, x: float, y: float):
        self.hover.on_pointer_moved(x, y)

    def on_button_enter(self):
        self.hover.on_button_enter()

    def on_button_leave(self):
        self.hover.on_button_leave()

    def on_button_clicked(self) -> bool:
        target = self.hover.click_target or self.hover.hovered
        if target is None:
            logger.debug("PiP button clicked without a target video")
            return False
        return self.controller.toggle(target)

    def on_fullscreen_changed(self, fullscreen: bool):
        self.hover.on_fullscreen_changed(fullscreen)

    # Settings
    def update_settings(self, settings: PipSettings, persist: bool = True) -> bool:
        """Replace the settings snapshot wholesale; the active session keeps its own"""
        self.settings = settings
        self.controller.apply_settings(settings)
        self.hover.apply_settings(settings)
        self.automation.apply_settings(settings)
        if not persist:
            return True
        saved = self.guard.call(self.store.save, settings, kind=FailureKind.PERSISTENCE_FAILURE,
                                what="save settings")
        return saved.ok
