"""
PiP session lifecycle.

PipSessionController is the only object allowed to start or stop a PiP
session. It moves through IDLE -> ENTERING -> ACTIVE -> EXITING -> IDLE,
owns the per-session bindings (exit callback, `ended` handler, surface
resize handler, media-control sync) and drops all of them when the session
ends.
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional

from pip_capabilities import CapabilityGuard, FailureKind, Outcome
from pip_eligibility import is_playing
from pip_settings import PipSettings, PipSize

logger = logging.getLogger(__name__)

EXIT_EVENT = "leavepictureinpicture"
UNAVAILABLE_NOTICE = "PiP not available for this video"


class SessionState(Enum):
    IDLE = "idle"
    ENTERING = "entering"
    ACTIVE = "active"
    EXITING = "exiting"


@dataclass
class Session:
    video: object
    surface: object
    settings: PipSettings
    exit_callback: Optional[Callable] = None
    ended_callback: Optional[Callable] = None
    resize_callback: Optional[Callable] = None


class PipSessionController:
    def __init__(self, pip, media_sync, store, document, settings: PipSettings,
                 guard: Optional[CapabilityGuard] = None,
                 notify: Optional[Callable[[str], None]] = None):
        self.pip = pip
        self.media_sync = media_sync
        self.store = store
        self.document = document
        self.settings = settings
        self._guard = guard or CapabilityGuard()
        self._notify = notify or (lambda message: logger.info("Notice: %s", message))

        self.state = SessionState.IDLE
        self.session: Optional[Session] = None
        self.last_known_size: Optional[PipSize] = None
        self._pending = None
        self._started_observers: List[Callable] = []
        self._ended_observers: List[Callable] = []
        self._refused_observers: List[Callable] = []

    # Read-only views
    @property
    def active_video(self):
        return self.session.video if self.session else None

    @property
    def external_pip_handle(self):
        return self.session.surface if self.session else None

    @property
    def pending_video(self):
        return self._pending

    @property
    def bound_exit_callbacks(self):
        if self.session is None or self.session.exit_callback is None:
            return []
        return [(self.session.video, self.session.exit_callback)]

    def is_busy(self) -> bool:
        return self.state is not SessionState.IDLE

    def apply_settings(self, settings: PipSettings):
        """New settings apply to the next session; the active one keeps its snapshot"""
        self.settings = settings

    def add_observer(self, started: Optional[Callable] = None, ended: Optional[Callable] = None,
                     refused: Optional[Callable] = None):
        if started:
            self._started_observers.append(started)
        if ended:
            self._ended_observers.append(ended)
        if refused:
            self._refused_observers.append(refused)

    # Requests
    def toggle(self, video) -> bool:
        """Enter PiP for a video, or leave it if that video is already the PiP surface"""
        if video is None:
            return False
        if self.session is not None and self.session.video is video:
            return self.exit()
        return self.request(video)

    def request(self, video) -> bool:
        if video is None:
            return False
        if self.state in (SessionState.ENTERING, SessionState.EXITING):
            logger.info("PiP request ignored, a %s transition is in flight", self.state.value)
            return False
        if self.session is not None and self.session.video is video:
            return self.exit()
        if video is self._native_pip_element():
            return self.exit() if self.session is not None else self._leave_foreign(video)
        if not video.is_connected:
            logger.debug("PiP request for detached video %r dropped", video)
            return False

        self._guard.call(video.clear_pip_disable, kind=FailureKind.POLICY_REJECT,
                         subject=video, what="clear_pip_disable")
        self._pause_others(video)

        self._pending = video
        self.state = SessionState.ENTERING
        logger.info("Requesting PiP for %r", video)
        outcome = self._guard.call_async(self.pip.request_entry, video, subject=video, what="request_entry")
        outcome.add_done_callback(lambda f: self._on_entry_outcome(video, f.result()))
        return True

    def exit(self) -> bool:
        if self.state is not SessionState.ACTIVE or self.session is None:
            return False
        video = self.session.video
        self.state = SessionState.EXITING
        logger.info("Leaving PiP for %r", video)
        outcome = self._guard.call_async(self.pip.request_exit, what="request_exit")
        outcome.add_done_callback(lambda f: self._on_exit_outcome(video, f.result()))
        return True

    def _native_pip_element(self):
        return getattr(self.document, "pip_element", None)

    def _leave_foreign(self, video):
        """Close a PiP window the page or browser opened without this controller"""
        self.state = SessionState.EXITING
        logger.info("Leaving PiP opened by the page for %r", video)
        outcome = self._guard.call_async(self.pip.request_exit, what="request_exit")
        outcome.add_done_callback(lambda f: self._on_foreign_exit())
        return True

    def _on_foreign_exit(self):
        if self.state is SessionState.EXITING and self.session is None:
            self.state = SessionState.IDLE

    def reset(self):
        """Drop everything after the page that owned the session went away"""
        self._pending = None
        if self.session is not None:
            self._teardown(self.session)
        self.state = SessionState.IDLE

    def _pause_others(self, target):
        for video in list(self.document.media_elements()):
            if video is target:
                continue
            playing = self._guard.call(is_playing, video, kind=FailureKind.STALE_REFERENCE,
                                       subject=video, what="inspect other")
            if playing.ok and playing.value:
                self._guard.call(video.pause, subject=video, what="pause other")

    # Acknowledgments
    def _on_entry_outcome(self, video, outcome: Outcome):
        if self._pending is not video:
            return
        self._pending = None

        if not outcome.ok:
            self.state = SessionState.ACTIVE if self.session else SessionState.IDLE
            if outcome.failure.kind is FailureKind.UNAVAILABLE:
                self._notify(UNAVAILABLE_NOTICE)
            self._report_refused(video)
            return

        if not video.is_connected:
            logger.debug("PiP entry acknowledged for detached video %r, backing out", video)
            if self.session is not None:
                self._teardown(self.session)
            self.state = SessionState.IDLE
            self._guard.call_async(self.pip.request_exit, what="request_exit")
            self._report_refused(video)
            return

        if self.session is not None:
            self._teardown(self.session)
        self._start(video, outcome.value)

    def _report_refused(self, video):
        for observer in list(self._refused_observers):
            observer(video)

    def _on_exit_outcome(self, video, outcome: Outcome):
        if not outcome.ok and video is self._native_pip_element():
            # surface still open; keep the session and its bindings
            if self.session is not None and self.session.video is video and self.state is SessionState.EXITING:
                self.state = SessionState.ACTIVE
            logger.info("PiP exit refused for %r, session kept", video)
            return
        self._finish(video)

    def _on_native_exit(self, video):
        self._finish(video)

    def _on_ended(self, video):
        if self.session is not None and self.session.video is video and self.state is SessionState.ACTIVE:
            self.exit()

    def _on_resize(self, surface):
        if self.session is None or self.session.surface is not surface:
            return
        width, height = getattr(surface, "width", 0), getattr(surface, "height", 0)
        if not width or not height:
            return
        self.last_known_size = PipSize(int(width), int(height))
        self._guard.call(self.store.save_pip_size, int(width), int(height),
                         kind=FailureKind.PERSISTENCE_FAILURE, what="save_pip_size")

    # Session wiring
    def _start(self, video, surface):
        session = Session(video=video, surface=surface, settings=self.settings)

        if surface is not None:
            session.resize_callback = lambda *_args: self._on_resize(surface)
            self._guard.call(surface.add_listener, "resize", session.resize_callback, what="listen resize")

        session.ended_callback = lambda *_args: self._on_ended(video)
        self._guard.call(video.add_listener, "ended", session.ended_callback, subject=video, what="listen ended")

        session.exit_callback = lambda *_args: self._on_native_exit(video)
        self._guard.call(video.add_listener, EXIT_EVENT, session.exit_callback, subject=video, what="listen exit")

        self.session = session
        self.state = SessionState.ACTIVE
        self.media_sync.attach(video, session.settings.seek_interval_seconds)

        restored = self._guard.call(self.store.load_pip_size, kind=FailureKind.PERSISTENCE_FAILURE,
                                    what="load_pip_size")
        if restored.ok and restored.value is not None:
            self.last_known_size = restored.value
            logger.info("Last PiP size %dx%d (advisory)", restored.value.width, restored.value.height)

        logger.info("PiP session started for %r", video)
        for observer in list(self._started_observers):
            observer(video)

    def _finish(self, video):
        if self.session is None or self.session.video is not video:
            return
        self._teardown(self.session)
        if self.state is not SessionState.ENTERING:
            self.state = SessionState.IDLE

    def _teardown(self, session: Session):
        video = session.video
        if session.exit_callback is not None:
            self._guard.call(video.remove_listener, EXIT_EVENT, session.exit_callback,
                             subject=video, what="unlisten exit")
            session.exit_callback = None
        if session.ended_callback is not None:
            self._guard.call(video.remove_listener, "ended", session.ended_callback,
                             subject=video, what="unlisten ended")
            session.ended_callback = None
        if session.resize_callback is not None and session.surface is not None:
            self._guard.call(session.surface.remove_listener, "resize", session.resize_callback,
                             what="unlisten resize")
            session.resize_callback = None

        self.media_sync.detach(video)
        if self.session is session:
            self.session = None
        logger.info("PiP session ended for %r", video)
        for observer in list(self._ended_observers):
            observer(video)
