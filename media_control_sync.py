"""
Mirror the active PiP video onto the host media-control surface.

attach() installs metadata, the eight transport action handlers and the
listeners that keep playback and position state current; detach() removes
exactly what attach() installed.
"""
import logging
from typing import Optional

from pip_capabilities import CapabilityGuard, MediaMetadata, has_known_duration

logger = logging.getLogger(__name__)

ACTIONS = (
    "play",
    "pause",
    "stop",
    "seekbackward",
    "seekforward",
    "seekto",
    "previoustrack",
    "nexttrack",
)

MIRRORED_EVENTS = ("play", "pause", "ratechange", "timeupdate", "seeked")

DEFAULT_SEEK_SECONDS = 10


def resolve_metadata(video, document) -> MediaMetadata:
    """Explicit video metadata first, then page title / hostname / poster, then caption"""
    title = (getattr(video, "title", "") or getattr(document, "title", "")
             or getattr(video, "caption", "") or "Video")
    artist = getattr(video, "artist", "") or getattr(document, "hostname", "") or ""
    artwork = getattr(video, "poster", "") or ""
    return MediaMetadata(title=title, artist=artist, artwork=artwork)


def clamp_position(video, position: float) -> float:
    position = max(0.0, position)
    if has_known_duration(video.duration):
        position = min(position, video.duration)
    return position


class MediaControlSync:
    def __init__(self, media_session, document, guard: Optional[CapabilityGuard] = None):
        self.media_session = media_session
        self.document = document
        self._guard = guard or CapabilityGuard()
        self._video = None
        self._listeners = []

    @property
    def attached_video(self):
        return self._video

    def attach(self, video, seek_interval_seconds: int = DEFAULT_SEEK_SECONDS):
        if self._video is not None:
            self.detach(self._video)
        self._video = video

        metadata = resolve_metadata(video, self.document)
        self._guard.call(self.media_session.set_metadata, metadata, what="set_metadata")

        for action, handler in self._action_handlers(video, seek_interval_seconds or DEFAULT_SEEK_SECONDS).items():
            self._guard.call(self.media_session.set_action_handler, action, handler,
                             what=f"set_action_handler {action}")

        for event in MIRRORED_EVENTS:
            listener = self._sync_playback if event in ("play", "pause") else self._sync_position
            bound = self._bind(listener, video)
            self._guard.call(video.add_listener, event, bound, subject=video, what=f"listen {event}")
            self._listeners.append((event, bound))

        self._sync_playback(video)
        self._sync_position(video)
        logger.debug("Media session attached to %r (%s)", video, metadata.title)

    def detach(self, video):
        if self._video is None or video is not self._video:
            return

        for event, bound in self._listeners:
            self._guard.call(video.remove_listener, event, bound, subject=video, what=f"unlisten {event}")
        self._listeners = []

        for action in ACTIONS:
            self._guard.call(self.media_session.set_action_handler, action, None,
                             what=f"clear_action_handler {action}")
        self._guard.call(self.media_session.set_metadata, None, what="clear_metadata")
        self._guard.call(self.media_session.set_playback_state, "none", what="set_playback_state")
        self._video = None
        logger.debug("Media session detached from %r", video)

    @staticmethod
    def _bind(listener, video):
        def on_event(*_args):
            listener(video)
        return on_event

    def _sync_playback(self, video):
        state = "paused" if video.paused else "playing"
        self._guard.call(self.media_session.set_playback_state, state, subject=video, what="set_playback_state")

    def _sync_position(self, video):
        if not has_known_duration(video.duration):
            return
        position = clamp_position(video, video.current_time)
        rate = video.playback_rate or 1.0
        self._guard.call(self.media_session.set_position_state, video.duration, rate, position,
                         subject=video, what="set_position_state")

    def _action_handlers(self, video, seek_seconds):
        guard = self._guard

        def seek_by(delta):
            guard.call(video.seek, clamp_position(video, video.current_time + delta), subject=video, what="seek")

        def seek_to(details):
            target = (details or {}).get("seekTime")
            if target is None:
                return
            guard.call(video.seek, clamp_position(video, float(target)), subject=video, what="seekto")

        def stop(_details=None):
            guard.call(video.pause, subject=video, what="stop")
            guard.call(video.seek, 0.0, subject=video, what="stop rewind")

        def next_track(_details=None):
            if has_known_duration(video.duration):
                guard.call(video.seek, video.duration, subject=video, what="nexttrack")

        return {
            "play": lambda _details=None: guard.call(video.play, subject=video, what="play"),
            "pause": lambda _details=None: guard.call(video.pause, subject=video, what="pause"),
            "stop": stop,
            "seekbackward": lambda _details=None: seek_by(-seek_seconds),
            "seekforward": lambda _details=None: seek_by(seek_seconds),
            "seekto": seek_to,
            "previoustrack": lambda _details=None: guard.call(video.seek, 0.0, subject=video, what="previoustrack"),
            "nexttrack": next_track,
        }
