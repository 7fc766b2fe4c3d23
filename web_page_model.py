"""
Python-side model of the page behind the web view.

The injected page script reports state snapshots and events; these classes
keep the latest values and turn engine calls back into script commands
through a run_js callable. Nothing here depends on Qt, so the whole model
can be driven from tests.
"""
import itertools
import json
import logging
import math
from collections import defaultdict
from concurrent.futures import Future
from dataclasses import asdict

from pip_capabilities import PipUnavailable, Rect, StaleReference

logger = logging.getLogger(__name__)

HOST_OBJECT = "window.__pipHost"


def js_call(name, *args) -> str:
    """JavaScript snippet invoking a page-host command with JSON arguments"""
    rendered = ", ".join(json.dumps(arg) for arg in args)
    return f"{HOST_OBJECT} && {HOST_OBJECT}.{name}({rendered});"


def _number(value, default=0.0):
    if value == "Infinity":
        return math.inf
    if value is None:
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


class EventSource:
    """Minimal listener registry mirroring DOM addEventListener/removeEventListener"""

    def __init__(self):
        self._listeners = defaultdict(list)

    def add_listener(self, event, callback):
        if callback not in self._listeners[event]:
            self._listeners[event].append(callback)

    def remove_listener(self, event, callback):
        try:
            self._listeners[event].remove(callback)
        except ValueError:
            pass

    def listener_count(self, event) -> int:
        return len(self._listeners.get(event, ()))

    def dispatch(self, event, *args):
        for callback in list(self._listeners.get(event, ())):
            try:
                callback(*args)
            except Exception:
                logger.exception("Listener for %r failed", event)


class PageVideo(EventSource):
    def __init__(self, video_id, run_js):
        super().__init__()
        self.id = video_id
        self._run_js = run_js
        self.rect = Rect()
        self.video_width = 0
        self.video_height = 0
        self.duration = math.nan
        self.paused = True
        self.ended = False
        self.current_time = 0.0
        self.playback_rate = 1.0
        self.ready_state = 0
        self.title = ""
        self.poster = ""
        self.caption = ""
        self.is_connected = True

    def __repr__(self):
        return f"<PageVideo #{self.id} {self.video_width}x{self.video_height}>"

    def update(self, snapshot: dict):
        rect = snapshot.get("rect") or {}
        self.rect = Rect(
            left=_number(rect.get("left")),
            top=_number(rect.get("top")),
            width=_number(rect.get("width")),
            height=_number(rect.get("height")),
        )
        self.video_width = int(_number(snapshot.get("videoWidth")))
        self.video_height = int(_number(snapshot.get("videoHeight")))
        self.duration = _number(snapshot.get("duration"), math.nan)
        self.paused = bool(snapshot.get("paused", True))
        self.ended = bool(snapshot.get("ended", False))
        self.current_time = _number(snapshot.get("currentTime"))
        self.playback_rate = _number(snapshot.get("playbackRate"), 1.0)
        self.ready_state = int(_number(snapshot.get("readyState")))
        self.title = snapshot.get("title") or ""
        self.poster = snapshot.get("poster") or ""
        self.caption = snapshot.get("caption") or ""

    def _command(self, name, *args):
        if not self.is_connected:
            raise StaleReference(f"video #{self.id} left the page")
        self._run_js(js_call(name, self.id, *args))

    def play(self):
        self._command("play")

    def pause(self):
        self._command("pause")

    def seek(self, seconds):
        self._command("seek", float(seconds))
        self.current_time = float(seconds)

    def clear_pip_disable(self):
        self._command("clearPipDisable")


class PageDocument:
    def __init__(self, run_js):
        self._run_js = run_js
        self._videos = {}
        self._order = []
        self.page_hidden = False
        self.host_hidden = False
        self.hostname = ""
        self.title = ""
        self.viewport = (0, 0)
        self.fullscreen = False
        self.pip_video_id = None

    def media_elements(self):
        return [self._videos[i] for i in self._order if i in self._videos]

    def video(self, video_id):
        return self._videos.get(video_id)

    @property
    def hidden(self):
        """Hidden as far as the page says, or because the host window is minimized"""
        return self.page_hidden or self.host_hidden

    @property
    def pip_element(self):
        return self._videos.get(self.pip_video_id) if self.pip_video_id is not None else None

    def sync(self, state: dict) -> bool:
        """Apply a page snapshot; returns True when the set of videos changed"""
        self.page_hidden = bool(state.get("hidden", self.page_hidden))
        self.hostname = state.get("hostname", self.hostname) or ""
        self.title = state.get("title", self.title) or ""
        viewport = state.get("viewport")
        if isinstance(viewport, dict):
            self.viewport = (int(_number(viewport.get("width"))), int(_number(viewport.get("height"))))
        self.fullscreen = bool(state.get("fullscreen", self.fullscreen))
        self.pip_video_id = state.get("pipVideoId", self.pip_video_id)

        if "videos" not in state:
            return False

        seen = []
        for snapshot in state["videos"]:
            video_id = snapshot.get("id")
            if video_id is None:
                continue
            video = self._videos.get(video_id)
            if video is None:
                video = PageVideo(video_id, self._run_js)
                self._videos[video_id] = video
            video.update(snapshot)
            seen.append(video_id)

        gone = [i for i in self._videos if i not in seen]
        for video_id in gone:
            self._videos.pop(video_id).is_connected = False
        changed = bool(gone) or seen != self._order
        self._order = seen
        return changed

    def detach_all(self):
        """Mark every known video stale, e.g. after navigation"""
        for video in self._videos.values():
            video.is_connected = False
        self._videos.clear()
        self._order = []
        self.pip_video_id = None


class WebPipSurface(EventSource):
    def __init__(self, width=0, height=0):
        super().__init__()
        self.width = int(width or 0)
        self.height = int(height or 0)

    def resize(self, width, height):
        self.width, self.height = int(width or 0), int(height or 0)
        self.dispatch("resize", self.width, self.height)


UNAVAILABLE_ERRORS = ("NotAllowedError", "NotSupportedError", "SecurityError")


class WebPipCapability:
    """PiP entry/exit through the page's requestPictureInPicture API"""

    def __init__(self, run_js):
        self._run_js = run_js
        self._tokens = itertools.count(1)
        self._pending = {}
        self.surface = None

    def request_entry(self, video):
        if not video.is_connected:
            raise StaleReference(f"video #{video.id} left the page")
        future = Future()
        token = next(self._tokens)
        self._pending[token] = (future, video)
        self._run_js(js_call("requestEntry", video.id, token))
        return future

    def request_exit(self):
        future = Future()
        token = next(self._tokens)
        self._pending[token] = (future, None)
        self._run_js(js_call("requestExit", token))
        return future

    def resolve(self, token, ok, payload=None):
        future, video = self._pending.pop(token, (None, None))
        if future is None:
            logger.debug("Unknown PiP acknowledgment token %r", token)
            return
        payload = payload or {}

        if ok:
            if video is None:
                future.set_result(None)
            else:
                self.surface = WebPipSurface(payload.get("width"), payload.get("height"))
                future.set_result(self.surface)
            return

        name = payload.get("name") or "Error"
        message = payload.get("message") or name
        if video is not None and not video.is_connected:
            future.set_exception(StaleReference(message))
        elif name in UNAVAILABLE_ERRORS:
            future.set_exception(PipUnavailable(f"{name}: {message}"))
        else:
            future.set_exception(PipUnavailable(message))

    def surface_resized(self, width, height):
        if self.surface is not None:
            self.surface.resize(width, height)

    def surface_closed(self):
        self.surface = None

    def fail_pending(self, reason="page navigated away"):
        pending, self._pending = self._pending, {}
        for future, _video in pending.values():
            future.set_exception(StaleReference(reason))
        self.surface = None


class ScriptButtonOverlay:
    """The floating PiP button drawn by the page script"""

    def __init__(self, run_js):
        self._run_js = run_js

    def place(self, left, top, opacity):
        self._run_js(js_call("placeButton", float(left), float(top), float(opacity)))

    def hide(self):
        self._run_js(js_call("hideButton"))

    def set_suppressed(self, suppressed):
        self._run_js(js_call("setSuppressed", bool(suppressed)))


class WebMediaSession:
    """navigator.mediaSession, driven from Python"""

    def __init__(self, run_js):
        self._run_js = run_js
        self._handlers = {}

    def set_metadata(self, metadata):
        self._run_js(js_call("setMetadata", asdict(metadata) if metadata is not None else None))

    def set_playback_state(self, state):
        self._run_js(js_call("setPlaybackState", state))

    def set_position_state(self, duration, playback_rate, position):
        self._run_js(js_call("setPositionState", float(duration), float(playback_rate), float(position)))

    def set_action_handler(self, action, handler):
        if handler is None:
            self._handlers.pop(action, None)
        else:
            self._handlers[action] = handler
        self._run_js(js_call("setActionHandler", action, handler is not None))

    def has_handler(self, action) -> bool:
        return action in self._handlers

    def dispatch_action(self, action, details=None):
        handler = self._handlers.get(action)
        if handler is None:
            logger.debug("No media session handler for %s", action)
            return
        handler(details or {})
