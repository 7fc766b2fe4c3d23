"""
Shared fixtures and host fakes for the PiP engine tests.

The engine only sees injected capabilities, so every test drives it through
these in-memory stand-ins instead of a real web page.
"""
from collections import defaultdict
from concurrent.futures import Future

import pytest

from pip_capabilities import PipUnavailable, Rect, StaleReference
from pip_settings import PipSettings, SettingsStore


class FakeVideo:
    """Video handle with DOM-like listeners"""

    def __init__(self, name="video", width=640, height=360, duration=120.0, paused=True,
                 ended=False, ready_state=4, rect=None, title="", poster="", caption=""):
        self.name = name
        self.video_width = width
        self.video_height = height
        self.duration = duration
        self.paused = paused
        self.ended = ended
        self.ready_state = ready_state
        self.rect = rect if rect is not None else Rect(0, 0, width, height)
        self.current_time = 0.0
        self.playback_rate = 1.0
        self.title = title
        self.poster = poster
        self.caption = caption
        self.is_connected = True
        self.pip_disabled = True
        self.calls = []
        self.listeners = defaultdict(list)

    def __repr__(self):
        return f"<FakeVideo {self.name}>"

    def _check(self):
        if not self.is_connected:
            raise StaleReference(f"{self.name} detached")

    def play(self):
        self._check()
        self.calls.append("play")
        self.paused = False

    def pause(self):
        self._check()
        self.calls.append("pause")
        self.paused = True

    def seek(self, seconds):
        self._check()
        self.calls.append(("seek", seconds))
        self.current_time = seconds

    def clear_pip_disable(self):
        self._check()
        self.pip_disabled = False

    def add_listener(self, event, callback):
        self.listeners[event].append(callback)

    def remove_listener(self, event, callback):
        if callback in self.listeners[event]:
            self.listeners[event].remove(callback)

    def listener_count(self, event=None):
        if event is not None:
            return len(self.listeners[event])
        return sum(len(v) for v in self.listeners.values())

    def fire(self, event):
        for callback in list(self.listeners[event]):
            callback()


def playing_video(name="playing", **kwargs):
    kwargs.setdefault("paused", False)
    return FakeVideo(name, **kwargs)


class FakeDocument:
    def __init__(self, videos=None, hostname="example.com", title="Example page", viewport=(1280, 800)):
        self.videos = list(videos or [])
        self.hostname = hostname
        self.title = title
        self.viewport = viewport
        self.hidden = False
        self.fullscreen = False
        self.pip_element = None

    def media_elements(self):
        return list(self.videos)


class FakeSurface:
    def __init__(self, width=480, height=270):
        self.width = width
        self.height = height
        self.listeners = defaultdict(list)

    def add_listener(self, event, callback):
        self.listeners[event].append(callback)

    def remove_listener(self, event, callback):
        if callback in self.listeners[event]:
            self.listeners[event].remove(callback)

    def resize(self, width, height):
        self.width, self.height = width, height
        for callback in list(self.listeners["resize"]):
            callback(width, height)


class FakePipCapability:
    """Entry and exit futures stay pending until the test settles them"""

    def __init__(self):
        self.entries = []
        self.exits = []

    def request_entry(self, video):
        future = Future()
        self.entries.append((video, future))
        return future

    def request_exit(self):
        future = Future()
        self.exits.append(future)
        return future

    def grant(self, index=-1, surface=None):
        video, future = self.entries[index]
        surface = surface or FakeSurface()
        future.set_result(surface)
        return surface

    def refuse(self, index=-1, exc=None):
        _video, future = self.entries[index]
        future.set_exception(exc or PipUnavailable("NotSupportedError: PiP disabled"))

    def close(self, video, index=-1):
        """Acknowledge an exit and fire the native leave event"""
        self.exits[index].set_result(None)
        video.fire("leavepictureinpicture")


class FakeMediaSession:
    def __init__(self):
        self.metadata = None
        self.playback_state = "none"
        self.position = None
        self.handlers = {}
        self.history = []

    def set_metadata(self, metadata):
        self.metadata = metadata
        self.history.append(("metadata", metadata))

    def set_playback_state(self, state):
        self.playback_state = state

    def set_position_state(self, duration, playback_rate, position):
        self.position = (duration, playback_rate, position)

    def set_action_handler(self, action, handler):
        if handler is None:
            self.handlers.pop(action, None)
        else:
            self.handlers[action] = handler


class FakeScheduler:
    """Manual clock; callbacks run when advance() passes their due time"""

    def __init__(self):
        self.now = 0
        self.pending = []

    def schedule(self, delay_ms, callback):
        self.pending.append((self.now + delay_ms, callback))

    def advance(self, ms):
        self.now += ms
        due = [item for item in self.pending if item[0] <= self.now]
        self.pending = [item for item in self.pending if item[0] > self.now]
        for _when, callback in sorted(due, key=lambda item: item[0]):
            callback()


class FakeOverlay:
    def __init__(self):
        self.placed = None
        self.visible = False
        self.suppressed = False

    def place(self, left, top, opacity):
        self.placed = (left, top, opacity)
        self.visible = True

    def hide(self):
        self.visible = False

    def set_suppressed(self, suppressed):
        self.suppressed = suppressed


class RecordingStore:
    """In-memory settings store"""

    def __init__(self, settings=None):
        self.settings = settings or PipSettings()
        self.pip_size = None
        self.saved_sizes = []
        self.fail_writes = False

    def load(self):
        return self.settings

    def save(self, settings):
        if self.fail_writes:
            raise OSError("disk full")
        self.settings = settings

    def load_pip_size(self):
        return self.pip_size

    def save_pip_size(self, width, height):
        if self.fail_writes:
            raise OSError("disk full")
        self.saved_sizes.append((width, height))


@pytest.fixture
def settings():
    return PipSettings()


@pytest.fixture
def document():
    return FakeDocument()


@pytest.fixture
def pip():
    return FakePipCapability()


@pytest.fixture
def media_session():
    return FakeMediaSession()


@pytest.fixture
def scheduler():
    return FakeScheduler()


@pytest.fixture
def overlay():
    return FakeOverlay()


@pytest.fixture
def store():
    return RecordingStore()


@pytest.fixture
def file_store(tmp_path):
    return SettingsStore(tmp_path / "config.json")


@pytest.fixture
def notices():
    return []
