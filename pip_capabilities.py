"""
Host capabilities consumed by the PiP engine and the failure taxonomy.

The engine never talks to the browser directly. Everything it needs (the
picture-in-picture surface, the media-control surface, the page document)
is injected, and every call into those capabilities goes through
CapabilityGuard so failures are classified in one place.
"""
import logging
import math
from concurrent.futures import Future
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional, Protocol, Tuple

logger = logging.getLogger(__name__)


class FailureKind(Enum):
    UNAVAILABLE = "unavailable"
    STALE_REFERENCE = "stale_reference"
    PERSISTENCE_FAILURE = "persistence_failure"
    POLICY_REJECT = "policy_reject"


class PipError(Exception):
    """Base class for failures raised by host capabilities"""
    kind = FailureKind.UNAVAILABLE


class PipUnavailable(PipError):
    """The native capability is missing or refused the request"""
    kind = FailureKind.UNAVAILABLE


class StaleReference(PipError):
    """The target video is no longer part of the document"""
    kind = FailureKind.STALE_REFERENCE


class PersistenceFailure(PipError):
    """Reading or writing persisted data failed"""
    kind = FailureKind.PERSISTENCE_FAILURE


class PolicyReject(PipError):
    """An eligibility rule suppressed the action"""
    kind = FailureKind.POLICY_REJECT


@dataclass(frozen=True)
class Rect:
    left: float = 0.0
    top: float = 0.0
    width: float = 0.0
    height: float = 0.0

    @property
    def right(self) -> float:
        return self.left + self.width

    @property
    def bottom(self) -> float:
        return self.top + self.height

    def contains(self, x: float, y: float) -> bool:
        return self.left <= x <= self.right and self.top <= y <= self.bottom


@dataclass(frozen=True)
class MediaMetadata:
    title: str
    artist: str
    artwork: str = ""


Listener = Callable[..., None]


class VideoHandle(Protocol):
    rect: Rect
    video_width: int
    video_height: int
    duration: float
    paused: bool
    ended: bool
    current_time: float
    playback_rate: float
    ready_state: int
    is_connected: bool
    title: str
    poster: str
    caption: str

    def play(self) -> None: ...
    def pause(self) -> None: ...
    def seek(self, seconds: float) -> None: ...
    def clear_pip_disable(self) -> None: ...
    def add_listener(self, event: str, callback: Listener) -> None: ...
    def remove_listener(self, event: str, callback: Listener) -> None: ...


class PipSurface(Protocol):
    width: int
    height: int

    def add_listener(self, event: str, callback: Listener) -> None: ...
    def remove_listener(self, event: str, callback: Listener) -> None: ...


class PipCapability(Protocol):
    def request_entry(self, video: VideoHandle) -> "Future[PipSurface]": ...
    def request_exit(self) -> "Future[None]": ...


class MediaSessionCapability(Protocol):
    def set_metadata(self, metadata: Optional[MediaMetadata]) -> None: ...
    def set_playback_state(self, state: str) -> None: ...
    def set_position_state(self, duration: float, playback_rate: float, position: float) -> None: ...
    def set_action_handler(self, action: str, handler: Optional[Callable[[dict], None]]) -> None: ...


class HostDocument(Protocol):
    hidden: bool
    hostname: str
    title: str
    viewport: Tuple[int, int]
    fullscreen: bool
    pip_element: Optional[VideoHandle]

    def media_elements(self) -> list: ...


class Scheduler(Protocol):
    def schedule(self, delay_ms: int, callback: Callable[[], None]) -> None: ...


def has_known_duration(duration) -> bool:
    """True for a finite, positive duration"""
    try:
        return math.isfinite(duration) and duration > 0
    except TypeError:
        return False


@dataclass(frozen=True)
class Failure:
    kind: FailureKind
    message: str = ""


@dataclass(frozen=True)
class Outcome:
    value: Any = None
    failure: Optional[Failure] = None

    @property
    def ok(self) -> bool:
        return self.failure is None


class CapabilityGuard:
    """
    Absorb-and-classify adapter wrapped around every native capability call.

    Nothing raised by a capability escapes: the caller receives an Outcome
    and decides what to do with the failure kind. Only UNAVAILABLE is meant
    to be shown to the user.
    """

    def classify(self, exc: BaseException, kind: FailureKind, subject=None) -> Failure:
        """Map an exception onto the failure taxonomy"""
        if subject is not None and not getattr(subject, "is_connected", True):
            resolved = FailureKind.STALE_REFERENCE
        elif isinstance(exc, PipError):
            resolved = exc.kind
        else:
            resolved = kind
        return Failure(resolved, str(exc) or exc.__class__.__name__)

    def _log(self, what: str, failure: Failure):
        if failure.kind in (FailureKind.STALE_REFERENCE, FailureKind.POLICY_REJECT):
            logger.debug("%s absorbed (%s): %s", what, failure.kind.value, failure.message)
        else:
            logger.warning("%s failed (%s): %s", what, failure.kind.value, failure.message)

    def call(self, fn: Callable, *args, kind: FailureKind = FailureKind.UNAVAILABLE,
             subject=None, what: str = "") -> Outcome:
        """Run a synchronous capability call"""
        try:
            return Outcome(value=fn(*args))
        except Exception as e:
            failure = self.classify(e, kind, subject)
            self._log(what or getattr(fn, "__name__", "call"), failure)
            return Outcome(failure=failure)

    def call_async(self, fn: Callable, *args, kind: FailureKind = FailureKind.UNAVAILABLE,
                   subject=None, what: str = "") -> "Future[Outcome]":
        """Run a future-returning capability call; the returned future never fails"""
        what = what or getattr(fn, "__name__", "call")
        result: Future = Future()

        def settle(fut: Future):
            try:
                outcome = Outcome(value=fut.result())
            except Exception as e:
                failure = self.classify(e, kind, subject)
                self._log(what, failure)
                outcome = Outcome(failure=failure)
            result.set_result(outcome)

        try:
            pending = fn(*args)
        except Exception as e:
            failure = self.classify(e, kind, subject)
            self._log(what, failure)
            result.set_result(Outcome(failure=failure))
            return result

        pending.add_done_callback(settle)
        return result
