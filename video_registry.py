import logging
import weakref
from typing import Callable, Dict, Optional

from pip_capabilities import CapabilityGuard, FailureKind

logger = logging.getLogger(__name__)


class VideoRegistry:
    """Tracks which page videos have been instrumented"""

    def __init__(self, observers: Optional[Dict[str, Callable]] = None, guard: Optional[CapabilityGuard] = None):
        self._seen = weakref.WeakSet()
        self._observers = dict(observers or {})
        self._guard = guard or CapabilityGuard()

    def __contains__(self, video):
        return video in self._seen

    def __len__(self):
        return len(self._seen)

    def register(self, video) -> bool:
        """Instrument a video once; returns True only for newly seen videos"""
        if video is None or video in self._seen:
            return False
        self._seen.add(video)

        # Some players lock the flag down; failures here are harmless
        self._guard.call(video.clear_pip_disable, kind=FailureKind.POLICY_REJECT,
                         subject=video, what="clear_pip_disable")

        for event, observer in self._observers.items():
            self._guard.call(video.add_listener, event, self._bind(observer, video),
                             subject=video, what=f"observe {event}")
        logger.debug("Registered video %r", video)
        return True

    @staticmethod
    def _bind(observer, video):
        def on_event(*_args):
            observer(video)
        return on_event

    def scan(self, root) -> int:
        """Register every media element currently under root"""
        added = 0
        for video in root.media_elements():
            if self.register(video):
                added += 1
        return added
