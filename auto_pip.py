"""
Automatic PiP triggers: page visibility changes and the boss-key shortcut.

Both triggers only pick a target and hand it to the session controller.
The visibility trigger is delayed and re-checks its conditions when the
timer fires instead of being cancelled.
"""
import logging
from dataclasses import dataclass
from typing import Callable, FrozenSet, Optional, Tuple

from pip_eligibility import is_blacklisted, is_playing, meets_min_duration, pick_best_candidate
from pip_settings import PipSettings

logger = logging.getLogger(__name__)

MODIFIER_KEYS = ("Control", "Alt", "Shift", "Meta")
MODIFIER_NAMES = ("Ctrl", "Alt", "Shift", "Meta")
MODIFIER_ALIASES = {
    "ctrl": "Ctrl",
    "control": "Ctrl",
    "alt": "Alt",
    "option": "Alt",
    "shift": "Shift",
    "meta": "Meta",
    "cmd": "Meta",
    "command": "Meta",
    "win": "Meta",
}

NO_CANDIDATE_NOTICE = "No compatible video stream found."


@dataclass(frozen=True)
class KeyEvent:
    key: str
    ctrl: bool = False
    alt: bool = False
    shift: bool = False
    meta: bool = False

    @classmethod
    def from_dict(cls, data: dict) -> "KeyEvent":
        return cls(
            key=str(data.get("key", "")),
            ctrl=bool(data.get("ctrl")),
            alt=bool(data.get("alt")),
            shift=bool(data.get("shift")),
            meta=bool(data.get("meta")),
        )

    def modifiers(self) -> FrozenSet[str]:
        flags = (self.ctrl, self.alt, self.shift, self.meta)
        return frozenset(name for name, on in zip(MODIFIER_NAMES, flags) if on)


def _normalize_key(key: str) -> str:
    return key.upper() if len(key) == 1 else key


def combo_from_event(event: KeyEvent) -> Optional[str]:
    """Render a key event as 'Ctrl+Alt+Shift+Meta+Key'; None for a bare modifier"""
    if not event.key or event.key in MODIFIER_KEYS:
        return None
    flags = (event.ctrl, event.alt, event.shift, event.meta)
    parts = [name for name, on in zip(MODIFIER_NAMES, flags) if on]
    parts.append(_normalize_key(event.key))
    return "+".join(parts)


def parse_shortcut(shortcut: str) -> Optional[Tuple[FrozenSet[str], str]]:
    """Split a combo string into (modifiers, key); None when empty or modifier-only"""
    shortcut = (shortcut or "").strip()
    if not shortcut:
        return None
    if shortcut == "+" or shortcut.endswith("++"):
        head, key = shortcut[:-2] if shortcut != "+" else "", "+"
    else:
        head, _, key = shortcut.rpartition("+")
    key = key.strip()

    modifiers = set()
    for token in filter(None, (t.strip() for t in head.split("+"))):
        name = MODIFIER_ALIASES.get(token.lower())
        if name is None:
            return None
        modifiers.add(name)

    if not key or key.lower() in MODIFIER_ALIASES:
        return None
    return frozenset(modifiers), _normalize_key(key)


def shortcut_matches(shortcut: str, event: KeyEvent) -> bool:
    parsed = parse_shortcut(shortcut)
    if parsed is None or combo_from_event(event) is None:
        return False
    modifiers, key = parsed
    return modifiers == event.modifiers() and key == _normalize_key(event.key)


class AutoPipEngine:
    def __init__(self, controller, document, scheduler, settings: PipSettings,
                 hovered: Callable[[], Optional[object]] = lambda: None,
                 notify: Optional[Callable[[str], None]] = None):
        self.controller = controller
        self.document = document
        self.scheduler = scheduler
        self.settings = settings
        self._hovered = hovered
        self._notify = notify or (lambda message: logger.info("Notice: %s", message))
        self._auto_video = None
        controller.add_observer(started=self._on_session_started, ended=self._on_session_ended,
                                refused=self._on_session_ended)

    def apply_settings(self, settings: PipSettings):
        self.settings = settings

    # Visibility
    def on_visibility_changed(self, hidden: Optional[bool] = None):
        if hidden is None:
            hidden = self.document.hidden
        settings = self.settings
        if not settings.auto_pip_enabled:
            return
        if is_blacklisted(self.document.hostname, settings):
            logger.debug("Auto-PiP skipped on blacklisted host %s", self.document.hostname)
            return

        if hidden:
            video = pick_best_candidate(self.document.media_elements(), viewport=self.document.viewport,
                                        playing_only=True)
            if video is None:
                return
            if not meets_min_duration(video, settings):
                logger.debug("Auto-PiP skipped, %r is shorter than %ss", video, settings.min_duration_seconds)
                return
            logger.debug("Auto-PiP armed for %r in %d ms", video, settings.auto_trigger_delay_ms)
            self.scheduler.schedule(settings.auto_trigger_delay_ms, lambda: self._fire(video))
        elif self.controller.active_video is not None:
            self.controller.exit()

    def _fire(self, video):
        if not self.document.hidden:
            return
        if not video.is_connected or not is_playing(video):
            return
        if self.controller.is_busy():
            return
        logger.info("Auto-PiP triggered for %r", video)
        if self.controller.request(video):
            self._auto_video = video

    def _on_session_started(self, video):
        if video is not self._auto_video:
            self._auto_video = None
            return
        self._auto_video = None
        # the tab may have come back while the entry was in flight
        if not self.document.hidden:
            logger.info("Page visible again before auto-PiP opened, leaving PiP for %r", video)
            self.controller.exit()

    def _on_session_ended(self, video):
        if video is self._auto_video:
            self._auto_video = None

    # Boss key
    def on_key_down(self, event: KeyEvent) -> bool:
        """Toggle PiP for the best candidate when the shortcut matches; True if consumed"""
        if not self.settings.shortcut or not shortcut_matches(self.settings.shortcut, event):
            return False
        self.toggle_best()
        return True

    def toggle_best(self) -> bool:
        """Toggle PiP for the hovered or most prominent video"""
        target = pick_best_candidate(self.document.media_elements(), self._hovered(), self.document.viewport)
        if target is None:
            self._notify(NO_CANDIDATE_NOTICE)
            return False

        leaving = target is self.controller.active_video or target is self.document.pip_element
        if not self.controller.toggle(target):
            logger.debug("Boss key ignored, %r could not be toggled now", target)
            return False
        self._notify("Boss Key: Toggled" if leaving else "Boss Key: Activated")
        return True
