"""
Per-page message dispatch for the PiP engine.

PageSession owns the page model and the engine for one loaded page and
routes the JSON messages the injected page script posts. It only needs a
run_js callable and a scheduler, so it runs without Qt.
"""
import json
import logging
from typing import Callable, Optional

from auto_pip import KeyEvent
from pip_engine import PipEngine
from pip_session import EXIT_EVENT
from web_page_model import (
    PageDocument,
    ScriptButtonOverlay,
    WebMediaSession,
    WebPipCapability,
    js_call,
)

logger = logging.getLogger(__name__)


class PageSession:
    def __init__(self, run_js: Callable[[str], None], store, scheduler,
                 notify: Optional[Callable[[str], None]] = None,
                 open_settings: Optional[Callable[[], None]] = None):
        self.run_js = run_js
        self._open_settings = open_settings or (lambda: logger.debug("Settings requested, no dialog attached"))
        self.document = PageDocument(run_js)
        self.pip = WebPipCapability(run_js)
        self.media_session = WebMediaSession(run_js)
        self.overlay = ScriptButtonOverlay(run_js)
        self.engine = PipEngine(
            self.document,
            self.pip,
            self.media_session,
            store,
            scheduler,
            self.overlay,
            notify=notify,
        )

        self._handlers = {
            "ready": self._on_ready,
            "dom": self._on_dom,
            "video": self._on_video_event,
            "pointer": self._on_pointer,
            "key": self._on_key,
            "visibility": self._on_visibility,
            "fullscreen": self._on_fullscreen,
            "button": self._on_button,
            "ack": self._on_ack,
            "surfaceResize": self._on_surface_resize,
            "mediaAction": self._on_media_action,
        }

    def handle_message(self, message: str):
        try:
            data = json.loads(message)
        except ValueError:
            logger.warning("Dropping malformed page message")
            return
        if not isinstance(data, dict):
            return
        self.handle(data)

    def handle(self, data: dict):
        """Sync the page snapshot first so handlers see the state the message was sent with"""
        state = data.get("state")
        if isinstance(state, dict):
            self.document.sync(state)

        handler = self._handlers.get(data.get("type"))
        if handler is None:
            logger.debug("Unhandled page message %r", data.get("type"))
            return
        handler(data)

    # Page lifecycle
    def on_load_started(self):
        """Anything tied to the previous document is stale now"""
        self.engine.controller.reset()
        self.pip.fail_pending()
        self.document.detach_all()

    def _on_ready(self, data):
        self.push_shortcut()
        self.engine.start()

    def push_shortcut(self):
        self.run_js(js_call("setShortcut", self.engine.settings.shortcut))

    def apply_settings(self, settings) -> bool:
        saved = self.engine.update_settings(settings)
        self.push_shortcut()
        return saved

    def set_host_hidden(self, hidden: bool):
        """The window itself was minimized or restored"""
        if self.document.host_hidden == hidden:
            return
        self.document.host_hidden = hidden
        self.engine.on_visibility_changed(self.document.hidden)

    # Page events
    def _on_dom(self, data):
        self.engine.on_dom_changed()

    def _on_video_event(self, data):
        video = self.document.video(data.get("id"))
        if video is None:
            return
        event = data.get("event")
        if event == EXIT_EVENT:
            self.pip.surface_closed()
        video.dispatch(event)

    def _on_pointer(self, data):
        self.engine.on_pointer_moved(float(data.get("x", 0)), float(data.get("y", 0)))

    def _on_key(self, data):
        self.engine.on_key_down(KeyEvent.from_dict(data))

    def _on_visibility(self, data):
        self.engine.on_visibility_changed(self.document.hidden)

    def _on_fullscreen(self, data):
        self.engine.on_fullscreen_changed(self.document.fullscreen)

    def _on_button(self, data):
        action = data.get("action")
        if action == "enter":
            self.engine.on_button_enter()
        elif action == "leave":
            self.engine.on_button_leave()
        elif action == "click":
            self.engine.on_button_clicked()
        elif action == "settings":
            self._open_settings()

    def _on_ack(self, data):
        self.pip.resolve(data.get("token"), bool(data.get("ok")), data.get("payload"))

    def _on_surface_resize(self, data):
        self.pip.surface_resized(data.get("width"), data.get("height"))

    def _on_media_action(self, data):
        self.media_session.dispatch_action(data.get("action"), data.get("details"))
