"""
QWebChannel bridge between the web page and the PiP engine.

A page script is injected into every document. It reports state snapshots
and events through a single `post` slot and executes the commands the
Python model sends back with runJavaScript.
"""
import logging

from PyQt6.QtCore import QFile, QIODevice, QObject, QTimer, pyqtSignal, pyqtSlot
from PyQt6.QtWebChannel import QWebChannel
from PyQt6.QtWebEngineCore import QWebEngineScript

from page_session import PageSession

logger = logging.getLogger(__name__)

SCRIPT_NAME = "pip_video_browser_bridge"

PAGE_SCRIPT = r"""
(function() {
  'use strict';
  if (window.__pipHost) return;

  // Suppress console noise from policies, preloads and ad/CORS failures
  const originalWarn = console.warn;
  const originalError = console.error;
  console.warn = function(...args) {
    const message = args.join(' ');
    if (message.includes('Permissions-Policy') ||
        message.includes('Document-Policy') ||
        message.includes('preload')) {
      return;
    }
    originalWarn.apply(console, args);
  };
  console.error = function(...args) {
    const message = args.join(' ');
    if (message.includes('CORS') ||
        message.includes('doubleclick.net') ||
        message.includes('XMLHttpRequest')) {
      return;
    }
    originalError.apply(console, args);
  };

  const BUTTON_SIZE = 38;
  const MAX_Z_INDEX = 2147483647;
  const ids = new WeakMap();
  const byId = new Map();
  let nextId = 1;
  let bridge = null;
  let shortcut = '';
  let host = null, button = null;
  let suppressed = false;

  function idFor(video) {
    if (!ids.has(video)) ids.set(video, nextId++);
    return ids.get(video);
  }

  function durationOf(video) {
    const d = video.duration;
    if (d === Infinity) return 'Infinity';
    return isFinite(d) ? d : null;
  }

  function captionOf(video) {
    const figure = video.closest('figure');
    const caption = figure && figure.querySelector('figcaption');
    if (caption && caption.textContent.trim()) return caption.textContent.trim();
    return video.getAttribute('aria-label') || '';
  }

  function snapshot(video) {
    const r = video.getBoundingClientRect();
    return {
      id: idFor(video),
      rect: {left: r.left, top: r.top, width: r.width, height: r.height},
      videoWidth: video.videoWidth,
      videoHeight: video.videoHeight,
      duration: durationOf(video),
      paused: video.paused,
      ended: video.ended,
      currentTime: video.currentTime,
      playbackRate: video.playbackRate,
      readyState: video.readyState,
      title: video.title || video.getAttribute('data-title') || '',
      poster: video.poster || '',
      caption: captionOf(video)
    };
  }

  function state() {
    const list = Array.from(document.querySelectorAll('video'));
    byId.clear();
    list.forEach(v => byId.set(idFor(v), v));
    const pipElement = document.pictureInPictureElement;
    return {
      hidden: document.hidden,
      hostname: location.hostname,
      title: document.title,
      viewport: {width: window.innerWidth, height: window.innerHeight},
      fullscreen: !!document.fullscreenElement,
      pipVideoId: pipElement ? idFor(pipElement) : null,
      videos: list.map(snapshot)
    };
  }

  function post(message) {
    if (!bridge) return;
    message.state = state();
    bridge.post(JSON.stringify(message));
  }

  function throttle(fn, ms) {
    let last = 0, pending = 0;
    return function(...args) {
      const now = Date.now();
      if (now - last >= ms) {
        last = now;
        fn(...args);
      } else if (!pending) {
        pending = setTimeout(() => { pending = 0; last = Date.now(); fn(...args); }, ms - (now - last));
      }
    };
  }

  // Video instrumentation
  const VIDEO_EVENTS = ['play', 'pause', 'ended', 'ratechange', 'timeupdate', 'seeked',
                        'loadedmetadata', 'leavepictureinpicture'];

  function instrument(video) {
    if (video.__pipInstrumented) return;
    video.__pipInstrumented = true;
    const id = idFor(video);
    VIDEO_EVENTS.forEach(name => {
      video.addEventListener(name, () => post({type: 'video', id: id, event: name}), {passive: true});
    });
    video.addEventListener('mouseout', (e) => {
      const to = e.relatedTarget;
      if (to && (to.closest && to.closest('video') || (host && host.contains(to)))) return;
      post({type: 'video', id: id, event: 'mouseout'});
    }, {passive: true});
  }

  const reportDom = throttle(() => {
    document.querySelectorAll('video').forEach(instrument);
    post({type: 'dom'});
  }, 100);

  // Floating button
  function ensureButton() {
    if (host) return;
    host = document.createElement('div');
    host.id = 'pip-video-browser-host';
    const root = host.attachShadow ? host.attachShadow({mode: 'open'}) : host;
    const style = document.createElement('style');
    style.textContent = `
      .pip-button {
        position: absolute; width: ${BUTTON_SIZE}px; height: ${BUTTON_SIZE}px;
        border-radius: 50%; background: rgba(0, 0, 0, 0.7); cursor: pointer;
        border: 2px solid rgba(100, 150, 255, 0.9); box-sizing: border-box;
        transition: opacity 0.2s; display: none;
      }
      .pip-button.shown { display: block; }
    `;
    button = document.createElement('div');
    button.className = 'pip-button';
    button.title = 'Toggle PiP (Right-click for Settings)';
    button.addEventListener('mouseenter', () => post({type: 'button', action: 'enter'}), {passive: true});
    button.addEventListener('mouseleave', () => post({type: 'button', action: 'leave'}), {passive: true});
    button.addEventListener('click', (e) => {
      e.preventDefault(); e.stopPropagation();
      post({type: 'button', action: 'click'});
    });
    button.addEventListener('contextmenu', (e) => {
      e.preventDefault(); e.stopPropagation();
      post({type: 'button', action: 'settings'});
    });
    root.appendChild(style);
    root.appendChild(button);
    document.documentElement.appendChild(host);
  }

  function comboOf(e) {
    if (['Control', 'Alt', 'Shift', 'Meta'].includes(e.key)) return '';
    const parts = [];
    if (e.ctrlKey) parts.push('Ctrl');
    if (e.altKey) parts.push('Alt');
    if (e.shiftKey) parts.push('Shift');
    if (e.metaKey) parts.push('Meta');
    parts.push(e.key.length === 1 ? e.key.toUpperCase() : e.key);
    return parts.join('+');
  }

  function ack(token, ok, payload) {
    post({type: 'ack', token: token, ok: ok, payload: payload || {}});
  }

  function failure(err) {
    return {name: (err && err.name) || 'Error', message: (err && err.message) || String(err)};
  }

  function withVideo(id, fn) {
    const video = byId.get(id);
    if (video && video.isConnected) {
      try { fn(video); } catch (err) { originalError.call(console, 'PiP command failed:', err); }
    }
  }

  const mediaSession = navigator.mediaSession || null;

  window.__pipHost = {
    play(id) { withVideo(id, v => v.play().catch(() => {})); },
    pause(id) { withVideo(id, v => v.pause()); },
    seek(id, seconds) { withVideo(id, v => { v.currentTime = seconds; }); },
    clearPipDisable(id) {
      withVideo(id, v => {
        v.removeAttribute('disablePictureInPicture');
        v.disablePictureInPicture = false;
      });
    },

    requestEntry(id, token) {
      const video = byId.get(id);
      if (!video || !video.isConnected) {
        return ack(token, false, {name: 'InvalidStateError', message: 'video left the page'});
      }
      if (!document.pictureInPictureEnabled || !video.requestPictureInPicture) {
        return ack(token, false, {name: 'NotSupportedError', message: 'Picture-in-Picture is not supported'});
      }
      video.requestPictureInPicture()
        .then((pipWindow) => {
          if (pipWindow && pipWindow.addEventListener) {
            pipWindow.addEventListener('resize', () => {
              post({type: 'surfaceResize', width: pipWindow.width, height: pipWindow.height});
            });
          }
          ack(token, true, {width: pipWindow ? pipWindow.width : 0, height: pipWindow ? pipWindow.height : 0});
        })
        .catch(err => ack(token, false, failure(err)));
    },

    requestExit(token) {
      if (!document.pictureInPictureElement) {
        return ack(token, false, {name: 'InvalidStateError', message: 'no Picture-in-Picture element'});
      }
      document.exitPictureInPicture()
        .then(() => ack(token, true))
        .catch(err => ack(token, false, failure(err)));
    },

    setMetadata(meta) {
      if (!mediaSession) return;
      try {
        mediaSession.metadata = meta ? new MediaMetadata({
          title: meta.title,
          artist: meta.artist,
          artwork: meta.artwork ? [{src: meta.artwork, sizes: '512x512', type: 'image/png'}] : []
        }) : null;
      } catch (_) {}
    },
    setPlaybackState(value) {
      if (mediaSession) { try { mediaSession.playbackState = value; } catch (_) {} }
    },
    setPositionState(duration, playbackRate, position) {
      if (mediaSession && mediaSession.setPositionState) {
        try { mediaSession.setPositionState({duration, playbackRate, position}); } catch (_) {}
      }
    },
    setActionHandler(action, enabled) {
      if (!mediaSession) return;
      try {
        mediaSession.setActionHandler(action, enabled ? (details) => {
          post({type: 'mediaAction', action: action,
                details: {seekTime: details && details.seekTime, fastSeek: !!(details && details.fastSeek)}});
        } : null);
      } catch (_) {}
    },

    placeButton(left, top, opacity) {
      ensureButton();
      button.style.left = `${left + window.scrollX}px`;
      button.style.top = `${top + window.scrollY}px`;
      button.style.zIndex = MAX_Z_INDEX;
      button.style.opacity = opacity;
      button.classList.toggle('shown', !suppressed);
    },
    hideButton() { if (button) button.classList.remove('shown'); },
    setSuppressed(value) {
      suppressed = !!value;
      if (suppressed && button) button.classList.remove('shown');
    },
    setShortcut(value) { shortcut = (value || '').toUpperCase(); }
  };

  document.addEventListener('keydown', (e) => {
    const combo = comboOf(e);
    if (!combo || !shortcut || combo.toUpperCase() !== shortcut) return;
    e.preventDefault();
    e.stopPropagation();
    post({type: 'key', key: e.key, ctrl: e.ctrlKey, alt: e.altKey, shift: e.shiftKey, meta: e.metaKey});
  }, true);

  document.addEventListener('mousemove', throttle((e) => {
    post({type: 'pointer', x: e.clientX, y: e.clientY});
  }, 100), {passive: true});

  document.addEventListener('visibilitychange', () => post({type: 'visibility'}));
  document.addEventListener('fullscreenchange', () => post({type: 'fullscreen'}));
  window.addEventListener('scroll', reportDom, {passive: true});
  window.addEventListener('resize', reportDom, {passive: true});
  new MutationObserver(reportDom).observe(document.documentElement, {childList: true, subtree: true});

  new QWebChannel(qt.webChannelTransport, function(channel) {
    bridge = channel.objects.pipBridge;
    document.querySelectorAll('video').forEach(instrument);
    ensureButton();
    post({type: 'ready'});
  });
})();
"""


def load_qwebchannel_source():
    """Read qwebchannel.js from the Qt resource system"""
    resource = QFile(":/qtwebchannel/qwebchannel.js")
    if not resource.open(QIODevice.OpenModeFlag.ReadOnly):
        logger.error("qwebchannel.js resource not found, PiP bridge disabled")
        return ""
    try:
        return bytes(resource.readAll()).decode("utf-8")
    finally:
        resource.close()


def install_page_script(page):
    """Inject the bridge script into every document the page loads"""
    scripts = page.scripts()
    for existing in scripts.find(SCRIPT_NAME):
        scripts.remove(existing)

    script = QWebEngineScript()
    script.setName(SCRIPT_NAME)
    script.setSourceCode(load_qwebchannel_source() + "\n" + PAGE_SCRIPT)
    script.setInjectionPoint(QWebEngineScript.InjectionPoint.DocumentReady)
    script.setWorldId(QWebEngineScript.ScriptWorldId.MainWorld)
    script.setRunsOnSubFrames(False)
    scripts.insert(script)


class QtScheduler:
    """Delayed callbacks on the Qt event loop"""

    def schedule(self, delay_ms, callback):
        QTimer.singleShot(max(0, int(delay_ms)), callback)


class PageBridge(QObject):
    """Receives page messages and hands them to the PageSession of one web page"""
    notice = pyqtSignal(str)
    settings_requested = pyqtSignal()

    def __init__(self, page, store, parent=None):
        super().__init__(parent)
        self.page = page
        self.session = PageSession(self.run_js, store, QtScheduler(),
                                   notify=self.notice.emit, open_settings=self.settings_requested.emit)
        self.engine = self.session.engine
        self.document = self.session.document

        self.channel = QWebChannel(page)
        self.channel.registerObject("pipBridge", self)
        page.setWebChannel(self.channel)
        install_page_script(page)
        page.loadStarted.connect(self.session.on_load_started)

    def run_js(self, script):
        self.page.runJavaScript(script)

    @pyqtSlot(str)
    def post(self, message):
        """Single entry point for everything the page script reports"""
        self.session.handle_message(message)

    def apply_settings(self, settings):
        return self.session.apply_settings(settings)

    def set_host_hidden(self, hidden):
        self.session.set_host_hidden(hidden)
