import sys
import logging
from pathlib import Path
from dataclasses import replace

from PyQt6.QtWidgets import (
    QMainWindow, QWidget, QVBoxLayout, QHBoxLayout, QGridLayout, QPushButton, QLineEdit, QApplication,
    QProgressBar, QDialog, QLabel, QCheckBox, QSpinBox, QSlider, QPlainTextEdit, QButtonGroup
)
from PyQt6.QtWebEngineWidgets import QWebEngineView
from PyQt6.QtWebEngineCore import QWebEngineProfile, QWebEnginePage, QWebEngineSettings
from PyQt6.QtCore import Qt, QTimer, QUrl, QEvent
from PyQt6.QtGui import QIcon, QPixmap, QPainter, QPen, QColor, QKeySequence

from auto_pip import KeyEvent, combo_from_event
from logging_config import setup_logging
from page_bridge import PageBridge
from pip_capabilities import PersistenceFailure
from pip_settings import SettingsStore, BUTTON_POSITIONS, DEFAULT_CONFIG_DIR, parse_blacklist

logger = logging.getLogger(__name__)

DEFAULT_START_URL = "https://youtube.com"
TOAST_DURATION_MS = 2000

NAMED_KEYS = {
    Qt.Key.Key_Escape: "Escape",
    Qt.Key.Key_Tab: "Tab",
    Qt.Key.Key_Backspace: "Backspace",
    Qt.Key.Key_Return: "Enter",
    Qt.Key.Key_Enter: "Enter",
    Qt.Key.Key_Insert: "Insert",
    Qt.Key.Key_Delete: "Delete",
    Qt.Key.Key_Home: "Home",
    Qt.Key.Key_End: "End",
    Qt.Key.Key_PageUp: "PageUp",
    Qt.Key.Key_PageDown: "PageDown",
    Qt.Key.Key_Left: "ArrowLeft",
    Qt.Key.Key_Right: "ArrowRight",
    Qt.Key.Key_Up: "ArrowUp",
    Qt.Key.Key_Down: "ArrowDown",
    Qt.Key.Key_Space: " ",
}

NAMED_KEY_VALUES = {k.value: name for k, name in NAMED_KEYS.items()}
MODIFIER_QT_KEYS = {k.value for k in (Qt.Key.Key_Control, Qt.Key.Key_Alt, Qt.Key.Key_Shift, Qt.Key.Key_Meta, Qt.Key.Key_AltGr)}

DIALOG_STYLE = """
    QDialog {
        background-color: #1e1e2e;
        border-radius: 8px;
    }
    QLabel, QCheckBox {
        color: #cdd6f4;
        font-family: 'Segoe UI', Arial;
        font-size: 13px;
    }
    QLabel#title {
        font-size: 16px;
        font-weight: bold;
        color: #89b4fa;
    }
    QLabel#section {
        color: #f38ba8;
        font-weight: bold;
        margin-top: 8px;
    }
    QLineEdit, QSpinBox, QPlainTextEdit {
        background-color: #313244;
        color: #cdd6f4;
        border: 1px solid #45475a;
        border-radius: 6px;
        padding: 4px;
    }
    QPushButton {
        background-color: #313244;
        color: #cdd6f4;
        border: 1px solid #45475a;
        border-radius: 6px;
        padding: 8px 12px;
        font-weight: 500;
        font-family: 'Segoe UI', Arial;
    }
    QPushButton:hover {
        background-color: #45475a;
        border: 1px solid #6c7086;
    }
    QPushButton:pressed, QPushButton:checked {
        background-color: #585b70;
        border: 1px solid #89b4fa;
    }
"""

BUTTON_STYLE = """
    QPushButton {
        background-color: rgba(0, 0, 0, 0.7);
        color: white;
        border: none;
        border-radius: 4px;
        font-weight: bold;
        padding: 5px;
    }
    QPushButton:hover {
        background-color: rgba(100, 150, 255, 0.15);
    }
    QPushButton:pressed {
        background-color: rgba(80, 120, 200, 0.25);
    }
"""


def create_app_icon():
    """Create a simple blue hollow circle icon"""
    size = 64
    pixmap = QPixmap(size, size)
    pixmap.fill(Qt.GlobalColor.transparent)

    painter = QPainter(pixmap)
    painter.setRenderHint(QPainter.RenderHint.Antialiasing)

    # Hollow circle with a small filled "PiP" window in the corner
    pen = QPen(QColor(100, 150, 255), 6)
    painter.setPen(pen)
    painter.setBrush(Qt.BrushStyle.NoBrush)
    painter.drawEllipse(6, 6, size - 12, size - 12)
    painter.setBrush(QColor(100, 150, 255))
    painter.drawRect(34, 34, 12, 8)
    painter.end()

    return QIcon(pixmap)


def key_event_from_qt(event):
    """Translate a Qt key press into the page-style KeyEvent, None for bare modifiers"""
    key = int(event.key())
    if key in MODIFIER_QT_KEYS:
        return None

    if Qt.Key.Key_A.value <= key <= Qt.Key.Key_Z.value or Qt.Key.Key_0.value <= key <= Qt.Key.Key_9.value:
        name = chr(key)
    elif key in NAMED_KEY_VALUES:
        name = NAMED_KEY_VALUES[key]
    elif event.text() and event.text().isprintable():
        name = event.text()
    else:
        name = QKeySequence(key).toString()
    if not name:
        return None

    modifiers = event.modifiers()
    return KeyEvent(
        key=name,
        ctrl=bool(modifiers & Qt.KeyboardModifier.ControlModifier),
        alt=bool(modifiers & Qt.KeyboardModifier.AltModifier),
        shift=bool(modifiers & Qt.KeyboardModifier.ShiftModifier),
        meta=bool(modifiers & Qt.KeyboardModifier.MetaModifier),
    )


class SelectAllLineEdit(QLineEdit):
    """QLineEdit that selects all text on focus or click"""
    def focusInEvent(self, event):
        super().focusInEvent(event)
        self.selectAll()

    def mousePressEvent(self, event):
        super().mousePressEvent(event)
        self.selectAll()


class ShortcutEdit(QLineEdit):
    """Read-only field that records the next key combination pressed"""
    PROMPT = "Press keys..."

    def __init__(self, shortcut, parent=None):
        super().__init__(shortcut, parent)
        self.shortcut = shortcut
        self.setReadOnly(True)
        self.setPlaceholderText("Click to record...")

    def focusInEvent(self, event):
        super().focusInEvent(event)
        self.setText(self.PROMPT)

    def focusOutEvent(self, event):
        super().focusOutEvent(event)
        self.setText(self.shortcut)

    def keyPressEvent(self, event):
        if event.key() in (Qt.Key.Key_Backspace.value, Qt.Key.Key_Delete.value) and not event.modifiers():
            self.shortcut = ""
            self.clearFocus()
            return
        key_event = key_event_from_qt(event)
        if key_event is None:
            return
        self.shortcut = combo_from_event(key_event) or ""
        self.clearFocus()


class PipSettingsDialog(QDialog):
    """Settings dialog for auto-PiP, eligibility limits, button and boss key"""
    def __init__(self, parent, settings):
        super().__init__(parent)
        self.settings = settings
        self.setWindowTitle("PiP Configuration")
        self.setWindowIcon(create_app_icon())
        self.setMinimumWidth(560)
        self.setStyleSheet(DIALOG_STYLE)

        layout = QVBoxLayout()
        layout.setSpacing(10)
        layout.setContentsMargins(20, 20, 20, 20)

        title = QLabel("⚙️  PiP Configuration")
        title.setObjectName("title")
        layout.addWidget(title)

        columns = QHBoxLayout()
        columns.setSpacing(20)
        main_col = QVBoxLayout()
        side_col = QVBoxLayout()
        columns.addLayout(main_col, 2)
        columns.addLayout(side_col, 1)
        layout.addLayout(columns)

        # Automation & behavior
        main_col.addWidget(self._section("Automation & Behavior"))
        self.auto_enable = QCheckBox("Enable Auto-PiP on Tab Switch")
        self.auto_enable.setChecked(settings.auto_pip_enabled)
        main_col.addWidget(self.auto_enable)

        self.auto_delay = self._spin(0, 60000, 100, settings.auto_trigger_delay_ms)
        self.min_duration = self._spin(0, 86400, 1, int(settings.min_duration_seconds))
        main_col.addLayout(self._pair("Delay (ms)", self.auto_delay, "Min Duration (s)", self.min_duration))

        self.min_width = self._spin(50, 2000, 10, settings.min_width)
        self.min_height = self._spin(50, 2000, 10, settings.min_height)
        main_col.addLayout(self._pair("Min Width (px)", self.min_width, "Min Height (px)", self.min_height))

        # Appearance & control
        main_col.addWidget(self._section("Appearance & Control"))
        self.hide_when_active = QCheckBox("Hide Button When PiP is Active")
        self.hide_when_active.setChecked(settings.hide_button_while_active)
        main_col.addWidget(self.hide_when_active)

        self.opacity_label = QLabel()
        self.opacity = QSlider(Qt.Orientation.Horizontal)
        self.opacity.setRange(0, 10)
        self.opacity.setValue(round(settings.idle_opacity * 10))
        self.opacity.valueChanged.connect(self.update_opacity_label)
        self.update_opacity_label(self.opacity.value())
        main_col.addWidget(self.opacity_label)
        main_col.addWidget(self.opacity)

        self.seek = self._spin(1, 60, 1, settings.seek_interval_seconds)
        seek_row = QHBoxLayout()
        seek_row.addWidget(QLabel("Seek Interval (sec):"))
        seek_row.addWidget(self.seek)
        main_col.addLayout(seek_row)

        main_col.addWidget(QLabel("Boss Key Shortcut:"))
        self.shortcut = ShortcutEdit(settings.shortcut)
        main_col.addWidget(self.shortcut)

        # Button position grid, centre cell left empty
        side_col.addWidget(self._section("Button Position"))
        grid = QGridLayout()
        grid.setSpacing(4)
        self.position_group = QButtonGroup(self)
        self.position_group.setExclusive(True)
        for index, position in enumerate(BUTTON_POSITIONS):
            row, col = divmod(index, 3)
            if position == "mid-center":
                grid.addWidget(QLabel(""), row, col)
                continue
            cell = QPushButton()
            cell.setCheckable(True)
            cell.setFixedSize(36, 28)
            cell.setToolTip(position.replace("-", " "))
            cell.setProperty("position", position)
            cell.setChecked(position == settings.button_position)
            self.position_group.addButton(cell)
            grid.addWidget(cell, row, col)
        side_col.addLayout(grid)

        side_col.addWidget(self._section("Blacklist (one domain per line)"))
        self.blacklist = QPlainTextEdit(settings.blacklist_text())
        side_col.addWidget(self.blacklist, 1)

        buttons = QHBoxLayout()
        buttons.addStretch()
        cancel_btn = QPushButton("Cancel")
        cancel_btn.setCursor(Qt.CursorShape.PointingHandCursor)
        cancel_btn.clicked.connect(self.reject)
        save_btn = QPushButton("Save")
        save_btn.setCursor(Qt.CursorShape.PointingHandCursor)
        save_btn.setDefault(True)
        save_btn.clicked.connect(self.accept)
        buttons.addWidget(cancel_btn)
        buttons.addWidget(save_btn)
        layout.addLayout(buttons)

        self.setLayout(layout)

        # Center dialog on parent
        if parent:
            parent_geo = parent.geometry()
            self.adjustSize()
            dialog_x = parent_geo.x() + (parent_geo.width() - self.width()) // 2
            dialog_y = parent_geo.y() + (parent_geo.height() - self.height()) // 2
            self.move(dialog_x, dialog_y)

    @staticmethod
    def _section(text):
        label = QLabel(text)
        label.setObjectName("section")
        return label

    @staticmethod
    def _spin(minimum, maximum, step, value):
        spin = QSpinBox()
        spin.setRange(minimum, maximum)
        spin.setSingleStep(step)
        spin.setValue(max(minimum, min(maximum, int(value))))
        return spin

    @staticmethod
    def _pair(first_label, first, second_label, second):
        row = QHBoxLayout()
        for text, widget in ((first_label, first), (second_label, second)):
            column = QVBoxLayout()
            column.addWidget(QLabel(text))
            column.addWidget(widget)
            row.addLayout(column)
        return row

    def update_opacity_label(self, value):
        """Show the idle opacity next to the slider"""
        self.opacity_label.setText(f"Button Opacity (Idle): {value / 10:.1f}")

    def selected_position(self):
        checked = self.position_group.checkedButton()
        return checked.property("position") if checked else self.settings.button_position

    def result_settings(self):
        """Snapshot built from the dialog fields"""
        return replace(
            self.settings,
            auto_pip_enabled=self.auto_enable.isChecked(),
            auto_trigger_delay_ms=self.auto_delay.value(),
            min_duration_seconds=float(self.min_duration.value()),
            min_width=self.min_width.value(),
            min_height=self.min_height.value(),
            hide_button_while_active=self.hide_when_active.isChecked(),
            button_position=self.selected_position(),
            idle_opacity=self.opacity.value() / 10,
            seek_interval_seconds=self.seek.value(),
            shortcut=self.shortcut.shortcut,
            blacklist=parse_blacklist(self.blacklist.toPlainText()),
        )


class ToastLabel(QLabel):
    """Transient notice shown at the bottom of the browser window"""
    def __init__(self, parent):
        super().__init__(parent)
        self.setStyleSheet("""
            QLabel {
                background-color: rgba(30, 30, 46, 0.92);
                color: #cdd6f4;
                border: 1px solid #45475a;
                border-radius: 8px;
                padding: 8px 14px;
                font-family: 'Segoe UI', Arial;
            }
        """)
        self.setAttribute(Qt.WidgetAttribute.WA_TransparentForMouseEvents)
        self.hide()
        self.hide_timer = QTimer(self)
        self.hide_timer.setSingleShot(True)
        self.hide_timer.timeout.connect(self.hide)

    def show_message(self, message):
        """Show a message for a couple of seconds"""
        self.setText(message)
        self.adjustSize()
        parent = self.parentWidget()
        self.move((parent.width() - self.width()) // 2, parent.height() - self.height() - 24)
        self.raise_()
        self.show()
        self.hide_timer.start(TOAST_DURATION_MS)


class PIPVideoBrowser(QMainWindow):
    def __init__(self, start_url=None, config_dir=None):
        super().__init__()
        self.start_url = start_url
        self.config_dir = Path(config_dir) if config_dir else DEFAULT_CONFIG_DIR
        self.config_dir.mkdir(parents=True, exist_ok=True)
        self.store = SettingsStore(self.config_dir / "config.json")

        # Create persistent web engine profile for cookies and browser data
        storage_path = self.config_dir / "web_data"
        cache_path = self.config_dir / "cache"
        storage_path.mkdir(parents=True, exist_ok=True)
        cache_path.mkdir(parents=True, exist_ok=True)

        self.profile = QWebEngineProfile("pip_video_browser", None)
        self.profile.setPersistentStoragePath(str(storage_path))
        self.profile.setCachePath(str(cache_path))
        self.profile.setHttpUserAgent(
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
        )

        self.setWindowTitle("PIP Video Browser")
        self.setWindowIcon(create_app_icon())

        self.init_ui()
        self.load_state()

    def init_ui(self):
        """Initialize the user interface"""
        main_widget = QWidget()
        self.setCentralWidget(main_widget)

        main_layout = QVBoxLayout()
        main_layout.setContentsMargins(0, 0, 0, 0)
        main_layout.setSpacing(0)

        # Create web engine first (needed by control buttons and the bridge)
        self.web_view = QWebEngineView()
        page = QWebEnginePage(self.profile, self.web_view)
        page.settings().setAttribute(QWebEngineSettings.WebAttribute.FullScreenSupportEnabled, True)
        page.settings().setAttribute(QWebEngineSettings.WebAttribute.PlaybackRequiresUserGesture, False)
        page.fullScreenRequested.connect(self.handle_fullscreen_request)
        self.web_view.setPage(page)

        self.bridge = PageBridge(page, self.store, self)
        self.bridge.notice.connect(self.show_toast)
        self.bridge.settings_requested.connect(self.open_settings_dialog)

        # Control bar
        self.control_bar = QWidget()
        control_layout = QHBoxLayout(self.control_bar)
        control_layout.setContentsMargins(5, 5, 5, 5)
        control_layout.setSpacing(5)

        self.back_btn = self._control_button("◀", self.web_view.back)
        control_layout.addWidget(self.back_btn)
        self.forward_btn = self._control_button("▶", self.web_view.forward)
        control_layout.addWidget(self.forward_btn)
        self.refresh_btn = self._control_button("⟳", self.web_view.reload)
        control_layout.addWidget(self.refresh_btn)

        self.url_bar = SelectAllLineEdit()
        self.url_bar.setPlaceholderText("Enter URL...")
        self.url_bar.returnPressed.connect(self.navigate_to_url)
        self.url_bar.setStyleSheet("""
            QLineEdit {
                border-radius: 8px;
                padding: 5px;
                background-color: rgba(0, 0, 0, 0.7);
                color: white;
                border: none;
            }
            QLineEdit:hover {
                background-color: rgba(100, 150, 255, 0.15);
            }
            QLineEdit:focus {
                background-color: rgba(80, 120, 200, 0.25);
            }
        """)
        control_layout.addWidget(self.url_bar)

        self.pip_btn = self._control_button("⧉", self.toggle_pip)
        self.pip_btn.setToolTip("Toggle PiP for the best video")
        control_layout.addWidget(self.pip_btn)
        self.settings_btn = self._control_button("⚙️", self.open_settings_dialog)
        control_layout.addWidget(self.settings_btn)

        main_layout.addWidget(self.control_bar)

        # Loading progress bar (shown under control bar)
        self.progress_bar = QProgressBar()
        self.progress_bar.setMaximumHeight(3)
        self.progress_bar.setStyleSheet("""
            QProgressBar {
                border: none;
                background-color: transparent;
                margin: 0px;
                padding: 0px;
            }
            QProgressBar::chunk {
                background-color: rgba(100, 150, 255, 0.9);
            }
        """)
        self.progress_bar.hide()
        main_layout.addWidget(self.progress_bar)

        self.web_view.loadStarted.connect(self.on_load_started)
        self.web_view.loadProgress.connect(self.on_load_progress)
        self.web_view.loadFinished.connect(self.on_load_finished)
        self.web_view.urlChanged.connect(self.on_url_changed)

        main_layout.addWidget(self.web_view, 1)
        main_widget.setLayout(main_layout)

        self.toast = ToastLabel(main_widget)

    def _control_button(self, text, slot):
        button = QPushButton(text)
        button.setFixedWidth(30)
        button.setFixedHeight(30)
        button.setStyleSheet(BUTTON_STYLE)
        button.setCursor(Qt.CursorShape.PointingHandCursor)
        button.clicked.connect(slot)
        return button

    def on_load_started(self):
        """Handle page load started"""
        self.progress_bar.show()
        self.progress_bar.setValue(0)

    def on_load_progress(self, progress):
        """Handle page load progress"""
        self.progress_bar.setValue(progress)

    def on_load_finished(self):
        """Handle page load finished"""
        self.progress_bar.setValue(100)
        self.progress_bar.hide()

    def navigate_to_url(self):
        """Navigate to URL from address bar"""
        url = self.url_bar.text().strip()
        if not url:
            return

        # Check if it looks like a URL (contains a dot or is localhost)
        if "." in url or url.lower().startswith("localhost"):
            if not url.startswith(("http://", "https://")):
                url = "https://" + url
            self.web_view.setUrl(QUrl(url))
        else:
            search_url = f"https://www.google.com/search?q={url.replace(' ', '+')}"
            self.web_view.setUrl(QUrl(search_url))

    def on_url_changed(self):
        """Update URL bar when the web view's URL changes"""
        self.url_bar.setText(self.web_view.url().toString())

    def show_toast(self, message):
        self.toast.show_message(message)

    def toggle_pip(self):
        """Toolbar equivalent of the boss key"""
        self.bridge.engine.toggle_best()

    def open_settings_dialog(self):
        """Open the PiP settings dialog and apply the result on save"""
        dialog = PipSettingsDialog(self, self.bridge.engine.settings)
        if dialog.exec() != QDialog.DialogCode.Accepted:
            return
        if self.bridge.apply_settings(dialog.result_settings()):
            self.show_toast("Settings Saved Successfully")
        else:
            self.show_toast("Settings could not be saved")

    def changeEvent(self, event):
        """Report minimizing the window to the page as hidden"""
        super().changeEvent(event)
        if event.type() == QEvent.Type.WindowStateChange and hasattr(self, 'bridge'):
            minimized = bool(self.windowState() & Qt.WindowState.WindowMinimized)
            self.bridge.set_host_hidden(minimized)

    def handle_fullscreen_request(self, request):
        """Handle fullscreen requests from web content (YouTube, Netflix, etc.)"""
        request.accept()
        if request.toggleOn():
            self.control_bar.hide()
            self.showFullScreen()
        else:
            self.control_bar.show()
            self.showNormal()

    def save_state(self):
        """Persist window state to disk"""
        state = {
            "x": self.x(),
            "y": self.y(),
            "width": self.width(),
            "height": self.height(),
            "url": self.url_bar.text() or self.start_url or DEFAULT_START_URL,
        }
        try:
            self.store.save_window_state(state)
        except PersistenceFailure as e:
            logger.warning("Error saving window state: %s", e)

    def load_state(self):
        """Restore window state from disk"""
        state = self.store.load_window_state()
        try:
            self.move(int(state.get("x", 100)), int(state.get("y", 100)))
            self.resize(int(state.get("width", 1100)), int(state.get("height", 720)))
        except (TypeError, ValueError) as e:
            logger.warning("Error loading window state: %s", e)
            self.move(100, 100)
            self.resize(1100, 720)
        self.web_view.setUrl(QUrl(self.start_url or state.get("url") or DEFAULT_START_URL))

    def closeEvent(self, event):
        """Handle window close event"""
        self.save_state()
        self.bridge.engine.controller.reset()

        # Properly clean up web page before closing
        if hasattr(self, 'web_view') and self.web_view.page():
            self.web_view.setPage(None)
        event.accept()


def main():
    start_url = None
    debug = False

    # Parse command-line arguments
    for arg in sys.argv[1:]:
        if arg == "--debug":
            debug = True
        elif not arg.startswith("--"):
            start_url = arg

    log_file = setup_logging(debug=debug)
    logger.info("✓ PIP Video Browser starting, logging to %s", log_file)

    app = QApplication(sys.argv)
    app.setWindowIcon(create_app_icon())

    browser = PIPVideoBrowser(start_url)
    browser.show()
    sys.exit(app.exec())


if __name__ == "__main__":
    main()
