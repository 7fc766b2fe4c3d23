"""
Logging configuration with per-category levels.

Categories group the flat modules of the application so that the noisy
page bridge can be turned down without silencing the PiP engine.
"""
import logging
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from typing import Dict, Optional


class LoggerCategory:
    """Named categories for application loggers"""
    ENGINE = "engine"      # Session controller, eligibility, automation
    SETTINGS = "settings"  # Persisted configuration
    BRIDGE = "bridge"      # Page script bridge and page model
    UI = "ui"              # Browser window and dialogs


DEFAULT_LOG_LEVELS = {
    LoggerCategory.ENGINE: logging.INFO,
    LoggerCategory.SETTINGS: logging.INFO,
    LoggerCategory.BRIDGE: logging.WARNING,  # timeupdate traffic is chatty
    LoggerCategory.UI: logging.INFO,
}

MODULE_TO_CATEGORY = {
    "pip_capabilities": LoggerCategory.ENGINE,
    "pip_eligibility": LoggerCategory.ENGINE,
    "video_registry": LoggerCategory.ENGINE,
    "hover_overlay": LoggerCategory.ENGINE,
    "pip_session": LoggerCategory.ENGINE,
    "media_control_sync": LoggerCategory.ENGINE,
    "auto_pip": LoggerCategory.ENGINE,
    "pip_engine": LoggerCategory.ENGINE,
    "pip_settings": LoggerCategory.SETTINGS,
    "web_page_model": LoggerCategory.BRIDGE,
    "page_bridge": LoggerCategory.BRIDGE,
    "page_session": LoggerCategory.BRIDGE,
    "pip_video_browser": LoggerCategory.UI,
    "__main__": LoggerCategory.UI,
}

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def apply_category_levels(levels: Dict[str, int]):
    for module_name, category in MODULE_TO_CATEGORY.items():
        if category in levels:
            logging.getLogger(module_name).setLevel(levels[category])


def setup_logging(log_dir: Optional[Path] = None, debug: bool = False,
                  levels: Optional[Dict[str, int]] = None) -> Path:
    """
    Install console and rotating file handlers on the root logger.

    Args:
        log_dir: Directory for log files, defaults to ~/.pip_video_browser/logs
        debug: Log everything at DEBUG, overriding category levels
        levels: Per-category overrides

    Returns:
        Path of the log file
    """
    log_dir = log_dir or (Path.home() / ".pip_video_browser" / "logs")
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "pip_video_browser.log"

    formatter = logging.Formatter(LOG_FORMAT)

    file_handler = TimedRotatingFileHandler(
        log_file,
        when="midnight",
        interval=1,
        backupCount=7,
        encoding="utf-8",
    )
    file_handler.setFormatter(formatter)

    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG if debug else logging.INFO)
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
    root_logger.addHandler(file_handler)
    root_logger.addHandler(stream_handler)

    category_levels = dict(DEFAULT_LOG_LEVELS)
    category_levels.update(levels or {})
    if debug:
        category_levels = {category: logging.DEBUG for category in category_levels}
    apply_category_levels(category_levels)

    return log_file
