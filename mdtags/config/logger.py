import logging
import os
import threading
from functools import cache
from logging import Formatter
from pathlib import Path
from typing import Optional

import rich
from rich import reconfigure
from rich.console import Console
from rich.logging import RichHandler
from rich.theme import Theme

from mdtags.config.settings import global_settings, LogLevel
from mdtags.config.text_styles import EMOJI_ERROR, EMOJI_WARN, MdtagsHighlighter, RICH_STYLES

LOG_FILE_NAME = "mdtags.log"

_log_lock = threading.RLock()

_file_handler: Optional[logging.FileHandler] = None
_console_handler: Optional[RichHandler] = None


def log_dir() -> Optional[Path]:
    settings_dir = global_settings().log_dir
    return Path(settings_dir) if settings_dir else None


def log_file_path() -> Optional[Path]:
    directory = log_dir()
    return directory / LOG_FILE_NAME if directory else None


@cache
def get_highlighter():
    return MdtagsHighlighter()


@cache
def get_theme():
    return Theme(RICH_STYLES)


reconfigure(theme=get_theme(), highlighter=get_highlighter())


def get_console() -> Console:
    return rich.get_console()


def logging_setup():
    """
    Set up or reset logging setup. Replaces previous handlers on the mdtags logger,
    so it can be called again after settings change.
    """
    global _file_handler, _console_handler

    with _log_lock:
        logger = logging.getLogger("mdtags")
        for handler in logger.handlers[:]:
            logger.removeHandler(handler)
            handler.close()

        _console_handler = RichHandler(
            console=get_console(),
            level=global_settings().console_log_level.value,
            show_time=False,
            show_path=False,
            show_level=False,
            highlighter=get_highlighter(),
            markup=False,
        )
        _console_handler.setLevel(global_settings().console_log_level.value)
        _console_handler.setFormatter(Formatter("%(message)s"))
        logger.addHandler(_console_handler)

        # Verbose logging to file (if configured), important logging to console.
        file_path = log_file_path()
        if file_path:
            os.makedirs(file_path.parent, exist_ok=True)
            _file_handler = logging.FileHandler(file_path)
            _file_handler.setLevel(global_settings().file_log_level.value)
            _file_handler.setFormatter(
                Formatter("%(asctime)s %(levelname).1s %(name)s - %(message)s")
            )
            logger.addHandler(_file_handler)
        else:
            _file_handler = None

        logger.setLevel(
            min(
                global_settings().console_log_level.value,
                global_settings().file_log_level.value,
            )
        )
        logger.propagate = False


def prefix(line, emoji: str = "", warn_emoji: str = ""):
    emojis = f"{warn_emoji}{emoji}".strip()
    return " ".join(filter(None, [emojis, line]))


def prefix_args(args, emoji: str = "", warn_emoji: str = ""):
    if len(args) > 0:
        args = (prefix(args[0], emoji, warn_emoji),) + args[1:]
    return args


class CustomLogger:
    """
    Custom logger to be clearer about user messages.
    """

    def __init__(self, name: str):
        self.logger = logging.getLogger(name)

    def debug(self, *args, **kwargs):
        self.logger.debug(*prefix_args(args), **kwargs)

    def info(self, *args, **kwargs):
        self.logger.info(*prefix_args(args), **kwargs)

    def message(self, *args, **kwargs):
        self.logger.warning(*prefix_args(args), **kwargs)

    def warning(self, *args, **kwargs):
        self.logger.warning(*prefix_args(args, warn_emoji=EMOJI_WARN), **kwargs)

    def error(self, *args, **kwargs):
        self.logger.error(*prefix_args(args, warn_emoji=EMOJI_ERROR), **kwargs)

    def log(self, level: LogLevel, *args, **kwargs):
        getattr(self, level.name)(*args, **kwargs)

    # Fallback for other attributes/methods.
    def __getattr__(self, attr):
        return getattr(self.logger, attr)


def get_logger(name: str):
    return CustomLogger(name)


## Tests


def test_prefix_args():
    assert prefix_args(("Saved %s", "x.md"), warn_emoji=EMOJI_WARN) == (
        f"{EMOJI_WARN} Saved %s",
        "x.md",
    )
    assert prefix_args(()) == ()


def test_logging_setup_with_file(tmp_path):
    from mdtags.config.settings import update_global_settings

    with update_global_settings() as settings:
        old_dir = settings.log_dir
        settings.log_dir = tmp_path / "logs"
    try:
        logging_setup()
        get_logger("mdtags.test").info("Compiled %s fragments", 3)
        path = log_file_path()
        assert path is not None
        assert path.exists()
    finally:
        with update_global_settings() as settings:
            settings.log_dir = old_dir
        logging_setup()
