import threading
from contextlib import contextmanager
from enum import Enum
from logging import DEBUG, ERROR, INFO, WARNING
from pathlib import Path
from typing import Optional

from pydantic.dataclasses import dataclass

from mdtags.model.fragments_model import CompilationFormat


APP_NAME = "mdtags"

COMPILATIONS_DIR_NAME = "compilations"


class LogLevel(Enum):
    debug = DEBUG
    info = INFO
    warning = WARNING
    message = WARNING  # Same as warning, just for important console messages.
    error = ERROR

    @classmethod
    def parse(cls, level_str: str):
        canon_name = level_str.strip().lower()
        if canon_name == "warn":
            canon_name = "warning"
        try:
            return cls[canon_name]
        except KeyError:
            raise ValueError(
                f"Invalid log level: `{level_str}`. Valid options are: {', '.join(f'`{name}`' for name in cls.__members__)}"
            )

    def __str__(self):
        return self.name


@dataclass
class Settings:
    console_log_level: LogLevel
    """The log level for console-based logging."""

    file_log_level: LogLevel
    """The log level for file-based logging."""

    log_dir: Optional[Path]
    """If set, logs are also written to a file in this directory."""

    compilations_dir: str
    """Directory (relative to the notes root) for compilations with no explicit output."""

    default_format: CompilationFormat
    """Layout used when a compilation doesn't ask for one."""

    include_context: bool
    """Whether compilations include the originating section heading by default."""

    recursive: bool
    """Whether note discovery descends into subdirectories by default."""


# Initial default settings.
_settings = Settings(
    console_log_level=LogLevel.warning,
    file_log_level=LogLevel.info,
    log_dir=None,
    compilations_dir=COMPILATIONS_DIR_NAME,
    default_format=CompilationFormat.chronological,
    include_context=False,
    recursive=False,
)


def global_settings() -> Settings:
    """
    Read access to global settings.
    """
    return _settings


_settings_lock = threading.RLock()


@contextmanager
def update_global_settings():
    """
    Context manager for thread-safe updates to global settings.
    """
    with _settings_lock:
        yield _settings


## Tests


def test_log_level_parse():
    import pytest

    assert LogLevel.parse("WARN") == LogLevel.warning
    assert LogLevel.parse(" debug ") == LogLevel.debug
    with pytest.raises(ValueError):
        LogLevel.parse("loud")


def test_update_global_settings():
    original = global_settings().include_context
    with update_global_settings() as settings:
        settings.include_context = not original
    assert global_settings().include_context is (not original)
    with update_global_settings() as settings:
        settings.include_context = original
