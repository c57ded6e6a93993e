"""Logging configuration and setup utilities."""

import logging
import os
import sys
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any, Optional, Union

if TYPE_CHECKING:
    from ..config.settings import PhotoFrameSettings

# Custom log level between INFO(20) and DEBUG(10)
VERBOSE = 15
logging.addLevelName(VERBOSE, "VERBOSE")


def verbose(self: logging.Logger, message: Any, *args: Any, **kwargs: Any) -> None:
    """Log at VERBOSE level: per-request detail without DEBUG noise.

    Example:
        >>> logger.verbose(f"Selected {item_ids}")
    """
    if self.isEnabledFor(VERBOSE):
        self._log(VERBOSE, message, args, **kwargs)


logging.Logger.verbose = verbose  # type: ignore[attr-defined]

THIRD_PARTY_LOGGERS = ("PIL", "urllib3")

logger = logging.getLogger(__name__)


def get_log_level(level_name: str) -> int:
    """Get numeric log level from string name, including custom VERBOSE level.

    Args:
        level_name: Log level name (DEBUG, VERBOSE, INFO, WARNING, ERROR, CRITICAL)

    Returns:
        Numeric log level value

    Raises:
        AttributeError: If level name is not recognized
    """
    level_name = level_name.upper()
    if level_name == "VERBOSE":
        return VERBOSE
    level: int = getattr(logging, level_name)
    return level


# ANSI SGR codes per level
LEVEL_COLORS = {
    logging.DEBUG: "35",
    VERBOSE: "32",
    logging.INFO: "34",
    logging.WARNING: "33",
    logging.ERROR: "31",
    logging.CRITICAL: "1;31",
}


def supports_color(stream: Any) -> bool:
    """Whether `stream` is a terminal that renders ANSI colours."""
    if os.environ.get("NO_COLOR"):
        return False
    isatty = getattr(stream, "isatty", None)
    if isatty is None or not isatty():
        return False
    return os.environ.get("TERM", "").lower() not in ("", "dumb")


class ColoredFormatter(logging.Formatter):
    """Formatter that colours the level name of each record."""

    def __init__(
        self, fmt: Optional[str] = None, datefmt: Optional[str] = None, use_colors: bool = True
    ) -> None:
        super().__init__(fmt, datefmt)
        self.use_colors = use_colors

    def format(self, record: logging.LogRecord) -> str:
        formatted = super().format(record)
        code = LEVEL_COLORS.get(record.levelno)
        if not self.use_colors or code is None:
            return formatted
        return formatted.replace(record.levelname, f"\033[{code}m{record.levelname}\033[0m", 1)


class RunLogFileHandler(logging.FileHandler):
    """File handler writing one `<prefix>_<YYYYmmdd_HHMMSS>.log` per process run.

    Older run files with the same prefix are pruned so that at most `keep`
    remain, including the new one.
    """

    def __init__(self, log_dir: Union[str, Path], prefix: str = "photoframe", keep: int = 5) -> None:
        self.log_dir = Path(log_dir)
        self.prefix = prefix
        self.keep = keep

        self.log_dir.mkdir(parents=True, exist_ok=True)
        started = datetime.now().strftime("%Y%m%d_%H%M%S")
        super().__init__(str(self.log_dir / f"{prefix}_{started}.log"), encoding="utf-8")

        self.prune()

    def run_files(self) -> list[Path]:
        """Run files for this prefix, newest first; names sort by start time."""
        return sorted(self.log_dir.glob(f"{self.prefix}_*.log"), reverse=True)

    def prune(self) -> list[Path]:
        """Delete all but the newest `keep` run files and return what was removed."""
        removed = []
        for stale in self.run_files()[self.keep :]:
            try:
                stale.unlink()
            except FileNotFoundError:
                continue
            except OSError as e:
                logger.warning(f"Could not remove old log file {stale}: {e}")
                continue
            removed.append(stale)
        return removed


def get_logger(name: str) -> logging.Logger:
    """Get a logger inside the `photoframe` namespace.

    Args:
        name: Logger name, typically the module's __name__ value
    """
    if name == "photoframe" or name.startswith("photoframe."):
        return logging.getLogger(name)
    return logging.getLogger(f"photoframe.{name}")


def setup_logging(settings: "PhotoFrameSettings") -> logging.Logger:
    """Configure the `photoframe` logger from settings.

    Returns:
        The configured package logger
    """
    package_logger = logging.getLogger("photoframe")
    package_logger.setLevel(logging.DEBUG)  # handlers filter
    package_logger.propagate = False

    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
        handler.close()

    console_handler = logging.StreamHandler()
    console_handler.setLevel(get_log_level(settings.logging.console_level))
    console_handler.setFormatter(
        ColoredFormatter(
            "%(asctime)s - %(levelname)s - [%(threadName)s] %(message)s",
            datefmt="%H:%M:%S",
            use_colors=settings.logging.console_colors and supports_color(console_handler.stream),
        )
    )
    package_logger.addHandler(console_handler)

    if settings.logging.file_enabled:
        if settings.logging.file_directory:
            log_dir = Path(settings.logging.file_directory)
        else:
            log_dir = settings.data_dir / "logs"

        file_handler = RunLogFileHandler(
            log_dir, prefix=settings.logging.file_prefix, keep=settings.logging.max_log_files
        )
        file_handler.setLevel(get_log_level(settings.logging.file_level))
        file_handler.setFormatter(
            logging.Formatter(
                "%(asctime)s - %(name)s - %(levelname)s - [%(threadName)s] "
                "%(funcName)s:%(lineno)d - %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        package_logger.addHandler(file_handler)
        package_logger.info(f"Logging to file: {file_handler.baseFilename}")

    third_party_level = get_log_level(settings.logging.third_party_level)
    for lib in THIRD_PARTY_LOGGERS:
        logging.getLogger(lib).setLevel(third_party_level)

    return package_logger


def apply_command_line_overrides(settings: "PhotoFrameSettings", args: Any) -> "PhotoFrameSettings":
    """Apply command-line logging overrides; command line beats every other source."""
    if getattr(args, "log_level", None):
        settings.logging.console_level = args.log_level
        settings.logging.file_level = args.log_level

    if getattr(args, "verbose", False):
        settings.logging.console_level = "VERBOSE"
        settings.logging.file_level = "VERBOSE"

    if getattr(args, "quiet", False):
        settings.logging.console_level = "ERROR"

    if getattr(args, "log_dir", None):
        settings.logging.file_enabled = True
        settings.logging.file_directory = args.log_dir

    if getattr(args, "no_log_colors", False):
        settings.logging.console_colors = False

    return settings
