"""
Logging for RagBot.

Every named logger gets two handlers: a console handler that prints through
prompt_toolkit (colored when stderr is a terminal) and a rotating file handler
shared by the whole process. Importing this module also quiets the chatty
discord/websocket loggers and installs :func:`handle_exception` as the
uncaught exception hook.
"""

import logging
from logging.handlers import RotatingFileHandler
import sys
from pathlib import Path
from datetime import datetime
from prompt_toolkit import print_formatted_text
from prompt_toolkit.formatted_text import ANSI

LOGS_DIR: Path = (Path(__file__).parents[3] / "logs").resolve()
LOGS_DIR.mkdir(parents=True, exist_ok=True)

LOG_FORMAT: str = "[%(asctime)s] [%(levelname)s] [%(name)s:%(funcName)s:%(lineno)d] %(message)s"
DATE_FORMAT: str = "%Y-%m-%d %H-%M-%S"

LOG_MAX_BYTES: int = 5 * 1024 * 1024
LOG_BACKUP_COUNT: int = 3

# A bot restarted within this many seconds keeps writing to the same file.
SESSION_REUSE_SECONDS: float = 60.0

LOG_COLORS = {
    "DEBUG": "\033[36m",
    "INFO": "\033[32m",
    "WARNING": "\033[33m",
    "ERROR": "\033[31m",
    "CRITICAL": "\033[38;5;88m",
}
RESET_COLOR = "\033[0m"

NOISY_LOGGERS = (
    "discord",
    "discord.client",
    "discord.gateway",
    "discord.http",
    "websockets",
    "aiohttp",
)

_session_log_path: Path | None = None


class ColorFormatter(logging.Formatter):
    """Formatter that tints the whole line by level name; unknown levels stay plain."""

    def format(self, record: logging.LogRecord) -> str:
        text = super().format(record)
        color = LOG_COLORS.get(record.levelname)
        if not color:
            return text
        return f"{color}{text}{RESET_COLOR}"


class PromptToolkitHandler(logging.Handler):
    """Console handler that writes with ``print_formatted_text``.

    prompt_toolkit redraws around its own output, so log lines do not land in
    the middle of whatever the operator is typing.
    """

    def __init__(self, formatter: logging.Formatter | None = None):
        super().__init__()
        if formatter:
            self.setFormatter(formatter)

    def emit(self, record: logging.LogRecord) -> None:
        try:
            print_formatted_text(ANSI(self.format(record)))
        except Exception:
            self.handleError(record)


def should_use_color() -> bool:
    """True if stderr is an interactive terminal."""
    try:
        return sys.stderr.isatty()
    except Exception:
        return False


plain_formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
color_formatter = ColorFormatter(LOG_FORMAT, datefmt=DATE_FORMAT) if should_use_color() else plain_formatter


def _recent_log_from_today() -> Path | None:
    candidates = list(LOGS_DIR.glob(f"{datetime.now():%Y-%m-%d}*.log"))
    if not candidates:
        return None
    newest = max(candidates, key=lambda path: path.stat().st_mtime)
    age = datetime.now().timestamp() - newest.stat().st_mtime
    return newest if age < SESSION_REUSE_SECONDS else None


def get_log_filepath() -> Path:
    """Return the file this process logs to, choosing it on first call.

    Returns:
        Path: A log from today touched less than ``SESSION_REUSE_SECONDS``
        ago, or a fresh ``<timestamp>.log`` in :data:`LOGS_DIR`.
    """
    global _session_log_path

    if _session_log_path is None:
        _session_log_path = _recent_log_from_today() or LOGS_DIR / f"{datetime.now().strftime(DATE_FORMAT)}.log"
    return _session_log_path


def _console_handler() -> logging.Handler:
    handler = PromptToolkitHandler(formatter=color_formatter)
    handler.setLevel(logging.INFO)
    return handler


def _file_handler() -> logging.Handler:
    handler = RotatingFileHandler(
        get_log_filepath(),
        maxBytes=LOG_MAX_BYTES,
        backupCount=LOG_BACKUP_COUNT,
        encoding="utf-8",
    )
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(plain_formatter)
    return handler


def setup_logger(logger_name: str) -> logging.Logger:
    """Attach the console and file handlers to ``logger_name``.

    The console shows INFO and above; the file keeps everything down to DEBUG.
    A logger that already has handlers is returned untouched.
    """
    logger = logging.getLogger(logger_name)
    if logger.handlers:
        return logger

    logger.setLevel(logging.DEBUG)
    logger.propagate = False
    logger.addHandler(_console_handler())
    logger.addHandler(_file_handler())
    return logger


def get_logger(logger_name: str) -> logging.Logger:
    return setup_logger(logger_name)


def handle_exception(exception_type, exception_instance, exception_traceback) -> None:
    """``sys.excepthook`` replacement; Ctrl+C still goes to the default hook."""
    if issubclass(exception_type, KeyboardInterrupt):
        sys.__excepthook__(exception_type, exception_instance, exception_traceback)
        return
    logging.error("Uncaught exception", exc_info=(exception_type, exception_instance, exception_traceback))


def _silence_noisy_loggers() -> None:
    for name in NOISY_LOGGERS:
        noisy = logging.getLogger(name)
        noisy.setLevel(logging.ERROR)
        noisy.propagate = False
        noisy.handlers = []


_silence_noisy_loggers()
sys.excepthook = handle_exception
