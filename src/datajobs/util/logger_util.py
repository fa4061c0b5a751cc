import copy
import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from typing import Iterable, Optional

CONSOLE_FORMAT = "%(asctime)s[%(levelname)s] %(name)s - %(message)s"
CONSOLE_DATE_FORMAT = "%H:%M:%S"
FILE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(filename)s:%(lineno)d - %(message)s"

# Timer and SQL chatter drowns out job progress at INFO.
NOISY_LOGGERS = ("apscheduler", "sqlalchemy", "tenacity")

_logger_initialized = False


class ColoredFormatter(logging.Formatter):
    """Console formatter that wraps the level name in ANSI colors."""
    COLORS = {
        "DEBUG": "\033[0;36m",  # CYAN
        "INFO": "\033[0;32m",  # GREEN
        "WARNING": "\033[0;33m",  # YELLOW
        "ERROR": "\033[0;31m",  # RED
        "CRITICAL": "\033[0;37;41m",  # WHITE ON RED
    }
    RESET = "\033[0m"

    def format(self, record):
        colored = copy.copy(record)
        seq = self.COLORS.get(colored.levelname)
        if seq:
            colored.levelname = f"{seq}{colored.levelname}{self.RESET}"
        return super().format(colored)


def _console_handler(level: int, use_colors: bool) -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    formatter_cls = ColoredFormatter if use_colors else logging.Formatter
    handler.setFormatter(formatter_cls(CONSOLE_FORMAT, datefmt=CONSOLE_DATE_FORMAT))
    return handler


def _file_handler(path: str, level: int) -> logging.Handler:
    log_dir = os.path.dirname(path)
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
    handler = RotatingFileHandler(
        path,
        maxBytes=1024 * 1024 * 5,  # 5 MB
        backupCount=5,
        encoding="utf-8",
    )
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(FILE_FORMAT))
    return handler


def setup_logging(log_file_path: Optional[str] = "log/datajobs.log",
                  use_colors: bool = True,
                  console_level: int = logging.INFO,
                  file_level: int = logging.DEBUG,
                  quiet: Iterable[str] = NOISY_LOGGERS):
    """
    Routes every logger to the console and, when `log_file_path` is set, to
    a rotating file. Called once by the entry point; repeated calls are no-ops.
    """
    global _logger_initialized
    if _logger_initialized:
        return

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    root_logger.addHandler(_console_handler(console_level, use_colors))
    if log_file_path:
        root_logger.addHandler(_file_handler(log_file_path, file_level))

    for name in quiet:
        logging.getLogger(name).setLevel(logging.WARNING)

    _logger_initialized = True
    get_logger(__name__).info(f"Logging initialized (file: {log_file_path or 'disabled'}).")


def get_logger(name):
    return logging.getLogger(name)
