"""
Unified logging setup.
Configures loguru once: colorized console output plus a rotating debug log file.
"""
from typing import Optional
from loguru import logger
import sys

from cinegrade.config import get_app_dir


def get_log_file_path() -> str:
    """Log file path under the application directory"""
    log_dir = get_app_dir() / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)
    return str(log_dir / "cinegrade.log")


_configured = False


def setup_logging(console_level: str = "INFO", log_to_file: bool = True) -> None:
    """Install the console and file sinks. Safe to call more than once."""
    global _configured
    if _configured:
        return

    logger.remove()

    # Console only when a stderr exists (frozen GUI builds have none)
    if sys.stderr is not None:
        logger.add(
            sys.stderr,
            format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | <level>{message}</level>",
            level=console_level,
            colorize=True
        )

    if log_to_file:
        logger.add(
            get_log_file_path(),
            format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {message}",
            level="DEBUG",
            rotation="1 day",
            retention="7 days",
            compression="zip",
            encoding="utf-8",
            enqueue=True
        )
    _configured = True


class LoguruHandler:
    """
    Thin wrapper that prefixes every message with a file identifier,
    so interleaved batch output stays attributable.
    """

    def __init__(self, file_id: Optional[str] = None):
        self.file_id = file_id

    def _format_message(self, message: str) -> str:
        if self.file_id:
            return f"[{self.file_id}] {message}"
        return message

    def _output(self, message: str, level: str = "INFO"):
        logger.log(level, self._format_message(message))

    def log(self, message: str, level: str = "INFO"):
        self._output(message, level.upper())

    def info(self, message: str):
        self._output(message, "INFO")

    def error(self, message: str):
        self._output(message, "ERROR")

    def success(self, message: str):
        self._output(message, "SUCCESS")

    def warning(self, message: str):
        self._output(message, "WARNING")

    def debug(self, message: str):
        self._output(message, "DEBUG")


def create_logger(file_id: Optional[str] = None) -> LoguruHandler:
    """Factory for a file-scoped log handler."""
    return LoguruHandler(file_id)


Logger = LoguruHandler
