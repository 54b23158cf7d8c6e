"""
Structured logging configuration for the voice widget.
"""

import logging
import sys
from typing import Optional
from pathlib import Path
from datetime import datetime


LOGGER_NAME = 'voice_widget'


class StructuredFormatter(logging.Formatter):
    """Formatter with timestamp, level and component columns."""

    # ANSI color codes
    COLORS = {
        'DEBUG': '\033[36m',     # Cyan
        'INFO': '\033[32m',      # Green
        'WARNING': '\033[33m',   # Yellow
        'ERROR': '\033[31m',     # Red
        'CRITICAL': '\033[35m',  # Magenta
        'RESET': '\033[0m'
    }

    EMOJIS = {
        'DEBUG': '🔍',
        'INFO': 'ℹ️ ',
        'WARNING': '⚠️ ',
        'ERROR': '❌',
        'CRITICAL': '💀'
    }

    def __init__(self, use_colors: bool = True, use_emojis: bool = True):
        super().__init__()
        self.use_colors = use_colors
        self.use_emojis = use_emojis

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created).strftime('%H:%M:%S.%f')[:-3]

        level = record.levelname
        if self.use_emojis:
            level_str = f"{self.EMOJIS.get(level, '')} {level}"
        else:
            level_str = level

        if self.use_colors and sys.stdout.isatty():
            color = self.COLORS.get(level, '')
            reset = self.COLORS['RESET']
            level_str = f"{color}{level_str}{reset}"

        # Component comes from ComponentLogger's extra context
        component = getattr(record, 'component', 'general')
        session = getattr(record, 'session_id', None)

        parts = [
            f"[{timestamp}]",
            f"[{level_str:15}]",
            f"[{component:13}]",
        ]
        if session:
            parts.append(f"[{session}]")
        parts.append(record.getMessage())

        if record.exc_info:
            parts.append('\n' + self.formatException(record.exc_info))

        return ' '.join(parts)


class ComponentLogger:
    """
    Logger wrapper that tags every record with a component name.

    An optional session id is attached as well so that log lines from
    several widget instances in one process can be told apart.
    """

    def __init__(self, logger: logging.Logger, component: str, session_id: Optional[str] = None):
        self.logger = logger
        self.component = component
        self.session_id = session_id

    def bind(self, session_id: str) -> 'ComponentLogger':
        """Return a copy of this logger tagged with a session id."""
        return ComponentLogger(self.logger, self.component, session_id)

    def _log(self, level: int, msg: str, *args, **kwargs):
        extra = kwargs.get('extra', {})
        extra['component'] = self.component
        if self.session_id:
            extra['session_id'] = self.session_id
        kwargs['extra'] = extra
        self.logger.log(level, msg, *args, **kwargs)

    def debug(self, msg: str, *args, **kwargs):
        self._log(logging.DEBUG, msg, *args, **kwargs)

    def info(self, msg: str, *args, **kwargs):
        self._log(logging.INFO, msg, *args, **kwargs)

    def warning(self, msg: str, *args, **kwargs):
        self._log(logging.WARNING, msg, *args, **kwargs)

    def error(self, msg: str, *args, **kwargs):
        self._log(logging.ERROR, msg, *args, **kwargs)

    def critical(self, msg: str, *args, **kwargs):
        self._log(logging.CRITICAL, msg, *args, **kwargs)

    def exception(self, msg: str, *args, **kwargs):
        """Log error with traceback."""
        kwargs['exc_info'] = True
        self._log(logging.ERROR, msg, *args, **kwargs)


def setup_logging(
    level: str = "INFO",
    log_file: Optional[Path] = None,
    use_colors: bool = True,
    use_emojis: bool = True
) -> logging.Logger:
    """
    Setup structured logging for the widget.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional file path to write logs to
        use_colors: Use ANSI colors in console output
        use_emojis: Use emojis in console output

    Returns:
        Configured package logger
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, level.upper()))

    # Remove existing handlers so repeated setup does not duplicate output
    logger.handlers = []

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.DEBUG)
    console_handler.setFormatter(
        StructuredFormatter(use_colors=use_colors, use_emojis=use_emojis)
    )
    logger.addHandler(console_handler)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG)
        # File logs without colors/emojis
        file_handler.setFormatter(
            StructuredFormatter(use_colors=False, use_emojis=False)
        )
        logger.addHandler(file_handler)

    return logger


def get_logger(component: str) -> ComponentLogger:
    """
    Get a component-specific logger.

    Args:
        component: Component name (e.g., "capture", "playback")
    """
    return ComponentLogger(logging.getLogger(LOGGER_NAME), component)
