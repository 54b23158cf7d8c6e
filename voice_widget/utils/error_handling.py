"""
Error taxonomy and structured error handling for the widget session.
"""

import traceback
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Callable, Dict, Any, List
from datetime import datetime

from .logging_config import get_logger


logger = get_logger("errors")


class ErrorCategory(Enum):
    """Where an error came from, as seen by the user."""
    CONFIGURATION = "configuration"  # Widget cannot talk to anything
    TRANSIENT = "transient"          # Network hiccup, timeout, 5xx
    PERMISSION = "permission"        # Microphone denied / engine missing
    PROTOCOL = "protocol"            # Backend answered with the wrong shape


class ErrorSeverity(Enum):
    """Error severity levels."""
    WARNING = "warning"          # Log and continue
    RECOVERABLE = "recoverable"  # Converge back to idle
    FATAL = "fatal"              # Component must stop


class WidgetError(Exception):
    """Base class for every error raised by the widget session."""

    category = ErrorCategory.TRANSIENT


class ConfigurationError(WidgetError):
    """Required configuration (such as the business id) is missing."""

    category = ErrorCategory.CONFIGURATION


class StorageUnavailableError(WidgetError):
    """Durable client storage cannot be read or written."""


class ServiceError(WidgetError):
    """A remote service call failed in transit."""


class ServiceTimeoutError(ServiceError):
    """A remote service call exceeded its deadline."""


class ServiceHTTPError(ServiceError):
    """A remote service answered with a non-2xx status."""

    def __init__(self, status: int, message: str = ""):
        self.status = status
        super().__init__(f"HTTP {status}: {message}" if message else f"HTTP {status}")


class ProtocolError(WidgetError):
    """A remote service answered with an unexpected body."""

    category = ErrorCategory.PROTOCOL


class RecognitionError(WidgetError):
    """
    Speech recognition engine error.

    ``code`` uses the engine's vocabulary: ``no-speech``, ``audio-capture``,
    ``network``, ``aborted``, ``not-allowed``, ``service-not-allowed``,
    ``unsupported``.
    """

    TEMPORARY_CODES = frozenset({'no-speech', 'audio-capture', 'aborted'})
    DISABLING_CODES = frozenset({'not-allowed', 'service-not-allowed', 'unsupported'})

    def __init__(self, code: str, message: str = ""):
        self.code = code
        super().__init__(message or code)

    @property
    def is_temporary(self) -> bool:
        return self.code in self.TEMPORARY_CODES

    @property
    def is_disabling(self) -> bool:
        return self.code in self.DISABLING_CODES


class MicrophonePermissionError(RecognitionError):
    """Microphone access was refused."""

    category = ErrorCategory.PERMISSION

    def __init__(self, message: str = "Microphone access denied"):
        super().__init__('not-allowed', message)


class EngineUnsupportedError(RecognitionError):
    """No speech recognition engine is available on this platform."""

    category = ErrorCategory.PERMISSION

    def __init__(self, message: str = "Speech recognition not supported"):
        super().__init__('service-not-allowed', message)


class PlaybackStartError(WidgetError):
    """Audio output could not be started (missing player, blocked device)."""


class PlaybackInterruptedError(WidgetError):
    """Audio output failed after the listener had already heard part of it."""


@dataclass
class ComponentError:
    """Structured error information."""
    component: str
    severity: ErrorSeverity
    message: str
    category: ErrorCategory = ErrorCategory.TRANSIENT
    exception: Optional[BaseException] = None
    context: Dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=lambda: datetime.now().timestamp())
    traceback_str: Optional[str] = None

    def __post_init__(self):
        """Capture traceback if exception provided."""
        if self.exception is not None and not self.traceback_str:
            self.traceback_str = ''.join(
                traceback.format_exception(
                    type(self.exception),
                    self.exception,
                    self.exception.__traceback__
                )
            )

    @classmethod
    def from_exception(cls,
                       component: str,
                       exc: BaseException,
                       severity: ErrorSeverity = ErrorSeverity.RECOVERABLE,
                       message: Optional[str] = None,
                       **context) -> 'ComponentError':
        category = getattr(exc, 'category', ErrorCategory.TRANSIENT)
        return cls(
            component=component,
            severity=severity,
            message=message or str(exc) or type(exc).__name__,
            category=category,
            exception=exc,
            context=context
        )


class ErrorHandler:
    """
    Centralized error bookkeeping for one widget session.

    Features:
    - Severity-based logging
    - Distinct tagging of protocol errors for operators
    - Bounded error history with a summary view
    """

    def __init__(self, max_history: int = 100):
        self._error_log: List[ComponentError] = []
        self._max_history = max_history

    async def handle_error(self, error: ComponentError) -> bool:
        """
        Record and log an error.

        Returns:
            False if the error is fatal for its component
        """
        self._error_log.append(error)
        if len(self._error_log) > self._max_history:
            self._error_log.pop(0)

        self._log(error)

        return error.severity != ErrorSeverity.FATAL

    def _log(self, error: ComponentError) -> None:
        tag = f"[{error.category.value}]"
        text = f"{tag} {error.component}: {error.message}"
        if error.category == ErrorCategory.PROTOCOL:
            # Protocol errors mean the backend contract drifted
            logger.error(f"{text} (context={error.context})")
        elif error.severity == ErrorSeverity.FATAL:
            logger.critical(text)
            if error.traceback_str:
                logger.debug(error.traceback_str)
        elif error.severity == ErrorSeverity.RECOVERABLE:
            logger.warning(text)
        else:
            logger.info(text)

    def get_error_history(self,
                          component: Optional[str] = None,
                          category: Optional[ErrorCategory] = None) -> List[ComponentError]:
        """Get error history, optionally filtered by component or category."""
        errors = self._error_log
        if component:
            errors = [e for e in errors if e.component == component]
        if category:
            errors = [e for e in errors if e.category == category]
        return list(errors)

    def get_error_summary(self) -> Dict[str, Any]:
        """Get summary of errors."""
        summary = {
            'total_errors': len(self._error_log),
            'by_severity': {},
            'by_category': {},
            'by_component': {}
        }

        for error in self._error_log:
            severity = error.severity.value
            summary['by_severity'][severity] = summary['by_severity'].get(severity, 0) + 1

            category = error.category.value
            summary['by_category'][category] = summary['by_category'].get(category, 0) + 1

            component = error.component
            summary['by_component'][component] = summary['by_component'].get(component, 0) + 1

        return summary


async def safe_cleanup(*cleanup_funcs: Callable):
    """
    Run multiple async cleanup functions, ensuring all run even if some fail.
    """
    errors = []

    for func in cleanup_funcs:
        try:
            await func()
        except Exception as e:
            name = getattr(func, '__name__', repr(func))
            errors.append((name, e))
            logger.warning(f"Cleanup error in {name}: {e}")

    if errors:
        logger.warning(f"{len(errors)} cleanup errors occurred")
    return errors
