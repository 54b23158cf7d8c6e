# Utils package

from .logging_config import setup_logging, get_logger, ComponentLogger
from .error_handling import (
    ErrorCategory,
    ErrorSeverity,
    ErrorHandler,
    ComponentError,
    WidgetError,
    ConfigurationError,
    ServiceError,
    ServiceTimeoutError,
    ServiceHTTPError,
    ProtocolError,
    RecognitionError,
    MicrophonePermissionError,
    EngineUnsupportedError,
    PlaybackStartError,
    StorageUnavailableError,
    safe_cleanup,
)
from .state_machine import ConversationState, ConversationStateMachine, StateTransition

__all__ = [
    "setup_logging",
    "get_logger",
    "ComponentLogger",
    "ErrorCategory",
    "ErrorSeverity",
    "ErrorHandler",
    "ComponentError",
    "WidgetError",
    "ConfigurationError",
    "ServiceError",
    "ServiceTimeoutError",
    "ServiceHTTPError",
    "ProtocolError",
    "RecognitionError",
    "MicrophonePermissionError",
    "EngineUnsupportedError",
    "PlaybackStartError",
    "StorageUnavailableError",
    "safe_cleanup",
    "ConversationState",
    "ConversationStateMachine",
    "StateTransition",
]
