"""
Data models for the widget session.
"""

from .data_models import (
    Role,
    ConversationMode,
    AudioFormat,
    Turn,
    VoiceSettings,
    RecognitionResult,
    AudioOutput,
    ChatRequest
)

__all__ = [
    'Role',
    'ConversationMode',
    'AudioFormat',
    'Turn',
    'VoiceSettings',
    'RecognitionResult',
    'AudioOutput',
    'ChatRequest'
]
