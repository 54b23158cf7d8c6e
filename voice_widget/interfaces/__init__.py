"""
Abstract interfaces for the widget session collaborators.
"""

from .recognition import SpeechRecognitionInterface
from .chat import ChatServiceInterface
from .voice import VoiceServiceInterface
from .synthesis import OnDeviceSynthesizerInterface
from .audio_player import AudioPlayerInterface
from .storage import KeyValueStorageInterface

__all__ = [
    'SpeechRecognitionInterface',
    'ChatServiceInterface',
    'VoiceServiceInterface',
    'OnDeviceSynthesizerInterface',
    'AudioPlayerInterface',
    'KeyValueStorageInterface'
]
