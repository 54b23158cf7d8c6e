"""
Provider implementations for the voice widget.
"""

from .chat import HttpChatService, MockChatService
from .voice import HttpVoiceService
from .recognition import AssemblyAIRecognitionEngine
from .synthesis import Pyttsx3Synthesizer
from .audio import FfplayAudioPlayer
from .storage import JsonFileStorage, MemoryStorage

__all__ = [
    'HttpChatService',
    'MockChatService',
    'HttpVoiceService',
    'AssemblyAIRecognitionEngine',
    'Pyttsx3Synthesizer',
    'FfplayAudioPlayer',
    'JsonFileStorage',
    'MemoryStorage'
]
