"""
Capture and playback controllers.
"""

from .capture import SpeechCaptureController, CaptureState
from .playback import PlaybackController

__all__ = ['SpeechCaptureController', 'CaptureState', 'PlaybackController']
