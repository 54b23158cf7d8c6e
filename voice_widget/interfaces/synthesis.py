"""
Abstract interface for on-device speech synthesizers.
"""

from abc import ABC, abstractmethod
from typing import Optional
from ..models.data_models import VoiceSettings


class OnDeviceSynthesizerInterface(ABC):
    """Local speech engine used when remote synthesis is unavailable."""

    @abstractmethod
    async def initialize(self) -> bool:
        pass

    @abstractmethod
    async def speak(self,
                    text: str,
                    settings: VoiceSettings,
                    voice_hint: Optional[str] = None) -> None:
        """
        Speak text and return when the utterance has finished.

        Args:
            text: Text to speak
            settings: Current voice settings (mapped to rate/voice/pitch)
            voice_hint: Optional locale suggested by the voice service
        """
        pass

    @abstractmethod
    async def stop(self) -> None:
        """Cancel the current utterance. Safe to call when idle."""
        pass

    @abstractmethod
    async def cleanup(self) -> None:
        pass
