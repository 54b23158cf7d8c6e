"""
Abstract interface for the remote voice synthesis service.
"""

from abc import ABC, abstractmethod
from ..models.data_models import AudioOutput, VoiceSettings


class VoiceServiceInterface(ABC):
    """Abstract base class for remote text-to-speech backends."""

    @abstractmethod
    async def initialize(self) -> bool:
        pass

    @abstractmethod
    async def synthesize(self, text: str, settings: VoiceSettings) -> AudioOutput:
        """
        Request synthesized audio.

        Returns:
            AudioOutput: playable audio, or an empty AudioOutput when the
            service asks the client to use on-device synthesis

        Raises:
            ServiceError: transport failure, timeout or non-2xx status
            ProtocolError: response is neither audio nor JSON
        """
        pass

    @abstractmethod
    async def cleanup(self) -> None:
        pass
