"""
Abstract interface for audio output.
"""

from abc import ABC, abstractmethod
from ..models.data_models import AudioOutput


class AudioPlayerInterface(ABC):
    """Plays synthesized audio on the output device."""

    @abstractmethod
    async def play(self, audio: AudioOutput) -> None:
        """
        Play audio and return when playback finishes or is stopped.

        Raises:
            PlaybackStartError: if playback could not start
            PlaybackInterruptedError: if output failed after it had started
        """
        pass

    @abstractmethod
    async def stop(self) -> None:
        """Stop playback immediately. Safe to call when idle."""
        pass

    @property
    @abstractmethod
    def is_playing(self) -> bool:
        pass

    async def cleanup(self) -> None:
        await self.stop()
