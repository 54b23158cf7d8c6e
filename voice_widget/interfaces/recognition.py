"""
Abstract interface for continuous speech recognition engines.
"""

from abc import ABC, abstractmethod
from typing import AsyncIterator
from ..models.data_models import RecognitionResult


class SpeechRecognitionInterface(ABC):
    """Abstract base class for all speech recognition engines."""

    @abstractmethod
    async def initialize(self) -> bool:
        """
        Initialize the engine.

        Returns:
            bool: True if initialization successful, False otherwise
        """
        pass

    @abstractmethod
    def start_streaming(self) -> AsyncIterator[RecognitionResult]:
        """
        Start continuous recognition with interim results.

        The iterator ends when the engine stops on its own; callers that
        still want to listen must start it again.

        Yields:
            RecognitionResult: cumulative transcript of the current utterance

        Raises:
            RecognitionError: engine failures, with the engine's error code
        """
        pass

    @abstractmethod
    async def stop_streaming(self) -> None:
        """Stop recognition; the current iterator finishes."""
        pass

    @property
    @abstractmethod
    def is_active(self) -> bool:
        """True while the microphone is open."""
        pass

    @abstractmethod
    async def cleanup(self) -> None:
        """Release all engine resources."""
        pass

    @property
    def capabilities(self) -> dict:
        return {
            'streaming': True,
            'interim_results': True,
            'languages': ['en-US'],
        }
