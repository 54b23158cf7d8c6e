"""
Abstract interface for the remote chat service.
"""

from abc import ABC, abstractmethod
from ..models.data_models import ChatRequest


class ChatServiceInterface(ABC):
    """Abstract base class for chat completion backends."""

    # Reply field names in priority order
    REPLY_FIELDS = ('reply', 'text', 'response', 'message')

    @abstractmethod
    async def initialize(self) -> bool:
        pass

    @abstractmethod
    async def send(self, request: ChatRequest) -> str:
        """
        Send one user message and return the assistant reply text.

        Raises:
            ServiceError: transport failure, timeout or non-2xx status
            ProtocolError: body is not JSON or carries no reply field
        """
        pass

    @abstractmethod
    async def cleanup(self) -> None:
        pass
