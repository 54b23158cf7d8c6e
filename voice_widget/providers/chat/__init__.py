from .http_chat import HttpChatService, extract_reply
from .mock_chat import MockChatService, PERSONA_RESPONSES

__all__ = ['HttpChatService', 'MockChatService', 'extract_reply', 'PERSONA_RESPONSES']
