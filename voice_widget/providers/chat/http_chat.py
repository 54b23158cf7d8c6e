"""
HTTP chat service client.
"""

import asyncio
from typing import Dict, Any, Optional

import aiohttp

from ...interfaces.chat import ChatServiceInterface
from ...models.data_models import ChatRequest
from ...utils.error_handling import (
    ConfigurationError,
    ServiceError,
    ServiceHTTPError,
    ServiceTimeoutError,
    ProtocolError,
)
from ...utils.logging_config import get_logger


logger = get_logger("chat")


def extract_reply(data: Any) -> str:
    """
    Reply text from a chat response body.

    The first of ``reply``, ``text``, ``response``, ``message`` holding a
    non-empty string wins.

    Raises:
        ProtocolError: no usable reply field
    """
    if not isinstance(data, dict):
        raise ProtocolError(f"Chat response is not a JSON object: {type(data).__name__}")
    for key in ChatServiceInterface.REPLY_FIELDS:
        value = data.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    raise ProtocolError(f"Chat response has no reply field (keys: {sorted(data.keys())})")


class HttpChatService(ChatServiceInterface):
    """POSTs chat requests as JSON to the configured endpoint."""

    def __init__(self, config: Dict[str, Any]):
        """
        Args:
            config: Configuration dictionary containing:
                - url: Chat endpoint URL
                - timeout: Request timeout in seconds (default: 15)
        """
        self.url = config.get('url')
        self.timeout = float(config.get('timeout', 15.0))
        self._session: Optional[aiohttp.ClientSession] = None

    async def initialize(self) -> bool:
        if not self.url:
            logger.error("Chat endpoint URL is not configured")
            return False
        await self._ensure_session()
        return True

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            )
        return self._session

    async def send(self, request: ChatRequest) -> str:
        if not self.url:
            raise ConfigurationError("Chat endpoint URL is not configured")

        session = await self._ensure_session()
        payload = request.to_payload()
        logger.debug(f"📤 POST {self.url} ({len(payload['recentMessages'])} recent messages)")

        try:
            async with session.post(self.url, json=payload) as response:
                if response.status < 200 or response.status >= 300:
                    body = await response.text()
                    raise ServiceHTTPError(response.status, body[:200])
                try:
                    data = await response.json(content_type=None)
                except ValueError as e:
                    raise ProtocolError(f"Chat response is not valid JSON: {e}") from e
        except asyncio.TimeoutError as e:
            raise ServiceTimeoutError(f"Chat request timed out after {self.timeout}s") from e
        except aiohttp.ClientError as e:
            raise ServiceError(f"Chat request failed: {e}") from e

        return extract_reply(data)

    async def cleanup(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None
