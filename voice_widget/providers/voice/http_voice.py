"""
HTTP voice synthesis client.
"""

import asyncio
from typing import Dict, Any, Optional

import aiohttp

from ...interfaces.voice import VoiceServiceInterface
from ...models.data_models import AudioOutput, AudioFormat, VoiceSettings
from ...utils.error_handling import (
    ServiceError,
    ServiceHTTPError,
    ServiceTimeoutError,
    ProtocolError,
)
from ...utils.logging_config import get_logger
from ...utils.voice_catalog import fallback_voice_id


logger = get_logger("voice")


class HttpVoiceService(VoiceServiceInterface):
    """
    Requests speech audio from the voice endpoint.

    The endpoint answers either with ``audio/*`` bytes or with a JSON body
    telling the client to speak on-device; the branch is taken on the
    response content type.
    """

    def __init__(self, config: Dict[str, Any]):
        """
        Args:
            config: Configuration dictionary containing:
                - url: Voice endpoint URL
                - timeout: Request timeout in seconds (default: 10)
        """
        self.url = config.get('url')
        self.timeout = float(config.get('timeout', 10.0))
        self._session: Optional[aiohttp.ClientSession] = None

    async def initialize(self) -> bool:
        if not self.url:
            return False
        await self._ensure_session()
        return True

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            )
        return self._session

    async def synthesize(self, text: str, settings: VoiceSettings) -> AudioOutput:
        if not self.url:
            raise ServiceError("Voice endpoint URL is not configured")

        session = await self._ensure_session()
        payload = {'text': text, **settings.to_payload()}

        try:
            async with session.post(self.url, json=payload) as response:
                if response.status < 200 or response.status >= 300:
                    body = await response.text()
                    raise ServiceHTTPError(response.status, body[:200])

                content_type = response.headers.get('Content-Type', '').lower()
                if content_type.startswith('audio/'):
                    audio_data = await response.read()
                    logger.debug(f"🔊 Received {len(audio_data)} bytes of {content_type}")
                    return AudioOutput(
                        audio_data=audio_data,
                        format=AudioFormat.from_content_type(content_type),
                        voice=response.headers.get('X-Voice-Id'),
                        language=settings.language,
                        metadata={'provider': 'remote', 'content_type': content_type}
                    )

                if 'json' in content_type:
                    try:
                        data = await response.json(content_type=None)
                    except ValueError as e:
                        raise ProtocolError(f"Voice response is not valid JSON: {e}") from e
                    return self._fallback_output(data, settings)

                raise ProtocolError(f"Unexpected voice response type: {content_type or 'none'}")
        except asyncio.TimeoutError as e:
            raise ServiceTimeoutError(f"Voice request timed out after {self.timeout}s") from e
        except aiohttp.ClientError as e:
            raise ServiceError(f"Voice request failed: {e}") from e

    @staticmethod
    def _fallback_output(data: Any, settings: VoiceSettings) -> AudioOutput:
        """Empty audio carrying the service's on-device voice hint."""
        data = data if isinstance(data, dict) else {}
        voice_id = data.get('voiceId') or fallback_voice_id(data.get('language') or settings.language)
        return AudioOutput(
            audio_data=b"",
            format=AudioFormat.MP3,
            voice=voice_id,
            language=data.get('language') or settings.language,
            metadata={
                'provider': data.get('provider', 'fallback'),
                'voice_id': voice_id,
            }
        )

    async def cleanup(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None
