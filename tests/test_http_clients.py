"""
Tests for the HTTP chat and voice clients against in-process aiohttp servers.
"""

import asyncio
from contextlib import asynccontextmanager

import pytest
from aiohttp import web
from aiohttp import test_utils

from voice_widget.models.data_models import AudioFormat, ChatRequest, Role, Turn, VoiceSettings
from voice_widget.providers.chat import HttpChatService, MockChatService
from voice_widget.providers.chat.mock_chat import PERSONA_RESPONSES
from voice_widget.providers.chat.http_chat import extract_reply
from voice_widget.providers.voice import HttpVoiceService
from voice_widget.utils.error_handling import (
    ConfigurationError,
    ProtocolError,
    ServiceError,
    ServiceHTTPError,
    ServiceTimeoutError,
)


@asynccontextmanager
async def serve(path, handler):
    app = web.Application()
    app.router.add_post(path, handler)
    server = test_utils.TestServer(app)
    await server.start_server()
    try:
        yield str(server.make_url(path))
    finally:
        await server.close()


def chat_request(message="What are your hours?"):
    return ChatRequest(
        session_id="sess_abc",
        business_id="acme",
        message=message,
        recent_messages=[Turn(role=Role.USER, text=message)],
    )


class TestExtractReply:

    @pytest.mark.parametrize("body,expected", [
        ({'reply': "We're open 9-5."}, "We're open 9-5."),
        ({'text': "from text"}, "from text"),
        ({'response': "from response"}, "from response"),
        ({'message': "from message"}, "from message"),
        ({'reply': "", 'text': "  fallback  "}, "fallback"),
        ({'response': "second", 'reply': "first"}, "first"),
    ])
    def test_first_present_field_wins(self, body, expected):
        assert extract_reply(body) == expected

    @pytest.mark.parametrize("body", [{}, {'reply': None}, {'reply': 42}, ["reply"], "reply"])
    def test_missing_reply_is_protocol_error(self, body):
        with pytest.raises(ProtocolError):
            extract_reply(body)


class TestHttpChatService:

    @pytest.mark.asyncio
    async def test_posts_payload_and_returns_reply(self):
        received = []

        async def handler(request):
            received.append(await request.json())
            return web.json_response({'reply': "We're open 9-5."})

        async with serve('/chat', handler) as url:
            service = HttpChatService({'url': url, 'timeout': 2.0})
            try:
                reply = await service.send(chat_request())
            finally:
                await service.cleanup()

        assert reply == "We're open 9-5."
        assert received == [{
            'sessionId': "sess_abc",
            'businessId': "acme",
            'message': "What are your hours?",
            'recentMessages': [{'role': 'user', 'text': "What are your hours?"}],
        }]

    @pytest.mark.asyncio
    async def test_server_error(self):
        async def handler(request):
            return web.Response(status=500, text="internal error")

        async with serve('/chat', handler) as url:
            service = HttpChatService({'url': url, 'timeout': 2.0})
            try:
                with pytest.raises(ServiceHTTPError) as exc_info:
                    await service.send(chat_request())
            finally:
                await service.cleanup()

        assert exc_info.value.status == 500

    @pytest.mark.asyncio
    async def test_malformed_body(self):
        async def handler(request):
            return web.Response(text="<html>not json</html>", content_type="text/html")

        async with serve('/chat', handler) as url:
            service = HttpChatService({'url': url, 'timeout': 2.0})
            try:
                with pytest.raises(ProtocolError):
                    await service.send(chat_request())
            finally:
                await service.cleanup()

    @pytest.mark.asyncio
    async def test_timeout(self):
        async def handler(request):
            await asyncio.sleep(1.0)
            return web.json_response({'reply': "late"})

        async with serve('/chat', handler) as url:
            service = HttpChatService({'url': url, 'timeout': 0.1})
            try:
                with pytest.raises(ServiceTimeoutError):
                    await service.send(chat_request())
            finally:
                await service.cleanup()

    @pytest.mark.asyncio
    async def test_missing_url(self):
        service = HttpChatService({})

        assert not await service.initialize()
        with pytest.raises(ConfigurationError):
            await service.send(chat_request())


class TestMockChatService:

    @pytest.mark.asyncio
    async def test_persona_pool(self):
        service = MockChatService({'mock_delay': 0.0, 'persona': 'support', 'seed': 1})

        reply = await service.send(chat_request())

        assert reply.endswith("(Mock Response)")
        assert reply[:-len(" (Mock Response)")] in PERSONA_RESPONSES['support']

    @pytest.mark.asyncio
    async def test_repeated_sends_keep_no_request_log(self):
        service = MockChatService({'mock_delay': 0.0, 'seed': 1})
        attributes = dict(vars(service))

        for i in range(50):
            await service.send(chat_request(f"question {i}"))

        assert vars(service) == attributes


class TestHttpVoiceService:

    @pytest.mark.asyncio
    async def test_audio_response(self):
        received = []

        async def handler(request):
            received.append(await request.json())
            return web.Response(body=b"ID3audio", content_type="audio/mpeg", headers={'X-Voice-Id': 'en-US-1'})

        settings = VoiceSettings(language="en", gender="female", style="calm", speaking_speed=1.1)
        async with serve('/voice', handler) as url:
            service = HttpVoiceService({'url': url, 'timeout': 2.0})
            try:
                audio = await service.synthesize("Hello", settings)
            finally:
                await service.cleanup()

        assert audio.is_valid()
        assert audio.audio_data == b"ID3audio"
        assert audio.format == AudioFormat.MP3
        assert audio.voice == "en-US-1"
        assert received == [{
            'text': "Hello", 'language': "en", 'gender': "female", 'style': "calm", 'speakingSpeed': 1.1,
        }]

    @pytest.mark.asyncio
    async def test_json_fallback_carries_voice_hint(self):
        async def handler(request):
            return web.json_response({'fallback': True, 'voiceId': 'es-ES'})

        async with serve('/voice', handler) as url:
            service = HttpVoiceService({'url': url, 'timeout': 2.0})
            try:
                audio = await service.synthesize("Hola", VoiceSettings(language="es"))
            finally:
                await service.cleanup()

        assert not audio.is_valid()
        assert audio.fallback_voice == "es-ES"

    @pytest.mark.asyncio
    async def test_json_fallback_without_hint_uses_language_default(self):
        async def handler(request):
            return web.json_response({'fallback': True})

        async with serve('/voice', handler) as url:
            service = HttpVoiceService({'url': url, 'timeout': 2.0})
            try:
                audio = await service.synthesize("Bonjour", VoiceSettings(language="fr"))
            finally:
                await service.cleanup()

        assert audio.fallback_voice == "fr-FR"

    @pytest.mark.asyncio
    async def test_unexpected_content_type(self):
        async def handler(request):
            return web.Response(text="hello", content_type="text/plain")

        async with serve('/voice', handler) as url:
            service = HttpVoiceService({'url': url, 'timeout': 2.0})
            try:
                with pytest.raises(ProtocolError):
                    await service.synthesize("Hello", VoiceSettings())
            finally:
                await service.cleanup()

    @pytest.mark.asyncio
    async def test_server_error(self):
        async def handler(request):
            return web.Response(status=503)

        async with serve('/voice', handler) as url:
            service = HttpVoiceService({'url': url, 'timeout': 2.0})
            try:
                with pytest.raises(ServiceError):
                    await service.synthesize("Hello", VoiceSettings())
            finally:
                await service.cleanup()
