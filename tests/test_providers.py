"""
Tests for the concrete device providers with their I/O mocked out.
"""

import json
import shutil
import tempfile
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import aiohttp
import pytest

from voice_widget.models.data_models import AudioOutput, AudioFormat, VoiceSettings
from voice_widget.providers.audio import FfplayAudioPlayer
from voice_widget.providers.recognition import AssemblyAIRecognitionEngine
from voice_widget.providers.synthesis import Pyttsx3Synthesizer
from voice_widget.providers.synthesis.local_tts import parse_say_voices
from voice_widget.utils.error_handling import (
    EngineUnsupportedError,
    PlaybackStartError,
    PlaybackInterruptedError,
    RecognitionError,
)


SAY_LISTING = """\
Samantha            en_US    # Hello, my name is Samantha.
Daniel              en_GB    # Hello, my name is Daniel.
Mónica              es_ES    # Hola, me llamo Mónica.
Jorge               es_ES    # Hola, me llamo Jorge.
Eddy (English (UK)) en_GB    # Hello! My name is Eddy.
"""


class FakeWebSocket:
    """Replays server messages for ``async for msg in ws``."""

    def __init__(self, messages):
        self.messages = [
            SimpleNamespace(type=aiohttp.WSMsgType.TEXT, data=json.dumps(m)) for m in messages
        ]
        self.closed = True

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for message in self.messages:
            yield message

    def exception(self):
        return None


def engine_with_messages(messages):
    engine = AssemblyAIRecognitionEngine({'api_key': 'test-key'})

    async def fake_initialize_stream():
        engine._ws = FakeWebSocket(messages)

    engine._initialize_stream = fake_initialize_stream
    return engine


async def collect(engine):
    return [result async for result in engine.start_streaming()]


class TestAssemblyAIRecognitionEngine:

    @pytest.mark.asyncio
    async def test_initialize_without_key(self):
        engine = AssemblyAIRecognitionEngine({})
        assert not await engine.initialize()

    @pytest.mark.asyncio
    async def test_missing_key_is_unsupported(self):
        engine = AssemblyAIRecognitionEngine({})

        with pytest.raises(EngineUnsupportedError):
            await collect(engine)
        assert not engine.is_active

    @pytest.mark.asyncio
    async def test_rejected_key_is_unsupported(self):
        engine = AssemblyAIRecognitionEngine({'api_key': 'bad-key'})
        session = MagicMock()
        session.closed = False
        session.ws_connect = AsyncMock(side_effect=aiohttp.WSServerHandshakeError(
            request_info=MagicMock(), history=(), status=401, message="Unauthorized"
        ))
        engine._session = session

        with pytest.raises(EngineUnsupportedError):
            await collect(engine)

    @pytest.mark.asyncio
    async def test_connection_failure_is_network_error(self):
        engine = AssemblyAIRecognitionEngine({'api_key': 'test-key'})
        session = MagicMock()
        session.closed = False
        session.ws_connect = AsyncMock(side_effect=aiohttp.ClientConnectionError("refused"))
        engine._session = session

        with pytest.raises(RecognitionError) as exc_info:
            await collect(engine)
        assert exc_info.value.code == 'network'

    @pytest.mark.asyncio
    async def test_turn_messages_become_results(self):
        engine = engine_with_messages([
            {'type': 'Begin', 'id': 'abc'},
            {'type': 'Turn', 'transcript': 'what are', 'end_of_turn': False},
            {'type': 'Turn', 'transcript': 'what are your hours', 'end_of_turn': True, 'turn_is_formatted': False},
            {'type': 'Turn', 'transcript': 'What are your hours?', 'end_of_turn': True, 'turn_is_formatted': True},
            {'type': 'Termination'},
            {'type': 'Turn', 'transcript': 'never seen', 'end_of_turn': True, 'turn_is_formatted': True},
        ])

        results = await collect(engine)

        assert [(r.text, r.is_final) for r in results] == [
            ('what are', False),
            ('what are your hours', False),
            ('What are your hours?', True),
        ]
        assert not engine.is_active

    @pytest.mark.asyncio
    async def test_server_error_message(self):
        engine = engine_with_messages([{'type': 'Error', 'error': 'session expired'}])

        with pytest.raises(RecognitionError) as exc_info:
            await collect(engine)
        assert exc_info.value.code == 'network'

    @pytest.mark.asyncio
    async def test_second_start_is_rejected(self):
        engine = engine_with_messages([])
        engine._is_active = True

        with pytest.raises(RecognitionError) as exc_info:
            await collect(engine)
        assert exc_info.value.code == 'aborted'

    @pytest.mark.asyncio
    async def test_microphone_failure_is_audio_capture_error(self):
        engine = AssemblyAIRecognitionEngine({'api_key': 'test-key'})
        ws = FakeWebSocket([])
        ws.closed = False
        ws.send_json = AsyncMock()
        ws.close = AsyncMock()
        session = MagicMock()
        session.closed = False
        session.ws_connect = AsyncMock(return_value=ws)
        engine._session = session
        engine._open_microphone = MagicMock(side_effect=OSError("no input device"))

        with pytest.raises(RecognitionError) as exc_info:
            await collect(engine)

        assert exc_info.value.code == 'audio-capture'
        assert not engine.is_active
        ws.close.assert_awaited_once()
        assert engine._ws is None

    def test_endpoint_carries_sample_rate(self):
        engine = AssemblyAIRecognitionEngine({'api_key': 'k', 'sample_rate': 16000})
        assert "sample_rate=16000" in engine.api_endpoint
        assert engine.api_endpoint.startswith("wss://streaming.assemblyai.com/v3/ws?")


class TestFfplayAudioPlayer:

    @pytest.mark.asyncio
    async def test_no_player_available(self):
        with patch('voice_widget.providers.audio.ffplay_player.shutil.which', return_value=None), \
             patch('voice_widget.providers.audio.ffplay_player.platform.system', return_value='Linux'):
            player = FfplayAudioPlayer()

        with pytest.raises(PlaybackStartError):
            await player.play(AudioOutput(audio_data=b"abc", format=AudioFormat.MP3))

    @pytest.mark.asyncio
    async def test_afplay_cannot_play_pcm(self):
        player = FfplayAudioPlayer({'binary': 'afplay'})

        with pytest.raises(PlaybackStartError):
            await player.play(AudioOutput(audio_data=b"\x00\x01", format=AudioFormat.PCM16))

    @pytest.mark.asyncio
    async def test_spawn_failure_cleans_temp_file(self, tmp_path):
        player = FfplayAudioPlayer({'binary': str(tmp_path / "no-such-player")})
        created = []
        real_tempfile = tempfile.NamedTemporaryFile

        def tracking_tempfile(*args, **kwargs):
            handle = real_tempfile(*args, **kwargs)
            created.append(handle.name)
            return handle

        with patch('voice_widget.providers.audio.ffplay_player.tempfile.NamedTemporaryFile', tracking_tempfile):
            with pytest.raises(PlaybackStartError):
                await player.play(AudioOutput(audio_data=b"abc", format=AudioFormat.MP3))

        assert created and not Path(created[0]).exists()
        assert not player.is_playing

    @pytest.mark.asyncio
    @pytest.mark.skipif(shutil.which("false") is None, reason="needs the false utility")
    async def test_player_error_exit_is_interruption(self):
        player = FfplayAudioPlayer({'binary': shutil.which("false")})

        with pytest.raises(PlaybackInterruptedError):
            await player.play(AudioOutput(audio_data=b"abc", format=AudioFormat.MP3))
        assert not player.is_playing

    def test_pcm_command_has_format_flags(self):
        player = FfplayAudioPlayer({'binary': 'ffplay'})

        args = player._command("/tmp/reply.pcm", AudioOutput(audio_data=b"", format=AudioFormat.PCM16, sample_rate=16000))

        assert args[0] == 'ffplay'
        assert args[args.index('-f') + 1] == 's16le'
        assert args[args.index('-ar') + 1] == '16000'
        assert args[-2:] == ['-i', '/tmp/reply.pcm']

    @pytest.mark.asyncio
    async def test_stop_when_idle(self):
        player = FfplayAudioPlayer({'binary': 'ffplay'})
        await player.stop()
        assert not player.is_playing


class TestPyttsx3Synthesizer:

    def test_rate_follows_speaking_speed(self):
        synthesizer = Pyttsx3Synthesizer({'base_rate': 200, 'use_system_say': False})

        assert synthesizer.rate_for(VoiceSettings()) == 200
        assert synthesizer.rate_for(VoiceSettings(speaking_speed=1.5)) == 300
        assert synthesizer.rate_for(VoiceSettings(speaking_speed=0.1)) == 50

    @pytest.mark.asyncio
    async def test_speak_picks_voice_by_language_and_gender(self):
        engine = MagicMock()
        engine.getProperty.return_value = [
            SimpleNamespace(id="voice.en.male", name="Daniel", languages=["en_GB"], gender="male"),
            SimpleNamespace(id="voice.es.female", name="Paulina", languages=["es_MX"], gender="female"),
            SimpleNamespace(id="voice.en.female", name="Karen", languages=["en_AU"], gender="female"),
        ]
        synthesizer = Pyttsx3Synthesizer({'use_system_say': False, 'volume': 0.5})

        with patch('voice_widget.providers.synthesis.local_tts.pyttsx3.init', return_value=engine):
            await synthesizer.speak("Hello there", VoiceSettings(language="en", gender="female"))

        engine.setProperty.assert_any_call('voice', "voice.en.female")
        engine.setProperty.assert_any_call('rate', 175)
        engine.setProperty.assert_any_call('volume', 0.5)
        engine.say.assert_called_once_with("Hello there")
        engine.runAndWait.assert_called_once()
        assert not synthesizer.is_speaking

    @pytest.mark.asyncio
    async def test_voice_hint_overrides_language(self):
        engine = MagicMock()
        engine.getProperty.return_value = [
            SimpleNamespace(id="voice.en", name="Karen", languages=["en_AU"], gender="female"),
            SimpleNamespace(id="voice.es", name="Monica", languages=["es_ES"], gender="female"),
        ]
        synthesizer = Pyttsx3Synthesizer({'use_system_say': False})

        with patch('voice_widget.providers.synthesis.local_tts.pyttsx3.init', return_value=engine):
            await synthesizer.speak("Hola", VoiceSettings(language="en"), voice_hint="es-ES")

        engine.setProperty.assert_any_call('voice', "voice.es")

    @pytest.mark.asyncio
    async def test_system_say_uses_voice_for_hint_and_gender(self):
        listing = MagicMock()
        listing.communicate = AsyncMock(return_value=(SAY_LISTING.encode(), b""))

        def say_process():
            process = MagicMock()
            process.wait = AsyncMock(return_value=0)
            process.returncode = 0
            return process

        spawn = AsyncMock(side_effect=[listing, say_process(), say_process()])
        synthesizer = Pyttsx3Synthesizer({'use_system_say': True})

        with patch('voice_widget.providers.synthesis.local_tts.asyncio.create_subprocess_exec', spawn):
            await synthesizer.speak("Hola, ¿cómo estás?", VoiceSettings(language="en", gender="male"),
                                    voice_hint="es-ES")
            await synthesizer.speak("Good morning", VoiceSettings(language="en", gender="female"))

        assert spawn.call_args_list[0].args == ('say', '-v', '?')
        assert spawn.call_args_list[1].args == ('say', '-r', '175', '-v', 'Jorge', "Hola, ¿cómo estás?")
        assert spawn.call_args_list[2].args == ('say', '-r', '175', '-v', 'Samantha', "Good morning")
        # The voice listing is cached
        assert spawn.await_count == 3

    @pytest.mark.asyncio
    async def test_system_say_without_matching_voice_uses_default(self):
        listing = MagicMock()
        listing.communicate = AsyncMock(return_value=(SAY_LISTING.encode(), b""))
        process = MagicMock()
        process.wait = AsyncMock(return_value=0)
        spawn = AsyncMock(side_effect=[listing, process])
        synthesizer = Pyttsx3Synthesizer({'use_system_say': True})

        with patch('voice_widget.providers.synthesis.local_tts.asyncio.create_subprocess_exec', spawn):
            await synthesizer.speak("Guten Tag", VoiceSettings(language="de"))

        assert spawn.call_args_list[1].args == ('say', '-r', '175', "Guten Tag")

    def test_parse_say_voices(self):
        voices = parse_say_voices(SAY_LISTING + "\nnot a voice line\n")

        assert [(v.name, v.languages, v.gender) for v in voices] == [
            ("Samantha", ["en_US"], "female"),
            ("Daniel", ["en_GB"], "male"),
            ("Mónica", ["es_ES"], "female"),
            ("Jorge", ["es_ES"], "male"),
            ("Eddy (English (UK))", ["en_GB"], None),
        ]

    @pytest.mark.asyncio
    async def test_blank_text_is_skipped(self):
        synthesizer = Pyttsx3Synthesizer({'use_system_say': False})

        with patch('voice_widget.providers.synthesis.local_tts.pyttsx3.init') as init:
            await synthesizer.speak("  ", VoiceSettings())

        init.assert_not_called()
