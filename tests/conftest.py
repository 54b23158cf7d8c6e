"""
Pytest configuration and shared fixtures for voice widget tests.
"""

import asyncio
import sys
from pathlib import Path
from typing import List, Optional, Tuple

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from voice_widget.config import (
    WidgetConfig,
    ChatEndpointConfig,
    CaptureConfig,
    PlaybackConfig,
    SessionConfig,
)
from voice_widget.interfaces import (
    SpeechRecognitionInterface,
    ChatServiceInterface,
    VoiceServiceInterface,
    OnDeviceSynthesizerInterface,
    AudioPlayerInterface,
)
from voice_widget.models.data_models import AudioOutput, ChatRequest, RecognitionResult, VoiceSettings
from voice_widget.orchestrator import ConversationOrchestrator
from voice_widget.providers.storage import MemoryStorage
from voice_widget.session.identity import SessionIdentityStore
from voice_widget.utils.error_handling import PlaybackStartError, PlaybackInterruptedError


# Script step that ends the current engine session
END = object()


class FakeClock:
    """Monotonic clock the tests move by hand."""

    def __init__(self, start: float = 100.0):
        self.now = start

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def __call__(self) -> float:
        return self.now


class FakeRecognitionEngine(SpeechRecognitionInterface):
    """
    Replays one script per recognition session.

    Script steps:
    - ``str``: interim transcript
    - ``RecognitionResult``: yielded as-is
    - ``int``/``float``: sleep that many seconds
    - callable: invoked (e.g. to move a FakeClock)
    - exception instance: raised from the stream
    - ``END``: the engine stops on its own

    When a script runs out the session stays open until ``stop_streaming``.
    Sessions without a script stay open immediately.
    """

    def __init__(self, sessions: Optional[list] = None, init_ok: bool = True):
        self.sessions = list(sessions or [])
        self.init_ok = init_ok
        self.start_count = 0
        self.stop_count = 0
        self.cleaned_up = False
        self._active = False
        self._stop_event: Optional[asyncio.Event] = None

    async def initialize(self) -> bool:
        return self.init_ok

    async def start_streaming(self):
        self.start_count += 1
        self._stop_event = asyncio.Event()
        stop_event = self._stop_event
        self._active = True
        script = self.sessions.pop(0) if self.sessions else []
        try:
            for step in script:
                if stop_event.is_set() or step is END:
                    return
                if isinstance(step, BaseException):
                    raise step
                if isinstance(step, (int, float)):
                    await asyncio.sleep(step)
                    continue
                if callable(step):
                    step()
                    continue
                if isinstance(step, str):
                    step = RecognitionResult(text=step, is_final=False)
                yield step
            await stop_event.wait()
        finally:
            self._active = False

    async def stop_streaming(self) -> None:
        self.stop_count += 1
        if self._stop_event is not None:
            self._stop_event.set()

    @property
    def is_active(self) -> bool:
        return self._active

    async def cleanup(self) -> None:
        self.cleaned_up = True
        await self.stop_streaming()


class FakeChatService(ChatServiceInterface):
    """Returns a fixed reply (or raises) after an optional delay."""

    def __init__(self, reply: str = "We're open 9-5.", error: Optional[BaseException] = None,
                 delay: float = 0.0):
        self.reply = reply
        self.error = error
        self.delay = delay
        self.requests: List[ChatRequest] = []

    async def initialize(self) -> bool:
        return True

    async def send(self, request: ChatRequest) -> str:
        self.requests.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.reply

    async def cleanup(self) -> None:
        pass


class FakeVoiceService(VoiceServiceInterface):
    def __init__(self, audio: Optional[AudioOutput] = None, error: Optional[BaseException] = None,
                 delay: float = 0.0):
        self.audio = audio
        self.error = error
        self.delay = delay
        self.requests: List[Tuple[str, VoiceSettings]] = []

    async def initialize(self) -> bool:
        return True

    async def synthesize(self, text: str, settings: VoiceSettings) -> AudioOutput:
        self.requests.append((text, settings))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.audio

    async def cleanup(self) -> None:
        pass


class FakeSynthesizer(OnDeviceSynthesizerInterface):
    """Records what would have been spoken; ``duration`` keeps it busy until stopped."""

    def __init__(self, duration: float = 0.0, error: Optional[BaseException] = None):
        self.duration = duration
        self.error = error
        self.spoken: List[Tuple[str, VoiceSettings, Optional[str]]] = []
        self.stop_count = 0
        # Utterances currently audible; stop() silences all of them at once
        self.audible: set = set()
        self.max_audible = 0
        self._stop_event: Optional[asyncio.Event] = None

    async def initialize(self) -> bool:
        return True

    async def speak(self, text: str, settings: VoiceSettings, voice_hint: Optional[str] = None) -> None:
        self.spoken.append((text, settings, voice_hint))
        if self.error is not None:
            raise self.error
        self._stop_event = asyncio.Event()
        token = object()
        self.audible.add(token)
        self.max_audible = max(self.max_audible, len(self.audible))
        try:
            if self.duration:
                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=self.duration)
                except asyncio.TimeoutError:
                    pass
        finally:
            self.audible.discard(token)

    async def stop(self) -> None:
        self.stop_count += 1
        self.audible.clear()
        if self._stop_event is not None:
            self._stop_event.set()

    async def cleanup(self) -> None:
        await self.stop()

    @property
    def active(self) -> int:
        return len(self.audible)


class FakePlayer(AudioPlayerInterface):
    def __init__(self, duration: float = 0.0, fail_start: bool = False, fail_midway: bool = False):
        self.duration = duration
        self.fail_start = fail_start
        self.fail_midway = fail_midway
        self.played: List[AudioOutput] = []
        self.stop_count = 0
        self._playing = False
        self._stop_event: Optional[asyncio.Event] = None

    async def play(self, audio: AudioOutput) -> None:
        if self.fail_start:
            raise PlaybackStartError("device busy")
        self.played.append(audio)
        self._stop_event = asyncio.Event()
        self._playing = True
        try:
            if self.duration:
                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=self.duration)
                except asyncio.TimeoutError:
                    pass
            if self.fail_midway:
                raise PlaybackInterruptedError("device unplugged")
        finally:
            self._playing = False

    async def stop(self) -> None:
        self.stop_count += 1
        if self._stop_event is not None:
            self._stop_event.set()

    @property
    def is_playing(self) -> bool:
        return self._playing


async def wait_for_condition(predicate, timeout: float = 2.0, interval: float = 0.01) -> bool:
    """Poll until predicate() is true; False on timeout."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while loop.time() < deadline:
        if predicate():
            return True
        await asyncio.sleep(interval)
    return predicate()


def make_config(**overrides) -> WidgetConfig:
    """Widget config tuned for fast tests."""
    data = {
        'business_id': 'acme',
        'chat': ChatEndpointConfig(provider='mock', timeout=1.0),
        'capture': CaptureConfig(
            silence_timeout=0.05,
            min_listen_duration=0.2,
            min_transcript_chars=2,
            restart_delay=0.0,
            max_consecutive_errors=3,
        ),
        'playback': PlaybackConfig(),
        'session': SessionConfig(storage='memory'),
    }
    data.update(overrides)
    return WidgetConfig(**data)


def make_widget(config: Optional[WidgetConfig] = None,
                chat: Optional[ChatServiceInterface] = None,
                engine: Optional[SpeechRecognitionInterface] = None,
                voice: Optional[VoiceServiceInterface] = None,
                synthesizer: Optional[OnDeviceSynthesizerInterface] = None,
                player: Optional[AudioPlayerInterface] = None,
                storage: Optional[MemoryStorage] = None) -> ConversationOrchestrator:
    return ConversationOrchestrator(
        config or make_config(),
        chat_service=chat or FakeChatService(),
        identity=SessionIdentityStore(storage or MemoryStorage()),
        recognition_engine=engine,
        voice_service=voice,
        synthesizer=synthesizer or FakeSynthesizer(),
        player=player or FakePlayer(),
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def capture_config():
    return make_config().capture


@pytest.fixture
def synthesizer():
    return FakeSynthesizer()


@pytest.fixture
def player():
    return FakePlayer()
