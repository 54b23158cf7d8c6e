"""
Playback controller: remote synthesis with on-device fallback.
"""

import asyncio
from typing import Optional, Callable, Awaitable, Tuple, Dict, Any

from ..interfaces.voice import VoiceServiceInterface
from ..interfaces.synthesis import OnDeviceSynthesizerInterface
from ..interfaces.audio_player import AudioPlayerInterface
from ..models.data_models import VoiceSettings
from ..utils.error_handling import (
    ErrorHandler,
    ComponentError,
    ErrorSeverity,
    PlaybackStartError,
    PlaybackInterruptedError,
)
from ..utils.logging_config import get_logger
from ..utils.state_machine import ConversationStateMachine, ConversationState
from .capture import SpeechCaptureController


logger = get_logger("playback")

COMPONENT = "playback"


class PlaybackController:
    """
    Speaks assistant replies, one utterance at a time.

    Audio comes from the remote voice service when it answers with playable
    audio. A failed request, a fallback answer, empty audio or a player that
    cannot start all lead to the on-device synthesizer instead. Each call to
    ``speak`` supersedes the previous one; a superseded utterance never
    touches the conversation state again.
    """

    def __init__(self,
                 state_machine: ConversationStateMachine,
                 settings_provider: Callable[[], VoiceSettings],
                 voice_service: Optional[VoiceServiceInterface] = None,
                 synthesizer: Optional[OnDeviceSynthesizerInterface] = None,
                 player: Optional[AudioPlayerInterface] = None,
                 capture: Optional[SpeechCaptureController] = None,
                 on_complete: Optional[Callable[[], Awaitable[None]]] = None,
                 timeout: float = 10.0,
                 error_handler: Optional[ErrorHandler] = None):
        self._state_machine = state_machine
        self._settings_provider = settings_provider
        self._voice_service = voice_service
        self._synthesizer = synthesizer
        self._player = player
        self._capture = capture
        self._on_complete = on_complete
        self._timeout = timeout
        self._error_handler = error_handler or ErrorHandler()

        self._generation = 0
        self._speaking = False
        self._last_source: Optional[str] = None

    @property
    def is_speaking(self) -> bool:
        return self._speaking

    @property
    def last_source(self) -> Optional[str]:
        """``remote`` or ``device`` for the last utterance that was spoken."""
        return self._last_source

    def set_on_complete(self, on_complete: Optional[Callable[[], Awaitable[None]]]) -> None:
        self._on_complete = on_complete

    async def speak(self, text: str) -> None:
        """
        Speak text and return once it has been played (or abandoned).

        Never raises for synthesis or playback failures.
        """
        text = (text or "").strip()
        if not text:
            return

        await self.stop()
        self._generation += 1
        generation = self._generation
        self._speaking = True

        # Microphone must be closed before any audio is produced
        if self._capture is not None:
            await self._capture.stop()
        await self._state_machine.transition_to(
            ConversationState.SPEAKING, component=COMPONENT, metadata={'chars': len(text)}
        )

        settings = self._settings_provider().copy()
        try:
            handled, voice_hint = await self._play_remote(text, settings, generation)
            if not handled and generation == self._generation:
                await self._speak_on_device(text, settings, voice_hint)
        finally:
            if generation == self._generation:
                self._speaking = False
                await self._finish()

    async def _play_remote(self,
                           text: str,
                           settings: VoiceSettings,
                           generation: int) -> Tuple[bool, Optional[str]]:
        """
        Returns:
            (handled, voice_hint): handled is True when audio played or the
            utterance was superseded
        """
        if self._voice_service is None or self._player is None:
            return False, None

        try:
            audio = await asyncio.wait_for(
                self._voice_service.synthesize(text, settings), timeout=self._timeout
            )
        except asyncio.TimeoutError as e:
            await self._report(e, "Voice service timed out")
            return False, None
        except Exception as e:
            await self._report(e, "Voice service failed")
            return False, None

        if generation != self._generation:
            return True, None

        if not audio.is_valid():
            logger.info(f"🔈 Voice service requested on-device speech (voice: {audio.fallback_voice or 'default'})")
            return False, audio.fallback_voice

        try:
            logger.debug(f"🔊 Playing {audio.get_size_kb():.1f}KB {audio.format.value}")
            await self._player.play(audio)
            self._last_source = "remote"
            return True, None
        except PlaybackStartError as e:
            await self._report(e, "Audio playback could not start")
            return False, audio.fallback_voice
        except PlaybackInterruptedError as e:
            # Part of the reply was already heard
            await self._report(e, "Audio playback stopped early")
            self._last_source = "remote"
            return True, None

    async def _speak_on_device(self, text: str, settings: VoiceSettings, voice_hint: Optional[str]) -> None:
        if self._synthesizer is None:
            logger.warning("No on-device synthesizer; reply not spoken")
            return
        try:
            await self._synthesizer.speak(text, settings, voice_hint)
            self._last_source = "device"
        except Exception as e:
            await self._report(e, "On-device synthesis failed")

    async def _finish(self) -> None:
        if self._on_complete is not None:
            await self._on_complete()
        else:
            await self._state_machine.transition_to(ConversationState.IDLE)

    async def _report(self, exc: BaseException, message: str) -> None:
        await self._error_handler.handle_error(
            ComponentError.from_exception(COMPONENT, exc, ErrorSeverity.WARNING, f"{message}: {exc}")
        )

    async def stop(self) -> None:
        """
        Silence any current utterance. The pending ``speak`` will not
        change the conversation state afterwards.
        """
        self._generation += 1
        self._speaking = False
        if self._player is not None:
            try:
                await self._player.stop()
            except Exception as e:
                logger.warning(f"Player stop failed: {e}")
        if self._synthesizer is not None:
            try:
                await self._synthesizer.stop()
            except Exception as e:
                logger.warning(f"Synthesizer stop failed: {e}")

    async def cleanup(self) -> None:
        await self.stop()
        for component in (self._player, self._synthesizer, self._voice_service):
            if component is not None:
                await component.cleanup()

    def get_status(self) -> Dict[str, Any]:
        return {
            'speaking': self._speaking,
            'generation': self._generation,
            'last_source': self._last_source,
            'remote': self._voice_service is not None,
        }
