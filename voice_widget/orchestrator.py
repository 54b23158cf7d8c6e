"""
Conversation orchestrator.

Owns the conversation state and mediates between speech capture, the chat
service, the rolling buffer and playback. Presentation code never drives
the pipeline directly; it calls the public methods here and subscribes to
state, turn and notice events.
"""

import asyncio
from datetime import datetime
from typing import Optional, Callable, List, Dict, Any

from .config import WidgetConfig
from .controllers.capture import SpeechCaptureController
from .controllers.playback import PlaybackController
from .interfaces.chat import ChatServiceInterface
from .interfaces.voice import VoiceServiceInterface
from .interfaces.synthesis import OnDeviceSynthesizerInterface
from .interfaces.audio_player import AudioPlayerInterface
from .interfaces.recognition import SpeechRecognitionInterface
from .models.data_models import ChatRequest, ConversationMode, Role, Turn, VoiceSettings
from .session.buffer import RollingLocalBuffer
from .session.identity import SessionIdentityStore
from .utils.error_handling import (
    ErrorHandler,
    ComponentError,
    ErrorSeverity,
    ServiceTimeoutError,
    safe_cleanup,
)
from .utils.logging_config import get_logger
from .utils.state_machine import ConversationStateMachine, ConversationState, StateTransition
from .utils.voice_catalog import normalize_language, normalize_gender, normalize_style


logger = get_logger("orchestrator")

ERROR_TURN_TEXT = "❌ Sorry, I'm having trouble connecting right now. Please try again."
SPOKEN_APOLOGY = "I'm having trouble connecting right now. Please try again."
NOT_CONFIGURED_TEXT = "⚠️ This chat widget is not configured yet (missing business id)."


class ConversationOrchestrator:
    """
    Coordinates one widget session.

    - Serializes submissions (one chat request in flight at a time)
    - Keeps the visible transcript and the rolling local buffer
    - Drops utterances that arrive while processing or speaking
    - Hands replies to playback and re-arms listening in voice mode
    - Converges back to IDLE after every failure
    """

    def __init__(self,
                 config: WidgetConfig,
                 chat_service: ChatServiceInterface,
                 identity: SessionIdentityStore,
                 recognition_engine: Optional[SpeechRecognitionInterface] = None,
                 voice_service: Optional[VoiceServiceInterface] = None,
                 synthesizer: Optional[OnDeviceSynthesizerInterface] = None,
                 player: Optional[AudioPlayerInterface] = None,
                 error_handler: Optional[ErrorHandler] = None):
        self.config = config
        self.chat = chat_service
        self.identity = identity
        self.session_id = identity.get_or_create_session_id()
        self.logger = logger.bind(self.session_id[:13])

        self.error_handler = error_handler or ErrorHandler()
        self.state_machine = ConversationStateMachine(
            transition_delay=config.playback.transition_delay
        )
        self.buffer = RollingLocalBuffer(config.session.buffer_limit)
        self.transcript: List[Turn] = []
        self.voice_settings: VoiceSettings = config.voice_defaults.to_settings()
        self.mode: ConversationMode = config.session.initial_mode

        self.capture = SpeechCaptureController(
            recognition_engine,
            config.capture,
            on_utterance=self._on_utterance,
            on_notice=self._emit_notice,
            on_halt=self._on_capture_halted,
            error_handler=self.error_handler,
        )
        self.playback = PlaybackController(
            self.state_machine,
            settings_provider=lambda: self.voice_settings,
            voice_service=voice_service,
            synthesizer=synthesizer,
            player=player,
            capture=self.capture,
            on_complete=self._rearm_or_idle,
            timeout=config.voice.timeout,
            error_handler=self.error_handler,
        )
        self._recognition_engine = recognition_engine
        self._voice_service = voice_service
        self._synthesizer = synthesizer

        self._is_open = False
        self._mic_enabled = True
        self._welcomed = False
        self._not_configured_sent = False
        self._in_flight = False
        self._is_shutdown = False
        # Bumped by close/mode switch; replies from an older epoch are not spoken
        self._epoch = 0
        self._last_timestamp = 0.0

        self._turn_listeners: List[Callable[[Turn], None]] = []
        self._notice_listeners: List[Callable[[str], None]] = []

        self._register_cleanup_handlers()

    def _register_cleanup_handlers(self):
        """Release the microphone and speaker when their state is left."""
        self.state_machine.register_cleanup_handler("capture", self.capture.stop)
        self.state_machine.register_cleanup_handler("playback", self.playback.stop)

    async def initialize(self) -> bool:
        """
        Initialize providers. Voice-related failures degrade the widget
        rather than failing it.

        Returns:
            True if the chat service is ready
        """
        try:
            chat_ready = await self.chat.initialize()
        except Exception as e:
            await self.error_handler.handle_error(
                ComponentError.from_exception("chat", e, ErrorSeverity.FATAL, "Chat service failed to initialize")
            )
            chat_ready = False

        if self._voice_service is not None:
            try:
                await self._voice_service.initialize()
            except Exception as e:
                self.logger.warning(f"Voice service unavailable: {e}")

        if self._synthesizer is not None:
            try:
                await self._synthesizer.initialize()
            except Exception as e:
                self.logger.warning(f"On-device synthesizer unavailable: {e}")

        if self._recognition_engine is not None and self.config.capture.enabled:
            try:
                engine_ready = await self._recognition_engine.initialize()
            except Exception as e:
                self.logger.warning(f"Recognition engine failed to initialize: {e}")
                engine_ready = False
            if not engine_ready:
                await self.capture.disable()

        self.logger.info(f"✅ Widget session ready (mode: {self.mode.value})")
        return chat_ready

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def state(self) -> ConversationState:
        return self.state_machine.current_state

    @property
    def is_open(self) -> bool:
        return self._is_open

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def add_state_listener(self, listener: Callable[[StateTransition], None]) -> None:
        self.state_machine.add_listener(listener)

    def add_turn_listener(self, listener: Callable[[Turn], None]) -> None:
        self._turn_listeners.append(listener)

    def add_notice_listener(self, listener: Callable[[str], None]) -> None:
        self._notice_listeners.append(listener)

    def _emit_turn(self, turn: Turn) -> None:
        for listener in list(self._turn_listeners):
            try:
                listener(turn)
            except Exception as e:
                self.logger.warning(f"Turn listener failed: {e}")

    def _emit_notice(self, message: str) -> None:
        for listener in list(self._notice_listeners):
            try:
                listener(message)
            except Exception as e:
                self.logger.warning(f"Notice listener failed: {e}")

    # ------------------------------------------------------------------
    # Turns
    # ------------------------------------------------------------------

    def _make_turn(self, role: Role, text: str, is_error: bool = False) -> Turn:
        # Strictly increasing within the session even if the wall clock stalls
        timestamp = max(datetime.now().timestamp(), self._last_timestamp + 1e-6)
        self._last_timestamp = timestamp
        return Turn(role=role, text=text, timestamp=timestamp, is_error=is_error)

    def _append_transcript(self, turn: Turn) -> None:
        self.transcript.append(turn)
        self._emit_turn(turn)

    def _send_not_configured(self) -> None:
        if self._not_configured_sent:
            return
        self._not_configured_sent = True
        self.logger.error("Widget has no business id; remote calls disabled")
        self._append_transcript(self._make_turn(Role.ASSISTANT, NOT_CONFIGURED_TEXT, is_error=True))
        self._emit_notice(NOT_CONFIGURED_TEXT)

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    async def submit(self, text: str) -> bool:
        """
        Send one user message.

        Returns:
            True if the message was accepted, False for a no-op (empty text,
            a submission already in flight, or missing configuration)
        """
        message = (text or "").strip()
        if not message or self._is_shutdown:
            return False
        if self._in_flight:
            self.logger.debug("Submission ignored: another one is in flight")
            return False
        if not self.config.is_configured:
            self._send_not_configured()
            return False

        self._in_flight = True
        epoch = self._epoch
        try:
            user_turn = self._make_turn(Role.USER, message)
            self.buffer.push(user_turn)
            self._append_transcript(user_turn)
            self.logger.info(f"👤 {message}")

            await self.state_machine.transition_to(
                ConversationState.PROCESSING, component="orchestrator"
            )

            request = ChatRequest(
                session_id=self.session_id,
                business_id=self.config.business_id,
                message=message,
                recent_messages=self.buffer.to_list(),
                persona=self.config.persona,
            )
            try:
                reply = await asyncio.wait_for(self.chat.send(request), timeout=self.config.chat.timeout)
            except asyncio.TimeoutError:
                await self._record_chat_failure(
                    ServiceTimeoutError(f"Chat request timed out after {self.config.chat.timeout}s")
                )
                spoken = SPOKEN_APOLOGY
            except Exception as e:
                await self._record_chat_failure(e)
                spoken = SPOKEN_APOLOGY
            else:
                assistant_turn = self._make_turn(Role.ASSISTANT, reply)
                self.buffer.push(assistant_turn)
                self._append_transcript(assistant_turn)
                self.logger.info(f"🤖 {reply}")
                spoken = reply
        finally:
            self._in_flight = False

        await self._respond(spoken, epoch)
        return True

    async def _record_chat_failure(self, exc: BaseException) -> None:
        await self.error_handler.handle_error(
            ComponentError.from_exception("chat", exc, ErrorSeverity.RECOVERABLE, session_id=self.session_id)
        )
        self._append_transcript(self._make_turn(Role.ASSISTANT, ERROR_TURN_TEXT, is_error=True))

    async def _respond(self, text: str, epoch: int) -> None:
        should_speak = (
            epoch == self._epoch
            and not self._is_shutdown
            and (self.mode == ConversationMode.VOICE or self.config.playback.speak_text_replies)
        )
        if should_speak:
            await self.playback.speak(text)
        elif self.state_machine.is_processing:
            await self.state_machine.transition_to(ConversationState.IDLE)

    # ------------------------------------------------------------------
    # Capture / playback hooks
    # ------------------------------------------------------------------

    async def _on_utterance(self, text: str) -> None:
        if self._in_flight or self.state_machine.current_state in (
            ConversationState.PROCESSING, ConversationState.SPEAKING
        ):
            self.logger.debug(f"Utterance dropped while {self.state.value}: {text}")
            return
        if self.mode != ConversationMode.VOICE:
            return
        if not await self.submit(text):
            # Capture already released the microphone for this utterance
            await self._rearm_or_idle()

    async def _rearm_or_idle(self) -> None:
        if not await self._arm_listening():
            await self.state_machine.transition_to(ConversationState.IDLE)

    async def _on_capture_halted(self) -> None:
        if self.state_machine.is_listening:
            await self.state_machine.transition_to(ConversationState.IDLE)

    def _can_listen(self) -> bool:
        return (
            self._is_open
            and not self._is_shutdown
            and self.config.is_configured
            and self._mic_enabled
            and self.mode == ConversationMode.VOICE
            and self.capture.is_available
        )

    async def _arm_listening(self) -> bool:
        if not self._can_listen():
            return False
        if self.state_machine.is_processing:
            return False
        await self.state_machine.transition_to(ConversationState.LISTENING, component="capture")
        started = await self.capture.start()
        if not started and not self.capture.is_listening:
            await self.state_machine.transition_to(ConversationState.IDLE)
            return False
        return True

    # ------------------------------------------------------------------
    # Widget lifecycle
    # ------------------------------------------------------------------

    async def open(self) -> None:
        """Show the widget: welcome message once, then listen in voice mode."""
        if self._is_open or self._is_shutdown:
            return
        self._is_open = True
        self.logger.info("🪟 Widget opened")

        welcome = self.config.session.welcome_message
        if welcome and not self._welcomed:
            self._welcomed = True
            self._append_transcript(self._make_turn(Role.ASSISTANT, welcome))

        if not self.config.is_configured:
            self._send_not_configured()

        if self.state_machine.current_state == ConversationState.IDLE:
            await self._arm_listening()

    async def close(self) -> None:
        """Hide the widget and release the microphone and speaker."""
        if not self._is_open:
            return
        self._is_open = False
        self._epoch += 1
        await self._teardown("closed")
        self.logger.info("🪟 Widget closed")

    async def toggle_listening(self) -> bool:
        """
        Microphone button.

        Returns:
            True if the widget is listening afterwards
        """
        if self.capture.is_listening or self.state_machine.is_listening:
            self._mic_enabled = False
            await self.state_machine.transition_to(ConversationState.IDLE)
            return False

        if self.state_machine.is_processing or not self.capture.is_available:
            return False

        self._mic_enabled = True
        if self.mode != ConversationMode.VOICE:
            await self.set_mode(ConversationMode.VOICE)
            return self.capture.is_listening
        return await self._arm_listening()

    async def set_mode(self, mode: ConversationMode) -> None:
        """Switch between voice and text input."""
        mode = ConversationMode(mode)
        if mode == self.mode:
            return

        self._epoch += 1
        await self._teardown(f"mode → {mode.value}")
        self.mode = mode
        if self.config.session.clear_transcript_on_mode_switch:
            self.transcript.clear()
        self.logger.info(f"🔀 Mode: {mode.value}")

        if mode == ConversationMode.VOICE:
            self._mic_enabled = True
            await self._arm_listening()

    async def _teardown(self, reason: str) -> None:
        await self.capture.stop()
        await self.playback.stop()
        await self.state_machine.reset(reason)

    def update_voice_settings(self,
                              language: Optional[str] = None,
                              gender: Optional[str] = None,
                              style: Optional[str] = None,
                              speaking_speed: Optional[float] = None,
                              pitch: Optional[float] = None) -> VoiceSettings:
        """Change voice preferences; the next utterance uses them."""
        settings = self.voice_settings.copy()
        if language is not None:
            settings.language = normalize_language(language)
        if gender is not None:
            settings.gender = normalize_gender(gender)
        if style is not None:
            settings.style = normalize_style(style)
        if speaking_speed is not None:
            if speaking_speed <= 0:
                raise ValueError(f"speaking_speed must be positive, got {speaking_speed}")
            settings.speaking_speed = speaking_speed
        if pitch is not None:
            if pitch < 0:
                raise ValueError(f"pitch must not be negative, got {pitch}")
            settings.pitch = pitch
        self.voice_settings = settings
        self.logger.debug(f"🎚️  Voice settings: {settings.to_payload()}")
        return settings

    def get_status(self) -> Dict[str, Any]:
        return {
            'session_id': self.session_id,
            'business_id': self.config.business_id,
            'open': self._is_open,
            'mode': self.mode.value,
            'in_flight': self._in_flight,
            'state': self.state_machine.get_status(),
            'capture': self.capture.get_status(),
            'playback': self.playback.get_status(),
            'buffer_size': len(self.buffer),
            'transcript_size': len(self.transcript),
            'voice_settings': self.voice_settings.to_payload(),
            'errors': self.error_handler.get_error_summary(),
        }

    async def shutdown(self) -> None:
        """Tear everything down; every step runs even if one fails."""
        if self._is_shutdown:
            return
        self._is_shutdown = True
        self._is_open = False
        self._epoch += 1
        self.logger.info("🧹 Shutting down widget session...")

        async def reset_state():
            await self.state_machine.reset("shutdown")

        await safe_cleanup(
            self.capture.cleanup,
            self.playback.cleanup,
            self.chat.cleanup,
            reset_state,
        )
        self.logger.info("✅ Shutdown complete")
