"""
Speech capture controller.

Wraps a continuous recognition engine and emits one event per finalized
utterance. All restart behaviour lives in a single run loop guarded by an
explicit state, so a second start or a restart racing a stop cannot open
the microphone twice.
"""

import asyncio
import inspect
import time
from enum import Enum
from typing import Optional, Callable, Awaitable, Any, Dict

from ..config import CaptureConfig
from ..interfaces.recognition import SpeechRecognitionInterface
from ..models.data_models import RecognitionResult
from ..utils.error_handling import (
    ErrorHandler,
    ComponentError,
    ErrorSeverity,
    RecognitionError,
)
from ..utils.logging_config import get_logger


logger = get_logger("capture")

NOTICE_PERMISSION = "🎤 Microphone access denied. Please allow microphone access in your system settings."
NOTICE_UNSUPPORTED = "🎤 Speech recognition not available. Please use text input instead."
NOTICE_NETWORK = "🎤 Network error. Please check your connection and try again."
NOTICE_TOO_MANY_ERRORS = "🎤 Voice input stopped after repeated errors. Tap the microphone to try again."
NOTICE_STOPPED = "🎤 Voice input stopped. Tap the microphone to try again."


class CaptureState(str, Enum):
    """Capture lifecycle."""
    STOPPED = "stopped"
    STARTING = "starting"
    ACTIVE = "active"
    FINALIZING = "finalizing"


class SpeechCaptureController:
    """
    Turns a stream of interim transcripts into finalized utterances.

    Every transcript update re-arms a silence timer. When it fires the
    transcript is checked against a minimum listening duration and a
    minimum length: passing utterances stop the engine and are emitted,
    anything shorter is dropped as noise and the engine is restarted.
    """

    def __init__(self,
                 engine: Optional[SpeechRecognitionInterface],
                 config: CaptureConfig,
                 on_utterance: Callable[[str], Any],
                 on_notice: Optional[Callable[[str], None]] = None,
                 on_halt: Optional[Callable[[], Awaitable[None]]] = None,
                 error_handler: Optional[ErrorHandler] = None,
                 clock: Callable[[], float] = time.monotonic):
        self._engine = engine
        self._config = config
        self._on_utterance = on_utterance
        self._on_notice = on_notice
        self._on_halt = on_halt
        self._error_handler = error_handler or ErrorHandler()
        self._clock = clock

        self._state = CaptureState.STOPPED
        # Bumped on every start/stop; events from older sessions are ignored
        self._session = 0
        self._run_task: Optional[asyncio.Task] = None
        self._finalize_task: Optional[asyncio.Task] = None
        self._discard_task: Optional[asyncio.Task] = None
        self._silence_handle: Optional[asyncio.TimerHandle] = None

        self._committed = ""
        self._interim = ""
        self._started_at = 0.0
        self._consecutive_errors = 0
        self._disabled = engine is None or not config.enabled
        self._disabled_notice_sent = False

        self._stats = {'starts': 0, 'restarts': 0, 'utterances': 0, 'discarded': 0, 'errors': 0}

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def state(self) -> CaptureState:
        return self._state

    @property
    def is_listening(self) -> bool:
        return self._state in (CaptureState.STARTING, CaptureState.ACTIVE)

    @property
    def is_available(self) -> bool:
        """False once capture has been disabled (no engine, permission denied)."""
        return not self._disabled

    @property
    def transcript(self) -> str:
        return " ".join(part for part in (self._committed, self._interim) if part).strip()

    # ------------------------------------------------------------------
    # Control
    # ------------------------------------------------------------------

    async def start(self) -> bool:
        """
        Begin listening.

        Returns:
            True if a new capture session started; False when already
            listening or capture is disabled
        """
        if self._disabled:
            self._send_disabled_notice(NOTICE_UNSUPPORTED)
            return False
        if self._state != CaptureState.STOPPED:
            logger.debug(f"start() ignored in state {self._state.value}")
            return False

        self._session += 1
        self._state = CaptureState.STARTING
        self._consecutive_errors = 0
        self._stats['starts'] += 1
        self._run_task = asyncio.create_task(self._run(self._session))
        logger.info("🎙️  Listening...")
        return True

    async def stop(self) -> None:
        """
        Stop listening from any state.

        The state is STOPPED as soon as this is called; engine events that
        arrive afterwards are ignored until the next ``start()``.
        """
        self._session += 1
        previous = self._state
        self._state = CaptureState.STOPPED
        self._cancel_silence_timer()
        self._clear_transcript()

        task = self._run_task
        self._run_task = None
        if task and not task.done() and task is not asyncio.current_task():
            task.cancel()

        if previous != CaptureState.STOPPED and self._engine is not None:
            try:
                await self._engine.stop_streaming()
            except Exception as e:
                logger.warning(f"Engine stop failed: {e}")
            logger.debug(f"⏹️  Capture stopped (was {previous.value})")

    async def cleanup(self) -> None:
        await self.stop()
        if self._engine is not None:
            await self._engine.cleanup()

    # ------------------------------------------------------------------
    # Run loop
    # ------------------------------------------------------------------

    async def _run(self, session: int) -> None:
        first = True
        while self._session == session:
            if not first:
                self._stats['restarts'] += 1
                await asyncio.sleep(self._config.restart_delay)
                if self._session != session:
                    return
            first = False

            self._clear_transcript()
            self._started_at = self._clock()
            self._state = CaptureState.ACTIVE

            try:
                async for result in self._engine.start_streaming():
                    if self._session != session:
                        return
                    self._consecutive_errors = 0
                    self._on_result(result, session)
            except asyncio.CancelledError:
                raise
            except RecognitionError as e:
                if not await self._handle_engine_error(e, session):
                    return
            except Exception as e:
                if not await self._handle_engine_error(RecognitionError('aborted', str(e)), session):
                    return

            # Engine ended; a pending transcript is judged now rather than lost
            self._cancel_silence_timer()
            if self._session == session and self._state == CaptureState.ACTIVE and self.transcript:
                self._evaluate(session, engine_running=False)
            if self._session != session or self._state != CaptureState.ACTIVE:
                return
            logger.debug("🔁 Engine stopped on its own, restarting")

    def _on_result(self, result: RecognitionResult, session: int) -> None:
        text = (result.text or "").strip()
        if result.is_final:
            if text:
                self._committed = f"{self._committed} {text}".strip()
            self._interim = ""
        else:
            self._interim = text
        self._reset_silence_timer(session)

    # ------------------------------------------------------------------
    # Silence gating
    # ------------------------------------------------------------------

    def _reset_silence_timer(self, session: int) -> None:
        self._cancel_silence_timer()
        loop = asyncio.get_running_loop()
        self._silence_handle = loop.call_later(
            self._config.silence_timeout, self._on_silence, session
        )

    def _cancel_silence_timer(self) -> None:
        if self._silence_handle is not None:
            self._silence_handle.cancel()
            self._silence_handle = None

    def _on_silence(self, session: int) -> None:
        self._silence_handle = None
        if self._session != session or self._state != CaptureState.ACTIVE:
            return
        if self.transcript:
            self._evaluate(session)

    def _evaluate(self, session: int, engine_running: bool = True) -> None:
        """Finalize the transcript or discard it as noise."""
        text = self.transcript
        duration = self._clock() - self._started_at
        if duration >= self._config.min_listen_duration and len(text) >= self._config.min_transcript_chars:
            self._state = CaptureState.FINALIZING
            self._finalize_task = asyncio.create_task(self._finalize(session, text, engine_running))
            return

        self._stats['discarded'] += 1
        logger.debug(f"🗑️  Discarded noise '{text}' ({duration * 1000:.0f}ms, {len(text)} chars)")
        self._clear_transcript()
        if engine_running:
            # The run loop restarts the engine once the stream ends
            self._discard_task = asyncio.create_task(self._engine.stop_streaming())

    async def _finalize(self, session: int, text: str, engine_running: bool = True) -> None:
        if engine_running:
            try:
                await self._engine.stop_streaming()
            except Exception as e:
                logger.warning(f"Engine stop during finalize failed: {e}")

        if self._session != session:
            return

        self._session += 1
        self._state = CaptureState.STOPPED
        self._clear_transcript()
        self._stats['utterances'] += 1
        logger.info(f"💬 Utterance: {text}")

        result = self._on_utterance(text)
        if inspect.isawaitable(result):
            await result

    # ------------------------------------------------------------------
    # Errors
    # ------------------------------------------------------------------

    async def _handle_engine_error(self, error: RecognitionError, session: int) -> bool:
        """
        Returns:
            True to keep listening, False when capture has been stopped
        """
        self._stats['errors'] += 1
        if self._session != session:
            return False

        if error.is_disabling:
            await self._error_handler.handle_error(
                ComponentError.from_exception("capture", error, ErrorSeverity.FATAL, code=error.code)
            )
            self._disabled = True
            notice = NOTICE_PERMISSION if error.code == 'not-allowed' else NOTICE_UNSUPPORTED
            self._send_disabled_notice(notice)
            await self._halt()
            return False

        if not error.is_temporary:
            await self._error_handler.handle_error(
                ComponentError.from_exception("capture", error, ErrorSeverity.RECOVERABLE, code=error.code)
            )
            self._notify(NOTICE_NETWORK if error.code == 'network' else NOTICE_STOPPED)
            await self._halt()
            return False

        self._consecutive_errors += 1
        await self._error_handler.handle_error(
            ComponentError.from_exception(
                "capture", error, ErrorSeverity.WARNING,
                code=error.code, consecutive=self._consecutive_errors
            )
        )
        if self._consecutive_errors >= self._config.max_consecutive_errors:
            self._notify(NOTICE_TOO_MANY_ERRORS)
            await self._halt()
            return False
        return True

    async def _halt(self) -> None:
        await self.stop()
        if self._on_halt is not None:
            await self._on_halt()

    async def disable(self, notice: str = NOTICE_UNSUPPORTED) -> None:
        """Turn voice input off for good (engine failed to initialize)."""
        self._disabled = True
        self._send_disabled_notice(notice)
        await self.stop()

    def _send_disabled_notice(self, message: str) -> None:
        if self._disabled_notice_sent:
            return
        self._disabled_notice_sent = True
        self._notify(message)

    def _notify(self, message: str) -> None:
        logger.warning(message)
        if self._on_notice is None:
            return
        try:
            self._on_notice(message)
        except Exception as e:
            logger.warning(f"Notice listener failed: {e}")

    def _clear_transcript(self) -> None:
        self._committed = ""
        self._interim = ""

    def get_status(self) -> Dict[str, Any]:
        return {
            'state': self._state.value,
            'available': not self._disabled,
            'transcript': self.transcript,
            'consecutive_errors': self._consecutive_errors,
            **self._stats
        }
