"""
AssemblyAI streaming speech recognition engine.

Microphone audio is captured with a sounddevice callback and forwarded to
AssemblyAI's v3 streaming WebSocket; ``Turn`` messages come back as interim
and final transcripts.
"""

import asyncio
import json
import threading
from typing import AsyncIterator, Dict, Any, Optional
from urllib.parse import urlencode
from datetime import datetime

import aiohttp
import numpy as np

from ...interfaces.recognition import SpeechRecognitionInterface
from ...models.data_models import RecognitionResult
from ...utils.error_handling import (
    RecognitionError,
    MicrophonePermissionError,
    EngineUnsupportedError,
)
from ...utils.logging_config import get_logger


STREAMING_URL = "wss://streaming.assemblyai.com/v3/ws"


class AssemblyAIRecognitionEngine(SpeechRecognitionInterface):
    """
    Continuous recognition with interim results.

    The audio callback runs in PortAudio's thread and only hands copies of
    the captured blocks to the event loop; all network I/O stays on the
    loop. ``stop_streaming`` closes the socket, which ends the iterator
    returned by ``start_streaming``.
    """

    def __init__(self, config: Dict[str, Any]):
        self.config = config
        self.logger = get_logger("recognition")

        self.api_key = config.get('api_key')
        self.sample_rate = config.get('sample_rate', 16000)
        self.frames_per_buffer = config.get('frames_per_buffer', 3200)
        self.format_turns = config.get('format_turns', True)
        self.channels = 1
        self._device_index = config.get('input_device_index')

        connection_params = {
            "sample_rate": self.sample_rate,
            "format_turns": self.format_turns,
        }
        self.api_endpoint = f"{config.get('url', STREAMING_URL)}?{urlencode(connection_params)}"

        self._audio_stream = None
        self._audio_queue: Optional[asyncio.Queue] = None
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None
        self._session: Optional[aiohttp.ClientSession] = None
        self._send_task: Optional[asyncio.Task] = None
        self._event_loop: Optional[asyncio.AbstractEventLoop] = None
        self._shutdown_flag = threading.Event()
        self.session_id: Optional[str] = None
        self._is_active = False
        # Serializes open/close so a restart never overlaps a teardown
        self._lock = asyncio.Lock()

    async def initialize(self) -> bool:
        """Creates the persistent HTTP session; False without an API key."""
        if not self.api_key:
            self.logger.warning("ASSEMBLYAI_API_KEY not set; voice input unavailable")
            return False
        if not self._session or self._session.closed:
            self._session = aiohttp.ClientSession()
        return True

    # ------------------------------------------------------------------
    # Audio capture
    # ------------------------------------------------------------------

    def _audio_callback(self, indata: np.ndarray, frames: int, time_info: Any, status: Any):
        """Runs in the audio thread; must not block."""
        if self._shutdown_flag.is_set():
            return
        if status and getattr(status, 'input_overflow', False):
            self.logger.debug("Audio input overflow")

        audio_copy = indata.copy()
        if self._event_loop and self._audio_queue is not None:
            try:
                self._event_loop.call_soon_threadsafe(self._queue_audio, audio_copy)
            except RuntimeError:
                # Event loop already closed
                pass

    def _queue_audio(self, audio_data: np.ndarray):
        if self._audio_queue is None or self._shutdown_flag.is_set():
            return
        try:
            self._audio_queue.put_nowait(audio_data)
        except asyncio.QueueFull:
            # Drop the oldest block rather than fall behind
            try:
                self._audio_queue.get_nowait()
                self._audio_queue.put_nowait(audio_data)
            except (asyncio.QueueEmpty, asyncio.QueueFull):
                pass

    def _open_microphone(self):
        import sounddevice as sd

        try:
            stream = sd.InputStream(
                device=self._device_index,
                samplerate=self.sample_rate,
                channels=self.channels,
                dtype='int16',
                blocksize=self.frames_per_buffer,
                callback=self._audio_callback
            )
            stream.start()
        except sd.PortAudioError as e:
            raise MicrophonePermissionError(f"Cannot open microphone: {e}") from e
        return stream

    # ------------------------------------------------------------------
    # Stream lifecycle
    # ------------------------------------------------------------------

    @property
    def is_active(self) -> bool:
        return self._is_active

    async def _open(self):
        """Connect and open the microphone; failures leave nothing behind."""
        async with self._lock:
            if self._is_active:
                raise RecognitionError('aborted', "Recognition already active")

            self.logger.debug("🚀 Starting recognition...")
            try:
                await self._initialize_stream()
            except Exception as e:
                await self._cleanup_stream()
                if isinstance(e, RecognitionError):
                    self.logger.warning(f"Recognition start failed ({e.code}): {e}")
                    raise
                self.logger.warning(f"Recognition start failed: {e}")
                raise RecognitionError('audio-capture', str(e)) from e
            self._is_active = True
            self.logger.debug("✅ Recognition started")

    async def _close(self):
        async with self._lock:
            if not self._is_active:
                return
            self._is_active = False
            self.logger.debug("🛑 Stopping recognition...")
            try:
                await self._cleanup_stream()
            except Exception as e:
                self.logger.warning(f"Recognition cleanup error: {e}")

    async def _initialize_stream(self):
        if not self.api_key:
            raise EngineUnsupportedError("AssemblyAI API key missing")

        self._event_loop = asyncio.get_running_loop()
        self._shutdown_flag.clear()
        self._audio_queue = asyncio.Queue(maxsize=50)

        if not self._session or self._session.closed:
            self._session = aiohttp.ClientSession()

        try:
            self._ws = await self._session.ws_connect(
                self.api_endpoint,
                headers={"Authorization": self.api_key},
                heartbeat=30
            )
        except aiohttp.WSServerHandshakeError as e:
            if e.status in (401, 403):
                raise EngineUnsupportedError(f"AssemblyAI rejected the API key ({e.status})") from e
            raise RecognitionError('network', f"WebSocket handshake failed: {e}") from e
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise RecognitionError('network', f"WebSocket connection failed: {e}") from e

        self._audio_stream = self._open_microphone()
        self.logger.debug(
            f"🎙️  Microphone open (device: {self._device_index or 'default'}, {self.sample_rate}Hz)"
        )
        self._send_task = asyncio.create_task(self._send_audio())

    async def _cleanup_stream(self, full_cleanup: bool = False):
        """Safe to call multiple times."""
        self._shutdown_flag.set()

        if self._audio_stream is not None:
            try:
                if getattr(self._audio_stream, 'active', False):
                    self._audio_stream.stop()
                self._audio_stream.close()
            except Exception as e:
                self.logger.warning(f"Audio stream close error: {e}")
            finally:
                self._audio_stream = None

        if self._send_task and not self._send_task.done():
            self._send_task.cancel()
            await asyncio.gather(self._send_task, return_exceptions=True)
        self._send_task = None

        if self._ws is not None and not self._ws.closed:
            try:
                await self._ws.send_json({"type": "Terminate"})
                await self._ws.close()
            except Exception as e:
                self.logger.debug(f"WebSocket close error: {e}")
        self._ws = None

        if full_cleanup and self._session and not self._session.closed:
            await self._session.close()
            self._session = None

        self._audio_queue = None
        self._event_loop = None
        self.session_id = None

    async def _send_audio(self):
        """Forward queued microphone blocks to the socket."""
        while not self._shutdown_flag.is_set():
            queue = self._audio_queue
            if queue is None:
                break
            try:
                audio_data = await asyncio.wait_for(queue.get(), timeout=0.3)
            except asyncio.TimeoutError:
                continue

            if self._ws is None or self._ws.closed:
                break
            try:
                await self._ws.send_bytes(audio_data.tobytes())
            except (aiohttp.ClientError, ConnectionResetError) as e:
                if not self._shutdown_flag.is_set():
                    self.logger.warning(f"Audio send error: {e}")
                break

    async def start_streaming(self) -> AsyncIterator[RecognitionResult]:
        """Start recognition; ends when stopped or the server terminates the session."""
        await self._open()

        try:
            async for msg in self._ws:
                if msg.type == aiohttp.WSMsgType.TEXT:
                    try:
                        data = json.loads(msg.data)
                    except json.JSONDecodeError as e:
                        self.logger.warning(f"Bad message from AssemblyAI: {e}")
                        continue

                    msg_type = data.get('type')
                    if msg_type == "Begin":
                        self.session_id = data.get('id')
                        self.logger.debug(f"📝 Recognition session {self.session_id}")
                    elif msg_type == "Turn":
                        transcript = data.get('transcript', '')
                        if transcript:
                            yield RecognitionResult(
                                text=transcript,
                                is_final=bool(data.get('end_of_turn')) and data.get('turn_is_formatted', False),
                                timestamp=datetime.now().timestamp(),
                                confidence=data.get('end_of_turn_confidence'),
                                metadata={'session_id': self.session_id}
                            )
                    elif msg_type == "Termination":
                        break
                    elif msg_type == "Error" or 'error' in data:
                        raise RecognitionError('network', str(data.get('error', data)))

                elif msg.type == aiohttp.WSMsgType.ERROR:
                    if self._shutdown_flag.is_set():
                        break
                    raise RecognitionError('network', f"WebSocket error: {self._ws.exception()}")

                elif msg.type in (aiohttp.WSMsgType.CLOSED, aiohttp.WSMsgType.CLOSING):
                    break
        finally:
            await self._close()

    async def stop_streaming(self) -> None:
        """Stop recognition (keeps the HTTP session for a fast restart)."""
        await self._close()

    async def cleanup(self) -> None:
        await self._close()
        await self._cleanup_stream(full_cleanup=True)

    @property
    def capabilities(self) -> dict:
        return {
            'streaming': True,
            'interim_results': True,
            'languages': ['en-US'],
            'audio_formats': ['pcm16'],
            'sample_rates': [self.sample_rate],
        }
