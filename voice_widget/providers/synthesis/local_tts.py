"""
On-device speech synthesis using pyttsx3.
Offline fallback for when the remote voice service cannot provide audio.
"""

import asyncio
import platform
import re
import threading
from types import SimpleNamespace
from typing import Optional, Dict, Any, List

import pyttsx3

from ...interfaces.synthesis import OnDeviceSynthesizerInterface
from ...models.data_models import VoiceSettings
from ...utils.logging_config import get_logger
from ...utils.voice_catalog import select_device_voice


logger = get_logger("synthesis")

# One line of `say -v '?'`: "Monica              es_ES    # Hola, me llamo Mónica."
SAY_VOICE_LINE = re.compile(r'^(?P<name>.+?)\s+(?P<locale>[a-z]{2,3}[_-][A-Za-z0-9]+)\s+#')

# `say` does not report gender; these are the stock macOS voices
SAY_VOICE_GENDERS = {
    'alex': 'male', 'daniel': 'male', 'fred': 'male', 'jorge': 'male', 'juan': 'male',
    'diego': 'male', 'thomas': 'male', 'maged': 'male', 'reed': 'male', 'rocko': 'male',
    'samantha': 'female', 'karen': 'female', 'moira': 'female', 'tessa': 'female',
    'victoria': 'female', 'monica': 'female', 'mónica': 'female', 'paulina': 'female',
    'amelie': 'female', 'amélie': 'female', 'anna': 'female', 'marie': 'female', 'flo': 'female',
}


def parse_say_voices(listing: str) -> List[SimpleNamespace]:
    """Turn `say -v '?'` output into voice objects for ``select_device_voice``."""
    voices = []
    for line in listing.splitlines():
        match = SAY_VOICE_LINE.match(line.strip())
        if not match:
            continue
        name = match.group('name').strip()
        base_name = name.split(' (')[0].lower()
        voices.append(SimpleNamespace(
            id=name,
            name=name,
            languages=[match.group('locale')],
            gender=SAY_VOICE_GENDERS.get(base_name),
        ))
    return voices


class Pyttsx3Synthesizer(OnDeviceSynthesizerInterface):
    """
    Local TTS implementation using pyttsx3.

    Features:
    - No network calls
    - Voice chosen by language, then gender
    - Speaking speed mapped to words per minute
    - Interruption support

    On macOS the system ``say`` command is used instead; pyttsx3's
    NSSpeechSynthesizer driver is unreliable off the main thread.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        """
        Args:
            config: Configuration dictionary containing:
                - base_rate: Words per minute at speed 1.0 (default: 175)
                - volume: Volume 0.0-1.0 (default: 0.9)
                - use_system_say: Force/forbid macOS 'say' (default: auto)
        """
        config = config or {}
        self.base_rate = config.get('base_rate', 175)
        self.volume = config.get('volume', 0.9)
        use_say = config.get('use_system_say')
        self.use_macos_say = (platform.system() == 'Darwin') if use_say is None else bool(use_say)

        self._engine = None
        self._engine_lock = threading.Lock()
        self._say_process: Optional[asyncio.subprocess.Process] = None
        self._is_speaking = False
        self._pitch_warned = False
        self._say_voice_cache: Optional[list] = None

    async def initialize(self) -> bool:
        # The engine is created per utterance in its worker thread
        if self.use_macos_say:
            await self._say_voices()
        logger.info(f"✅ On-device synthesizer ready ({'macOS say' if self.use_macos_say else 'pyttsx3'})")
        return True

    @property
    def is_speaking(self) -> bool:
        return self._is_speaking

    def rate_for(self, settings: VoiceSettings) -> int:
        """Words per minute for the given settings."""
        speed = settings.speaking_speed or 1.0
        return max(50, int(self.base_rate * speed))

    async def speak(self,
                    text: str,
                    settings: VoiceSettings,
                    voice_hint: Optional[str] = None) -> None:
        if not text.strip():
            return
        if settings.pitch is not None and not self._pitch_warned:
            self._pitch_warned = True
            logger.debug("Pitch is not supported on-device; ignoring")

        rate = self.rate_for(settings)
        language = voice_hint or settings.language
        self._is_speaking = True
        try:
            if self.use_macos_say:
                await self._speak_with_say(text, rate, language, settings.gender)
            else:
                loop = asyncio.get_running_loop()
                await loop.run_in_executor(
                    None, self._speak_blocking, text, rate, language, settings.gender
                )
        finally:
            self._is_speaking = False

    async def _say_voices(self) -> list:
        """Voices installed for ``say``, listed once per synthesizer."""
        if self._say_voice_cache is None:
            try:
                process = await asyncio.create_subprocess_exec(
                    'say', '-v', '?',
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.DEVNULL
                )
                stdout, _ = await process.communicate()
            except OSError as e:
                logger.debug(f"Cannot list 'say' voices: {e}")
                stdout = b""
            self._say_voice_cache = parse_say_voices(stdout.decode('utf-8', errors='ignore'))
        return self._say_voice_cache

    async def _speak_with_say(self, text: str, rate: int, language: str, gender: Optional[str]) -> None:
        args = ['say', '-r', str(rate)]
        voice = select_device_voice(await self._say_voices(), language, gender)
        if voice is not None:
            args += ['-v', voice.id]
            logger.debug(f"🎤 Using voice: {voice.name}")
        else:
            logger.debug(f"No 'say' voice for '{language}'; using default")

        self._say_process = await asyncio.create_subprocess_exec(
            *args, text,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.DEVNULL
        )
        try:
            await self._say_process.wait()
        finally:
            self._say_process = None

    def _speak_blocking(self, text: str, rate: int, language: str, gender: str) -> None:
        """Runs in an executor thread; returns when speech has finished."""
        engine = pyttsx3.init()
        with self._engine_lock:
            self._engine = engine

        try:
            voice = select_device_voice(engine.getProperty('voices') or [], language, gender)
            if voice is not None:
                engine.setProperty('voice', voice.id)
                logger.debug(f"🎤 Using voice: {getattr(voice, 'name', voice.id)}")
            else:
                logger.debug(f"No on-device voice for '{language}'; using default")

            engine.setProperty('rate', rate)
            engine.setProperty('volume', self.volume)
            engine.say(text)
            engine.runAndWait()
        finally:
            with self._engine_lock:
                self._engine = None

    async def stop(self) -> None:
        process = self._say_process
        if process is not None and process.returncode is None:
            try:
                process.terminate()
            except ProcessLookupError:
                pass

        with self._engine_lock:
            if self._engine is not None:
                try:
                    self._engine.stop()
                except Exception as e:
                    logger.debug(f"pyttsx3 stop error: {e}")
        self._is_speaking = False

    async def cleanup(self) -> None:
        await self.stop()
