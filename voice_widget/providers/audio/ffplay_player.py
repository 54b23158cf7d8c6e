"""
Audio player backed by ffplay (or afplay on macOS).
"""

import asyncio
import platform
import shutil
import tempfile
from pathlib import Path
from typing import Optional, Dict, Any, List

from ...interfaces.audio_player import AudioPlayerInterface
from ...models.data_models import AudioOutput, AudioFormat
from ...utils.error_handling import PlaybackStartError, PlaybackInterruptedError
from ...utils.logging_config import get_logger


logger = get_logger("player")

FILE_SUFFIXES = {
    AudioFormat.MP3: ".mp3",
    AudioFormat.WAV: ".wav",
    AudioFormat.OGG: ".ogg",
    AudioFormat.WEBM: ".webm",
    AudioFormat.PCM16: ".pcm",
}


class FfplayAudioPlayer(AudioPlayerInterface):
    """
    Plays audio by handing a temporary file to a player process.

    Stopping terminates the process, so interruption is immediate.
    A missing player binary or a process that cannot be spawned raises
    ``PlaybackStartError``; a player that exits with an error once running
    raises ``PlaybackInterruptedError``.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        config = config or {}
        self.binary = config.get('binary') or self._detect_binary()
        self._process: Optional[asyncio.subprocess.Process] = None
        self._stopped = False

    @staticmethod
    def _detect_binary() -> Optional[str]:
        if shutil.which("ffplay"):
            return "ffplay"
        if platform.system() == 'Darwin' and shutil.which("afplay"):
            return "afplay"
        return None

    @property
    def is_playing(self) -> bool:
        return self._process is not None and self._process.returncode is None

    def _command(self, path: str, audio: AudioOutput) -> List[str]:
        if self.binary == "afplay":
            return ["afplay", path]
        args = [self.binary, "-nodisp", "-autoexit", "-loglevel", "quiet"]
        if audio.format == AudioFormat.PCM16:
            # Raw PCM needs an explicit format
            args += ["-f", "s16le", "-ar", str(audio.sample_rate or 24000), "-ac", "1"]
        return args + ["-i", path]

    async def play(self, audio: AudioOutput) -> None:
        if not self.binary:
            raise PlaybackStartError("No audio player found (install ffmpeg for ffplay)")
        if self.binary == "afplay" and audio.format == AudioFormat.PCM16:
            raise PlaybackStartError("afplay cannot play raw PCM")

        await self.stop()
        self._stopped = False
        suffix = FILE_SUFFIXES.get(audio.format, ".mp3")
        with tempfile.NamedTemporaryFile(suffix=suffix, delete=False) as tmp:
            tmp.write(audio.audio_data)
            tmp_path = tmp.name

        try:
            try:
                self._process = await asyncio.create_subprocess_exec(
                    *self._command(tmp_path, audio),
                    stdin=asyncio.subprocess.DEVNULL,
                    stdout=asyncio.subprocess.DEVNULL,
                    stderr=asyncio.subprocess.DEVNULL
                )
            except OSError as e:
                raise PlaybackStartError(f"Failed to start '{self.binary}': {e}") from e

            returncode = await self._process.wait()
            if returncode != 0 and not self._stopped:
                raise PlaybackInterruptedError(f"'{self.binary}' exited with status {returncode}")
        finally:
            self._process = None
            Path(tmp_path).unlink(missing_ok=True)

    async def stop(self) -> None:
        process = self._process
        if process is None or process.returncode is not None:
            return
        self._stopped = True
        try:
            process.terminate()
        except ProcessLookupError:
            return
        try:
            await asyncio.wait_for(process.wait(), timeout=1.0)
        except asyncio.TimeoutError:
            process.kill()
        logger.debug("🛑 Stopped audio playback")
