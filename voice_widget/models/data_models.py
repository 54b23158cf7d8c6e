"""
Common data structures for the widget session.
"""

from dataclasses import dataclass, field, asdict
from typing import Optional, List, Dict, Any
from datetime import datetime
from enum import Enum


class Role(str, Enum):
    """Who produced a turn."""
    USER = "user"
    ASSISTANT = "assistant"


class ConversationMode(str, Enum):
    """Input channel the widget is in."""
    VOICE = "voice"
    TEXT = "text"


class AudioFormat(str, Enum):
    """Enum for audio formats."""
    MP3 = "mp3"
    WAV = "wav"
    OGG = "ogg"
    WEBM = "webm"
    PCM16 = "pcm16"

    @classmethod
    def from_content_type(cls, content_type: str) -> 'AudioFormat':
        """Map an ``audio/*`` content type to a format (MP3 when unknown)."""
        subtype = content_type.split(';')[0].strip().lower().split('/')[-1]
        mapping = {
            'mpeg': cls.MP3,
            'mp3': cls.MP3,
            'wav': cls.WAV,
            'x-wav': cls.WAV,
            'wave': cls.WAV,
            'ogg': cls.OGG,
            'webm': cls.WEBM,
            'l16': cls.PCM16,
        }
        return mapping.get(subtype, cls.MP3)


@dataclass(frozen=True)
class Turn:
    """One utterance in the conversation. Never mutated after creation."""
    role: Role
    text: str
    timestamp: float = field(default_factory=lambda: datetime.now().timestamp())
    # Styled as an error by presenters; never sent to the chat service
    is_error: bool = False

    def to_payload(self) -> Dict[str, str]:
        """Wire shape used in ``recentMessages``."""
        return {'role': self.role.value, 'text': self.text}


@dataclass
class VoiceSettings:
    """Voice preferences read by playback on every synthesis request."""
    language: str = "en"
    gender: str = "female"
    style: str = "calm"
    speaking_speed: Optional[float] = None
    pitch: Optional[float] = None

    def to_payload(self) -> Dict[str, Any]:
        """Wire shape for the voice endpoint (optional fields omitted)."""
        payload = {
            'language': self.language,
            'gender': self.gender,
            'style': self.style,
        }
        if self.speaking_speed is not None:
            payload['speakingSpeed'] = self.speaking_speed
        if self.pitch is not None:
            payload['pitch'] = self.pitch
        return payload

    def copy(self) -> 'VoiceSettings':
        return VoiceSettings(**asdict(self))


@dataclass
class RecognitionResult:
    """Transcript update from a speech recognition engine."""
    text: str
    is_final: bool
    timestamp: float = field(default_factory=lambda: datetime.now().timestamp())
    confidence: Optional[float] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        return f"{'[FINAL]' if self.is_final else '[PARTIAL]'} {self.text}"


@dataclass
class AudioOutput:
    """Audio returned by a synthesis service."""
    audio_data: bytes
    format: AudioFormat
    sample_rate: Optional[int] = None
    voice: Optional[str] = None
    language: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def get_size_kb(self) -> float:
        return len(self.audio_data) / 1024

    def is_valid(self) -> bool:
        """Playable only when there is at least one byte of audio."""
        return len(self.audio_data) > 0

    @property
    def fallback_voice(self) -> Optional[str]:
        """Voice hint from a service that asked for on-device synthesis."""
        return self.metadata.get('voice_id')


@dataclass
class ChatRequest:
    """Body sent to the chat endpoint."""
    session_id: str
    business_id: str
    message: str
    recent_messages: List[Turn] = field(default_factory=list)
    persona: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        payload = {
            'sessionId': self.session_id,
            'businessId': self.business_id,
            'message': self.message,
            'recentMessages': [turn.to_payload() for turn in self.recent_messages],
        }
        if self.persona:
            payload['persona'] = self.persona
        return payload
