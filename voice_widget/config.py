"""
Configuration for the voice widget.

Pydantic models with validation. A ``WidgetConfig`` is built once by the
host (from the environment, from the embed object, or directly) and passed
to ``create_widget``; nothing in the package reads configuration from
module globals.
"""

import os
from pathlib import Path
from typing import Optional, Dict, Any

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator, model_validator

from .models.data_models import ConversationMode, VoiceSettings
from .utils.voice_catalog import normalize_language, normalize_gender, normalize_style


DEFAULT_WELCOME_MESSAGE = "Hello! How can I help you today?"


class ChatEndpointConfig(BaseModel):
    """Chat completion endpoint."""
    provider: str = Field("http", description="Chat service provider (http, mock)")
    url: Optional[str] = Field(None, description="Chat endpoint URL")
    timeout: float = Field(15.0, gt=0.0, le=120.0, description="Request timeout in seconds")
    mock_delay: float = Field(1.5, ge=0.0, le=10.0, description="Simulated latency of the mock backend")

    @field_validator('url')
    @classmethod
    def validate_url(cls, v):
        if v and not v.startswith(('http://', 'https://')):
            raise ValueError(f'Chat endpoint must be an http(s) URL: {v}')
        return v or None

    @model_validator(mode='after')
    def validate_provider(self):
        if self.provider not in ('http', 'mock'):
            raise ValueError(f"Unknown chat provider: {self.provider}")
        return self


class VoiceEndpointConfig(BaseModel):
    """Remote voice synthesis endpoint."""
    provider: str = Field("http", description="Voice service provider")
    url: Optional[str] = Field(None, description="Voice endpoint URL; unset means on-device only")
    timeout: float = Field(10.0, gt=0.0, le=120.0, description="Request timeout in seconds")

    @field_validator('url')
    @classmethod
    def validate_url(cls, v):
        if v and not v.startswith(('http://', 'https://')):
            raise ValueError(f'Voice endpoint must be an http(s) URL: {v}')
        return v or None


class CaptureConfig(BaseModel):
    """Speech capture gating and engine settings."""
    enabled: bool = Field(True, description="Allow voice input")
    engine: str = Field("assemblyai", description="Recognition engine")
    api_key: Optional[str] = Field(None, description="Recognition engine API key")
    silence_timeout: float = Field(0.8, gt=0.0, le=10.0, description="Silence before an utterance is finalized")
    min_listen_duration: float = Field(0.2, ge=0.0, le=10.0, description="Shorter captures are treated as noise")
    min_transcript_chars: int = Field(2, ge=1, le=100, description="Shorter transcripts are treated as noise")
    restart_delay: float = Field(0.1, ge=0.0, le=5.0, description="Pause before restarting a stopped engine")
    max_consecutive_errors: int = Field(5, ge=1, le=100, description="Engine errors tolerated before giving up")
    sample_rate: int = Field(16000, ge=8000, le=48000, description="Microphone sample rate")
    frames_per_buffer: int = Field(3200, ge=160, le=16000, description="Samples per microphone block")
    input_device_index: Optional[int] = Field(None, description="Audio input device index")


class PlaybackConfig(BaseModel):
    """Audio output and on-device synthesis."""
    player: str = Field("ffplay", description="Audio player")
    synthesizer: str = Field("pyttsx3", description="On-device synthesizer")
    base_rate: int = Field(175, ge=50, le=400, description="On-device words per minute at speed 1.0")
    volume: float = Field(0.9, ge=0.0, le=1.0, description="On-device volume")
    speak_text_replies: bool = Field(False, description="Also speak replies in text mode")
    transition_delay: float = Field(0.0, ge=0.0, le=2.0, description="Settling time between mic and speaker")


class VoiceDefaults(BaseModel):
    """Initial voice settings."""
    language: str = Field("en", description="Language name or code")
    gender: str = Field("female", description="female or male")
    style: str = Field("calm", description="calm, friendly or professional")
    speaking_speed: Optional[float] = Field(None, gt=0.0, le=4.0, description="Speed multiplier")
    pitch: Optional[float] = Field(None, ge=0.0, le=2.0, description="Pitch multiplier")

    @field_validator('language')
    @classmethod
    def validate_language(cls, v):
        return normalize_language(v)

    @field_validator('gender')
    @classmethod
    def validate_gender(cls, v):
        return normalize_gender(v)

    @field_validator('style')
    @classmethod
    def validate_style(cls, v):
        return normalize_style(v)

    def to_settings(self) -> VoiceSettings:
        return VoiceSettings(
            language=self.language,
            gender=self.gender,
            style=self.style,
            speaking_speed=self.speaking_speed,
            pitch=self.pitch
        )


class SessionConfig(BaseModel):
    """Session identity, local buffer and widget behaviour."""
    storage: str = Field("file", description="Session storage backend (file, memory)")
    storage_path: Optional[str] = Field(None, description="Path for file storage")
    buffer_limit: int = Field(10, ge=1, le=100, description="Turns kept in the rolling buffer")
    initial_mode: ConversationMode = Field(ConversationMode.VOICE, description="Mode when the widget opens")
    clear_transcript_on_mode_switch: bool = Field(False, description="Clear visible transcript on mode toggle")
    welcome_message: Optional[str] = Field(DEFAULT_WELCOME_MESSAGE, description="Shown once on first open")


class WidgetConfig(BaseModel):
    """Complete widget configuration."""
    business_id: Optional[str] = Field(None, description="Tenant id; required for remote calls")
    persona: Optional[str] = Field(None, description="Persona forwarded to the chat endpoint")
    chat: ChatEndpointConfig = Field(default_factory=ChatEndpointConfig)
    voice: VoiceEndpointConfig = Field(default_factory=VoiceEndpointConfig)
    capture: CaptureConfig = Field(default_factory=CaptureConfig)
    playback: PlaybackConfig = Field(default_factory=PlaybackConfig)
    session: SessionConfig = Field(default_factory=SessionConfig)
    voice_defaults: VoiceDefaults = Field(default_factory=VoiceDefaults)
    log_level: str = Field("INFO", description="Logging level")

    @field_validator('business_id', 'persona')
    @classmethod
    def blank_to_none(cls, v):
        if v is None:
            return None
        v = v.strip()
        return v or None

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v):
        level = v.upper()
        if level not in ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'):
            raise ValueError(f'Invalid log level: {v}')
        return level

    @property
    def is_configured(self) -> bool:
        """Remote calls are only allowed once a tenant is known."""
        return bool(self.business_id)

    @classmethod
    def from_env(cls, env_file: Optional[Path] = None) -> 'WidgetConfig':
        """Load configuration from environment variables (and a .env file)."""
        if env_file is None:
            env_file = Path.cwd() / ".env"
        if env_file.exists():
            load_dotenv(env_file)

        return cls(
            business_id=os.getenv('WIDGET_BUSINESS_ID'),
            persona=os.getenv('WIDGET_PERSONA'),
            chat=ChatEndpointConfig(
                provider=os.getenv('CHAT_PROVIDER', 'http'),
                url=os.getenv('CHAT_ENDPOINT_URL'),
                timeout=float(os.getenv('CHAT_TIMEOUT', '15')),
            ),
            voice=VoiceEndpointConfig(
                url=os.getenv('VOICE_ENDPOINT_URL'),
                timeout=float(os.getenv('VOICE_TIMEOUT', '10')),
            ),
            capture=CaptureConfig(
                enabled=os.getenv('VOICE_INPUT_ENABLED', 'true').lower() != 'false',
                api_key=os.getenv('ASSEMBLYAI_API_KEY'),
            ),
            session=SessionConfig(
                storage=os.getenv('WIDGET_STORAGE', 'file'),
                storage_path=os.getenv('WIDGET_STORAGE_PATH'),
            ),
            log_level=os.getenv('LOG_LEVEL', 'INFO'),
        )

    @classmethod
    def from_embed(cls, embed: Dict[str, Any], **overrides) -> 'WidgetConfig':
        """
        Build configuration from the host's embed object.

        Accepts the camelCase keys hosts already use::

            {"businessId": "...", "backendUrl": "...", "voiceBackendUrl": "...",
             "mockBackend": false, "persona": "support", "welcomeMessage": "..."}

        Unknown keys are ignored.
        """
        chat = ChatEndpointConfig(
            provider='mock' if embed.get('mockBackend') else 'http',
            url=embed.get('backendUrl'),
        )
        voice = VoiceEndpointConfig(url=embed.get('voiceBackendUrl'))
        session = SessionConfig()
        if 'welcomeMessage' in embed:
            session = SessionConfig(welcome_message=embed.get('welcomeMessage'))

        data = {
            'business_id': embed.get('businessId'),
            'persona': embed.get('persona'),
            'chat': chat,
            'voice': voice,
            'session': session,
        }
        data.update(overrides)
        return cls(**data)


def validate_config(config: WidgetConfig) -> Dict[str, Any]:
    """Check a configuration for problems the models cannot catch alone."""
    results = {"valid": True, "errors": [], "warnings": []}

    if not config.business_id:
        results["errors"].append("Missing businessId (WIDGET_BUSINESS_ID)")
        results["valid"] = False

    if config.chat.provider == 'http' and not config.chat.url:
        results["errors"].append("Missing chat endpoint (CHAT_ENDPOINT_URL)")
        results["valid"] = False

    if not config.voice.url:
        results["warnings"].append("No voice endpoint; replies use on-device speech")

    if config.capture.enabled and not config.capture.api_key:
        results["warnings"].append("ASSEMBLYAI_API_KEY not set (voice input unavailable)")

    return results


def print_config_summary(config: WidgetConfig):
    """Print a summary of the given configuration."""
    print("=" * 60)
    print("🔧 Voice Widget Configuration")
    print("=" * 60)
    print(f"Business: {config.business_id or '—'}")
    print(f"Persona: {config.persona or 'default'}")
    print(f"Chat: {config.chat.provider} {config.chat.url or ''}".rstrip())
    print(f"Voice: {config.voice.url or 'on-device only'}")
    print(f"Capture: {config.capture.engine if config.capture.enabled else 'disabled'}")
    print(f"Playback: {config.playback.player} / {config.playback.synthesizer}")
    print(f"Mode: {config.session.initial_mode.value}")
    print()

    validation = validate_config(config)
    if validation["valid"]:
        print("✅ Configuration Valid")
    else:
        print("❌ Configuration Issues:")
        for error in validation["errors"]:
            print(f"  - {error}")

    if validation["warnings"]:
        print("\n⚠️  Warnings:")
        for warning in validation["warnings"]:
            print(f"  - {warning}")

    print("=" * 60)
