"""
Factory for creating provider instances and wiring a widget session.
"""

from typing import Dict, Any, Optional, Type

from .config import WidgetConfig
from .interfaces import (
    ChatServiceInterface,
    VoiceServiceInterface,
    SpeechRecognitionInterface,
    OnDeviceSynthesizerInterface,
    AudioPlayerInterface,
    KeyValueStorageInterface
)
from .orchestrator import ConversationOrchestrator
from .providers.chat import HttpChatService, MockChatService
from .providers.voice import HttpVoiceService
from .providers.recognition import AssemblyAIRecognitionEngine
from .providers.synthesis import Pyttsx3Synthesizer
from .providers.audio import FfplayAudioPlayer
from .providers.storage import JsonFileStorage, MemoryStorage
from .session.identity import SessionIdentityStore
from .utils.error_handling import ErrorHandler
from .utils.logging_config import get_logger


logger = get_logger("factory")


class ProviderFactory:
    """Factory for creating provider instances."""

    CHAT_PROVIDERS = {
        'http': HttpChatService,
        'mock': MockChatService,
    }

    VOICE_PROVIDERS = {
        'http': HttpVoiceService,
    }

    RECOGNITION_PROVIDERS = {
        'assemblyai': AssemblyAIRecognitionEngine,
    }

    SYNTHESIZER_PROVIDERS = {
        'pyttsx3': Pyttsx3Synthesizer,
    }

    PLAYER_PROVIDERS = {
        'ffplay': FfplayAudioPlayer,
    }

    STORAGE_PROVIDERS = {
        'file': JsonFileStorage,
        'memory': MemoryStorage,
    }

    @staticmethod
    def _create(registry: Dict[str, Type], kind: str, provider_name: str, config: Dict[str, Any]):
        """
        Raises:
            ValueError: If provider name is not supported
        """
        if provider_name not in registry:
            available = ', '.join(registry.keys())
            raise ValueError(f"Unsupported {kind} provider: {provider_name}. Available: {available}")
        return registry[provider_name](config)

    @classmethod
    def create_chat_service(cls, provider_name: str, config: Dict[str, Any]) -> ChatServiceInterface:
        return cls._create(cls.CHAT_PROVIDERS, 'chat', provider_name, config)

    @classmethod
    def create_voice_service(cls, provider_name: str, config: Dict[str, Any]) -> VoiceServiceInterface:
        return cls._create(cls.VOICE_PROVIDERS, 'voice', provider_name, config)

    @classmethod
    def create_recognition_engine(cls, provider_name: str, config: Dict[str, Any]) -> SpeechRecognitionInterface:
        return cls._create(cls.RECOGNITION_PROVIDERS, 'recognition', provider_name, config)

    @classmethod
    def create_synthesizer(cls, provider_name: str, config: Dict[str, Any]) -> OnDeviceSynthesizerInterface:
        return cls._create(cls.SYNTHESIZER_PROVIDERS, 'synthesizer', provider_name, config)

    @classmethod
    def create_player(cls, provider_name: str, config: Dict[str, Any]) -> AudioPlayerInterface:
        return cls._create(cls.PLAYER_PROVIDERS, 'player', provider_name, config)

    @classmethod
    def create_storage(cls, provider_name: str, config: Dict[str, Any]) -> KeyValueStorageInterface:
        return cls._create(cls.STORAGE_PROVIDERS, 'storage', provider_name, config)

    @classmethod
    def get_available_providers(cls) -> Dict[str, list]:
        """
        Get list of all available providers by type.

        Returns:
            Dictionary mapping provider types to available provider names
        """
        return {
            'chat': list(cls.CHAT_PROVIDERS.keys()),
            'voice': list(cls.VOICE_PROVIDERS.keys()),
            'recognition': list(cls.RECOGNITION_PROVIDERS.keys()),
            'synthesizer': list(cls.SYNTHESIZER_PROVIDERS.keys()),
            'player': list(cls.PLAYER_PROVIDERS.keys()),
            'storage': list(cls.STORAGE_PROVIDERS.keys()),
        }


def create_storage(config: WidgetConfig) -> KeyValueStorageInterface:
    return ProviderFactory.create_storage(
        config.session.storage, {'path': config.session.storage_path}
    )


def create_widget(config: WidgetConfig,
                  chat_service: Optional[ChatServiceInterface] = None,
                  voice_service: Optional[VoiceServiceInterface] = None,
                  recognition_engine: Optional[SpeechRecognitionInterface] = None,
                  synthesizer: Optional[OnDeviceSynthesizerInterface] = None,
                  player: Optional[AudioPlayerInterface] = None,
                  storage: Optional[KeyValueStorageInterface] = None) -> ConversationOrchestrator:
    """
    Build a widget session from configuration.

    Any collaborator passed explicitly is used as-is instead of being
    created from the configuration. The returned orchestrator still needs
    ``await initialize()`` before use.
    """
    error_handler = ErrorHandler()

    if chat_service is None:
        chat_service = ProviderFactory.create_chat_service(
            config.chat.provider,
            {**config.chat.model_dump(), 'persona': config.persona}
        )

    if voice_service is None and config.voice.url:
        voice_service = ProviderFactory.create_voice_service(
            config.voice.provider, config.voice.model_dump()
        )

    if recognition_engine is None and config.capture.enabled:
        recognition_engine = ProviderFactory.create_recognition_engine(
            config.capture.engine, config.capture.model_dump()
        )

    if synthesizer is None:
        synthesizer = ProviderFactory.create_synthesizer(
            config.playback.synthesizer, config.playback.model_dump()
        )

    if player is None:
        player = ProviderFactory.create_player(config.playback.player, {})

    if storage is None:
        storage = create_storage(config)

    widget = ConversationOrchestrator(
        config,
        chat_service=chat_service,
        identity=SessionIdentityStore(storage),
        recognition_engine=recognition_engine,
        voice_service=voice_service,
        synthesizer=synthesizer,
        player=player,
        error_handler=error_handler,
    )
    logger.debug(
        f"🏭 Widget created (chat: {type(chat_service).__name__}, "
        f"voice: {type(voice_service).__name__ if voice_service else 'none'})"
    )
    return widget
