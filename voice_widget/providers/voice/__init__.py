from .http_voice import HttpVoiceService

__all__ = ['HttpVoiceService']
