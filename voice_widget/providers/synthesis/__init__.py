from .local_tts import Pyttsx3Synthesizer

__all__ = ['Pyttsx3Synthesizer']
