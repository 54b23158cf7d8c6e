from .assemblyai import AssemblyAIRecognitionEngine

__all__ = ['AssemblyAIRecognitionEngine']
