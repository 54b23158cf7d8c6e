from .ffplay_player import FfplayAudioPlayer

__all__ = ['FfplayAudioPlayer']
