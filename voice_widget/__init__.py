"""
Voice Widget - client-side conversational session manager for an embeddable
voice/text chat assistant.

This package provides:
- Session identity persisted in client-side storage
- A rolling buffer of recent turns sent with every chat request
- Continuous speech capture with silence gating (AssemblyAI)
- Reply playback from a remote voice service with on-device fallback
- A single conversation state machine (idle, listening, processing, speaking)

Usage:
    from voice_widget import WidgetConfig, create_widget

    config = WidgetConfig.from_embed({"businessId": "acme", "backendUrl": "https://..."})
    widget = create_widget(config)
    await widget.initialize()
    await widget.open()
    await widget.submit("What are your hours?")
"""

from .orchestrator import ConversationOrchestrator
from .factory import ProviderFactory, create_widget
from .config import WidgetConfig
from .utils.state_machine import ConversationState
from . import interfaces
from . import models
from . import providers

__version__ = "1.0.0"

__all__ = [
    'ConversationOrchestrator',
    'ProviderFactory',
    'create_widget',
    'WidgetConfig',
    'ConversationState',
    'interfaces',
    'models',
    'providers'
]
