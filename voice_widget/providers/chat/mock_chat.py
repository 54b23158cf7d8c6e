"""
Mock chat service for demos and offline development.
"""

import asyncio
import random
from typing import Dict, Any, List

from ...interfaces.chat import ChatServiceInterface
from ...models.data_models import ChatRequest


PERSONA_RESPONSES: Dict[str, List[str]] = {
    'assistant': [
        "That's an interesting perspective. Tell me more.",
        "I can certainly help you with that. Here's what I found...",
        "Based on my analysis, the optimal solution would be to...",
    ],
    'support': [
        "I understand your frustration. Let me check that for you.",
        "Could you provide your order number?",
        "I'm happy to help resolve this issue immediately.",
    ],
    'sales': [
        "This product is a game-changer for your workflow.",
        "We have a special offer available right now.",
        "Would you like to schedule a demo to see it in action?",
    ],
    'tech': [
        "Have you tried restarting the service?",
        "The API rate limits are likely the bottleneck here.",
        "Let's look at the logs to diagnose the root cause.",
    ],
}


class MockChatService(ChatServiceInterface):
    """Answers from a per-persona pool after a simulated delay."""

    def __init__(self, config: Dict[str, Any]):
        self.delay = float(config.get('mock_delay', 1.5))
        self.persona = config.get('persona') or 'assistant'
        self._random = random.Random(config.get('seed'))

    async def initialize(self) -> bool:
        return True

    async def send(self, request: ChatRequest) -> str:
        await asyncio.sleep(self.delay)
        pool = PERSONA_RESPONSES.get(request.persona or self.persona, PERSONA_RESPONSES['assistant'])
        return f"{self._random.choice(pool)} (Mock Response)"

    async def cleanup(self) -> None:
        pass
