"""
Conversation state machine for coordinating capture, processing and playback.
"""

import asyncio
from enum import Enum
from typing import Optional, Callable, Dict, Any, List
from dataclasses import dataclass, field
from datetime import datetime

from .logging_config import get_logger


logger = get_logger("state")


class ConversationState(str, Enum):
    """Conversation states. Exactly one is active at a time."""
    IDLE = "idle"
    LISTENING = "listening"
    PROCESSING = "processing"
    SPEAKING = "speaking"


class InvalidTransitionError(ValueError):
    """Raised when a transition is not allowed from the current state."""


@dataclass
class StateTransition:
    """Record of a state transition."""
    from_state: ConversationState
    to_state: ConversationState
    component: str
    timestamp: float = field(default_factory=lambda: datetime.now().timestamp())
    metadata: Dict[str, Any] = field(default_factory=dict)


class ConversationStateMachine:
    """
    Owns the conversation state with explicit, validated transitions.

    Each state is owned by the component that entered it (``capture`` for
    LISTENING, ``orchestrator`` for PROCESSING, ``playback`` for SPEAKING).
    When ownership changes the previous owner's cleanup handler runs before
    the new state becomes visible, so the microphone is always released
    before audio output starts and vice versa.
    """

    VALID_TRANSITIONS = {
        ConversationState.IDLE: [
            ConversationState.LISTENING,
            ConversationState.PROCESSING,
            ConversationState.SPEAKING,
        ],
        ConversationState.LISTENING: [
            ConversationState.PROCESSING,
            ConversationState.SPEAKING,
            ConversationState.IDLE,
        ],
        ConversationState.PROCESSING: [
            ConversationState.SPEAKING,
            ConversationState.IDLE,
        ],
        ConversationState.SPEAKING: [
            ConversationState.SPEAKING,     # new utterance replaces the current one
            ConversationState.PROCESSING,   # user typed while the reply was playing
            ConversationState.LISTENING,
            ConversationState.IDLE,
        ],
    }

    def __init__(self, transition_delay: float = 0.0, max_history: int = 100):
        self._state = ConversationState.IDLE
        self._current_component: Optional[str] = None
        self._lock = asyncio.Lock()
        self._transition_history: List[StateTransition] = []
        self._max_history = max_history
        self._cleanup_handlers: Dict[str, Callable] = {}
        self._listeners: List[Callable[[StateTransition], None]] = []
        # Settling time for audio devices between owners
        self._transition_delay = transition_delay

    @property
    def current_state(self) -> ConversationState:
        return self._state

    @property
    def current_component(self) -> Optional[str]:
        return self._current_component

    @property
    def is_listening(self) -> bool:
        return self._state == ConversationState.LISTENING

    @property
    def is_speaking(self) -> bool:
        return self._state == ConversationState.SPEAKING

    @property
    def is_processing(self) -> bool:
        return self._state == ConversationState.PROCESSING

    def register_cleanup_handler(self, component: str, handler: Callable):
        """
        Register cleanup handler for a component.

        Args:
            component: Component name (e.g., "capture", "playback")
            handler: Async cleanup function; must be idempotent
        """
        self._cleanup_handlers[component] = handler

    def add_listener(self, listener: Callable[[StateTransition], None]) -> None:
        """Subscribe to transitions (presentation layers, tests)."""
        self._listeners.append(listener)

    def remove_listener(self, listener: Callable[[StateTransition], None]) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def can_transition(self, target_state: ConversationState) -> bool:
        return target_state in self.VALID_TRANSITIONS.get(self._state, [])

    async def transition_to(
        self,
        target_state: ConversationState,
        component: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> bool:
        """
        Safely transition to a new state.

        Returns:
            True if the state changed, False for a no-op (already there)

        Raises:
            InvalidTransitionError: If transition is invalid
        """
        async with self._lock:
            if target_state == self._state and target_state != ConversationState.SPEAKING:
                self._current_component = component
                return False

            if not self.can_transition(target_state):
                raise InvalidTransitionError(
                    f"Invalid transition: {self._state.name} → {target_state.name}"
                )

            transition = StateTransition(
                from_state=self._state,
                to_state=target_state,
                component=component or "none",
                metadata=metadata or {}
            )

            # Release the previous owner's resources first
            if self._current_component and self._current_component != component:
                await self._cleanup_component(self._current_component)
                if self._transition_delay > 0:
                    await asyncio.sleep(self._transition_delay)

            self._state = target_state
            self._current_component = component
            self._record(transition)

            logger.debug(f"🔄 {transition.from_state.name} → {target_state.name} (component: {component})")
            return True

    async def _cleanup_component(self, component: str):
        handler = self._cleanup_handlers.get(component)
        if handler is None:
            return
        try:
            await handler()
        except Exception as e:
            logger.warning(f"Error cleaning component {component}: {e}")

    def _record(self, transition: StateTransition) -> None:
        self._transition_history.append(transition)
        if len(self._transition_history) > self._max_history:
            self._transition_history.pop(0)

        for listener in list(self._listeners):
            try:
                listener(transition)
            except Exception as e:
                logger.warning(f"State listener failed: {e}")

    async def reset(self, reason: str = "reset"):
        """
        Return to IDLE from any state, cleaning up the current owner.
        Safe to call multiple times.
        """
        async with self._lock:
            if self._state == ConversationState.IDLE and self._current_component is None:
                return

            if self._current_component:
                await self._cleanup_component(self._current_component)

            transition = StateTransition(
                from_state=self._state,
                to_state=ConversationState.IDLE,
                component="none",
                metadata={'reason': reason}
            )
            self._state = ConversationState.IDLE
            self._current_component = None
            self._record(transition)
            logger.debug(f"🔄 reset to IDLE ({reason})")

    def get_transition_history(self, last_n: int = 10) -> List[StateTransition]:
        return self._transition_history[-last_n:]

    def get_status(self) -> Dict[str, Any]:
        return {
            'state': self._state.value,
            'component': self._current_component,
            'history_size': len(self._transition_history),
            'last_transition': self._transition_history[-1] if self._transition_history else None
        }
