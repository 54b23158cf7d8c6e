"""
Terminal presenter for a widget session.

Stands in for the chat bubble UI: renders transcript turns, notices and
the listening/speaking indicator by subscribing to orchestrator events.
"""

from typing import Optional, TextIO
import sys

from .models.data_models import Role, Turn
from .orchestrator import ConversationOrchestrator
from .utils.state_machine import ConversationState, StateTransition


STATE_LABELS = {
    ConversationState.IDLE: "",
    ConversationState.LISTENING: "🎙️  Listening...",
    ConversationState.PROCESSING: "💭 Thinking...",
    ConversationState.SPEAKING: "🔊 Speaking...",
}


class ConsolePresenter:
    """Prints widget events to a text stream."""

    def __init__(self, stream: Optional[TextIO] = None, show_states: bool = True):
        self.stream = stream or sys.stdout
        self.show_states = show_states

    def attach(self, widget: ConversationOrchestrator) -> 'ConsolePresenter':
        widget.add_turn_listener(self.on_turn)
        widget.add_notice_listener(self.on_notice)
        if self.show_states:
            widget.add_state_listener(self.on_state)
        return self

    def _write(self, line: str) -> None:
        print(line, file=self.stream, flush=True)

    def on_turn(self, turn: Turn) -> None:
        if turn.role == Role.USER:
            self._write(f"👤 You: {turn.text}")
        elif turn.is_error:
            self._write(f"   {turn.text}")
        else:
            self._write(f"🤖 Assistant: {turn.text}")

    def on_notice(self, message: str) -> None:
        self._write(f"   {message}")

    def on_state(self, transition: StateTransition) -> None:
        label = STATE_LABELS.get(transition.to_state)
        if label:
            self._write(f"   {label}")
