"""
Bounded record of the most recent conversation turns.
"""

from collections import deque
from typing import Deque, Dict, Iterator, List

from ..models.data_models import Turn


DEFAULT_BUFFER_LIMIT = 10


class RollingLocalBuffer:
    """
    Keeps the last ``limit`` turns, evicting the oldest first.

    This is only a hint sent along with chat requests; the chat service's
    durable history is authoritative.
    """

    def __init__(self, limit: int = DEFAULT_BUFFER_LIMIT):
        if limit < 1:
            raise ValueError(f"Buffer limit must be at least 1, got {limit}")
        self.limit = limit
        self._turns: Deque[Turn] = deque(maxlen=limit)

    def push(self, turn: Turn) -> None:
        self._turns.append(turn)

    def to_list(self) -> List[Turn]:
        """Snapshot, oldest first."""
        return list(self._turns)

    def to_payload(self) -> List[Dict[str, str]]:
        return [turn.to_payload() for turn in self._turns]

    def clear(self) -> None:
        self._turns.clear()

    def __len__(self) -> int:
        return len(self._turns)

    def __iter__(self) -> Iterator[Turn]:
        return iter(list(self._turns))
