"""
Stable per-client conversation identifier.
"""

import uuid
from typing import Optional

from ..interfaces.storage import KeyValueStorageInterface
from ..utils.error_handling import StorageUnavailableError
from ..utils.logging_config import get_logger


logger = get_logger("identity")

SESSION_STORAGE_KEY = "ai-widget-session"


def generate_session_id() -> str:
    """New opaque identifier carrying 128 bits of randomness."""
    return f"sess_{uuid.uuid4().hex}"


class SessionIdentityStore:
    """
    Returns the same session id for every call within one storage scope.

    The id is created on first use and persisted under a fixed key. When the
    storage cannot be used the store keeps an in-memory id for its own
    lifetime instead, so the widget keeps working (the conversation simply
    will not survive a restart).
    """

    def __init__(self, storage: Optional[KeyValueStorageInterface]):
        self._storage = storage
        self._memory_id: Optional[str] = None

    def get_or_create_session_id(self) -> str:
        if self._memory_id is not None:
            return self._memory_id

        if self._storage is None:
            return self._fallback()

        try:
            existing = self._storage.get(SESSION_STORAGE_KEY)
            if existing:
                return existing

            session_id = generate_session_id()
            self._storage.set(SESSION_STORAGE_KEY, session_id)
            logger.info(f"🆔 New session {session_id}")
            return session_id
        except (StorageUnavailableError, OSError) as e:
            logger.debug(f"Session storage unavailable ({e}); using in-memory id")
            return self._fallback()

    def _fallback(self) -> str:
        if self._memory_id is None:
            self._memory_id = generate_session_id()
        return self._memory_id

    def reset(self) -> str:
        """Forget the stored id and create a fresh one."""
        self._memory_id = None
        if self._storage is not None:
            try:
                self._storage.remove(SESSION_STORAGE_KEY)
            except (StorageUnavailableError, OSError) as e:
                logger.warning(f"Could not clear stored session: {e}")
        return self.get_or_create_session_id()
