"""
Session identity and the rolling local turn buffer.
"""

from .identity import SessionIdentityStore, SESSION_STORAGE_KEY, generate_session_id
from .buffer import RollingLocalBuffer, DEFAULT_BUFFER_LIMIT

__all__ = [
    'SessionIdentityStore',
    'SESSION_STORAGE_KEY',
    'generate_session_id',
    'RollingLocalBuffer',
    'DEFAULT_BUFFER_LIMIT'
]
