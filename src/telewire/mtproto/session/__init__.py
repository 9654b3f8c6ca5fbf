from .file import (
    FileSessionStore,
    MtprotoSession,
    SessionError,
    load_session_file,
    save_session_file,
)
from .memory import MemorySessionStore
from .store import SessionStore

__all__ = [
    "FileSessionStore",
    "MemorySessionStore",
    "MtprotoSession",
    "SessionError",
    "SessionStore",
    "load_session_file",
    "save_session_file",
]
