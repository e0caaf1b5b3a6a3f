"""Session persistence."""

from .session_store import JsonFileSessionStore, SessionStore

__all__ = ["JsonFileSessionStore", "SessionStore"]
