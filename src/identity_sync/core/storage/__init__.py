"""Session storage backends for login flows and identity sessions."""

from .session_storage import (
    InMemorySessionStorage,
    SessionDecodeError,
    SessionStorage,
    create_session_storage,
)

__all__ = [
    "SessionStorage",
    "InMemorySessionStorage",
    "SessionDecodeError",
    "create_session_storage",
]
