"""Session cache and login waiting."""
from session.login_waiter import wait_for_login
from session.session_store import (
    SessionArtifact,
    SessionIOError,
    invalidate,
    is_stale,
    load,
    save,
)

__all__ = [
    "SessionArtifact", "SessionIOError", "invalidate", "is_stale",
    "load", "save", "wait_for_login",
]
