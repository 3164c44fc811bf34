"""
File-backed store for one site's authenticated session (cookies/storage).

The capture time of an artifact is the file's mtime. Concurrent runs
against the same path are not supported: the file is not locked.
"""
import json
import logging
import os
import tempfile
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from config import SESSION_MAX_AGE_SECONDS

logger = logging.getLogger(__name__)


class SessionIOError(OSError):
    """A session file could not be read, written or removed."""


@dataclass(frozen=True)
class SessionArtifact:
    """Serialized authentication state of one site."""
    path: str
    captured_at: datetime
    payload: Dict[str, Any]

    def age_seconds(self, now: Optional[datetime] = None) -> float:
        return ((now or datetime.now()) - self.captured_at).total_seconds()


def load(path: str) -> Optional[SessionArtifact]:
    """
    Read a session artifact.

    Args:
        path: Session file path

    Returns:
        The artifact, or None if the file does not exist or is corrupt

    Raises:
        SessionIOError: On any filesystem error other than "not found"
    """
    try:
        with open(path, 'r', encoding='utf-8') as f:
            mtime = os.fstat(f.fileno()).st_mtime
            raw = f.read()
    except FileNotFoundError:
        return None
    except OSError as e:
        raise SessionIOError(f"Cannot read session file {path}: {e}") from e

    try:
        payload = json.loads(raw)
    except ValueError:
        logger.warning("Session file %s is not valid JSON; discarding it", path)
        invalidate(path)
        return None

    if not isinstance(payload, dict):
        logger.warning("Session file %s does not hold a JSON object; discarding it", path)
        invalidate(path)
        return None

    return SessionArtifact(
        path=path,
        captured_at=datetime.fromtimestamp(mtime),
        payload=payload,
    )


def is_stale(
    artifact: SessionArtifact,
    max_age: float = SESSION_MAX_AGE_SECONDS,
    now: Optional[datetime] = None,
) -> bool:
    """
    Check whether an artifact is older than max_age seconds.
    """
    return artifact.age_seconds(now) > max_age


def save(path: str, payload: Dict[str, Any]) -> SessionArtifact:
    """
    Write a session artifact atomically (temp file, then rename).

    Args:
        path: Session file path; parent directories are created
        payload: JSON-serializable session state

    Returns:
        The saved artifact
    """
    directory = os.path.dirname(os.path.abspath(path))
    try:
        os.makedirs(directory, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(
            prefix=".session-", suffix=".tmp", dir=directory
        )
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(payload, f, ensure_ascii=False)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, path)
        except BaseException:
            _remove_quietly(tmp_path)
            raise
    except OSError as e:
        raise SessionIOError(f"Cannot write session file {path}: {e}") from e

    logger.info("Session saved to %s", path)
    return SessionArtifact(path=path, captured_at=datetime.now(), payload=payload)


def invalidate(path: str) -> None:
    """
    Delete a session artifact. Does nothing if it does not exist.
    """
    try:
        os.remove(path)
    except FileNotFoundError:
        return
    except OSError as e:
        raise SessionIOError(f"Cannot delete session file {path}: {e}") from e
    logger.info("Deleted cache file: %s", path)


def _remove_quietly(path: str) -> None:
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
