"""
Session Store — save/load conversations as JSON files.

Storage layout:
    ~/.miniclaw/sessions/
        {session_id}.json

Each file holds the session id, name, timestamps, the full message history
and the stats at save time.  The same format is used for export/import.
"""

from __future__ import annotations
import json
import logging
import os
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from .models import Message
from .session_stats import SessionStats

logger = logging.getLogger(__name__)

DEFAULT_SESSIONS_DIR = "~/.miniclaw/sessions"
FORMAT_VERSION = 1


class SessionStoreError(Exception):
    """Missing, unreadable or malformed session file."""


@dataclass
class SessionData:
    """Serializable snapshot of one session."""
    id: str
    name: str
    created_at: float
    messages: list[Message] = field(default_factory=list)
    stats: SessionStats = field(default_factory=SessionStats)
    saved_at: float = 0.0

    @classmethod
    def from_session(cls, session) -> "SessionData":
        return cls(
            id=session.id,
            name=session.name,
            created_at=session.created_at,
            messages=session.messages,
            stats=SessionStats.from_dict(session.stats.to_dict()),
            saved_at=time.time(),
        )

    def restore(self, manager, session_id: Optional[str] = None):
        """Create a live session in ``manager`` from this snapshot."""
        return manager.create(
            name=self.name,
            session_id=session_id or self.id,
            messages=self.messages,
            stats=SessionStats.from_dict(self.stats.to_dict()),
            created_at=self.created_at,
        )

    def to_dict(self) -> dict:
        return {
            "version": FORMAT_VERSION,
            "id": self.id,
            "name": self.name,
            "created_at": self.created_at,
            "saved_at": self.saved_at,
            "messages": [m.to_dict() for m in self.messages],
            "stats": self.stats.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SessionData":
        try:
            return cls(
                id=data["id"],
                name=data.get("name", ""),
                created_at=float(data.get("created_at", 0.0)),
                messages=[Message.from_dict(m) for m in data.get("messages", [])],
                stats=SessionStats.from_dict(data.get("stats", {})),
                saved_at=float(data.get("saved_at", 0.0)),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise SessionStoreError(f"Malformed session data: {e}") from e


def _read(path: Path) -> SessionData:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError as e:
        raise SessionStoreError(f"Session file not found: {path}") from e
    except (OSError, json.JSONDecodeError) as e:
        raise SessionStoreError(f"Cannot read session file {path}: {e}") from e
    if not isinstance(data, dict):
        raise SessionStoreError(f"Malformed session file: {path}")
    return SessionData.from_dict(data)


def _write(data: SessionData, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    with open(tmp, "w", encoding="utf-8") as f:
        json.dump(data.to_dict(), f, ensure_ascii=False, indent=2)
    os.replace(tmp, path)


class SessionStore:
    """Directory of saved sessions, one JSON file each."""

    def __init__(self, base_dir: str = DEFAULT_SESSIONS_DIR):
        self.base_dir = Path(base_dir).expanduser()

    def path_for(self, session_id: str) -> Path:
        return self.base_dir / f"{session_id}.json"

    def save_session(self, data: SessionData) -> Path:
        path = self.path_for(data.id)
        data.saved_at = time.time()
        _write(data, path)
        logger.info(f"Saved session {data.id} to {path}")
        return path

    def load_session(self, session_id: str) -> SessionData:
        path = self.path_for(session_id)
        if not path.exists():
            raise SessionStoreError(f"Session '{session_id}' not found")
        return _read(path)

    def list_sessions(self) -> list[SessionData]:
        """All readable saved sessions, newest first."""
        if not self.base_dir.is_dir():
            return []
        sessions = []
        for path in self.base_dir.glob("*.json"):
            try:
                sessions.append(_read(path))
            except SessionStoreError as e:
                logger.warning(f"Skipping unreadable session file: {e}")
        sessions.sort(key=lambda s: s.created_at, reverse=True)
        return sessions

    def delete_session(self, session_id: str) -> bool:
        path = self.path_for(session_id)
        if not path.exists():
            return False
        path.unlink()
        return True

    @staticmethod
    def export_session(data: SessionData, path: str) -> Path:
        target = Path(path).expanduser()
        _write(data, target)
        logger.info(f"Exported session {data.id} to {target}")
        return target

    @staticmethod
    def import_session(path: str) -> SessionData:
        return _read(Path(path).expanduser())
