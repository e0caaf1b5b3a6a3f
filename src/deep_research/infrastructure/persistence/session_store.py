"""
SessionStore - persistence boundary for research sessions.

Storage model:
- One JSON document per session: {data_dir}/sessions/{session_id}.json
- The document is exactly ``ResearchSession.to_dict()``

The engine only depends on the ``SessionStore`` protocol; any document
store with save/load/list semantics can stand in for the file store.
"""

from __future__ import annotations

import json
import logging
import os
import re
from pathlib import Path
from typing import Protocol, runtime_checkable

from deep_research.core.exceptions import SessionNotFoundError
from deep_research.domain.entities import ResearchSession

logger = logging.getLogger(__name__)

_SAFE_ID = re.compile(r"^[A-Za-z0-9._-]+$")


@runtime_checkable
class SessionStore(Protocol):
    """Read/write a ResearchSession as modeled, nothing more."""

    def save(self, session: ResearchSession) -> None: ...

    def load(self, session_id: str) -> ResearchSession: ...

    def list_ids(self) -> list[str]: ...


class JsonFileSessionStore:
    """File-backed store writing one pretty-printed JSON file per session."""

    def __init__(self, data_dir: str | Path):
        self._sessions_dir = Path(data_dir).expanduser() / "sessions"
        self._sessions_dir.mkdir(parents=True, exist_ok=True)

    @property
    def sessions_dir(self) -> Path:
        return self._sessions_dir

    def _path_for(self, session_id: str) -> Path:
        if not _SAFE_ID.match(session_id):
            raise SessionNotFoundError(session_id)
        return self._sessions_dir / f"{session_id}.json"

    def save(self, session: ResearchSession) -> None:
        path = self._path_for(session.id)
        tmp_path = path.with_suffix(".json.tmp")
        tmp_path.write_text(json.dumps(session.to_dict(), indent=2, ensure_ascii=False), encoding="utf-8")
        # Readers never see a half-written document
        os.replace(tmp_path, path)
        logger.debug(f"Saved session {session.id} ({session.status.value}) to {path}")

    def load(self, session_id: str) -> ResearchSession:
        """
        Raises:
            SessionNotFoundError: no document for *session_id*.
        """
        path = self._path_for(session_id)
        if not path.exists():
            raise SessionNotFoundError(session_id)
        data = json.loads(path.read_text(encoding="utf-8"))
        return ResearchSession.from_dict(data)

    def list_ids(self) -> list[str]:
        return sorted(p.stem for p in self._sessions_dir.glob("*.json"))

    def delete(self, session_id: str) -> bool:
        path = self._path_for(session_id)
        if not path.exists():
            return False
        path.unlink()
        logger.info(f"Deleted session {session_id}")
        return True
