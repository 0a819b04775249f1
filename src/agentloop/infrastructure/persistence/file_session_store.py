"""
File Session Store

Persists session snapshots as JSON files (one per session) so that a
conversation can be resumed with its history and turn count.
"""

import asyncio
import json
from pathlib import Path

import aiofiles
import structlog

from agentloop.core.domain.state import SessionSnapshot


class FileSessionStore:
    """Manages session snapshot persistence with per-session locks"""

    def __init__(self, sessions_dir: str | Path = ".agentloop/sessions"):
        self.sessions_dir = Path(sessions_dir)
        self.sessions_dir.mkdir(parents=True, exist_ok=True)
        self.locks: dict[str, asyncio.Lock] = {}
        self.logger = structlog.get_logger().bind(component="file_session_store")

    def _get_lock(self, session_id: str) -> asyncio.Lock:
        if session_id not in self.locks:
            self.locks[session_id] = asyncio.Lock()
        return self.locks[session_id]

    def _path(self, session_id: str) -> Path:
        if not session_id or "/" in session_id or "\\" in session_id or session_id.startswith("."):
            raise ValueError(f"Invalid session id: {session_id!r}")
        return self.sessions_dir / f"{session_id}.json"

    async def save(self, snapshot: SessionSnapshot) -> None:
        """Write the snapshot, replacing any previous version atomically."""
        path = self._path(snapshot.session_id)
        tmp_path = path.with_suffix(".json.tmp")
        async with self._get_lock(snapshot.session_id):
            async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
                await f.write(json.dumps(snapshot.to_dict(), ensure_ascii=False, indent=2))
            tmp_path.replace(path)
        self.logger.info(
            "session_saved",
            session_id=snapshot.session_id,
            messages=len(snapshot.messages),
            turn_count=snapshot.turn_count,
        )

    async def load(self, session_id: str) -> SessionSnapshot | None:
        """Return the stored snapshot, or None if the session is unknown."""
        path = self._path(session_id)
        if not path.exists():
            return None
        async with self._get_lock(session_id):
            async with aiofiles.open(path, "r", encoding="utf-8") as f:
                content = await f.read()
        snapshot = SessionSnapshot.from_dict(json.loads(content))
        self.logger.info("session_loaded", session_id=session_id, turn_count=snapshot.turn_count)
        return snapshot

    async def delete(self, session_id: str) -> bool:
        path = self._path(session_id)
        async with self._get_lock(session_id):
            if not path.exists():
                return False
            path.unlink()
        self.locks.pop(session_id, None)
        self.logger.info("session_deleted", session_id=session_id)
        return True

    async def list_sessions(self) -> list[str]:
        return sorted(p.stem for p in self.sessions_dir.glob("*.json"))
