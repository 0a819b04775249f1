"""
Session Store Protocol

Persistence port for resumable sessions.
"""

from typing import Protocol

from agentloop.core.domain.state import SessionSnapshot


class SessionStoreProtocol(Protocol):
    """Save and load session snapshots."""

    async def save(self, snapshot: SessionSnapshot) -> None: ...

    async def load(self, session_id: str) -> SessionSnapshot | None: ...

    async def delete(self, session_id: str) -> bool: ...

    async def list_sessions(self) -> list[str]: ...
