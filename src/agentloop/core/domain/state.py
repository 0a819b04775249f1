"""
Session State

Lifecycle states of one agent session, the transitions allowed between them,
control commands sent by the controller handle, and the snapshot persisted
for session resume.
"""

import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from agentloop.core.domain.messages import Message


class SessionState(str, Enum):
    """Lifecycle state of a session."""

    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    STOPPING = "stopping"
    STOPPED = "stopped"
    COMPLETED = "completed"
    ERRORED = "errored"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES


TERMINAL_STATES = frozenset({SessionState.STOPPED, SessionState.COMPLETED, SessionState.ERRORED})

# Stopping is only left once in-flight tool work has unwound.
ALLOWED_TRANSITIONS: dict[SessionState, frozenset[SessionState]] = {
    SessionState.IDLE: frozenset(
        {SessionState.RUNNING, SessionState.STOPPING, SessionState.COMPLETED}
    ),
    SessionState.RUNNING: frozenset(
        {
            SessionState.PAUSED,
            SessionState.STOPPING,
            SessionState.COMPLETED,
            SessionState.ERRORED,
        }
    ),
    SessionState.PAUSED: frozenset(
        {SessionState.RUNNING, SessionState.STOPPING, SessionState.ERRORED}
    ),
    SessionState.STOPPING: frozenset({SessionState.STOPPED}),
    SessionState.STOPPED: frozenset(),
    SessionState.COMPLETED: frozenset(),
    SessionState.ERRORED: frozenset(),
}


class ControlCommand(str, Enum):
    """Command enqueued by the controller handle."""

    PAUSE = "pause"
    RESUME = "resume"
    STOP = "stop"


@dataclass
class SessionSnapshot:
    """
    Minimal persisted shape needed to resume a session.

    Attributes:
        session_id: Unique session identifier
        model: Model the session was run with
        turn_count: Model calls performed so far
        messages: Conversation history, system prompt included
        created_at: Creation time (epoch seconds)
        updated_at: Last save time (epoch seconds)
    """

    session_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    model: str = ""
    turn_count: int = 0
    messages: list[Message] = field(default_factory=list)
    created_at: float = field(default_factory=time.time)
    updated_at: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "model": self.model,
            "turn_count": self.turn_count,
            "messages": [m.to_dict() for m in self.messages],
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SessionSnapshot":
        return cls(
            session_id=data["session_id"],
            model=data.get("model", ""),
            turn_count=int(data.get("turn_count", 0)),
            messages=[Message.from_dict(m) for m in data.get("messages", [])],
            created_at=data.get("created_at", time.time()),
            updated_at=data.get("updated_at", time.time()),
        )
