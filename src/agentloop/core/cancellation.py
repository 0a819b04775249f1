"""
Cooperative Cancellation

A CancellationToken is fired once when the session is stopped. Tool handlers
observe it at their own safe checkpoints; nothing is force-terminated.
"""

import asyncio

from agentloop.core.domain.errors import ToolCancelledError


class CancellationToken:
    """One-shot cancellation signal shared by all work of a session."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    async def wait(self) -> None:
        """Block until the token is cancelled."""
        await self._event.wait()

    def raise_if_cancelled(self) -> None:
        """Checkpoint for handlers: raise ToolCancelledError once cancelled."""
        if self._event.is_set():
            raise ToolCancelledError("Execution cancelled")
