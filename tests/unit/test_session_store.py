"""Unit tests for FileSessionStore."""

import pytest

from agentloop.core.domain.messages import Message, ToolCall
from agentloop.core.domain.state import SessionSnapshot
from agentloop.infrastructure.persistence.file_session_store import FileSessionStore


@pytest.fixture
def store(tmp_path):
    return FileSessionStore(tmp_path / "sessions")


class TestFileSessionStore:
    """Tests for snapshot persistence."""

    @pytest.mark.asyncio
    async def test_save_and_load(self, store):
        """A saved snapshot loads back with history and turn count."""
        snapshot = SessionSnapshot(
            session_id="s1",
            model="gpt-5-mini",
            turn_count=2,
            messages=[
                Message.system("sys"),
                Message.user("hi"),
                Message.assistant("", [ToolCall("c1", "bash", {"command": "ls"})]),
            ],
        )

        await store.save(snapshot)
        loaded = await store.load("s1")

        assert loaded.turn_count == 2
        assert loaded.model == "gpt-5-mini"
        assert loaded.messages == snapshot.messages
        assert loaded.messages[2].tool_calls[0].arguments == {"command": "ls"}

    @pytest.mark.asyncio
    async def test_save_replaces_previous_version(self, store):
        await store.save(SessionSnapshot(session_id="s1", turn_count=1))
        await store.save(SessionSnapshot(session_id="s1", turn_count=3))

        assert (await store.load("s1")).turn_count == 3
        assert not list(store.sessions_dir.glob("*.tmp"))

    @pytest.mark.asyncio
    async def test_unknown_session(self, store):
        assert await store.load("missing") is None
        assert await store.delete("missing") is False

    @pytest.mark.asyncio
    async def test_list_and_delete(self, store):
        await store.save(SessionSnapshot(session_id="b"))
        await store.save(SessionSnapshot(session_id="a"))

        assert await store.list_sessions() == ["a", "b"]
        assert await store.delete("a") is True
        assert await store.list_sessions() == ["b"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("session_id", ["", "../escape", ".hidden", "a\\b"])
    async def test_invalid_session_ids(self, store, session_id):
        with pytest.raises(ValueError, match="Invalid session id"):
            await store.load(session_id)
