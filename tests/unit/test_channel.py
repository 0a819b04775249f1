"""Unit tests for the bounded Channel."""

import asyncio

import pytest

from agentloop.core.channel import Channel, ChannelClosed


class TestChannel:
    """Backpressure, close and drain semantics."""

    @pytest.mark.asyncio
    async def test_send_waits_while_full(self):
        """A full channel blocks the sender until the receiver makes room."""
        channel: Channel[int] = Channel(maxsize=1)
        await channel.send(1)

        sender = asyncio.create_task(channel.send(2))
        await asyncio.sleep(0.02)
        assert not sender.done()

        assert await channel.receive() == 1
        await asyncio.wait_for(sender, timeout=1)
        assert await channel.receive() == 2

    @pytest.mark.asyncio
    async def test_receivers_drain_after_close(self):
        """Buffered items are still delivered after close()."""
        channel: Channel[str] = Channel()
        await channel.send("a")
        await channel.send("b")
        channel.close()

        assert [item async for item in channel] == ["a", "b"]
        with pytest.raises(ChannelClosed):
            await channel.receive()

    @pytest.mark.asyncio
    async def test_close_wakes_waiting_receiver(self):
        """A receiver blocked on an empty channel sees ChannelClosed."""
        channel: Channel[str] = Channel()
        receiver = asyncio.create_task(channel.receive())
        await asyncio.sleep(0.01)

        channel.close()

        with pytest.raises(ChannelClosed):
            await asyncio.wait_for(receiver, timeout=1)

    @pytest.mark.asyncio
    async def test_send_on_closed_channel_raises(self):
        channel: Channel[str] = Channel()
        channel.close()

        with pytest.raises(ChannelClosed):
            await channel.send("late")
        with pytest.raises(ChannelClosed):
            channel.send_nowait("late")

    def test_capacity_must_be_positive(self):
        with pytest.raises(ValueError):
            Channel(maxsize=0)
