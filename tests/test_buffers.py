"""Tests for chrome_bridge.cdp.buffers."""

from __future__ import annotations

from chrome_bridge.cdp.buffers import (
    CONSOLE_BUFFER_SIZE,
    NETWORK_BUFFER_SIZE,
    EventBuffer,
    console_buffer,
    network_buffer,
)


def _fill(buffer: EventBuffer, count: int) -> None:
    for i in range(count):
        buffer.append({"n": i})


class TestEventBuffer:
    """Bounded FIFO semantics."""

    def test_sizes(self):
        assert console_buffer().maxlen == CONSOLE_BUFFER_SIZE == 500
        assert network_buffer().maxlen == NETWORK_BUFFER_SIZE == 200

    def test_evicts_oldest_first(self):
        buffer = EventBuffer(3)
        _fill(buffer, 5)
        assert len(buffer) == 3
        assert [e["n"] for e in buffer.read()] == [2, 3, 4]

    def test_read_limit_returns_newest_in_order(self):
        buffer = EventBuffer(10)
        _fill(buffer, 6)
        assert [e["n"] for e in buffer.read(limit=2)] == [4, 5]

    def test_read_is_non_destructive(self):
        buffer = EventBuffer(10)
        _fill(buffer, 4)
        buffer.read(limit=2)
        assert len(buffer) == 4

    def test_read_with_clear_empties(self):
        buffer = EventBuffer(10)
        _fill(buffer, 4)
        entries = buffer.read(limit=10, clear=True)
        assert len(entries) == 4
        assert buffer.read() == []

    def test_zero_limit(self):
        buffer = EventBuffer(10)
        _fill(buffer, 4)
        assert buffer.read(limit=0) == []

    def test_network_bound(self):
        buffer = network_buffer()
        _fill(buffer, 250)
        assert len(buffer) == 200
        assert buffer.read()[0]["n"] == 50
