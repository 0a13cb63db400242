"""Tests for per-key debounced writes."""

import asyncio

import pytest

from curio_sync.core.debounce import DebouncedWriter


def recorder(log, label, delay=0.0):
    async def write():
        log.append(f"start:{label}")
        if delay:
            await asyncio.sleep(delay)
        log.append(f"end:{label}")
    return write


class TestDebouncedWriter:

    @pytest.mark.asyncio
    async def test_burst_coalesces_to_last_write(self):
        writer = DebouncedWriter(delay=0.02)
        log = []

        for label in ("a", "b", "c"):
            writer.schedule("item-1", recorder(log, label))

        await asyncio.sleep(0.06)

        assert log == ["start:c", "end:c"]
        assert writer.pending_keys == []

    @pytest.mark.asyncio
    async def test_keys_are_independent(self):
        writer = DebouncedWriter(delay=60)
        log = []

        writer.schedule("item-1", recorder(log, "one"))
        writer.schedule("item-2", recorder(log, "two"))
        await writer.flush()

        assert sorted(log) == ["end:one", "end:two", "start:one", "start:two"]

    @pytest.mark.asyncio
    async def test_in_flight_write_not_cancelled_and_order_kept(self):
        writer = DebouncedWriter(delay=0)
        log = []

        writer.schedule("item-1", recorder(log, "first", delay=0.03))
        await asyncio.sleep(0.01)
        assert writer.is_pending("item-1")

        writer.schedule("item-1", recorder(log, "second"))
        await writer.flush()

        assert log == ["start:first", "end:first", "start:second", "end:second"]

    @pytest.mark.asyncio
    async def test_cancel_drops_waiting_write(self):
        writer = DebouncedWriter(delay=60)
        log = []

        writer.schedule("item-1", recorder(log, "dropped"))
        assert writer.cancel("item-1") is True
        assert writer.cancel("item-1") is False
        await writer.flush()

        assert log == []

    @pytest.mark.asyncio
    async def test_run_now_replaces_waiting_write(self):
        writer = DebouncedWriter(delay=60)
        log = []

        writer.schedule("item-1", recorder(log, "save"))
        writer.run_now("item-1", recorder(log, "delete"))
        await writer.flush()

        assert log == ["start:delete", "end:delete"]

    @pytest.mark.asyncio
    async def test_failing_write_does_not_break_later_writes(self):
        writer = DebouncedWriter(delay=60)
        log = []

        async def explode():
            raise RuntimeError("boom")

        writer.run_now("item-1", explode)
        writer.schedule("item-1", recorder(log, "after"))
        await writer.flush()

        assert log == ["start:after", "end:after"]
