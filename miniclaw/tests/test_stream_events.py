"""
Event and event channel tests — serialization, forward compatibility,
FIFO fan-out, listeners and closing.
"""

from __future__ import annotations

import asyncio

import pytest

from miniclaw.core.event_channel import ChannelClosedError, EventChannel
from miniclaw.core.stream_events import (
    Cancelled, Done, ErrorEvent, StreamDelta, ToolConfirm, ToolEnd, ToolStart, UsageUpdate,
    event_from_dict, event_to_dict, is_terminal, preview,
)


ALL_EVENTS = [
    StreamDelta(text="hi"),
    ToolStart(id="1", name="read_file", args_preview='{"path": "a"}'),
    ToolConfirm(id="2", name="exec_command", description="Run command: rm x"),
    ToolEnd(id="1", name="read_file", result_preview="contents", success=True, duration_ms=12.5),
    UsageUpdate(input_tokens=10, output_tokens=3),
    Done(final_text="bye"),
    Cancelled(reason="Interrupted"),
    ErrorEvent(message="boom", kind="NetworkError"),
]


class TestEventSerialization:

    @pytest.mark.parametrize("event", ALL_EVENTS, ids=lambda e: type(e).__name__)
    def test_dict_round_trip(self, event):
        assert event_from_dict(event_to_dict(event)) == event

    def test_error_event_wire_tag(self):
        assert ErrorEvent(message="x").to_dict()["type"] == "Error"

    def test_unknown_type_is_ignored(self):
        assert event_from_dict({"type": "ToolProgress", "percent": 50}) is None
        assert event_from_dict({}) is None

    def test_terminal_events(self):
        assert is_terminal(Done(final_text=""))
        assert is_terminal(Cancelled())
        assert is_terminal(ErrorEvent(message="x"))
        assert not is_terminal(StreamDelta(text="x"))
        assert not is_terminal(ToolEnd(id="1", name="t", result_preview="", success=True))


class TestPreview:

    def test_short_text_unchanged(self):
        assert preview("hello", 10) == "hello"

    def test_whitespace_collapsed(self):
        assert preview("a\n  b\tc") == "a b c"

    def test_truncated_with_ellipsis(self):
        out = preview("x" * 500, 50)
        assert len(out) == 50
        assert out.endswith("...")


class TestEventChannel:

    @pytest.mark.asyncio
    async def test_fifo_order_for_every_subscriber(self):
        channel = EventChannel("s1")
        subs = [channel.subscribe() for _ in range(3)]
        events = [StreamDelta(text=str(i)) for i in range(50)] + [Done(final_text="end")]
        for e in events:
            channel.emit(e)

        for sub in subs:
            received = [e async for e in sub.until_terminal()]
            assert received == events

    @pytest.mark.asyncio
    async def test_emit_never_blocks_without_consumer(self):
        channel = EventChannel()
        sub = channel.subscribe()
        for i in range(10_000):
            channel.emit(StreamDelta(text="x"))
        assert sub.pending == 10_000
        assert channel.emitted_count == 10_000

    @pytest.mark.asyncio
    async def test_consumer_reads_concurrently_with_producer(self):
        channel = EventChannel()
        sub = channel.subscribe()

        async def produce():
            for i in range(20):
                channel.emit(StreamDelta(text=str(i)))
                await asyncio.sleep(0)
            channel.emit(Done(final_text=""))

        producer = asyncio.create_task(produce())
        texts = [e.text async for e in sub.until_terminal() if isinstance(e, StreamDelta)]
        await producer
        assert texts == [str(i) for i in range(20)]

    def test_listeners_called_synchronously_in_order(self):
        channel = EventChannel()
        seen = []
        channel.add_listener(lambda e: seen.append(("a", e)))
        channel.add_listener(lambda e: seen.append(("b", e)))
        event = StreamDelta(text="x")
        channel.emit(event)
        assert seen == [("a", event), ("b", event)]

    def test_failing_listener_does_not_stop_delivery(self):
        channel = EventChannel()
        seen = []

        def broken(event):
            raise ValueError("listener bug")

        channel.add_listener(broken)
        channel.add_listener(seen.append)
        sub = channel.subscribe()
        channel.emit(Done(final_text="ok"))
        assert len(seen) == 1
        assert sub.drain() == seen

    def test_only_events_after_subscribe_are_seen(self):
        channel = EventChannel()
        channel.emit(StreamDelta(text="early"))
        sub = channel.subscribe()
        channel.emit(StreamDelta(text="late"))
        assert [e.text for e in sub.drain()] == ["late"]

    @pytest.mark.asyncio
    async def test_close_ends_iteration(self):
        channel = EventChannel()
        sub = channel.subscribe()
        channel.emit(StreamDelta(text="a"))
        channel.close()
        received = [e async for e in sub]
        assert [e.text for e in received] == ["a"]
        assert await sub.get() is None

    def test_emit_after_close_raises(self):
        channel = EventChannel("closed")
        channel.close()
        assert channel.closed
        with pytest.raises(ChannelClosedError):
            channel.emit(Done(final_text=""))
        with pytest.raises(ChannelClosedError):
            channel.subscribe()

    @pytest.mark.asyncio
    async def test_subscription_close_unsubscribes(self):
        channel = EventChannel()
        async with channel.subscribe() as sub:
            assert channel.subscriber_count == 1
        assert channel.subscriber_count == 0
        channel.emit(StreamDelta(text="ignored"))
        assert await sub.get() is None
