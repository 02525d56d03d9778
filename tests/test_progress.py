"""Tests for the progress event stream."""

import asyncio

import pytest

from fabricdocs.core.models import EventKind, ProgressEvent
from fabricdocs.core.progress import ProgressStream


def event(current: int, total: int = 3) -> ProgressEvent:
    return ProgressEvent(kind=EventKind.PATTERN, current=current, total=total, pattern_name=f"p{current}")


class TestListeners:
    """Tests for synchronous subscribers."""

    def test_listeners_receive_events_in_order(self) -> None:
        stream = ProgressStream()
        first: list[int] = []
        second: list[int] = []
        stream.subscribe(lambda e: first.append(e.current))
        stream.subscribe(lambda e: second.append(e.current))

        for current in (1, 2, 3):
            stream.publish(event(current))

        assert first == [1, 2, 3]
        assert second == [1, 2, 3]

    def test_unsubscribe(self) -> None:
        stream = ProgressStream()
        seen: list[int] = []
        unsubscribe = stream.subscribe(lambda e: seen.append(e.current))

        stream.publish(event(1))
        unsubscribe()
        unsubscribe()
        stream.publish(event(2))

        assert seen == [1]

    def test_stream_is_a_sink(self) -> None:
        stream = ProgressStream()

        stream(event(1))

        assert stream.history == [event(1)]

    def test_history_is_a_copy(self) -> None:
        stream = ProgressStream()
        stream.publish(event(1))

        stream.history.clear()

        assert len(stream.history) == 1


class TestClose:
    """Tests for closing the stream."""

    def test_close_is_idempotent(self) -> None:
        stream = ProgressStream()

        stream.close()
        stream.close()

        assert stream.closed

    def test_publish_after_close_raises(self) -> None:
        stream = ProgressStream()
        stream.close()

        with pytest.raises(RuntimeError, match="closed"):
            stream.publish(event(1))


class TestAsyncIteration:
    """Tests for async consumers."""

    @pytest.mark.asyncio
    async def test_iterator_ends_on_close(self) -> None:
        stream = ProgressStream()
        iterator = stream.events()

        stream.publish(event(1))
        stream.publish(event(2))
        stream.close()

        assert [e.current async for e in iterator] == [1, 2]

    @pytest.mark.asyncio
    async def test_iterator_registered_before_first_await(self) -> None:
        stream = ProgressStream()
        iterator = stream.events()

        # Published before the consumer ever awaits
        stream.publish(event(1))
        stream.close()

        assert [e.current async for e in iterator] == [1]

    @pytest.mark.asyncio
    async def test_iterator_after_close_is_empty(self) -> None:
        stream = ProgressStream()
        stream.publish(event(1))
        stream.close()

        assert [e async for e in stream.events()] == []

    @pytest.mark.asyncio
    async def test_several_consumers(self) -> None:
        stream = ProgressStream()

        async def collect() -> list[int]:
            return [e.current async for e in stream.events()]

        tasks = [asyncio.create_task(collect()) for _ in range(3)]
        await asyncio.sleep(0)
        for current in (1, 2, 3):
            stream.publish(event(current))
            await asyncio.sleep(0)
        stream.close()

        results = await asyncio.gather(*tasks)
        assert results == [[1, 2, 3]] * 3

    @pytest.mark.asyncio
    async def test_consumer_that_stops_early_is_removed(self) -> None:
        stream = ProgressStream()
        iterator = stream.events()
        stream.publish(event(1))

        async for _ in iterator:
            break
        await iterator.aclose()

        stream.publish(event(2))
        stream.close()

        assert stream._queues == []
