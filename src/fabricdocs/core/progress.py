"""Typed progress event stream.

The pipeline publishes ProgressEvent objects; anything that wants to follow
a run subscribes. The stream is itself a progress sink, so it can be passed
wherever a plain callable is accepted.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable

from fabricdocs.core.models import ProgressEvent

ProgressSink = Callable[[ProgressEvent], None]


class ProgressStream:
    """Fan-out channel for progress events.

    Synchronous listeners are called in subscription order as each event is
    published. Async consumers iterate over events() until close().

    Example:
        >>> stream = ProgressStream()
        >>> unsubscribe = stream.subscribe(print)
        >>> run = await pipeline.process(text, progress=stream)
        >>> stream.close()
    """

    def __init__(self) -> None:
        self._listeners: list[ProgressSink] = []
        self._queues: list[asyncio.Queue[ProgressEvent | None]] = []
        self._history: list[ProgressEvent] = []
        self._closed = False

    def __call__(self, event: ProgressEvent) -> None:
        self.publish(event)

    @property
    def closed(self) -> bool:
        """True once close() has been called."""
        return self._closed

    @property
    def history(self) -> list[ProgressEvent]:
        """Every event published so far, oldest first."""
        return list(self._history)

    def publish(self, event: ProgressEvent) -> None:
        """Deliver event to every listener and iterator.

        Raises:
            RuntimeError: If the stream has been closed.
        """
        if self._closed:
            raise RuntimeError("Cannot publish to a closed progress stream")

        self._history.append(event)
        for listener in list(self._listeners):
            listener(event)
        for queue in self._queues:
            queue.put_nowait(event)

    def subscribe(self, listener: ProgressSink) -> Callable[[], None]:
        """Register a synchronous listener.

        Args:
            listener: Called with each published event.

        Returns:
            A function that removes the listener again.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def events(self) -> AsyncIterator[ProgressEvent]:
        """Iterate over events published from now on.

        The iterator is registered immediately, so events published before
        the first await are not lost. Iteration ends when the stream closes.
        """
        queue: asyncio.Queue[ProgressEvent | None] = asyncio.Queue()
        if self._closed:
            queue.put_nowait(None)
        else:
            self._queues.append(queue)
        return self._drain(queue)

    async def _drain(self, queue: asyncio.Queue[ProgressEvent | None]) -> AsyncIterator[ProgressEvent]:
        try:
            while True:
                event = await queue.get()
                if event is None:
                    return
                yield event
        finally:
            if queue in self._queues:
                self._queues.remove(queue)

    def close(self) -> None:
        """End all async iterations. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        for queue in self._queues:
            queue.put_nowait(None)
