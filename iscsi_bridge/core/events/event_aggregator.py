"""
Fan-in of several independent event streams into one.

Each source gets its own pump task writing into a shared queue, so an idle
source never holds back events that another source already produced.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import AsyncIterator, Awaitable, Callable, List, Optional, Tuple

from iscsi_bridge.core.events.domain_event import DomainEvent

EventStreams = List[Tuple[str, AsyncIterator[DomainEvent]]]
StreamOpener = Callable[[], Awaitable[AsyncIterator[DomainEvent]]]


@dataclass(frozen=True)
class LabeledEvent:
    """An event together with the label of the stream it came from."""
    source: str
    event: DomainEvent


@dataclass(frozen=True)
class _SourceFinished:
    source: str
    error: Optional[Exception] = None


_CLOSED = object()


async def _close_stream(label: str, stream: AsyncIterator[DomainEvent]) -> None:
    aclose = getattr(stream, "aclose", None)
    if aclose is None:
        return
    try:
        await aclose()
    except Exception as e:
        logging.warning(f"Error closing event source '{label}': {e}")


class EventAggregator:
    """
    Merges labeled event streams into a single async iterator of LabeledEvent.

    Events are forwarded in the order they become available; within one source
    the source order is kept. Iteration ends once every source has ended.
    If a source raises, the other sources are closed and the error is raised
    to the consumer.
    """

    def __init__(self, streams: EventStreams):
        self._streams = list(streams)
        # One slot per source is enough to never drop a ready event
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max(1, len(self._streams)))
        self._tasks: List[asyncio.Task] = []
        self._pending = len(self._streams)
        self._closed = False

    @property
    def labels(self) -> List[str]:
        return [label for label, _ in self._streams]

    @property
    def closed(self) -> bool:
        return self._closed

    def __aiter__(self) -> "EventAggregator":
        return self

    async def __anext__(self) -> LabeledEvent:
        if not self._tasks and not self._closed:
            self._start()

        while not self._closed and self._pending > 0:
            item = await self._queue.get()
            if item is _CLOSED:
                break
            if isinstance(item, _SourceFinished):
                self._pending -= 1
                if item.error is not None:
                    await self.aclose()
                    raise item.error
                logging.info(f"Event source '{item.source}' ended ({self._pending} remaining)")
                continue
            return item

        raise StopAsyncIteration

    def _start(self) -> None:
        for label, stream in self._streams:
            task = asyncio.create_task(self._pump(label, stream), name=f"event-source-{label}")
            self._tasks.append(task)
        logging.debug(f"Started {len(self._tasks)} event source pump(s): {', '.join(self.labels)}")

    async def _pump(self, label: str, stream: AsyncIterator[DomainEvent]) -> None:
        error: Optional[Exception] = None
        try:
            async for event in stream:
                await self._queue.put(LabeledEvent(source=label, event=event))
        except Exception as e:
            logging.error(f"Event source '{label}' failed: {e}")
            error = e
        finally:
            await _close_stream(label, stream)

        await self._queue.put(_SourceFinished(source=label, error=error))

    async def aclose(self) -> None:
        """Stops all pumps and closes every source. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True

        if self._tasks:
            for task in self._tasks:
                task.cancel()
            await asyncio.gather(*self._tasks, return_exceptions=True)
        else:
            for label, stream in self._streams:
                await _close_stream(label, stream)

        # Wake up a consumer blocked on an empty queue
        if self._queue.empty():
            self._queue.put_nowait(_CLOSED)
        logging.debug("Event aggregator closed")


async def open_event_streams(openers: List[Tuple[str, StreamOpener]]) -> EventAggregator:
    """
    Opens every source and returns their aggregator.

    Sources are opened in order. If one fails to open, the ones already
    opened are closed again and the error propagates; no events are produced.
    """
    streams: EventStreams = []
    try:
        for label, opener in openers:
            streams.append((label, await opener()))
    except BaseException:
        for label, stream in streams:
            await _close_stream(label, stream)
        raise

    logging.info(f"Opened event sources: {', '.join(label for label, _ in streams)}")
    return EventAggregator(streams)
