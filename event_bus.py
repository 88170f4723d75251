from __future__ import annotations
import asyncio
import logging
from dataclasses import dataclass
from typing import AsyncIterable, Union

from messages import Message, decode

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class External:
    """ A message that arrived on the wire """
    message: Message

@dataclass(frozen=True)
class Tick:
    """ Periodic wakeup driving a gossip round """

@dataclass(frozen=True)
class Eof:
    """ Input stream is exhausted; last event the node loop will see """


Event = Union[External, Tick, Eof]


class EventBus:
    """
    Unbounded many-producer, single-consumer queue of events.

    Producers never wait: `put` either enqueues or, once the bus is closed, rejects
    the event and returns False. Events already queued stay readable after `close`.
    """
    def __init__(self) -> None:
        self._queue: asyncio.Queue[Event] = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def put(self, event: Event) -> bool:
        if self._closed:
            return False
        self._queue.put_nowait(event)
        return True

    async def get(self) -> Event:
        return await self._queue.get()

    def close(self) -> None:
        self._closed = True

    def qsize(self) -> int:
        return self._queue.qsize()


async def read_events(lines: AsyncIterable[bytes], bus: EventBus) -> None:
    """ Decode each input line into an External event; finish with Eof. Decode errors propagate. """
    async for line in lines:
        if not line.strip():
            continue
        msg = decode(line)
        if not bus.put(External(msg)):
            logger.debug("bus closed, dropping input: %s", msg)
            return
    bus.put(Eof())


async def tick_forever(bus: EventBus, interval: float) -> None:
    while True:
        await asyncio.sleep(interval)
        if not bus.put(Tick()):
            logger.debug("bus closed, ticker exiting")
            return
