#!/usr/bin/env python3
from __future__ import annotations
import asyncio
import enum
import inspect
import logging
import sys
from typing import AsyncIterable, Callable

from dispatcher import MessageDispatcher, WriteLine, stream_write_line
from event_bus import Eof, Event, EventBus, External, Tick, read_events, tick_forever
from messages import (
    REPLY_TYPES, Body, Broadcast, BroadcastOk, Echo, EchoOk, Error, Generate, GenerateOk,
    Gossip, Init, InitOk, Message, Read, ReadOk, Topology, TopologyOk,
)
from utils import GOSSIP_INTERVAL_SEC, connect_input_stream, connect_output_stream, setup_logging

logger = logging.getLogger(__name__)


class ProtocolError(Exception):
    """ The driver sent something that is not valid in the node's current state """


class InvariantError(Exception):
    """ Node bookkeeping is inconsistent; a seeding bug rather than bad input """


class NodeState(enum.Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZED = "initialized"
    TERMINATED = "terminated"


Handler = Callable[[str, Body], Body | None]


class GossipNode:
    """
    Replicates a grow-only set of integers across the cluster by anti-entropy gossip.

    The node is driven one event at a time by `process_event` and is the sole owner of
    its state. Each Tick sends every neighbor the values it is not yet known to have;
    what a neighbor knows is learned only from gossip that neighbor sends us.
    """
    node_id: str
    cluster: list[str]

    def __init__(self, dispatcher: MessageDispatcher) -> None:
        self.dispatcher = dispatcher
        self.state = NodeState.UNINITIALIZED
        self.topology: dict[str, list[str]] = {}
        self.broadcast_ids: set[int] = set()
        self.known_ids: dict[str, set[int]] = {}

        self._handlers: dict[str, Handler] = {}
        for name, method in inspect.getmembers(self, inspect.ismethod):
            if name.startswith("handle_"):
                msg_type = name[7:]
                assert msg_type not in self._handlers, "Duplicate message type"
                self._handlers[msg_type] = method

    def __str__(self) -> str:
        if self.state is NodeState.UNINITIALIZED:
            return "node: uninitialized"
        first_ids = ",".join(str(v) for v in sorted(self.broadcast_ids)[:10])
        return (
            f"node_id: {self.node_id}, cluster: {','.join(self.cluster)}, "
            f"topology: {','.join(self.topology.get(self.node_id, []))}, "
            f"msg_id: {self.dispatcher.next_msg_id}, broadcast_ids: [{first_ids}...]"
        )

    async def run(self, bus: EventBus) -> None:
        """ Consume events until Eof. """
        while self.state is not NodeState.TERMINATED:
            await self.process_event(await bus.get())
        logger.info("finished")

    async def process_event(self, event: Event) -> None:
        logger.debug("processing event: %s", event)
        if self.state is NodeState.TERMINATED:
            raise ProtocolError(f"event after termination: {event}")

        if self.state is NodeState.UNINITIALIZED:
            if isinstance(event, External) and isinstance(event.message.body, Init):
                await self.initialize(event.message)
                return
            raise ProtocolError(f"expected init message, got {event}")

        if isinstance(event, Tick):
            await self.gossip()
        elif isinstance(event, Eof):
            logger.info("received EOF")
            self.state = NodeState.TERMINATED
        else:
            await self.receive_msg(event.message)

    async def initialize(self, msg: Message) -> None:
        init = msg.body
        assert isinstance(init, Init)
        self.node_id = init.node_id
        self.cluster = list(init.node_ids)
        peers = [node_id for node_id in self.cluster if node_id != self.node_id]
        # full mesh until the driver sends a topology
        self.topology = {self.node_id: peers}
        self.known_ids = {peer: set() for peer in peers}
        await self.dispatcher.send(self.node_id, msg.src, InitOk(), in_reply_to=init.msg_id)
        self.state = NodeState.INITIALIZED
        logger.info("initialized node: %s", self)

    async def receive_msg(self, msg: Message) -> None:
        if msg.dest != self.node_id:
            raise ProtocolError(f"message for {msg.dest} delivered to {self.node_id}: {msg}")
        body = msg.body
        if isinstance(body, Init):
            raise ProtocolError("got `init` but already initialized")
        if body.type in REPLY_TYPES:
            if isinstance(body, Error):
                logger.warning("error from %s: code=%d text=%s", msg.src, body.code, body.text)
            return

        handler = self._handlers.get(body.type)
        if handler is None:
            raise ProtocolError(f"no handler for message type {body.type!r}")
        resp = handler(msg.src, body)
        if resp is not None:
            await self.dispatcher.send(self.node_id, msg.src, resp, in_reply_to=body.msg_id)

    def handle_echo(self, src: str, msg: Echo) -> EchoOk:
        return EchoOk(echo=msg.echo)

    def handle_generate(self, src: str, msg: Generate) -> GenerateOk:
        # unique because the reply's own msg_id never repeats on this node
        return GenerateOk(id=f"{self.node_id}-{self.dispatcher.next_msg_id}")

    def handle_broadcast(self, src: str, msg: Broadcast) -> BroadcastOk:
        self.broadcast_ids.add(msg.message)
        return BroadcastOk()

    def handle_read(self, src: str, msg: Read) -> ReadOk:
        return ReadOk(messages=sorted(self.broadcast_ids))

    def handle_topology(self, src: str, msg: Topology) -> TopologyOk:
        self.topology = msg.topology
        self.known_ids = {node_id: set() for node_id in self.topology if node_id != self.node_id}
        logger.info("new topology: %s", self.topology)
        return TopologyOk()

    def handle_gossip(self, src: str, msg: Gossip) -> None:
        logger.debug("received gossip from %s: %s", src, msg.messages)
        self.broadcast_ids.update(msg.messages)
        try:
            known = self.known_ids[src]
        except KeyError:
            raise InvariantError(f"no known-ids entry for gossip sender {src}") from None
        known.update(msg.messages)
        logger.debug("known ids for %s: %s", src, known)

    async def gossip(self) -> None:
        """ One anti-entropy round: send each neighbor whatever it is not known to have. """
        if not self.broadcast_ids:
            return
        try:
            neighbors = self.topology[self.node_id]
        except KeyError:
            raise InvariantError(f"topology has no entry for this node ({self.node_id})") from None

        for dest in neighbors:
            try:
                pending = self.broadcast_ids - self.known_ids[dest]
            except KeyError:
                raise InvariantError(f"no known-ids entry for neighbor {dest}") from None
            if pending:
                logger.debug("gossiping %d values to %s", len(pending), dest)
                await self.dispatcher.send(self.node_id, dest, Gossip(messages=sorted(pending)))


async def run_node(
    lines: AsyncIterable[bytes],
    write_line: WriteLine,
    tick_interval: float = GOSSIP_INTERVAL_SEC,
) -> GossipNode:
    """ Run reader, ticker and node loop until the input is exhausted. """
    bus = EventBus()
    node = GossipNode(MessageDispatcher(write_line))

    async with asyncio.TaskGroup() as tg:
        tg.create_task(read_events(lines, bus))
        ticker = tg.create_task(tick_forever(bus, tick_interval))
        try:
            await node.run(bus)
        finally:
            bus.close()
            ticker.cancel()

    return node


async def process_streams(stream_in=sys.stdin, stream_out=sys.stdout) -> GossipNode:
    reader = await connect_input_stream(stream_in)
    writer = await connect_output_stream(stream_out)
    return await run_node(reader, stream_write_line(writer))


def main() -> None:
    setup_logging()
    logger.info("Starting node %s", GossipNode.__name__)
    asyncio.run(process_streams(stream_in=sys.stdin, stream_out=sys.stdout))


if __name__ == "__main__":
    main()
