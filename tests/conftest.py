"""Shared fixtures and helpers for gossip node tests."""

import json

import pytest
import pytest_asyncio

from dispatcher import MessageDispatcher
from event_bus import External
from gossip_node import GossipNode
from messages import Init, Message


class Outbox:
    """Collects every line the dispatcher writes."""

    def __init__(self):
        self.lines: list[bytes] = []

    async def write_line(self, line: bytes) -> None:
        self.lines.append(line)

    @property
    def sent(self) -> list[dict]:
        return [json.loads(line) for line in self.lines]

    def take(self) -> list[dict]:
        sent = self.sent
        self.lines.clear()
        return sent


def external(src: str, dest: str, body) -> External:
    """Wrap a body into an inbound wire event."""
    return External(Message(src=src, dest=dest, body=body))


def init_event(node_id: str = "n1", node_ids=("n1", "n2", "n3"), msg_id: int = 1) -> External:
    return external("c0", node_id, Init(msg_id=msg_id, node_id=node_id, node_ids=list(node_ids)))


@pytest.fixture
def outbox() -> Outbox:
    return Outbox()


@pytest.fixture
def node(outbox: Outbox) -> GossipNode:
    """An uninitialized node writing to the outbox."""
    return GossipNode(MessageDispatcher(outbox.write_line))


@pytest_asyncio.fixture
async def ready_node(node: GossipNode, outbox: Outbox) -> GossipNode:
    """Node n1 in cluster [n1, n2, n3], with the init_ok already drained."""
    await node.process_event(init_event())
    outbox.take()
    return node
