"""End-to-end tests driving a node through its input and output streams."""

import asyncio
import json

import pytest
from pydantic import ValidationError

from gossip_node import NodeState, ProtocolError, run_node

from .conftest import Outbox


def line(src: str, dest: str, **body) -> bytes:
    return json.dumps({"src": src, "dest": dest, "body": body}).encode("utf8") + b"\n"


INIT = line("c0", "n1", type="init", msg_id=1, node_id="n1", node_ids=["n1", "n2"])


class TestRunNode:
    """Tests for the reader, ticker and node loop running together."""

    @pytest.mark.asyncio
    async def test_requests_answered_in_order(self, outbox: Outbox):
        reader = asyncio.StreamReader()
        reader.feed_data(INIT)
        reader.feed_data(line("c1", "n1", type="echo", msg_id=2, echo="hello"))
        reader.feed_data(line("c1", "n1", type="broadcast", msg_id=3, message=9))
        reader.feed_data(line("c1", "n1", type="read", msg_id=4))
        reader.feed_eof()

        node = await asyncio.wait_for(run_node(reader, outbox.write_line, tick_interval=60), 5)

        assert node.state is NodeState.TERMINATED
        assert [(m["body"]["type"], m["body"]["msg_id"], m["body"]["in_reply_to"]) for m in outbox.sent] == [
            ("init_ok", 0, 1),
            ("echo_ok", 1, 2),
            ("broadcast_ok", 2, 3),
            ("read_ok", 3, 4),
        ]
        assert outbox.sent[-1]["body"]["messages"] == [9]

    @pytest.mark.asyncio
    async def test_ticks_drive_gossip(self, outbox: Outbox):
        reader = asyncio.StreamReader()
        reader.feed_data(INIT)
        reader.feed_data(line("c1", "n1", type="broadcast", msg_id=2, message=5))
        run = asyncio.create_task(run_node(reader, outbox.write_line, tick_interval=0.01))

        async def wait_for_gossip():
            while not any(m["body"]["type"] == "gossip" for m in outbox.sent):
                await asyncio.sleep(0.01)

        await asyncio.wait_for(wait_for_gossip(), 5)
        reader.feed_eof()
        await asyncio.wait_for(run, 5)

        gossip = [m for m in outbox.sent if m["body"]["type"] == "gossip"]
        assert gossip[0]["dest"] == "n2"
        assert gossip[0]["body"]["messages"] == [5]
        assert "in_reply_to" not in gossip[0]["body"]

    @pytest.mark.asyncio
    async def test_message_before_init_is_fatal(self, outbox: Outbox):
        reader = asyncio.StreamReader()
        reader.feed_data(line("c1", "n1", type="read", msg_id=1))
        reader.feed_eof()

        with pytest.raises(ExceptionGroup) as info:
            await asyncio.wait_for(run_node(reader, outbox.write_line, tick_interval=60), 5)

        assert any(isinstance(e, ProtocolError) for e in info.value.exceptions)
        assert outbox.sent == []

    @pytest.mark.asyncio
    async def test_malformed_input_is_fatal(self, outbox: Outbox):
        reader = asyncio.StreamReader()
        reader.feed_data(INIT)
        reader.feed_data(b'{"src": "c1", "dest": "n1", "body": {"type": "nope"}}\n')
        reader.feed_eof()

        with pytest.raises(ExceptionGroup) as info:
            await asyncio.wait_for(run_node(reader, outbox.write_line, tick_interval=60), 5)

        assert any(isinstance(e, ValidationError) for e in info.value.exceptions)
        assert all(m["body"]["type"] == "init_ok" for m in outbox.sent)
