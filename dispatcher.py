from __future__ import annotations
import asyncio
import logging
from typing import Awaitable, Callable

from messages import Body, Message, encode

logger = logging.getLogger(__name__)

WriteLine = Callable[[bytes], Awaitable[None]]


def stream_write_line(writer: asyncio.StreamWriter) -> WriteLine:
    async def write_line(line: bytes) -> None:
        writer.write(line)
        await writer.drain()
    return write_line


class MessageDispatcher:
    """
    Writes outbound messages, one JSON object per line.

    Every message gets the next value of a private counter as its msg_id, starting
    at 0 and advancing by exactly one per send, whatever the payload.
    """
    def __init__(self, write_line: WriteLine) -> None:
        self._write_line = write_line
        self.next_msg_id = 0

    async def send(self, src: str, dest: str, body: Body, in_reply_to: int | None = None) -> int:
        msg_id = self.next_msg_id
        body = body.model_copy(update={"msg_id": msg_id, "in_reply_to": in_reply_to})
        # serialize before touching the stream so a failure never leaves a partial line
        line = encode(Message(src=src, dest=dest, body=body)) + b"\n"
        self.next_msg_id += 1
        logger.debug("sending message to %s: %s", dest, line.decode("utf8").rstrip())
        await self._write_line(line)
        return msg_id
