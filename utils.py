import asyncio
import logging
import os
import sys

GOSSIP_INTERVAL_SEC = float(os.environ.get("GOSSIP_INTERVAL_SEC", "0.2"))
LOG_LEVEL = os.environ.get("GOSSIP_LOG_LEVEL", "INFO").upper()
STREAM_LIMIT = 1 << 20  # topology and read_ok lines grow with cluster size


def setup_logging(level: str = LOG_LEVEL) -> None:
    # stdout carries the protocol, so diagnostics go to stderr only
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(level)


async def connect_input_stream(stream) -> asyncio.StreamReader:
    loop = asyncio.get_running_loop()
    reader = asyncio.StreamReader(limit=STREAM_LIMIT)
    protocol = asyncio.StreamReaderProtocol(reader)
    await loop.connect_read_pipe(lambda: protocol, stream)
    return reader

async def connect_output_stream(stream) -> asyncio.StreamWriter:
    loop = asyncio.get_running_loop()
    transport, protocol = await loop.connect_write_pipe(asyncio.streams.FlowControlMixin, stream)
    writer = asyncio.StreamWriter(transport, protocol, reader=None, loop=loop)
    return writer
