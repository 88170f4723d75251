from __future__ import annotations
from typing import Annotated, Literal, Union
from pydantic import BaseModel, Field


class Body(BaseModel):
    """ Fields shared by every message body. Payload fields sit next to them, flattened. """
    msg_id: int | None = None
    in_reply_to: int | None = None


class Init(Body):
    type: Literal["init"] = "init"
    node_id: str
    node_ids: list[str]  # includes node_id

class InitOk(Body):
    type: Literal["init_ok"] = "init_ok"


class Echo(Body):
    type: Literal["echo"] = "echo"
    echo: str

class EchoOk(Body):
    type: Literal["echo_ok"] = "echo_ok"
    echo: str


class Generate(Body):
    type: Literal["generate"] = "generate"

class GenerateOk(Body):
    type: Literal["generate_ok"] = "generate_ok"
    id: str


class Broadcast(Body):
    type: Literal["broadcast"] = "broadcast"
    message: int

class BroadcastOk(Body):
    type: Literal["broadcast_ok"] = "broadcast_ok"


class Read(Body):
    type: Literal["read"] = "read"

class ReadOk(Body):
    type: Literal["read_ok"] = "read_ok"
    messages: list[int]


class Topology(Body):
    type: Literal["topology"] = "topology"
    topology: dict[str, list[str]]

class TopologyOk(Body):
    type: Literal["topology_ok"] = "topology_ok"


class Gossip(Body):
    """ Node-to-node push of broadcast values. Never replied to. """
    type: Literal["gossip"] = "gossip"
    messages: list[int]


class Error(Body):
    """ Returned by a peer when it cannot service a request """
    type: Literal["error"] = "error"
    code: int  # 0=timeout, .. see https://github.com/jepsen-io/maelstrom/blob/main/doc/protocol.md
    text: str | None = None


Payload = Annotated[
    Union[
        Init, InitOk,
        Echo, EchoOk,
        Generate, GenerateOk,
        Broadcast, BroadcastOk,
        Read, ReadOk,
        Topology, TopologyOk,
        Gossip,
        Error,
    ],
    Field(discriminator="type"),
]

# Payloads that only ever answer a request; they never need a response.
REPLY_TYPES = frozenset({
    "init_ok", "echo_ok", "generate_ok", "broadcast_ok", "read_ok", "topology_ok", "error",
})


class Message(BaseModel):
    src: str
    dest: str
    body: Payload

    def __str__(self) -> str:
        return f"src: {self.src}, dest: {self.dest}, body: {self.body!r}"


def decode(line: str | bytes) -> Message:
    """ Parse one wire line. Raises pydantic.ValidationError on malformed JSON or unknown payloads. """
    return Message.model_validate_json(line)


def encode(msg: Message) -> bytes:
    """ Serialize a message to one line, without the trailing newline. Absent ids are omitted. """
    return msg.model_dump_json(exclude_none=True).encode("utf8")
