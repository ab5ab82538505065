"""Chat wire protocol: message types, JSON encoding and length-prefixed frames."""

from __future__ import annotations

import asyncio
import json
import struct
from dataclasses import dataclass, field
from typing import Any, Iterator, Union

CLIENT_ENVELOPE = "Clientmsg"
SERVER_ENVELOPE = "Servermsg"
MAX_FRAME_LENGTH = 0xFFFFFFFF

_HEADER = struct.Struct(">I")


class ProtocolError(ValueError):
    """Raised when bytes on the wire do not form a valid message."""


@dataclass
class ClientBroadcast:
    """A message a client wants sent to everyone."""

    sender: str
    content: str


@dataclass
class ClientPrivate:
    """A message a client wants sent to a single user."""

    sender: str
    to: str
    content: str


@dataclass
class ClientCommand:
    """A command such as ``/users`` or ``/history``."""

    sender: str
    command: str


@dataclass
class ClientRegister:
    """The first message of a connection, naming the user."""

    name: str


@dataclass
class ServerBroadcast:
    """A broadcast relayed by the server."""

    sender: str
    content: str


@dataclass
class ServerPrivate:
    """A private message relayed by the server."""

    sender: str
    to: str
    content: str


@dataclass
class UserList:
    """The list of connected users, addressed to one user."""

    content: list[str] = field(default_factory=list)
    to: str = ""


@dataclass
class ErrorMessage:
    """An error report addressed to one user."""

    content: str
    to: str


@dataclass
class SystemMessage:
    """A notice for every user."""

    content: str


@dataclass
class HistoryMessage:
    """Chat history addressed to one user."""

    content: str
    to: str


@dataclass
class ExitMessage:
    """Tells clients that the server is shutting down."""


ClientMessage = Union[ClientBroadcast, ClientPrivate, ClientCommand, ClientRegister]
ServerMessage = Union[
    ServerBroadcast,
    ServerPrivate,
    UserList,
    ErrorMessage,
    SystemMessage,
    HistoryMessage,
    ExitMessage,
]
Message = Union[ClientMessage, ServerMessage]

# class -> (envelope, variant tag, ((attribute, json key, kind), ...))
_SPECS: dict[type, tuple[str, str, tuple[tuple[str, str, type], ...]]] = {
    ClientBroadcast: (
        CLIENT_ENVELOPE,
        "Broadcast",
        (("sender", "from", str), ("content", "content", str)),
    ),
    ClientPrivate: (
        CLIENT_ENVELOPE,
        "Private",
        (("sender", "from", str), ("to", "to", str), ("content", "content", str)),
    ),
    ClientCommand: (
        CLIENT_ENVELOPE,
        "Command",
        (("sender", "from", str), ("command", "command", str)),
    ),
    ClientRegister: (CLIENT_ENVELOPE, "Register", (("name", "name", str),)),
    ServerBroadcast: (
        SERVER_ENVELOPE,
        "BroadcastMessage",
        (("sender", "from", str), ("content", "content", str)),
    ),
    ServerPrivate: (
        SERVER_ENVELOPE,
        "PrivateMessage",
        (("sender", "from", str), ("to", "to", str), ("content", "content", str)),
    ),
    UserList: (
        SERVER_ENVELOPE,
        "UserList",
        (("content", "content", list), ("to", "to", str)),
    ),
    ErrorMessage: (
        SERVER_ENVELOPE,
        "Error",
        (("content", "content", str), ("to", "to", str)),
    ),
    SystemMessage: (SERVER_ENVELOPE, "System", (("content", "content", str),)),
    HistoryMessage: (
        SERVER_ENVELOPE,
        "History",
        (("content", "content", str), ("to", "to", str)),
    ),
    ExitMessage: (SERVER_ENVELOPE, "Exit", ()),
}

_BY_TAG = {(envelope, tag): cls for cls, (envelope, tag, _) in _SPECS.items()}


def to_json(message: Message) -> bytes:
    """Serialize a message to compact UTF-8 JSON."""
    try:
        envelope, tag, keys = _SPECS[type(message)]
    except KeyError:
        raise TypeError(f"not a chat message: {message!r}") from None
    if keys:
        body: Any = {
            tag: {key: _plain(getattr(message, attr)) for attr, key, _ in keys}
        }
    else:
        body = tag
    text = json.dumps({envelope: body}, separators=(",", ":"), ensure_ascii=False)
    return text.encode("utf-8")


def _plain(value: Any) -> Any:
    return list(value) if isinstance(value, (list, tuple)) else value


def from_json(data: bytes | str) -> Message:
    """Parse a message from JSON, raising ProtocolError if it is malformed."""
    try:
        obj = json.loads(data)
    except ValueError as exc:
        raise ProtocolError(f"invalid JSON: {exc}") from exc
    if not isinstance(obj, dict) or len(obj) != 1:
        raise ProtocolError("expected an object with exactly one envelope key")
    ((envelope, body),) = obj.items()
    if isinstance(body, str):
        tag, payload = body, None
    elif isinstance(body, dict) and len(body) == 1:
        ((tag, payload),) = body.items()
    else:
        raise ProtocolError("expected a variant name or an object with one key")
    cls = _BY_TAG.get((envelope, tag))
    if cls is None:
        raise ProtocolError(f"unknown variant {envelope}::{tag}")
    keys = _SPECS[cls][2]
    if not keys:
        if payload is not None:
            raise ProtocolError(f"variant {tag} carries no data")
        return cls()
    if not isinstance(payload, dict):
        raise ProtocolError(f"variant {tag} expects an object")
    kwargs = {}
    for attr, key, kind in keys:
        if key not in payload:
            raise ProtocolError(f"missing field {key!r} in {tag}")
        kwargs[attr] = _checked(tag, key, kind, payload[key])
    return cls(**kwargs)


def _checked(tag: str, key: str, kind: type, value: Any) -> Any:
    if kind is list:
        if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
            raise ProtocolError(f"field {key!r} in {tag} must be a list of strings")
        return list(value)
    if not isinstance(value, str):
        raise ProtocolError(f"field {key!r} in {tag} must be a string")
    return value


def encode_frame(message: Message) -> bytes:
    """Return the message as JSON prefixed by its big-endian 32-bit length."""
    body = to_json(message)
    if len(body) > MAX_FRAME_LENGTH:
        raise ProtocolError("message too large for a frame")
    return _HEADER.pack(len(body)) + body


class FrameDecoder:
    """Incremental decoder for a stream of length-prefixed frames."""

    def __init__(self) -> None:
        self._buffer = bytearray()

    @property
    def pending(self) -> int:
        """Number of buffered bytes not yet decoded."""
        return len(self._buffer)

    def feed(self, data: bytes) -> None:
        """Append received bytes to the buffer."""
        self._buffer.extend(data)

    def decode(self) -> Message | None:
        """Return the next complete message, or None if more bytes are needed."""
        if len(self._buffer) < _HEADER.size:
            return None
        (length,) = _HEADER.unpack_from(self._buffer)
        end = _HEADER.size + length
        if len(self._buffer) < end:
            return None
        body = bytes(self._buffer[_HEADER.size:end])
        del self._buffer[:end]
        return from_json(body)

    def __iter__(self) -> Iterator[Message]:
        while (message := self.decode()) is not None:
            yield message


async def read_frame(reader: asyncio.StreamReader) -> Message | None:
    """Read one message from a stream; None at a clean end of stream."""
    try:
        header = await reader.readexactly(_HEADER.size)
    except asyncio.IncompleteReadError as exc:
        if exc.partial:
            raise ProtocolError("bytes remaining on stream") from exc
        return None
    (length,) = _HEADER.unpack(header)
    try:
        body = await reader.readexactly(length)
    except asyncio.IncompleteReadError as exc:
        raise ProtocolError("bytes remaining on stream") from exc
    return from_json(body)


async def write_frame(writer: Any, message: Message) -> None:
    """Write one message to a stream writer and wait for it to drain."""
    writer.write(encode_frame(message))
    await writer.drain()