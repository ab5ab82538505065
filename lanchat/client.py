"""Interactive chat client: reads lines from the terminal and prints server messages."""

from __future__ import annotations

import argparse
import asyncio
import sys
import threading
import unicodedata
from contextlib import suppress
from typing import TextIO

from .protocol import (
    ClientBroadcast,
    ClientCommand,
    ClientMessage,
    ClientPrivate,
    ClientRegister,
    ErrorMessage,
    ExitMessage,
    HistoryMessage,
    ProtocolError,
    ServerBroadcast,
    ServerMessage,
    ServerPrivate,
    SystemMessage,
    UserList,
    read_frame,
    write_frame,
)
from .settings import load_endpoint

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8080
QUIT = "q"
EXIT_NOTICE = "[系统] The server is shutting down and the client is about to exit"

_SERVER_TYPES = (
    ServerBroadcast,
    ServerPrivate,
    UserList,
    ErrorMessage,
    SystemMessage,
    HistoryMessage,
    ExitMessage,
)
_ESCAPES = {"\\": "\\\\", '"': '\\"', "\n": "\\n", "\r": "\\r", "\t": "\\t", "\0": "\\0"}


def parse_input(name: str, line: str) -> ClientMessage:
    """Turn a typed line into the message to send.

    ``/w <user> <text>`` is a private message, ``/users`` and ``/history``
    are commands, and anything else is broadcast.
    """
    text = line.strip()
    if text.startswith("/w "):
        parts = text[3:].split(" ", 1)
        if len(parts) < 2:
            raise ValueError("usage: /w <user> <message>")
        return ClientPrivate(name, parts[0], parts[1])
    if text in ("/users", "/history"):
        return ClientCommand(name, text)
    return ClientBroadcast(name, text)


def _debug_str(value: str) -> str:
    out = []
    for ch in value:
        if ch in _ESCAPES:
            out.append(_ESCAPES[ch])
        elif unicodedata.category(ch) == "Cc":
            out.append(f"\\u{{{ord(ch):x}}}")
        else:
            out.append(ch)
    return '"' + "".join(out) + '"'


def _debug_list(values: list[str]) -> str:
    return "[" + ", ".join(_debug_str(v) for v in values) + "]"


def render(message: ServerMessage, name: str) -> str | None:
    """Return the text to show for a server message, or None if it is not for ``name``."""
    match message:
        case ServerBroadcast(sender=sender, content=content):
            return f"[{sender}] {content}"
        case ServerPrivate(sender=sender, to=to, content=content) if to == name:
            return f"[私聊][{sender} → you] {content}"
        case UserList(content=users, to=to) if to == name:
            return f"[系统] Userlist:\n {_debug_list(users)}"
        case HistoryMessage(content=content, to=to) if to == name:
            return f"[系统] Histroy:\n {content}"
        case ErrorMessage(content=content, to=to) if to == name:
            return f"[错误] {content}"
        case SystemMessage(content=content):
            return f"[系统] {content}"
        case ExitMessage():
            return EXIT_NOTICE
    return None


def _read_lines(
    stream: TextIO, loop: asyncio.AbstractEventLoop, lines: asyncio.Queue[str | None]
) -> None:
    """Feed stripped lines from ``stream`` into ``lines``; None marks end of input."""

    def deliver(item: str | None) -> bool:
        try:
            loop.call_soon_threadsafe(lines.put_nowait, item)
        except RuntimeError:
            return False
        return True

    try:
        for raw in iter(stream.readline, ""):
            if not deliver(raw.strip()):
                return
    except (OSError, ValueError):
        pass
    deliver(None)


async def _receive(reader: asyncio.StreamReader, name: str, exited: asyncio.Event) -> None:
    while True:
        try:
            message = await read_frame(reader)
        except (ProtocolError, ConnectionError):
            return
        if not isinstance(message, _SERVER_TYPES):
            return
        text = render(message, name)
        if text is not None:
            print(text, flush=True)
        if isinstance(message, ExitMessage):
            exited.set()
            return


async def _next_line(
    lines: asyncio.Queue[str | None], exited: asyncio.Event
) -> str | None:
    """Wait for the next typed line; None at end of input or when the server quits."""
    getter = asyncio.ensure_future(lines.get())
    waiter = asyncio.ensure_future(exited.wait())
    done, pending = await asyncio.wait(
        {getter, waiter}, return_when=asyncio.FIRST_COMPLETED
    )
    for task in pending:
        task.cancel()
    if exited.is_set() or getter not in done:
        return None
    return getter.result()


async def run(name: str, host: str = DEFAULT_HOST, port: int = DEFAULT_PORT) -> None:
    """Connect as ``name`` and chat until ``q``, end of input or server shutdown."""
    print(f"Connecting to server at {host}:{port}")
    reader, writer = await asyncio.open_connection(host, port)
    print("✅ Successfully Connected!")
    exited = asyncio.Event()
    receiver: asyncio.Task[None] | None = None
    try:
        await write_frame(writer, ClientRegister(name))
        lines: asyncio.Queue[str | None] = asyncio.Queue()
        threading.Thread(
            target=_read_lines,
            args=(sys.stdin, asyncio.get_running_loop(), lines),
            daemon=True,
        ).start()
        receiver = asyncio.create_task(_receive(reader, name, exited))
        while True:
            line = await _next_line(lines, exited)
            if exited.is_set():
                return
            if line is None or line == QUIT:
                break
            try:
                message = parse_input(name, line)
            except ValueError as exc:
                print(f"[错误] {exc}")
                continue
            try:
                await write_frame(writer, message)
            except (ConnectionError, OSError):
                break
        print(f"{name} exit")
    finally:
        if receiver is not None:
            receiver.cancel()
            with suppress(asyncio.CancelledError):
                await receiver
        writer.close()
        with suppress(ConnectionError, OSError):
            await writer.wait_closed()


def main(argv: list[str] | None = None) -> int:
    """Prompt for a name and start an interactive chat session."""
    parser = argparse.ArgumentParser(prog="lanchat", description="Join a chat server.")
    parser.add_argument("--config", help="configuration file (default: Config.toml or Config.json)")
    args = parser.parse_args(argv)
    try:
        name = input("Enter your name: ").strip()
    except EOFError:
        return 1
    try:
        endpoint = load_endpoint(DEFAULT_HOST, DEFAULT_PORT, args.config)
        asyncio.run(run(name, endpoint.host, endpoint.port))
    except KeyboardInterrupt:
        return 130
    except (OSError, ValueError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())