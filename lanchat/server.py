"""Chat server: tracks connected users, relays their messages and keeps history."""

from __future__ import annotations

import argparse
import asyncio
import sys
from collections import deque
from contextlib import suppress
from typing import Any

from .protocol import (
    ClientBroadcast,
    ClientCommand,
    ClientPrivate,
    ClientRegister,
    ErrorMessage,
    ExitMessage,
    HistoryMessage,
    Message,
    ProtocolError,
    ServerBroadcast,
    ServerPrivate,
    SystemMessage,
    UserList,
    read_frame,
    write_frame,
)
from .settings import load_endpoint

MAX_HISTORY_SIZE = 100
QUEUE_SIZE = 100
DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 8080
SHUTDOWN_GRACE = 0.1

PRIVATE_NOT_FOUND = "Private object is not online or the name is incorrect "
NO_USER_ONLINE = "No User Online"
BROADCAST_HEADER = "=== Broadcast History ==="
PRIVATE_HEADER = "=== Your Private History ==="


class ChatServer:
    """Shared chat state: each user's outgoing queue and the message history.

    A queue receives the messages to deliver to its user; ``None`` on a queue
    tells the task writing to that user's socket to stop.
    """

    def __init__(self, history_size: int = MAX_HISTORY_SIZE) -> None:
        self.history_size = history_size
        self.clients: dict[str, asyncio.Queue[Message | None]] = {}
        self.broadcast_history: deque[str] = deque(maxlen=history_size)
        self.private_history: dict[str, deque[str]] = {}

    def _record(self, name: str, line: str) -> None:
        self.private_history.setdefault(
            name, deque(maxlen=self.history_size)
        ).append(line)

    async def _send_all(self, message: Message) -> None:
        for queue in list(self.clients.values()):
            await queue.put(message)

    async def _send_to(self, name: str, message: Message) -> bool:
        queue = self.clients.get(name)
        if queue is None:
            return False
        await queue.put(message)
        return True

    def add_client(self, name: str, queue: asyncio.Queue[Message | None]) -> None:
        """Register a user's outgoing queue, replacing any earlier one of that name."""
        self.clients[name] = queue

    async def remove_client(self, name: str) -> None:
        """Forget a user and tell everyone still online that they left."""
        self.clients.pop(name, None)
        await self._send_all(SystemMessage(f"{name} leave the chat"))

    async def announce_join(self, name: str) -> None:
        """Tell every connected user that ``name`` joined."""
        await self._send_all(SystemMessage(f"{name} join the chat"))

    async def broadcast(self, message: ClientBroadcast) -> None:
        """Record a broadcast and relay it to every connected user."""
        self.broadcast_history.append(f"{message.sender} broadcast: {message.content}")
        await self._send_all(ServerBroadcast(message.sender, message.content))

    async def dispatch(self, message: ClientPrivate) -> None:
        """Record a private message and deliver it to its addressee only."""
        self._record(message.sender, f"You → {message.to}: {message.content}")
        self._record(message.to, f"{message.sender} → You: {message.content}")
        relayed = ServerPrivate(message.sender, message.to, message.content)
        if not await self._send_to(message.to, relayed):
            await self._send_to(
                message.sender, ErrorMessage(PRIVATE_NOT_FOUND, message.sender)
            )

    async def command(self, message: ClientCommand) -> None:
        """Answer ``/users`` and ``/history``; anything else is an error."""
        sender, command = message.sender, message.command
        if command == "/users":
            self._record(sender, f"You issued: {command}")
            users = list(self.clients)
            reply: Message = (
                UserList(users, sender) if users else SystemMessage(NO_USER_ONLINE)
            )
            await self._send_to(sender, reply)
        elif command == "/history":
            self._record(sender, f"You issued: {command}")
            lines = [BROADCAST_HEADER, *self.broadcast_history, PRIVATE_HEADER]
            lines.extend(self.private_history.get(sender, ()))
            await self._send_to(sender, HistoryMessage("\n".join(lines), sender))
        else:
            await self._send_to(sender, ErrorMessage(NO_USER_ONLINE, sender))

    async def handle_client(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        """Serve one connection, which must start with a registration."""
        try:
            first = await read_frame(reader)
        except (ProtocolError, ConnectionError):
            first = None
        if not isinstance(first, ClientRegister):
            await _close(writer)
            return

        name = first.name
        queue: asyncio.Queue[Message | None] = asyncio.Queue(QUEUE_SIZE)
        self.add_client(name, queue)
        await self.announce_join(name)
        pump = asyncio.create_task(_pump(queue, writer))
        try:
            await self._read_loop(reader)
        finally:
            await self.remove_client(name)
            with suppress(asyncio.QueueFull):
                queue.put_nowait(None)
            await pump
            await _close(writer)

    async def _read_loop(self, reader: asyncio.StreamReader) -> None:
        while True:
            try:
                message = await read_frame(reader)
            except (ProtocolError, ConnectionError):
                return
            match message:
                case ClientBroadcast():
                    await self.broadcast(message)
                case ClientPrivate():
                    await self.dispatch(message)
                case ClientCommand():
                    await self.command(message)
                case ClientRegister():
                    pass
                case _:
                    return

    async def shutdown(self) -> None:
        """Tell every user the server is stopping, then drop them all."""
        queues = list(self.clients.values())
        for queue in queues:
            await queue.put(ExitMessage())
        self.clients.clear()
        for queue in queues:
            await queue.put(None)

    async def _on_connect(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        print(f"New connection: {_peer(writer.get_extra_info('peername'))}")
        try:
            await self.handle_client(reader, writer)
        except Exception as exc:  # one client's failure must not stop the server
            print(f"Client handle error: {exc}", file=sys.stderr)


async def _pump(queue: asyncio.Queue[Message | None], writer: Any) -> None:
    """Write queued messages to the socket until told to stop."""
    alive = True
    while (message := await queue.get()) is not None:
        if not alive:
            continue
        try:
            await write_frame(writer, message)
        except (ConnectionError, OSError):
            alive = False


async def _close(writer: asyncio.StreamWriter) -> None:
    writer.close()
    with suppress(ConnectionError, OSError):
        await writer.wait_closed()


def _peer(peer: Any) -> str:
    if isinstance(peer, tuple) and len(peer) >= 2:
        return f"{peer[0]}:{peer[1]}"
    return str(peer)


async def serve(host: str = DEFAULT_HOST, port: int = DEFAULT_PORT) -> None:
    """Run the chat server until the task is cancelled (e.g. by Ctrl+C)."""
    chat = ChatServer()
    server = await asyncio.start_server(chat._on_connect, host, port)
    print(f"Server is up on {host}:{port}")
    async with server:
        try:
            await server.serve_forever()
        except asyncio.CancelledError:
            print("Ctrl+C received, shutting down server...")
            await chat.shutdown()
            await asyncio.sleep(SHUTDOWN_GRACE)


def main(argv: list[str] | None = None) -> int:
    """Start the chat server from the command line."""
    parser = argparse.ArgumentParser(prog="lanchat-server", description="Run the chat server.")
    parser.add_argument("--config", help="configuration file (default: Config.toml or Config.json)")
    args = parser.parse_args(argv)
    try:
        endpoint = load_endpoint(DEFAULT_HOST, DEFAULT_PORT, args.config)
    except (OSError, ValueError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    try:
        asyncio.run(serve(endpoint.host, endpoint.port))
    except KeyboardInterrupt:
        pass
    except OSError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())