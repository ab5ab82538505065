import asyncio
import io
import os
import sys

import pytest

from lanchat.client import EXIT_NOTICE, parse_input, render, run
from lanchat.protocol import (
    ClientBroadcast,
    ClientCommand,
    ClientPrivate,
    ClientRegister,
    ErrorMessage,
    ExitMessage,
    HistoryMessage,
    ServerBroadcast,
    ServerPrivate,
    SystemMessage,
    UserList,
    read_frame,
    write_frame,
)


def test_plain_line_is_broadcast():
    assert parse_input("alice", "hello there") == ClientBroadcast("alice", "hello there")


def test_line_is_trimmed():
    assert parse_input("alice", "  hi \n") == ClientBroadcast("alice", "hi")


def test_whisper_keeps_spaces_in_content():
    msg = parse_input("alice", "/w bob see you later")
    assert msg == ClientPrivate("alice", "bob", "see you later")


def test_whisper_without_text_is_rejected():
    with pytest.raises(ValueError):
        parse_input("alice", "/w bob")


@pytest.mark.parametrize("command", ["/users", "/history"])
def test_commands(command):
    assert parse_input("alice", command) == ClientCommand("alice", command)


def test_unknown_slash_line_is_broadcast():
    assert parse_input("alice", "/dance") == ClientBroadcast("alice", "/dance")


def test_render_broadcast():
    text = render(ServerBroadcast("bob", "hi"), "alice")
    assert text.startswith("[bob]")
    assert text.endswith("hi")


def test_render_private_only_for_addressee():
    text = render(ServerPrivate("bob", "alice", "psst"), "alice")
    assert text.startswith("[私聊]")
    assert "bob" in text and text.endswith("psst")
    assert render(ServerPrivate("bob", "carol", "psst"), "alice") is None


def test_render_user_list():
    assert render(UserList(["a", "b"], "alice"), "alice") == '[系统] Userlist:\n ["a", "b"]'
    assert render(UserList(["a"], "bob"), "alice") is None


def test_render_user_list_escapes_quotes():
    text = render(UserList(['x"y'], "alice"), "alice")
    assert text.endswith('["x\\"y"]')


def test_render_history_error_system():
    history = render(HistoryMessage("line1\nline2", "alice"), "alice")
    assert history.endswith("line1\nline2")
    assert render(HistoryMessage("x", "bob"), "alice") is None
    error = render(ErrorMessage("bad", "alice"), "alice")
    assert error.startswith("[错误]") and error.endswith("bad")
    assert render(ErrorMessage("bad", "bob"), "alice") is None
    system = render(SystemMessage("carol join the chat"), "alice")
    assert system.startswith("[系统]") and system.endswith("carol join the chat")


def test_render_exit():
    assert render(ExitMessage(), "alice") == EXIT_NOTICE


@pytest.mark.asyncio
async def test_run_stops_on_server_exit(monkeypatch, capsys):
    received = []

    async def handler(reader, writer):
        received.append(await read_frame(reader))
        await write_frame(writer, SystemMessage("welcome"))
        await write_frame(writer, ExitMessage())
        await reader.read()
        writer.close()

    server = await asyncio.start_server(handler, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    read_fd, write_fd = os.pipe()
    monkeypatch.setattr(sys, "stdin", os.fdopen(read_fd))
    try:
        await asyncio.wait_for(run("alice", "127.0.0.1", port), 5)
    finally:
        os.close(write_fd)
        server.close()
        await server.wait_closed()
    out = capsys.readouterr().out
    assert received == [ClientRegister("alice")]
    assert "[系统] welcome" in out
    assert EXIT_NOTICE in out
    assert "alice exit" not in out


@pytest.mark.asyncio
async def test_run_sends_lines_until_quit(monkeypatch, capsys):
    frames = []
    finished = asyncio.Event()

    async def handler(reader, writer):
        while (frame := await read_frame(reader)) is not None:
            frames.append(frame)
        writer.close()
        finished.set()

    server = await asyncio.start_server(handler, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    monkeypatch.setattr(sys, "stdin", io.StringIO("hello\n/users\nq\nignored\n"))
    try:
        await asyncio.wait_for(run("alice", "127.0.0.1", port), 5)
        await asyncio.wait_for(finished.wait(), 5)
    finally:
        server.close()
        await server.wait_closed()
    assert frames == [
        ClientRegister("alice"),
        ClientBroadcast("alice", "hello"),
        ClientCommand("alice", "/users"),
    ]
    assert "alice exit" in capsys.readouterr().out