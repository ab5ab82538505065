# lanchat

A small chat system for a local network: one server, any number of terminal
clients. Messages travel over TCP as compact UTF-8 JSON documents, each
preceded by a 4-byte big-endian length.

## Install

    pip install .

## Running the server

    lanchat-server [--config FILE]

By default the server listens on `0.0.0.0:8080`. Press Ctrl+C to stop it:
every connected client is sent an exit notice and closes.

## Running a client

    lanchat-client [--config FILE]

The client asks for your name, then connects to `127.0.0.1:8080` by default.
Its first message registers that name with the server.

Once connected, type a line and press Enter:

| Input              | Effect                                              |
|--------------------|-----------------------------------------------------|
| `hello everyone`   | broadcast to everyone online                        |
| `/w alice see you` | private message to `alice`                          |
| `/users`           | list the users currently online                     |
| `/history`         | show broadcast history and your private history     |
| `q`                | leave                                               |

`/w` without both a user and a message prints a usage error and sends
nothing. Any other line, including one starting with another `/`, is
broadcast. The client also stops at end of input, or when the server says it
is shutting down.

Private messages, user lists, history and errors are shown only by the client
they are addressed to; broadcasts and system notices (joins, departures) are
shown by everyone.

The server keeps the last 100 broadcast messages, plus the last 100 private
entries per user: messages you sent, messages sent to you and the `/users`
and `/history` commands you issued. If you send a private message to someone
who is not online, it is still recorded in the history, and you get an error
back.

## Configuration

Both programs look for an optional `Config.toml` (or, failing that,
`Config.json`) in the current directory:

    host = "192.168.1.10"
    port = 9000

A missing file is not an error, and a missing key falls back to the default.
`--config` names another file, with or without its `.toml` or `.json`
extension. The port must be an integer from 0 to 65535 (a string of digits is
accepted).

## Using the package from Python

`lanchat.protocol` has the message types (`ClientBroadcast`, `ClientPrivate`,
`ClientCommand`, `ClientRegister`, `ServerBroadcast`, `ServerPrivate`,
`UserList`, `ErrorMessage`, `SystemMessage`, `HistoryMessage`, `ExitMessage`),
`to_json` / `from_json`, and the framing helpers:

    from lanchat.protocol import ClientRegister, encode_frame, FrameDecoder

    frame = encode_frame(ClientRegister(name="alice"))
    decoder = FrameDecoder()
    decoder.feed(frame)
    for message in decoder:
        print(message)

For asyncio streams, use `read_frame(reader)` (which returns `None` at a clean
end of stream) and `write_frame(writer, message)`. Malformed data raises
`ProtocolError`.

`lanchat.settings.load_endpoint(default_host, default_port, path=None)`
returns an `Endpoint` with `host`, `port` and `address()`.

`lanchat.server` provides `ChatServer` and `serve(host, port)`;
`lanchat.client` provides `parse_input(name, line)`, `render(message, name)`
and `run(name, host, port)`.

## Limitations

- History lives in memory only and is lost when the server stops.
- There is no authentication: a user is whoever they say they are, and a
  second connection with the same name takes over that name's deliveries.