"""
Tests for rendezvous signaling (IRC binding and in-process hub).
"""

import asyncio
import string

import pytest

from wgdisco.errors import SignalingError
from wgdisco.signaling import (
    ChatTransport,
    IrcClient,
    IrcConfig,
    IrcMessage,
    IrcSignaling,
    MemoryHub,
    MemorySignaling,
    PeerRequest,
    PeerResponse,
    PeerUpdate,
    derive_handle,
    encode_message,
)
from wgdisco.wg import Cidr, Key, SocketAddr

CHANNEL = "#wg-test"


class ScriptedTransport(ChatTransport):
    """Chat transport that replays a fixed list of inbound items."""

    def __init__(self, items=()):
        self.items = list(items)
        self.connected = None
        self.joined = []
        self.sent = []
        self.closed = False

    async def connect(self, nickname, username, server, port, tls=False):
        self.connected = (nickname, username, server, port, tls)

    async def join(self, channel):
        self.joined.append(channel)

    async def send_privmsg(self, target, text):
        self.sent.append((target, text))

    async def messages(self):
        for item in self.items:
            yield item

    async def close(self):
        self.closed = True


def privmsg(sender, target, body):
    prefix = f"{sender}!user@example.net" if sender else None
    return IrcMessage(command="PRIVMSG", params=[target, body], prefix=prefix)


def make_update(port=51820):
    return PeerUpdate(
        key=Key.random(),
        endpoint=SocketAddr.parse(f"198.51.100.4:{port}"),
        advertise_routes=[Cidr.parse("10.9.0.0/16")],
    )


async def collect(iterator):
    return [item async for item in iterator]


class TestHandle:
    """Tests for handle derivation."""

    def test_deterministic(self):
        key = Key.random()
        assert derive_handle(key) == derive_handle(Key(key.raw))

    def test_shape(self):
        """Always 12 characters from the URL-safe alphabet."""
        alphabet = set(string.ascii_letters + string.digits + "-_")
        for _ in range(50):
            handle = derive_handle(Key.random())
            assert len(handle) == 12
            assert set(handle) <= alphabet

    def test_distinct_keys(self):
        assert derive_handle(Key(bytes(32))) != derive_handle(Key(b"\x01" * 32))


class TestIrcMessage:
    """Tests for IRC line parsing."""

    def test_parse_privmsg(self):
        msg = IrcMessage.parse(":alice!~a@host.example PRIVMSG #chan :hello there\r\n")
        assert msg.command == "PRIVMSG"
        assert msg.params == ["#chan", "hello there"]
        assert msg.nickname == "alice"

    def test_parse_server_line(self):
        msg = IrcMessage.parse(":irc.example.net 001 me :Welcome")
        assert msg.command == "001"
        assert msg.nickname is None

    def test_parse_tags_and_ping(self):
        msg = IrcMessage.parse("@time=2024-01-01T00:00:00Z PING :abc")
        assert msg.command == "PING"
        assert msg.params == ["abc"]
        assert msg.prefix is None

    def test_parse_malformed(self):
        with pytest.raises(SignalingError):
            IrcMessage.parse(":onlyprefix")

    def test_format(self):
        assert IrcMessage("PRIVMSG", ["#c", "two words"]).format() == "PRIVMSG #c :two words"
        assert IrcMessage("PRIVMSG", ["nick", "payload"]).format() == "PRIVMSG nick payload"
        assert IrcMessage("USER", ["u", "0", "*", "u"]).format() == "USER u 0 * u"


class TestIrcSignaling:
    """Tests for IrcSignaling over a scripted transport."""

    @pytest.mark.asyncio
    async def test_connect(self):
        """Connect registers under the derived handle and joins the channel."""
        own, peer_a, peer_b = Key.random(), Key.random(), Key.random()
        transport = ScriptedTransport()
        signaling = IrcSignaling(IrcConfig(server="irc.test", port=6697, tls=True, channel=CHANNEL), transport)

        await signaling.connect(own, [peer_a, peer_b])

        nickname, username, server, port, tls = transport.connected
        assert nickname == derive_handle(own)
        assert username == nickname
        assert (server, port, tls) == ("irc.test", 6697, True)
        assert transport.joined == [CHANNEL]
        assert signaling.registry == {derive_handle(peer_a): peer_a, derive_handle(peer_b): peer_b}
        assert signaling.lookup(derive_handle(peer_b)) == peer_b
        assert signaling.lookup("nobody") is None

    @pytest.mark.asyncio
    async def test_announce_broadcast_and_directed(self):
        transport = ScriptedTransport()
        signaling = IrcSignaling(IrcConfig(channel=CHANNEL), transport)
        await signaling.connect(Key.random(), [])
        update = make_update()

        await signaling.announce(update)
        await signaling.announce(update, target="someone")

        assert transport.sent == [
            (CHANNEL, encode_message(update)),
            ("someone", encode_message(update)),
        ]

    @pytest.mark.asyncio
    async def test_announce_before_connect(self):
        signaling = IrcSignaling(IrcConfig(channel=CHANNEL), ScriptedTransport())
        with pytest.raises(SignalingError):
            await signaling.announce(make_update())

    @pytest.mark.asyncio
    async def test_classification(self):
        """Channel target means request, own nickname means response, junk is dropped."""
        own = Key.random()
        nick = derive_handle(own)
        req_update, resp_update, later_update = make_update(1), make_update(2), make_update(3)
        transport_error = SignalingError("line too long")

        transport = ScriptedTransport([
            privmsg("alice", CHANNEL, encode_message(req_update)),
            privmsg("alice", CHANNEL, "hello everyone, not a payload"),
            IrcMessage(command="NOTICE", params=[CHANNEL, encode_message(req_update)], prefix="bob!b@h"),
            privmsg(None, CHANNEL, encode_message(req_update)),
            transport_error,
            privmsg("bob", nick.upper(), encode_message(resp_update)),
            privmsg("carol", "#other", encode_message(req_update)),
            privmsg("dave", CHANNEL.upper(), encode_message(later_update)),
        ])
        signaling = IrcSignaling(IrcConfig(channel=CHANNEL), transport)
        await signaling.connect(own, [])

        items = await collect(signaling.subscribe())

        assert items == [
            PeerRequest(update=req_update, sender="alice"),
            transport_error,
            PeerResponse(update=resp_update),
            PeerRequest(update=later_update, sender="dave"),
        ]

    @pytest.mark.asyncio
    async def test_sender_not_validated(self):
        """
        Handles are not proof of key ownership: any nickname may announce
        any key, and it is surfaced as-is.
        """
        victim = Key.random()
        transport = ScriptedTransport([
            privmsg("mallory", CHANNEL, encode_message(
                PeerUpdate(key=victim, endpoint=SocketAddr.parse("192.0.2.66:1"))
            )),
        ])
        signaling = IrcSignaling(IrcConfig(channel=CHANNEL), transport)
        await signaling.connect(Key.random(), [victim])

        [event] = await collect(signaling.subscribe())

        assert isinstance(event, PeerRequest)
        assert event.sender == "mallory"
        assert event.sender != derive_handle(victim)
        assert event.update.key == victim

    @pytest.mark.asyncio
    async def test_subscribe_once(self):
        signaling = IrcSignaling(IrcConfig(channel=CHANNEL), ScriptedTransport())
        await signaling.connect(Key.random(), [])
        assert await collect(signaling.subscribe()) == []

        with pytest.raises(SignalingError):
            await collect(signaling.subscribe())

    @pytest.mark.asyncio
    async def test_close(self):
        transport = ScriptedTransport()
        signaling = IrcSignaling(IrcConfig(channel=CHANNEL), transport)
        await signaling.close()
        assert transport.closed


class FakeIrcServer:
    """Tiny IRC server: registers one client, then replays scripted lines."""

    def __init__(self, script):
        self.script = script
        self.received = []
        self.nickname = None
        self.server = None

    async def start(self):
        self.server = await asyncio.start_server(self.handle, "127.0.0.1", 0)
        return self.server.sockets[0].getsockname()[1]

    async def expect(self, reader, command):
        while True:
            line = (await reader.readline()).decode().strip()
            if not line:
                raise AssertionError(f"client hung up waiting for {command}")
            self.received.append(line)
            if line.startswith(command):
                return line

    async def handle(self, reader, writer):
        self.nickname = (await self.expect(reader, "NICK")).split()[1]
        await self.expect(reader, "USER")
        writer.write(b"PING :keepalive\r\n")
        await writer.drain()
        await self.expect(reader, "PONG")
        writer.write(f":irc.test 001 {self.nickname} :Welcome\r\n".encode())
        await writer.drain()
        await self.expect(reader, "JOIN")

        for line in self.script(self.nickname):
            if isinstance(line, str):
                line = line.encode()
            writer.write(line + b"\r\n")
        # A mid-stream PING must be answered before we hang up
        writer.write(b"PING :again\r\n")
        await writer.drain()
        await self.expect(reader, "PONG again")
        writer.close()

    async def stop(self):
        self.server.close()
        await self.server.wait_closed()


class TestIrcClient:
    """End-to-end tests against a local IRC server."""

    @pytest.mark.asyncio
    async def test_session(self):
        request, response = make_update(10), make_update(11)

        def script(nickname):
            return [
                f":alice!a@peer.example PRIVMSG {CHANNEL} :{encode_message(request)}",
                ":irc.test NOTICE * :*** server notice",
                "",
                f":bob!b@peer.example PRIVMSG {nickname} :{encode_message(response)}",
            ]

        server = FakeIrcServer(script)
        port = await server.start()
        try:
            own = Key.random()
            signaling = IrcSignaling(IrcConfig(server="127.0.0.1", port=port, channel=CHANNEL))
            await signaling.connect(own, [])

            items = await asyncio.wait_for(collect(signaling.subscribe()), timeout=5)
            await signaling.close()
        finally:
            await server.stop()

        assert server.nickname == derive_handle(own)
        assert f"JOIN {CHANNEL}" in server.received
        assert "PONG keepalive" in server.received
        assert "PONG again" in server.received
        assert items == [
            PeerRequest(update=request, sender="alice"),
            PeerResponse(update=response),
        ]

    @pytest.mark.asyncio
    async def test_non_utf8_chatter_dropped(self):
        """A Latin-1 line on the channel is ignored like any other chatter."""
        request = make_update(12)

        def script(nickname):
            return [
                f":eve!e@h PRIVMSG {CHANNEL} :café olé".encode("latin-1"),
                f":alice!a@peer.example PRIVMSG {CHANNEL} :{encode_message(request)}",
            ]

        server = FakeIrcServer(script)
        port = await server.start()
        try:
            signaling = IrcSignaling(IrcConfig(server="127.0.0.1", port=port, channel=CHANNEL))
            await signaling.connect(Key.random(), [])

            items = await asyncio.wait_for(collect(signaling.subscribe()), timeout=5)
            await signaling.close()
        finally:
            await server.stop()

        assert items == [PeerRequest(update=request, sender="alice")]

    @pytest.mark.asyncio
    async def test_connect_refused(self):
        server = await asyncio.start_server(lambda r, w: None, "127.0.0.1", 0)
        port = server.sockets[0].getsockname()[1]
        server.close()
        await server.wait_closed()

        signaling = IrcSignaling(IrcConfig(server="127.0.0.1", port=port, channel=CHANNEL))
        with pytest.raises(SignalingError):
            await signaling.connect(Key.random(), [])


class BrokenWriter:
    """Stream writer whose peer has gone away."""

    def __init__(self):
        self.written = []

    def write(self, data):
        self.written.append(data)

    async def drain(self):
        raise ConnectionResetError("Connection lost")


def fed_client(data, limit=2 ** 16, writer=None):
    client = IrcClient()
    reader = asyncio.StreamReader(limit=limit)
    reader.feed_data(data)
    reader.feed_eof()
    client._reader = reader
    client._writer = writer or BrokenWriter()
    return client


class TestIrcClientStream:
    """Per-line handling of the inbound stream."""

    @pytest.mark.asyncio
    async def test_failed_pong_ends_stream(self):
        """A PONG that can't be sent ends the stream with an error item."""
        update = make_update()
        client = fed_client(
            b"PING :x\r\n"
            + f":alice!a@h PRIVMSG {CHANNEL} :{encode_message(update)}\r\n".encode()
        )

        items = await collect(client.messages())

        assert len(items) == 1
        assert isinstance(items[0], SignalingError)
        assert "send failed" in str(items[0])
        assert client._writer.written == [b"PONG x\r\n"]

    @pytest.mark.asyncio
    async def test_overlong_line_skipped(self):
        """An over-long line is reported and the next line still arrives."""
        client = fed_client(
            b":eve!e@h PRIVMSG #c :" + b"x" * 200 + b"\r\n"
            + b":alice!a@h PRIVMSG #c :hi\r\n",
            limit=64,
        )

        items = await collect(client.messages())

        assert len(items) == 2
        assert isinstance(items[0], SignalingError)
        assert items[1] == IrcMessage(command="PRIVMSG", params=["#c", "hi"], prefix="alice!a@h")


class TestMemorySignaling:
    """Tests for the in-process hub."""

    @pytest.mark.asyncio
    async def test_subscribe_once(self):
        hub = MemoryHub()
        a = MemorySignaling(hub)
        await a.connect(Key.random(), [])
        await a.close()
        assert await collect(a.subscribe()) == []

        with pytest.raises(SignalingError):
            await collect(a.subscribe())

    @pytest.mark.asyncio
    async def test_broadcast_and_reply(self):
        hub = MemoryHub(channel=CHANNEL)
        a_key, b_key = Key.random(), Key.random()
        a, b = MemorySignaling(hub), MemorySignaling(hub)
        await a.connect(a_key, [b_key])
        await b.connect(b_key, [a_key])

        update = make_update()
        await a.announce(update)
        await b.announce(update, target=a.handle)
        await a.close()
        await b.close()

        assert await collect(b.subscribe()) == [PeerRequest(update=update, sender=a.handle)]
        assert await collect(a.subscribe()) == [PeerResponse(update=update)]
        assert b.registry == {derive_handle(a_key): a_key}

    @pytest.mark.asyncio
    async def test_no_echo_and_unknown_target(self):
        hub = MemoryHub()
        a = MemorySignaling(hub)
        await a.connect(Key.random(), [])

        await a.announce(make_update())
        assert a.queue.empty()

        with pytest.raises(SignalingError):
            await a.announce(make_update(), target="ghost")

    @pytest.mark.asyncio
    async def test_error_items(self):
        hub = MemoryHub()
        a = MemorySignaling(hub)
        await a.connect(Key.random(), [])
        error = SignalingError("flaky")

        a.inject_error(error)
        await a.close()

        assert await collect(a.subscribe()) == [error]
