"""
Chat transport used as the rendezvous channel.

IrcClient speaks just enough of the IRC client protocol (RFC 2812) for
signaling: register a nickname, join one channel, send PRIVMSG and read
the inbound message stream. Server PINGs are answered internally.
"""

import asyncio
import logging
import ssl
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import AsyncIterator, List, Optional, Union

from ..errors import SignalingError

logger = logging.getLogger(__name__)

DEFAULT_CONNECT_TIMEOUT = 30.0

RPL_WELCOME = "001"
# Registration failures that make connecting pointless
REGISTRATION_ERRORS = {
    "432": "erroneous nickname",
    "433": "nickname already in use",
    "436": "nickname collision",
    "465": "banned from server",
    "ERROR": "server closed the link",
}


@dataclass
class IrcMessage:
    """A parsed IRC protocol line."""
    command: str
    params: List[str] = field(default_factory=list)
    prefix: Optional[str] = None

    @property
    def nickname(self) -> Optional[str]:
        """Sender nickname, or None for server-originated lines."""
        if not self.prefix:
            return None
        if "!" in self.prefix or "@" in self.prefix:
            return self.prefix.split("!", 1)[0].split("@", 1)[0] or None
        # A bare prefix with a dot is a server name
        if "." in self.prefix:
            return None
        return self.prefix

    @classmethod
    def parse(cls, line: str) -> "IrcMessage":
        line = line.rstrip("\r\n")
        if line.startswith("@"):
            # IRCv3 message tags are not used
            _, _, line = line.partition(" ")

        prefix = None
        if line.startswith(":"):
            prefix, _, line = line[1:].partition(" ")

        line, sep, trailing = line.partition(" :")
        params = line.split()
        if not params:
            raise SignalingError(f"malformed IRC line: {line!r}")
        if sep:
            params.append(trailing)

        return cls(command=params[0].upper(), params=params[1:], prefix=prefix)

    def format(self) -> str:
        params = list(self.params)
        if params and (not params[-1] or " " in params[-1] or params[-1].startswith(":")):
            params[-1] = ":" + params[-1]
        parts = [self.command, *params]
        if self.prefix:
            parts.insert(0, ":" + self.prefix)
        return " ".join(parts)


TransportItem = Union[IrcMessage, SignalingError]


class ChatTransport(ABC):
    """Abstract chat network connection."""

    @abstractmethod
    async def connect(self, nickname: str, username: str, server: str, port: int,
                      tls: bool = False) -> None:
        pass

    @abstractmethod
    async def join(self, channel: str) -> None:
        pass

    @abstractmethod
    async def send_privmsg(self, target: str, text: str) -> None:
        """Send to a channel (broadcast) or a nickname (directed)."""
        pass

    @abstractmethod
    def messages(self) -> AsyncIterator[TransportItem]:
        """Inbound messages; per-line failures are yielded as SignalingError."""
        pass

    @abstractmethod
    async def close(self) -> None:
        pass


class IrcClient(ChatTransport):
    """Plain asyncio IRC client."""

    def __init__(self, connect_timeout: float = DEFAULT_CONNECT_TIMEOUT):
        self.connect_timeout = connect_timeout
        self._reader: Optional[asyncio.StreamReader] = None
        self._writer: Optional[asyncio.StreamWriter] = None

    async def connect(self, nickname: str, username: str, server: str, port: int,
                      tls: bool = False) -> None:
        ssl_context = ssl.create_default_context() if tls else None
        try:
            self._reader, self._writer = await asyncio.wait_for(
                asyncio.open_connection(server, port, ssl=ssl_context),
                timeout=self.connect_timeout,
            )
        except (OSError, asyncio.TimeoutError) as e:
            raise SignalingError(f"cannot connect to {server}:{port}: {e}") from e

        logger.info(f"Connected to {server}:{port}, registering as {nickname}")
        await self._send("NICK", nickname)
        await self._send("USER", username, "0", "*", username)

        try:
            await asyncio.wait_for(self._wait_registered(), timeout=self.connect_timeout)
        except asyncio.TimeoutError:
            raise SignalingError(f"no welcome from {server} within {self.connect_timeout}s")

    async def _wait_registered(self) -> None:
        while True:
            raw = await self._reader.readline()
            if not raw:
                raise SignalingError("connection closed during registration")
            try:
                msg = IrcMessage.parse(raw.decode("utf-8", errors="replace"))
            except SignalingError as e:
                logger.debug(f"ignoring line during registration: {e}")
                continue

            if msg.command == "PING":
                await self._send("PONG", *msg.params)
            elif msg.command == RPL_WELCOME:
                return
            elif msg.command in REGISTRATION_ERRORS:
                detail = msg.params[-1] if msg.params else ""
                raise SignalingError(f"registration failed: {REGISTRATION_ERRORS[msg.command]} ({detail})")

    async def _send(self, command: str, *params: str) -> None:
        if self._writer is None:
            raise SignalingError("not connected")
        line = IrcMessage(command=command, params=list(params)).format()
        logger.debug(f">> {line}")
        try:
            self._writer.write(line.encode("utf-8") + b"\r\n")
            await self._writer.drain()
        except OSError as e:
            raise SignalingError(f"send failed: {e}") from e

    async def join(self, channel: str) -> None:
        await self._send("JOIN", channel)

    async def send_privmsg(self, target: str, text: str) -> None:
        await self._send("PRIVMSG", target, text)

    async def messages(self) -> AsyncIterator[TransportItem]:
        if self._reader is None:
            raise SignalingError("not connected")

        while True:
            try:
                raw = await self._reader.readline()
            except ValueError as e:
                # Over-long line; the reader drops it
                yield SignalingError(f"bad line: {e}")
                continue
            except OSError as e:
                yield SignalingError(f"connection lost: {e}")
                return

            if not raw:
                logger.info("IRC connection closed")
                return
            if not raw.strip():
                continue

            # Non-UTF-8 chatter still parses; its payload just won't decode
            try:
                msg = IrcMessage.parse(raw.decode("utf-8", errors="replace"))
            except SignalingError as e:
                yield e
                continue

            logger.debug(f"<< {msg.format()}")
            if msg.command == "PING":
                try:
                    await self._send("PONG", *msg.params)
                except SignalingError as e:
                    yield e
                    return
                continue

            yield msg

    async def close(self) -> None:
        if self._writer is None:
            return
        try:
            await self._send("QUIT", "bye")
        except SignalingError as e:
            logger.debug(f"QUIT not sent: {e}")
        self._writer.close()
        try:
            await self._writer.wait_closed()
        except OSError as e:
            logger.debug(f"close: {e}")
        self._writer = None
