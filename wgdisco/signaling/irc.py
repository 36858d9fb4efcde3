"""
Signaling over a public IRC channel.

Each node shows up on the network under a handle derived from its
WireGuard public key: sha256 of the key, URL-safe base64, `-`/`_`
removed, first 12 characters. Handles are a naming convenience only.
Anyone can pick any nickname, and truncation means two keys could share
one, so nothing here proves key ownership. Trust comes from the WireGuard
handshake itself, which a spoofed endpoint cannot complete.
"""

import base64
import hashlib
import logging
from dataclasses import dataclass
from typing import AsyncIterator, Dict, Iterable, Optional

from ..errors import DecodeError, SignalingError
from ..wg.models import Key
from .base import PeerEvent, PeerRequest, PeerResponse, PeerUpdate, Signaling, SubscriptionItem
from .codec import decode_message, encode_message
from .transport import ChatTransport, IrcClient, IrcMessage

logger = logging.getLogger(__name__)

NICKNAME_LENGTH = 12

DEFAULT_SERVER = "irc.libera.chat"
DEFAULT_PORT = 6667
DEFAULT_CHANNEL = "#wg-disco-aeeab"


@dataclass
class IrcConfig:
    """Where to meet other peers."""
    server: str = DEFAULT_SERVER
    port: int = DEFAULT_PORT
    tls: bool = False
    channel: str = DEFAULT_CHANNEL


def derive_handle(key: Key) -> str:
    """The 12-character rendezvous nickname for `key`."""
    digest = hashlib.sha256(key.raw).digest()
    text = base64.urlsafe_b64encode(digest).decode("ascii").replace("-", "").replace("_", "")
    return text[:NICKNAME_LENGTH]


def classify(sender: Optional[str], target: str, body: str,
             channel: str, own_handle: str) -> Optional[PeerEvent]:
    """
    Turn one delivered message into an event.

    Returns None (drop) when the sender is unknown, the payload doesn't
    decode, or the message was addressed to neither the channel nor us.
    """
    if not sender:
        return None
    try:
        update = decode_message(body)
    except DecodeError as e:
        logger.debug(f"dropping message from {sender}: {e}")
        return None

    target = target.lower()
    if target == channel.lower():
        return PeerRequest(update=update, sender=sender)
    if target == own_handle.lower():
        return PeerResponse(update=update)
    return None


class IrcSignaling(Signaling):
    """Rendezvous on one IRC channel; directed replies go by PRIVMSG to a nickname."""

    def __init__(self, config: Optional[IrcConfig] = None, transport: Optional[ChatTransport] = None):
        self.config = config or IrcConfig()
        self.transport = transport or IrcClient()
        self.nickname: Optional[str] = None
        # Handle -> key for every configured peer. Not consulted when
        # classifying: senders are taken at their word.
        self.registry: Dict[str, Key] = {}
        self._subscribed = False

    async def connect(self, own_key: Key, peers: Iterable[Key]) -> None:
        self.nickname = derive_handle(own_key)
        self.registry = {derive_handle(key): key for key in peers}

        # The handle is both login and display identity
        await self.transport.connect(
            nickname=self.nickname,
            username=self.nickname,
            server=self.config.server,
            port=self.config.port,
            tls=self.config.tls,
        )
        await self.transport.join(self.config.channel)
        logger.info(
            f"Joined {self.config.channel} on {self.config.server} as {self.nickname} "
            f"({len(self.registry)} known peers)"
        )

    def lookup(self, handle: str) -> Optional[Key]:
        """Configured peer key for a handle, if any."""
        return self.registry.get(handle)

    async def announce(self, update: PeerUpdate, target: Optional[str] = None) -> None:
        if self.nickname is None:
            raise SignalingError("announce before connect")
        target = target or self.config.channel

        logger.info(f"announcing peer for {target} {update.key} {update.endpoint}")
        await self.transport.send_privmsg(target, encode_message(update))

    def classify(self, message: IrcMessage) -> Optional[PeerEvent]:
        if message.command != "PRIVMSG" or len(message.params) < 2:
            return None
        target, body = message.params[0], message.params[-1]
        return classify(message.nickname, target, body, self.config.channel, self.nickname or "")

    async def subscribe(self) -> AsyncIterator[SubscriptionItem]:
        if self._subscribed:
            raise SignalingError("already subscribed")
        self._subscribed = True

        async for item in self.transport.messages():
            if isinstance(item, SignalingError):
                yield item
                continue
            event = self.classify(item)
            if event is not None:
                yield event

    async def close(self) -> None:
        await self.transport.close()
