"""
In-process signaling.

A MemoryHub stands in for the chat network: every MemorySignaling joined
to the same hub sees the others' broadcasts, and directed messages reach
only their target. Messages go through the real wire codec, so the
classification rules are the same as on IRC.
"""

import asyncio
import logging
from typing import AsyncIterator, Dict, Iterable, List, Optional, Tuple

from ..errors import SignalingError
from ..wg.models import Key
from .base import PeerUpdate, Signaling, SubscriptionItem
from .codec import encode_message
from .irc import classify, derive_handle

logger = logging.getLogger(__name__)

DEFAULT_CHANNEL = "#memory"

# (sender, target, body), or None to signal disconnect
Delivery = Optional[Tuple[Optional[str], str, str]]


class MemoryHub:
    """A shared channel plus direct delivery between joined members."""

    def __init__(self, channel: str = DEFAULT_CHANNEL):
        self.channel = channel
        self.members: Dict[str, "MemorySignaling"] = {}
        self.log: List[Tuple[Optional[str], str, str]] = []

    def join(self, member: "MemorySignaling") -> None:
        self.members[member.handle] = member

    def leave(self, member: "MemorySignaling") -> None:
        self.members.pop(member.handle, None)

    def deliver(self, sender: Optional[str], target: str, body: str) -> None:
        """Deliver like a chat server: no echo of channel messages to the sender."""
        self.log.append((sender, target, body))
        if target == self.channel:
            for handle, member in self.members.items():
                if handle != sender:
                    member.queue.put_nowait((sender, target, body))
            return

        member = self.members.get(target)
        if member is None:
            raise SignalingError(f"no such nick: {target}")
        member.queue.put_nowait((sender, target, body))


class MemorySignaling(Signaling):
    """Signaling endpoint attached to a MemoryHub."""

    def __init__(self, hub: MemoryHub):
        self.hub = hub
        self.handle: Optional[str] = None
        self.registry: Dict[str, Key] = {}
        self.queue: "asyncio.Queue[Delivery]" = asyncio.Queue()
        self.announced: List[Tuple[PeerUpdate, Optional[str]]] = []
        self._subscribed = False

    async def connect(self, own_key: Key, peers: Iterable[Key]) -> None:
        self.handle = derive_handle(own_key)
        self.registry = {derive_handle(key): key for key in peers}
        self.hub.join(self)

    async def announce(self, update: PeerUpdate, target: Optional[str] = None) -> None:
        if self.handle is None:
            raise SignalingError("announce before connect")
        self.announced.append((update, target))
        self.hub.deliver(self.handle, target or self.hub.channel, encode_message(update))

    def inject_error(self, error: SignalingError) -> None:
        """Queue a transport-level error item for the subscriber."""
        self.queue.put_nowait(error)

    async def subscribe(self) -> AsyncIterator[SubscriptionItem]:
        if self._subscribed:
            raise SignalingError("already subscribed")
        self._subscribed = True

        while True:
            item = await self.queue.get()
            if item is None:
                return
            if isinstance(item, SignalingError):
                yield item
                continue

            sender, target, body = item
            event = classify(sender, target, body, self.hub.channel, self.handle or "")
            if event is not None:
                yield event

    async def close(self) -> None:
        self.hub.leave(self)
        self.queue.put_nowait(None)
