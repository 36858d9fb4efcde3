"""
Rendezvous signaling interface.

Peers announce `PeerUpdate`s on a shared channel (broadcast) or to one
peer (directed). Inbound updates are classified by how they were
delivered: on the shared channel they are requests, addressed to us they
are responses.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import AsyncIterator, Iterable, List, Optional, Union

from ..errors import SignalingError
from ..wg.models import Cidr, Key, SocketAddr


@dataclass
class PeerUpdate:
    """The only message on the wire: a key and where to reach it."""
    key: Key
    endpoint: SocketAddr
    advertise_routes: List[Cidr] = field(default_factory=list)


@dataclass
class PeerEvent:
    """An update received from the rendezvous channel."""
    update: PeerUpdate


@dataclass
class PeerRequest(PeerEvent):
    """Update seen on the shared channel; `sender` expects a directed reply."""
    sender: str = ""


@dataclass
class PeerResponse(PeerEvent):
    """Update addressed directly to this node."""


SubscriptionItem = Union[PeerEvent, SignalingError]


class Signaling(ABC):
    """Abstract rendezvous channel."""

    @abstractmethod
    async def connect(self, own_key: Key, peers: Iterable[Key]) -> None:
        """Join the rendezvous channel as `own_key`, knowing the configured peers."""
        pass

    @abstractmethod
    async def announce(self, update: PeerUpdate, target: Optional[str] = None) -> None:
        """Broadcast `update`, or send it only to `target` when given."""
        pass

    @abstractmethod
    def subscribe(self) -> AsyncIterator[SubscriptionItem]:
        """
        Inbound events in arrival order.

        Transport errors are yielded as SignalingError items instead of
        being raised; the iterator only ends when the transport disconnects.
        Can be consumed once.
        """
        pass

    async def close(self) -> None:
        """Release the transport."""
        pass
