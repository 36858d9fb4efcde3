"""
Rendezvous signaling for wgdisco.

Provides:
- PeerUpdate wire message and its codec
- Request/response event classification
- IRC-backed signaling and an in-process hub for tests
"""

from .base import (
    PeerEvent,
    PeerRequest,
    PeerResponse,
    PeerUpdate,
    Signaling,
    SubscriptionItem,
)
from .codec import decode_message, encode_message
from .irc import IrcConfig, IrcSignaling, derive_handle
from .memory import MemoryHub, MemorySignaling
from .transport import ChatTransport, IrcClient, IrcMessage

__all__ = [
    # Messages
    "PeerEvent",
    "PeerRequest",
    "PeerResponse",
    "PeerUpdate",
    "Signaling",
    "SubscriptionItem",
    "decode_message",
    "encode_message",
    # IRC
    "IrcConfig",
    "IrcSignaling",
    "derive_handle",
    "ChatTransport",
    "IrcClient",
    "IrcMessage",
    # In-process
    "MemoryHub",
    "MemorySignaling",
]
