"""
WireGuard side of wgdisco.

Provides:
- Key / address value types
- wg-quick config parser
- Control backends (`wg` command line, in-memory)
"""

from .models import (
    Cidr,
    DomainEndpoint,
    Endpoint,
    Key,
    Peer,
    SocketAddr,
    derive_public_key,
    parse_endpoint,
)
from .config import (
    InterfaceConfig,
    PeerConfig,
    WgConfig,
    load_config,
    parse_config,
)
from .api import WireguardApi, MemoryWireguard
from .cmd import WgCmdBackend

__all__ = [
    # Models
    "Cidr",
    "DomainEndpoint",
    "Endpoint",
    "Key",
    "Peer",
    "SocketAddr",
    "derive_public_key",
    "parse_endpoint",
    # Config
    "InterfaceConfig",
    "PeerConfig",
    "WgConfig",
    "load_config",
    "parse_config",
    # Control
    "WireguardApi",
    "MemoryWireguard",
    "WgCmdBackend",
]
