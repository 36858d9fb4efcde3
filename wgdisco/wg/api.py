"""
Control surface for a running WireGuard interface.

The daemon only needs a handful of operations: read its own public key,
read/set the listen port, and point a peer at a new endpoint. Calls are
synchronous and either succeed or raise WgCommandError.
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Tuple

from ..errors import WgCommandError
from .config import WgConfig
from .models import Endpoint, Key, SocketAddr, derive_public_key

logger = logging.getLogger(__name__)


class WireguardApi(ABC):
    """Abstract control backend for WireGuard interfaces."""

    @abstractmethod
    def get_public_key(self, iface: str) -> Key:
        pass

    @abstractmethod
    def get_listen_port(self, iface: str) -> int:
        pass

    @abstractmethod
    def get_endpoints(self, iface: str) -> Dict[Key, Optional[SocketAddr]]:
        pass

    @abstractmethod
    def set_listen_port(self, iface: str, port: int) -> None:
        pass

    @abstractmethod
    def set_peer_endpoint(self, iface: str, key: Key, endpoint: Endpoint) -> None:
        pass


class MemoryWireguard(WireguardApi):
    """
    In-memory backend for a single interface.

    Keeps the same state `wg show` would report and records every mutating
    call in `calls`, so tests can assert on both.
    """

    def __init__(
        self,
        iface: str,
        public_key: Key,
        listen_port: int = 0,
        peers: Optional[List[Key]] = None,
    ):
        self.iface = iface
        self.public_key = public_key
        self.listen_port = listen_port
        self.endpoints: Dict[Key, Optional[Endpoint]] = {key: None for key in peers or []}
        self.calls: List[Tuple] = []

    @classmethod
    def from_config(cls, iface: str, config: WgConfig) -> "MemoryWireguard":
        """Bring up a fake interface the way wg-quick would from `config`."""
        backend = cls(
            iface,
            public_key=derive_public_key(config.interface.private_key),
            listen_port=config.interface.listen_port or 0,
            peers=config.peer_keys,
        )
        for peer in config.peers:
            backend.endpoints[peer.public_key] = peer.endpoint
        return backend

    def _check(self, iface: str, *args: str) -> None:
        if iface != self.iface:
            raise WgCommandError(["wg", *args, iface], 1, "No such device")

    def get_public_key(self, iface: str) -> Key:
        self._check(iface, "show")
        return self.public_key

    def get_listen_port(self, iface: str) -> int:
        self._check(iface, "show")
        return self.listen_port

    def get_endpoints(self, iface: str) -> Dict[Key, Optional[SocketAddr]]:
        self._check(iface, "show")
        # Domain endpoints are resolved by the kernel; unresolved ones show as (none)
        return {
            key: endpoint if isinstance(endpoint, SocketAddr) else None
            for key, endpoint in self.endpoints.items()
        }

    def set_listen_port(self, iface: str, port: int) -> None:
        self._check(iface, "set")
        self.calls.append(("set_listen_port", iface, port))
        self.listen_port = port

    def set_peer_endpoint(self, iface: str, key: Key, endpoint: Endpoint) -> None:
        self._check(iface, "set")
        self.calls.append(("set_peer_endpoint", iface, key, endpoint))
        if self.endpoints.get(key) != endpoint:
            logger.debug(f"{iface}: peer {key} endpoint -> {endpoint}")
        self.endpoints[key] = endpoint
