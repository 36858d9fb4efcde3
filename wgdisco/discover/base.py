"""
Discover interface and a fixed test double.
"""

import ipaddress
from abc import ABC, abstractmethod
from typing import Optional, Tuple

from ..wg.models import SocketAddr

FAKE_PORT = 51039


class Discover(ABC):
    """Abstract endpoint discovery."""

    @abstractmethod
    async def discover(self) -> Tuple[SocketAddr, int]:
        """Return (externally observed address, local source port)."""
        pass


class FakeDiscover(Discover):
    """Always reports the same endpoint. Useful for tests and local demos."""

    def __init__(self, endpoint: Optional[SocketAddr] = None, local_port: int = FAKE_PORT):
        self.endpoint = endpoint or SocketAddr(ipaddress.IPv4Address("127.0.0.1"), FAKE_PORT)
        self.local_port = local_port
        self.calls = 0

    async def discover(self) -> Tuple[SocketAddr, int]:
        self.calls += 1
        return self.endpoint, self.local_port
