"""
External endpoint discovery.

A Discover implementation reports the address the outside world sees for
a local UDP port, together with that local port. Only full-cone / simple
NAT keeps this mapping stable for later inbound WireGuard traffic;
symmetric NAT is not supported.
"""

from .base import Discover, FakeDiscover
from .stun import (
    DEFAULT_STUN_SERVERS,
    StunDiscover,
    build_stun_request,
    parse_stun_response,
)

__all__ = [
    "Discover",
    "FakeDiscover",
    "DEFAULT_STUN_SERVERS",
    "StunDiscover",
    "build_stun_request",
    "parse_stun_response",
]
