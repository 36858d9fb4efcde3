"""
STUN client for external endpoint discovery.

Implements the RFC 5389 binding request/response exchange over a single
UDP socket: every reflector is queried from the same local port, so the
reported mapping belongs to the port handed back to the caller.
"""

import asyncio
import ipaddress
import logging
import os
import socket
import struct
from typing import Iterable, List, Optional, Tuple, Union

from ..errors import DiscoveryError
from ..wg.models import SocketAddr
from .base import Discover

logger = logging.getLogger(__name__)

# Public STUN servers (UDP, port 3478 or 19302)
DEFAULT_STUN_SERVERS = [
    ("stun.l.google.com", 19302),
    ("stun1.l.google.com", 19302),
    ("stun2.l.google.com", 19302),
    ("stun.cloudflare.com", 3478),
    ("stun.stunprotocol.org", 3478),
]

DEFAULT_TIMEOUT = 3.0

# STUN message types
STUN_BINDING_REQUEST = 0x0001
STUN_BINDING_RESPONSE = 0x0101
STUN_MAGIC_COOKIE = 0x2112A442

# STUN attribute types
ATTR_MAPPED_ADDRESS = 0x0001
ATTR_XOR_MAPPED_ADDRESS = 0x0020

ServerSpec = Union[str, Tuple[str, int]]


def parse_server(server: ServerSpec) -> Tuple[str, int]:
    """Accept ("host", port) or "host:port"."""
    if isinstance(server, tuple):
        return server
    host, sep, port = server.rpartition(":")
    if not sep or not port.isdigit():
        raise ValueError(f"STUN server must be host:port, got {server!r}")
    return host.strip("[]"), int(port)


def build_stun_request() -> Tuple[bytes, bytes]:
    """Build a STUN binding request."""
    # Transaction ID (96 bits)
    transaction_id = os.urandom(12)

    # STUN header: type (2) + length (2) + magic cookie (4) + transaction ID (12)
    header = struct.pack(
        ">HHI",
        STUN_BINDING_REQUEST,
        0,  # Length (no attributes)
        STUN_MAGIC_COOKIE,
    ) + transaction_id

    return header, transaction_id


def parse_stun_response(data: bytes, transaction_id: bytes) -> Optional[Tuple[str, int]]:
    """Parse STUN binding response to extract mapped address."""
    if len(data) < 20:
        return None

    msg_type, msg_len, magic = struct.unpack(">HHI", data[:8])
    if msg_type != STUN_BINDING_RESPONSE:
        return None
    if magic != STUN_MAGIC_COOKIE:
        return None
    if data[8:20] != transaction_id:
        return None

    mapped = None
    offset = 20
    while offset < 20 + msg_len:
        if offset + 4 > len(data):
            break

        attr_type, attr_len = struct.unpack(">HH", data[offset:offset + 4])
        offset += 4

        if offset + attr_len > len(data):
            break

        attr_data = data[offset:offset + attr_len]

        if attr_type == ATTR_XOR_MAPPED_ADDRESS and attr_len >= 8 and attr_data[1] == 0x01:
            xor_port, xor_ip = struct.unpack(">HI", attr_data[2:8])
            port = xor_port ^ (STUN_MAGIC_COOKIE >> 16)
            ip = socket.inet_ntoa(struct.pack(">I", xor_ip ^ STUN_MAGIC_COOKIE))
            # XOR-MAPPED-ADDRESS wins over anything else
            return ip, port

        if attr_type == ATTR_MAPPED_ADDRESS and attr_len >= 8 and attr_data[1] == 0x01:
            port = struct.unpack(">H", attr_data[2:4])[0]
            mapped = socket.inet_ntoa(attr_data[4:8]), port

        # Align to 4 bytes
        offset += attr_len + ((4 - attr_len % 4) % 4)

    return mapped


async def _receive_mapped(
    loop: asyncio.AbstractEventLoop,
    sock: socket.socket,
    transaction_id: bytes,
) -> Tuple[str, int]:
    # Late answers from a previous server carry a different transaction ID
    while True:
        data = await loop.sock_recv(sock, 1024)
        result = parse_stun_response(data, transaction_id)
        if result:
            return result


class StunDiscover(Discover):
    """Discover the external endpoint by asking STUN reflectors in order."""

    def __init__(
        self,
        servers: Optional[Iterable[ServerSpec]] = None,
        timeout: float = DEFAULT_TIMEOUT,
        bind_host: str = "0.0.0.0",
    ):
        self.servers: List[Tuple[str, int]] = [
            parse_server(s) for s in (servers or DEFAULT_STUN_SERVERS)
        ]
        self.timeout = timeout
        self.bind_host = bind_host

    async def discover(self) -> Tuple[SocketAddr, int]:
        loop = asyncio.get_running_loop()

        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        sock.setblocking(False)
        try:
            try:
                sock.bind((self.bind_host, 0))
            except OSError as e:
                raise DiscoveryError(f"cannot bind UDP socket: {e}") from e
            local_port = sock.getsockname()[1]

            for server, port in self.servers:
                try:
                    server_addr = socket.gethostbyname(server)
                except socket.gaierror:
                    logger.debug(f"Could not resolve STUN server: {server}")
                    continue

                request, transaction_id = build_stun_request()
                try:
                    await loop.sock_sendto(sock, request, (server_addr, port))
                    ip, mapped_port = await asyncio.wait_for(
                        _receive_mapped(loop, sock, transaction_id),
                        timeout=self.timeout,
                    )
                except asyncio.TimeoutError:
                    logger.debug(f"STUN server {server} timeout")
                    continue
                except OSError as e:
                    logger.debug(f"STUN server {server} failed: {e}")
                    continue

                logger.info(f"STUN discovery: {ip}:{mapped_port} (via {server}, local port {local_port})")
                return SocketAddr(ipaddress.IPv4Address(ip), mapped_port), local_port
        finally:
            sock.close()

        raise DiscoveryError("no STUN server answered")
