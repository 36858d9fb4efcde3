"""
Wire codec for PeerUpdate.

Binary layout (all integers big-endian):

    key         32 bytes
    endpoint    family:u8 (0 = IPv4, 1 = IPv6) | address (4 or 16) | port:u16
    routes      count:u32, then per route: family:u8 | address | mask:u8

The blob is sent as URL-safe base64 without padding so it fits in a
single chat line.
"""

import base64
import binascii
import ipaddress
import re
import struct
from typing import List, Tuple

from ..errors import DecodeError
from ..wg.models import KEY_LENGTH, Cidr, IPAddress, Key, SocketAddr
from .base import PeerUpdate

FAMILY_IPV4 = 0
FAMILY_IPV6 = 1

_ADDRESS_LENGTH = {FAMILY_IPV4: 4, FAMILY_IPV6: 16}
_URLSAFE_RE = re.compile(r"^[A-Za-z0-9_-]*$")


def _pack_ip(ip: IPAddress) -> bytes:
    family = FAMILY_IPV4 if ip.version == 4 else FAMILY_IPV6
    return struct.pack(">B", family) + ip.packed


def encode_update(update: PeerUpdate) -> bytes:
    """Serialize an update to its binary layout."""
    parts = [
        update.key.raw,
        _pack_ip(update.endpoint.ip),
        struct.pack(">H", update.endpoint.port),
        struct.pack(">I", len(update.advertise_routes)),
    ]
    for route in update.advertise_routes:
        parts.append(_pack_ip(route.ip))
        parts.append(struct.pack(">B", route.mask))
    return b"".join(parts)


class _Reader:
    def __init__(self, data: bytes):
        self.data = data
        self.offset = 0

    def take(self, n: int) -> bytes:
        if self.offset + n > len(self.data):
            raise DecodeError(f"truncated payload at byte {self.offset}")
        chunk = self.data[self.offset:self.offset + n]
        self.offset += n
        return chunk

    def unpack(self, fmt: str) -> Tuple:
        return struct.unpack(fmt, self.take(struct.calcsize(fmt)))

    def ip(self) -> IPAddress:
        (family,) = self.unpack(">B")
        if family not in _ADDRESS_LENGTH:
            raise DecodeError(f"unknown address family {family}")
        return ipaddress.ip_address(self.take(_ADDRESS_LENGTH[family]))


def decode_update(data: bytes) -> PeerUpdate:
    """Parse the binary layout. Trailing bytes are rejected."""
    reader = _Reader(data)
    key = Key(reader.take(KEY_LENGTH))
    endpoint = SocketAddr(reader.ip(), reader.unpack(">H")[0])

    (count,) = reader.unpack(">I")
    routes: List[Cidr] = []
    for _ in range(count):
        ip = reader.ip()
        (mask,) = reader.unpack(">B")
        if mask > ip.max_prefixlen:
            raise DecodeError(f"prefix length {mask} too long for {ip}")
        routes.append(Cidr(ip=ip, mask=mask))

    if reader.offset != len(data):
        raise DecodeError(f"{len(data) - reader.offset} trailing bytes")

    return PeerUpdate(key=key, endpoint=endpoint, advertise_routes=routes)


def encode_message(update: PeerUpdate) -> str:
    """Encode an update as a single line of URL-safe base64."""
    return base64.urlsafe_b64encode(encode_update(update)).rstrip(b"=").decode("ascii")


def decode_message(text: str) -> PeerUpdate:
    """
    Decode a chat line back into an update.

    Raises:
        DecodeError: if either the base64 or the binary layer is invalid.
    """
    text = text.strip()
    if not _URLSAFE_RE.match(text) or len(text) % 4 == 1:
        raise DecodeError("payload is not unpadded URL-safe base64")
    try:
        data = base64.urlsafe_b64decode(text + "=" * (-len(text) % 4))
    except (binascii.Error, ValueError) as e:
        raise DecodeError(f"invalid base64: {e}") from e
    return decode_update(data)
