"""
Value types shared by the config parser, the control backends and the
signaling layer.
"""

import base64
import binascii
import ipaddress
import os
from dataclasses import dataclass, field
from typing import Union

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.x25519 import X25519PrivateKey

from ..errors import ParseError

KEY_LENGTH = 32

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]


@dataclass(frozen=True)
class Key:
    """A WireGuard key (32 raw bytes, standard base64 as text)."""
    raw: bytes = bytes(KEY_LENGTH)

    def __post_init__(self):
        if not isinstance(self.raw, bytes) or len(self.raw) != KEY_LENGTH:
            raise ValueError(f"key must be exactly {KEY_LENGTH} bytes")

    @classmethod
    def zero(cls) -> "Key":
        return cls(bytes(KEY_LENGTH))

    @classmethod
    def random(cls) -> "Key":
        return cls(os.urandom(KEY_LENGTH))

    @classmethod
    def generate(cls) -> "Key":
        """Generate a new X25519 private key."""
        private_key = X25519PrivateKey.generate()
        return cls(private_key.private_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PrivateFormat.Raw,
            encryption_algorithm=serialization.NoEncryption()
        ))

    @classmethod
    def parse(cls, text: str) -> "Key":
        """Parse a standard base64 key, which must decode to exactly 32 bytes."""
        try:
            raw = base64.b64decode(text.strip(), validate=True)
        except (binascii.Error, ValueError) as e:
            raise ParseError(f"invalid key {text!r}: {e}", code="KEY_PARSE")
        if len(raw) != KEY_LENGTH:
            raise ParseError(
                f"invalid key {text!r}: decoded to {len(raw)} bytes, expected {KEY_LENGTH}",
                code="KEY_PARSE",
            )
        return cls(raw)

    def is_zero(self) -> bool:
        return self.raw == bytes(KEY_LENGTH)

    def __bytes__(self) -> bytes:
        return self.raw

    def __str__(self) -> str:
        return base64.b64encode(self.raw).decode("ascii")

    def __repr__(self) -> str:
        return f"Key({str(self)!r})"


def derive_public_key(private_key: Key) -> Key:
    """Compute the X25519 public key for a WireGuard private key."""
    private = X25519PrivateKey.from_private_bytes(private_key.raw)
    return Key(private.public_key().public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw
    ))


def parse_ip(text: str) -> IPAddress:
    try:
        return ipaddress.ip_address(text.strip())
    except ValueError as e:
        raise ParseError(str(e), code="ADDR_PARSE")


def parse_int(text: str, low: int, high: int, base: int = 10) -> int:
    """Parse an integer and check it lies in [low, high]."""
    try:
        value = int(text.strip(), base)
    except ValueError:
        raise ParseError(f"invalid integer {text!r}", code="INT_PARSE")
    if not low <= value <= high:
        raise ParseError(f"integer {value} out of range [{low}, {high}]", code="INT_PARSE")
    return value


@dataclass(frozen=True)
class Cidr:
    """An address with a prefix length, e.g. 10.0.0.1/24 (host bits allowed)."""
    ip: IPAddress = field(default_factory=lambda: ipaddress.IPv4Address("0.0.0.0"))
    mask: int = 0

    @classmethod
    def parse(cls, text: str) -> "Cidr":
        ip_text, sep, mask_text = text.partition("/")
        ip = parse_ip(ip_text)
        if sep and mask_text.strip():
            mask = parse_int(mask_text, 0, ip.max_prefixlen)
        else:
            mask = ip.max_prefixlen
        return cls(ip=ip, mask=mask)

    def __str__(self) -> str:
        return f"{self.ip}/{self.mask}"


@dataclass(frozen=True)
class SocketAddr:
    """A resolved socket address."""
    ip: IPAddress
    port: int

    def __post_init__(self):
        if not 0 <= self.port <= 0xFFFF:
            raise ValueError(f"port {self.port} out of range")

    @classmethod
    def parse(cls, text: str) -> "SocketAddr":
        """Parse `a.b.c.d:port` or `[v6]:port`. Hostnames are rejected."""
        text = text.strip()
        if text.startswith("["):
            host, sep, port = text[1:].partition("]:")
            if not sep:
                raise ParseError(f"invalid socket address {text!r}", code="ADDR_PARSE")
            ip = parse_ip(host)
            if ip.version != 6:
                raise ParseError(f"invalid socket address {text!r}", code="ADDR_PARSE")
        else:
            host, sep, port = text.rpartition(":")
            if not sep:
                raise ParseError(f"invalid socket address {text!r}", code="ADDR_PARSE")
            ip = parse_ip(host)
            if ip.version != 4:
                raise ParseError(f"invalid socket address {text!r}", code="ADDR_PARSE")
        if not port.isdigit():
            raise ParseError(f"invalid port in {text!r}", code="ADDR_PARSE")
        return cls(ip=ip, port=parse_int(port, 0, 0xFFFF))

    def __str__(self) -> str:
        if self.ip.version == 6:
            return f"[{self.ip}]:{self.port}"
        return f"{self.ip}:{self.port}"


@dataclass(frozen=True)
class DomainEndpoint:
    """An unresolved `host:port` endpoint; resolution is left to WireGuard."""
    name: str

    def __str__(self) -> str:
        return self.name


Endpoint = Union[SocketAddr, DomainEndpoint]


def parse_endpoint(text: str) -> Endpoint:
    """Socket address if `text` is one, otherwise a domain endpoint."""
    try:
        return SocketAddr.parse(text)
    except ParseError:
        return DomainEndpoint(text.strip())


@dataclass(frozen=True)
class Peer:
    """A (public key, endpoint) pair as printed by `wg show <iface> endpoints`."""
    key: Key
    addr: SocketAddr

    @classmethod
    def parse(cls, text: str) -> "Peer":
        key_text, sep, addr_text = text.strip().partition(" ")
        if not sep:
            raise ParseError(f"wrong peer format: {text!r}", code="PEER_FORMAT")
        return cls(Key.parse(key_text), SocketAddr.parse(addr_text))

    def __str__(self) -> str:
        return f"{self.key} {self.addr}"
