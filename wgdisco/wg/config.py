"""
Parser for wg-quick style configuration files.

A file is a sequence of `[Interface]` / `[Peer]` sections, each holding
`Key = Value` lines. Exactly one interface section is required; peers are
kept in the order they appear. Unknown keys are skipped so configs written
for newer tools still load.

Values are taken verbatim up to the end of the line: a trailing
`# comment` after a value is part of the value.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple, Union

from ..errors import ParseError
from .models import (
    Cidr,
    Endpoint,
    IPAddress,
    Key,
    parse_endpoint,
    parse_int,
    parse_ip,
)

logger = logging.getLogger(__name__)

INTERFACE_HEADER = "[Interface]"
PEER_HEADER = "[Peer]"

U16_MAX = 0xFFFF
U32_MAX = 0xFFFFFFFF


@dataclass
class InterfaceConfig:
    """The `[Interface]` section."""
    private_key: Key = field(default_factory=Key.zero)
    address: Cidr = field(default_factory=Cidr)
    listen_port: Optional[int] = None
    mtu: Optional[int] = None
    dns: Optional[List[IPAddress]] = None
    table: Optional[int] = None
    fwmark: Optional[int] = None
    # Not a wg-quick field: routes this node would advertise to its peers
    advertise_routes: Optional[List[Cidr]] = None
    pre_up: Optional[str] = None
    pre_down: Optional[str] = None
    post_up: Optional[str] = None
    post_down: Optional[str] = None
    save_config: Optional[bool] = None


@dataclass
class PeerConfig:
    """A `[Peer]` section."""
    public_key: Key = field(default_factory=Key.zero)
    preshared_key: Optional[Key] = None
    endpoint: Optional[Endpoint] = None
    allowed_ips: Optional[List[Cidr]] = None
    persistent_keepalive: Optional[int] = None


@dataclass
class WgConfig:
    """A parsed configuration file."""
    interface: InterfaceConfig
    peers: List[PeerConfig] = field(default_factory=list)

    @property
    def peer_keys(self) -> List[Key]:
        return [peer.public_key for peer in self.peers]


def _parse_list(parse_item: Callable) -> Callable:
    def parse(text: str) -> list:
        return [parse_item(item.strip()) for item in text.split(",")]
    return parse


def _parse_bool(text: str) -> bool:
    value = text.strip().lower()
    if value == "true":
        return True
    if value == "false":
        return False
    raise ParseError(f"invalid boolean {text!r}", code="BOOL_PARSE")


def _verbatim(text: str) -> str:
    return text


# Recognized keys per section: config key -> (attribute, value parser)
FieldTable = Dict[str, Tuple[str, Callable]]

INTERFACE_FIELDS: FieldTable = {
    "PrivateKey": ("private_key", Key.parse),
    "Address": ("address", Cidr.parse),
    "ListenPort": ("listen_port", lambda s: parse_int(s, 0, U16_MAX)),
    "MTU": ("mtu", lambda s: parse_int(s, 0, U16_MAX)),
    "DNS": ("dns", _parse_list(parse_ip)),
    "Table": ("table", lambda s: parse_int(s, 0, U32_MAX)),
    "FwMark": ("fwmark", lambda s: parse_int(s, 0, U32_MAX, base=0)),
    "Fwmark": ("fwmark", lambda s: parse_int(s, 0, U32_MAX, base=0)),
    "AdvertiseRoutes": ("advertise_routes", _parse_list(Cidr.parse)),
    "PreUp": ("pre_up", _verbatim),
    "PreDown": ("pre_down", _verbatim),
    "PostUp": ("post_up", _verbatim),
    "PostDown": ("post_down", _verbatim),
    "SaveConfig": ("save_config", _parse_bool),
}

PEER_FIELDS: FieldTable = {
    "PublicKey": ("public_key", Key.parse),
    "PresharedKey": ("preshared_key", Key.parse),
    "Endpoint": ("endpoint", parse_endpoint),
    "AllowedIPs": ("allowed_ips", _parse_list(Cidr.parse)),
    "PersistentKeepalive": ("persistent_keepalive", lambda s: parse_int(s, 0, U32_MAX)),
}


def _apply(section: Union[InterfaceConfig, PeerConfig], fields: FieldTable,
           name: str, value: str, lineno: int) -> None:
    if name not in fields:
        logger.debug(f"line {lineno}: skipping unknown key {name!r}")
        return

    attr, parse_value = fields[name]
    try:
        setattr(section, attr, parse_value(value))
    except ParseError as e:
        raise ParseError(f"{name}: {e}", code=e.code, line=lineno) from e


def parse_config(text: str) -> WgConfig:
    """
    Parse configuration text.

    Raises:
        ParseError: on a missing or repeated interface section, an unknown
            section header, a body line without `=`, or a bad value.
    """
    interface: Optional[InterfaceConfig] = None
    peers: List[PeerConfig] = []
    section: Optional[Union[InterfaceConfig, PeerConfig]] = None
    fields: FieldTable = {}

    for lineno, raw_line in enumerate(text.splitlines(), start=1):
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue

        if line.startswith("["):
            # Anything after the header token (e.g. "[Peer] # laptop") is ignored
            if line.startswith(INTERFACE_HEADER):
                if interface is not None:
                    raise ParseError(
                        "more than one interface section",
                        code="DUPLICATE_INTERFACE",
                        line=lineno,
                    )
                interface = section = InterfaceConfig()
                fields = INTERFACE_FIELDS
            elif line.startswith(PEER_HEADER):
                section = PeerConfig()
                peers.append(section)
                fields = PEER_FIELDS
            else:
                raise ParseError(f"unexpected section {line!r}", line=lineno)
            continue

        if section is None:
            # Text before the first section header
            logger.debug(f"line {lineno}: skipping text outside any section")
            continue

        name, sep, value = line.partition("=")
        if not sep:
            raise ParseError(f"expected '=' in {line!r}", code="EXPECTED_CHAR", line=lineno)
        _apply(section, fields, name.strip(), value.strip(), lineno)

    if interface is None:
        raise ParseError("no interface section", code="NO_INTERFACE")

    return WgConfig(interface=interface, peers=peers)


def load_config(path: Union[str, Path]) -> WgConfig:
    """Read and parse a configuration file."""
    path = Path(path)
    with open(path, "r", encoding="utf-8") as f:
        text = f.read()
    logger.debug(f"Parsing WireGuard config {path}")
    return parse_config(text)
