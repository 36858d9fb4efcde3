"""
WireGuard control backend that shells out to `wg(8)`.
"""

import logging
import subprocess
from typing import Dict, List, Optional

from ..errors import ParseError, WgCommandError
from .api import WireguardApi
from .models import Endpoint, Key, Peer, SocketAddr, parse_int

logger = logging.getLogger(__name__)


class WgCmdBackend(WireguardApi):
    """Runs `wg show` / `wg set` for every call."""

    def __init__(self, wg_binary: str = "wg"):
        self.wg_binary = wg_binary

    def _run(self, *args: str) -> str:
        cmd: List[str] = [self.wg_binary, *args]
        logger.debug(f"Running {' '.join(cmd)}")
        try:
            result = subprocess.run(cmd, capture_output=True, text=True)
        except OSError as e:
            raise WgCommandError(cmd, None, str(e)) from e
        if result.returncode != 0:
            raise WgCommandError(cmd, result.returncode, result.stderr)
        return result.stdout

    def get_public_key(self, iface: str) -> Key:
        return Key.parse(self._run("show", iface, "public-key").strip())

    def get_listen_port(self, iface: str) -> int:
        return parse_int(self._run("show", iface, "listen-port"), 0, 0xFFFF)

    def get_endpoints(self, iface: str) -> Dict[Key, Optional[SocketAddr]]:
        endpoints: Dict[Key, Optional[SocketAddr]] = {}
        for line in self._run("show", iface, "endpoints").splitlines():
            if not line.strip():
                continue
            try:
                peer = Peer.parse(line.replace("\t", " "))
            except ParseError:
                # "<key>\t(none)" for peers without a known endpoint
                key_text, _, rest = line.strip().partition("\t")
                if rest.strip() != "(none)":
                    raise
                endpoints[Key.parse(key_text)] = None
            else:
                endpoints[peer.key] = peer.addr
        return endpoints

    def set_listen_port(self, iface: str, port: int) -> None:
        self._run("set", iface, "listen-port", str(port))

    def set_peer_endpoint(self, iface: str, key: Key, endpoint: Endpoint) -> None:
        self._run("set", iface, "peer", str(key), "endpoint", str(endpoint))
