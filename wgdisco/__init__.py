"""
wgdisco - WireGuard endpoint discovery without a coordination server.

Peers meet on a public IRC channel, learn their external endpoint from a
STUN reflector, and push each other's endpoints into WireGuard.

Example (offline, with in-memory backends):

    import asyncio
    from wgdisco import Daemon, FakeDiscover, MemoryHub, MemorySignaling, load_config
    from wgdisco.wg import MemoryWireguard

    config = load_config("/etc/wireguard/wg0.conf")
    wg = MemoryWireguard.from_config("wg0", config)
    hub = MemoryHub()
    daemon = Daemon("wg0", config, wg, MemorySignaling(hub), FakeDiscover())

    async def main():
        await daemon.bootstrap()
        await daemon.signaling.close()
        await daemon.listen()

    asyncio.run(main())
"""

__version__ = "0.1.0"

from .config import Config, get_config
from .daemon import Daemon, DaemonState
from .discover import Discover, FakeDiscover, StunDiscover
from .signaling import IrcSignaling, MemoryHub, MemorySignaling, PeerUpdate
from .wg import Key, WgConfig, load_config, parse_config

__all__ = [
    "__version__",
    "Config",
    "get_config",
    "Daemon",
    "DaemonState",
    "Discover",
    "FakeDiscover",
    "StunDiscover",
    "IrcSignaling",
    "MemoryHub",
    "MemorySignaling",
    "PeerUpdate",
    "Key",
    "WgConfig",
    "load_config",
    "parse_config",
]
