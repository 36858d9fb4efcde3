"""
The endpoint reconciliation loop.

Startup (Bootstrapping): read our public key from WireGuard, join the
rendezvous channel, discover our external endpoint once and broadcast it
(Announced). Then (Listening) apply every update heard on the channel to
WireGuard, one at a time, answering broadcast requests with a directed
copy of our own update so newly started peers learn about us right away.

The loop runs on a single task and ends when the signaling stream does.
Failures from WireGuard or from sending an announce are fatal.
"""

import logging
from enum import Enum
from typing import Optional

from .config import Config
from .discover import Discover, StunDiscover
from .errors import SignalingError
from .signaling import (
    IrcSignaling,
    PeerRequest,
    PeerResponse,
    PeerUpdate,
    Signaling,
    SubscriptionItem,
)
from .wg import WgCmdBackend, WgConfig, WireguardApi, load_config

logger = logging.getLogger(__name__)


class DaemonState(Enum):
    BOOTSTRAPPING = "bootstrapping"
    ANNOUNCED = "announced"
    LISTENING = "listening"
    STOPPED = "stopped"


class Daemon:
    """Keeps one WireGuard interface's peer endpoints in sync via signaling."""

    def __init__(
        self,
        iface: str,
        config: WgConfig,
        wg: WireguardApi,
        signaling: Signaling,
        discover: Discover,
    ):
        self.iface = iface
        self.config = config
        self.wg = wg
        self.signaling = signaling
        self.discover = discover

        self.state = DaemonState.BOOTSTRAPPING
        self.own_update: Optional[PeerUpdate] = None

        # Metrics
        self.updates_applied = 0
        self.replies_sent = 0
        self.stream_errors = 0

    async def bootstrap(self) -> PeerUpdate:
        """Connect, discover and broadcast our own endpoint."""
        own_key = self.wg.get_public_key(self.iface)
        logger.info(f"{self.iface}: public key {own_key}")

        await self.signaling.connect(own_key, self.config.peer_keys)

        endpoint, local_port = await self.discover.discover()
        logger.info(f"{self.iface}: external endpoint {endpoint} (local port {local_port})")

        if self.config.interface.listen_port is None:
            # Keep WireGuard on the port the reflector saw
            self.wg.set_listen_port(self.iface, local_port)

        self.own_update = PeerUpdate(key=own_key, endpoint=endpoint, advertise_routes=[])
        await self.signaling.announce(self.own_update)

        self.state = DaemonState.ANNOUNCED
        return self.own_update

    async def handle(self, item: SubscriptionItem) -> None:
        """Process one subscription item."""
        if isinstance(item, SignalingError):
            self.stream_errors += 1
            logger.error(f"error: {item}")
            return

        update = item.update
        if isinstance(item, PeerRequest):
            logger.info(f"requested update from {item.sender} peer {update.key} {update.endpoint}")
            self.wg.set_peer_endpoint(self.iface, update.key, update.endpoint)
            self.updates_applied += 1

            await self.signaling.announce(self.own_update, target=item.sender)
            self.replies_sent += 1

        elif isinstance(item, PeerResponse):
            logger.info(f"responded update peer {update.key} {update.endpoint}")
            self.wg.set_peer_endpoint(self.iface, update.key, update.endpoint)
            self.updates_applied += 1

    async def listen(self) -> None:
        """Consume the signaling stream until it ends."""
        if self.own_update is None:
            raise RuntimeError("listen() before bootstrap()")

        self.state = DaemonState.LISTENING
        async for item in self.signaling.subscribe():
            await self.handle(item)

        logger.info(f"{self.iface}: signaling stream ended")
        self.state = DaemonState.STOPPED

    async def run(self) -> None:
        await self.bootstrap()
        await self.listen()


async def run_daemon(iface: str, settings: Config) -> Daemon:
    """Run the daemon for `iface` with the live backends."""
    wg_config = load_config(settings.interface_config_path(iface))
    logger.info(f"{iface}: loaded {len(wg_config.peers)} peers")

    daemon = Daemon(
        iface=iface,
        config=wg_config,
        wg=WgCmdBackend(),
        signaling=IrcSignaling(settings.irc.to_irc_config()),
        discover=StunDiscover(settings.stun.servers, timeout=settings.stun.timeout),
    )
    try:
        await daemon.run()
    finally:
        await daemon.signaling.close()
    return daemon
