"""
wgdisco CLI - endpoint discovery for WireGuard peers.
"""

import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional, Tuple

import click
from rich.console import Console
from rich.table import Table

from .config import Config, set_config
from .daemon import run_daemon
from .discover import StunDiscover
from .errors import WgDiscoError
from .signaling import derive_handle
from .wg import Key, derive_public_key, load_config

console = Console()


def setup_logging(verbose: bool = False):
    """Set up logging configuration."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        handlers=[logging.StreamHandler()]
    )


def fail(message: str) -> None:
    console.print(message, style="red", markup=False)
    sys.exit(1)


@click.group()
@click.option('-v', '--verbose', is_flag=True, help='Enable debug logging')
@click.option('--settings', type=click.Path(dir_okay=False, path_type=Path),
              help='JSON settings file')
@click.pass_context
def main(ctx, verbose: bool, settings: Optional[Path]):
    """wgdisco - find WireGuard peers through a public rendezvous channel"""
    ctx.ensure_object(dict)
    setup_logging(verbose)
    try:
        ctx.obj['config'] = Config.load(settings)
    except (OSError, ValueError) as e:
        fail(f"Cannot load settings: {e}")
    set_config(ctx.obj['config'])


@main.command()
@click.argument('iface')
@click.option('--server', help='IRC server')
@click.option('--port', type=int, help='IRC server port')
@click.option('--tls/--no-tls', default=None, help='Use TLS for IRC')
@click.option('--channel', help='Rendezvous channel')
@click.option('--stun-server', help='STUN server (host:port)')
@click.pass_context
def run(ctx, iface: str, server: Optional[str], port: Optional[int], tls: Optional[bool],
        channel: Optional[str], stun_server: Optional[str]):
    """Announce IFACE's endpoint and keep its peers' endpoints updated."""
    config: Config = ctx.obj['config']
    if server:
        config.irc.server = server
    if port:
        config.irc.port = port
    if tls is not None:
        config.irc.tls = tls
    if channel:
        config.irc.channel = channel
    if stun_server:
        config.stun.servers = [stun_server]

    console.print(f"[bold blue]wgdisco[/bold blue] {iface} via {config.irc.channel} on {config.irc.server}")

    try:
        asyncio.run(run_daemon(iface, config))
    except (WgDiscoError, OSError) as e:
        fail(f"Error: {e}")
    except KeyboardInterrupt:
        console.print("\n[dim]Stopped[/dim]")
        return

    console.print("exit")


@main.command()
@click.argument('path', type=click.Path(exists=True, dir_okay=False, path_type=Path))
def parse(path: Path):
    """Parse a WireGuard config file and show what was understood."""
    try:
        wg_config = load_config(path)
    except WgDiscoError as e:
        fail(f"{path}: {e}")

    iface = wg_config.interface
    table = Table(show_header=False, box=None)
    table.add_column("Key", style="dim")
    table.add_column("Value")

    table.add_row("Public key", f"[cyan]{derive_public_key(iface.private_key)}[/cyan]")
    table.add_row("Address", str(iface.address))
    table.add_row("Listen port", str(iface.listen_port) if iface.listen_port is not None else "[dim]auto[/dim]")
    if iface.dns:
        table.add_row("DNS", ", ".join(str(ip) for ip in iface.dns))
    if iface.advertise_routes:
        table.add_row("Advertised routes", ", ".join(str(c) for c in iface.advertise_routes))
    console.print(table)

    peers = Table(title=f"{len(wg_config.peers)} peers")
    peers.add_column("Public key", style="cyan")
    peers.add_column("Handle")
    peers.add_column("Endpoint")
    peers.add_column("Allowed IPs")
    for peer in wg_config.peers:
        peers.add_row(
            str(peer.public_key),
            derive_handle(peer.public_key),
            str(peer.endpoint) if peer.endpoint else "-",
            ", ".join(str(c) for c in peer.allowed_ips or []),
        )
    console.print(peers)


@main.command()
@click.argument('keys', nargs=-1, required=True)
def handle(keys: Tuple[str, ...]):
    """Show the rendezvous nickname for each public KEY."""
    for text in keys:
        try:
            key = Key.parse(text)
        except WgDiscoError as e:
            fail(str(e))
        console.print(f"{key}  [cyan]{derive_handle(key)}[/cyan]")


@main.command()
@click.option('--stun-server', help='STUN server (host:port)')
@click.pass_context
def discover(ctx, stun_server: Optional[str]):
    """Ask a STUN reflector for this host's external endpoint."""
    config: Config = ctx.obj['config']
    servers = [stun_server] if stun_server else config.stun.servers

    try:
        endpoint, local_port = asyncio.run(
            StunDiscover(servers, timeout=config.stun.timeout).discover()
        )
    except WgDiscoError as e:
        fail(f"Error: {e}")

    console.print(f"External endpoint: [cyan]{endpoint}[/cyan] (local port {local_port})")


if __name__ == "__main__":
    main()
