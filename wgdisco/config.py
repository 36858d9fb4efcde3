"""
Runtime settings for wgdisco.

Handles:
- Rendezvous (IRC) server and channel
- STUN reflectors
- Location of the WireGuard config files

Settings come from defaults, an optional JSON file and environment
variables, in that order of precedence (environment wins).
"""

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Mapping, Optional

from .discover.stun import DEFAULT_STUN_SERVERS, DEFAULT_TIMEOUT
from .signaling.irc import DEFAULT_CHANNEL, DEFAULT_PORT, DEFAULT_SERVER, IrcConfig

logger = logging.getLogger(__name__)

# Default paths
DEFAULT_WIREGUARD_DIR = Path("/etc/wireguard")
DEFAULT_SETTINGS_PATH = Path.home() / ".wgdisco" / "config.json"

ENV_STUN_SERVER = "STUN_SERVER"
ENV_IRC_SERVER = "WGDISCO_IRC_SERVER"
ENV_IRC_PORT = "WGDISCO_IRC_PORT"
ENV_IRC_TLS = "WGDISCO_IRC_TLS"
ENV_CHANNEL = "WGDISCO_CHANNEL"


@dataclass
class IrcSettings:
    """Rendezvous channel settings."""
    server: str = DEFAULT_SERVER
    port: int = DEFAULT_PORT
    tls: bool = False
    channel: str = DEFAULT_CHANNEL

    def to_dict(self) -> dict:
        return {
            "server": self.server,
            "port": self.port,
            "tls": self.tls,
            "channel": self.channel,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "IrcSettings":
        # Filter to only known fields to handle config evolution
        known_fields = {"server", "port", "tls", "channel"}
        return cls(**{k: v for k, v in data.items() if k in known_fields})

    def to_irc_config(self) -> IrcConfig:
        return IrcConfig(server=self.server, port=self.port, tls=self.tls, channel=self.channel)


@dataclass
class StunSettings:
    """Reflectors queried in order, as host:port strings."""
    servers: List[str] = field(
        default_factory=lambda: [f"{host}:{port}" for host, port in DEFAULT_STUN_SERVERS]
    )
    timeout: float = DEFAULT_TIMEOUT

    def to_dict(self) -> dict:
        return {
            "servers": self.servers,
            "timeout": self.timeout,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "StunSettings":
        known_fields = {"servers", "timeout"}
        return cls(**{k: v for k, v in data.items() if k in known_fields})


def _env_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Config:
    """
    Main wgdisco settings.

    Stored at ~/.wgdisco/config.json unless a path is given.
    """
    wireguard_dir: Path = field(default_factory=lambda: DEFAULT_WIREGUARD_DIR)
    irc: IrcSettings = field(default_factory=IrcSettings)
    stun: StunSettings = field(default_factory=StunSettings)

    def interface_config_path(self, iface: str) -> Path:
        """Path of the wg-quick file for `iface`."""
        return self.wireguard_dir / f"{iface}.conf"

    def to_dict(self) -> dict:
        return {
            "wireguard_dir": str(self.wireguard_dir),
            "irc": self.irc.to_dict(),
            "stun": self.stun.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Config":
        config = cls()
        if "wireguard_dir" in data:
            config.wireguard_dir = Path(data["wireguard_dir"])
        if "irc" in data:
            config.irc = IrcSettings.from_dict(data["irc"])
        if "stun" in data:
            config.stun = StunSettings.from_dict(data["stun"])
        return config

    def apply_env(self, env: Mapping[str, str]) -> None:
        """Override settings from environment variables."""
        if env.get(ENV_STUN_SERVER):
            self.stun.servers = [env[ENV_STUN_SERVER]]
        if env.get(ENV_IRC_SERVER):
            self.irc.server = env[ENV_IRC_SERVER]
        if env.get(ENV_IRC_PORT):
            self.irc.port = int(env[ENV_IRC_PORT])
        if env.get(ENV_IRC_TLS):
            self.irc.tls = _env_bool(env[ENV_IRC_TLS])
        if env.get(ENV_CHANNEL):
            self.irc.channel = env[ENV_CHANNEL]

    def save(self, path: Optional[Path] = None) -> None:
        """Save settings to disk."""
        path = path or DEFAULT_SETTINGS_PATH
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)

        logger.debug(f"Settings saved to {path}")

    @classmethod
    def load(cls, path: Optional[Path] = None, env: Optional[Mapping[str, str]] = None) -> "Config":
        """Load settings from disk (if present), then apply the environment."""
        path = path or DEFAULT_SETTINGS_PATH

        if path.exists():
            with open(path, 'r') as f:
                config = cls.from_dict(json.load(f))
            logger.debug(f"Settings loaded from {path}")
        else:
            config = cls()

        config.apply_env(os.environ if env is None else env)
        return config


# Global config instance
_config: Optional[Config] = None


def get_config(path: Optional[Path] = None) -> Config:
    """Get the global settings instance."""
    global _config
    if _config is None:
        _config = Config.load(path)
    return _config


def set_config(config: Config) -> None:
    """Set the global settings instance."""
    global _config
    _config = config


def reset_config() -> None:
    """Reset the global settings instance."""
    global _config
    _config = None
