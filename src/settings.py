"""
settings.py
Runtime configuration for QuickServer Shield.

Every value is sourced from the process environment, with the defaults below
applied where a variable is unset. The shield runs as a sidecar next to the
game server, so the deployment only ever passes environment variables.
"""

import os
from dataclasses import dataclass
from typing import Callable, List, Mapping, Optional, Tuple

from sample_source import detect_interfaces

# Network Configuration
DEFAULT_MAX_BYTES = 100_000_000  # Bytes received per poll interval
DEFAULT_THRESHOLD_SECONDS = 5.0  # How long the surge must last
DEFAULT_POLL_INTERVAL_SECONDS = 1.0
DEFAULT_SHIELD_DURATION_SECONDS = 180.0  # 3 minutes

# Game Server (remote console)
DEFAULT_SRCDS_IP = "127.0.0.1"
DEFAULT_SRCDS_PORT = 27015
DEFAULT_RCON_TIMEOUT_SECONDS = 10.0

# Ports re-opened to everyone when the shield is lifted
DEFAULT_GAME_PORTS = (27015, 27020)

# Status API
DEFAULT_STATUS_API_HOST = "0.0.0.0"

# Logging Configuration
DEFAULT_LOG_LEVEL = "INFO"


class ConfigurationError(ValueError):
    """Raised when the environment does not describe a usable configuration."""


@dataclass(frozen=True)
class SrcdsSettings:
    """Where and how to reach the game server's remote console."""
    ip: str
    port: int
    password: str

    @property
    def address(self) -> str:
        return f"{self.ip}:{self.port}"

    @classmethod
    def from_env(cls, environ: Mapping[str, str]) -> "SrcdsSettings":
        ip = environ.get("SRCDS_IP") or DEFAULT_SRCDS_IP
        port = _get_int(environ, "SRCDS_PORT", DEFAULT_SRCDS_PORT)
        password = environ.get("SRCDS_PASSWORD", "")
        if not password:
            raise ConfigurationError("SRCDS_PASSWORD environment variable must be set")
        return cls(ip=ip, port=port, password=password)


@dataclass(frozen=True)
class OracleParameters:
    """Identifies the network security group guarding the game server."""
    nsg_name: str
    compartment_id: str
    vcn_id: str

    @classmethod
    def from_env(cls, environ: Mapping[str, str]) -> "OracleParameters":
        missing = [name for name in ("NSG_NAME", "COMPARTMENT_ID", "VCN_ID")
                   if not environ.get(name)]
        if missing:
            raise ConfigurationError(
                f"Missing Oracle parameters: {', '.join(missing)}"
            )
        return cls(
            nsg_name=environ["NSG_NAME"],
            compartment_id=environ["COMPARTMENT_ID"],
            vcn_id=environ["VCN_ID"],
        )


@dataclass(frozen=True)
class ShieldSettings:
    """Complete configuration consumed by the bootstrap."""
    interface: str
    max_bytes: int
    threshold_seconds: float
    poll_interval_seconds: float
    shield_duration_seconds: float
    srcds: SrcdsSettings
    oracle: OracleParameters
    rcon_timeout_seconds: float = DEFAULT_RCON_TIMEOUT_SECONDS
    game_ports: Tuple[int, int] = DEFAULT_GAME_PORTS
    status_api_host: str = DEFAULT_STATUS_API_HOST
    status_api_port: Optional[int] = None
    log_level: str = DEFAULT_LOG_LEVEL
    log_file: Optional[str] = None


def get_iface(environ: Mapping[str, str],
              list_interfaces: Callable[[], List[str]]) -> str:
    """
    Return the interface to monitor.

    IFACE wins when set. Otherwise the first interface reported by
    list_interfaces (expected to yield only non-loopback interfaces that are up)
    is used.
    """
    iface = environ.get("IFACE", "")
    if iface:
        return iface

    candidates = list_interfaces()
    if not candidates:
        raise ConfigurationError("No non-loopback network interface found")
    return candidates[0]


def get_max_bytes(environ: Mapping[str, str]) -> int:
    """Return MAXBYTES, or the default when unset or not a valid unsigned integer."""
    raw = environ.get("MAXBYTES", "")
    if raw:
        try:
            value = int(raw)
        except ValueError:
            return DEFAULT_MAX_BYTES
        if value >= 0:
            return value
    return DEFAULT_MAX_BYTES


def _get_int(environ: Mapping[str, str], name: str, default: int) -> int:
    raw = environ.get(name, "")
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from e


def _get_seconds(environ: Mapping[str, str], name: str, default: float) -> float:
    raw = environ.get(name, "")
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be a number of seconds, got {raw!r}") from e
    if value <= 0:
        raise ConfigurationError(f"{name} must be positive, got {raw!r}")
    return value


def load_settings(environ: Optional[Mapping[str, str]] = None,
                  list_interfaces: Optional[Callable[[], List[str]]] = None) -> ShieldSettings:
    """Build ShieldSettings from the environment (os.environ by default)."""
    if environ is None:
        environ = os.environ
    if list_interfaces is None:
        list_interfaces = detect_interfaces

    port_min = _get_int(environ, "GAME_PORT_MIN", DEFAULT_GAME_PORTS[0])
    port_max = _get_int(environ, "GAME_PORT_MAX", DEFAULT_GAME_PORTS[1])
    if port_min > port_max:
        raise ConfigurationError(
            f"GAME_PORT_MIN ({port_min}) is greater than GAME_PORT_MAX ({port_max})"
        )

    return ShieldSettings(
        interface=get_iface(environ, list_interfaces),
        max_bytes=get_max_bytes(environ),
        threshold_seconds=_get_seconds(environ, "THRESHOLD_SECONDS", DEFAULT_THRESHOLD_SECONDS),
        poll_interval_seconds=_get_seconds(environ, "POLL_INTERVAL_SECONDS",
                                           DEFAULT_POLL_INTERVAL_SECONDS),
        shield_duration_seconds=_get_seconds(environ, "SHIELD_DURATION_SECONDS",
                                             DEFAULT_SHIELD_DURATION_SECONDS),
        srcds=SrcdsSettings.from_env(environ),
        oracle=OracleParameters.from_env(environ),
        rcon_timeout_seconds=_get_seconds(environ, "RCON_TIMEOUT_SECONDS",
                                          DEFAULT_RCON_TIMEOUT_SECONDS),
        game_ports=(port_min, port_max),
        status_api_host=environ.get("STATUS_API_HOST") or DEFAULT_STATUS_API_HOST,
        status_api_port=_get_int(environ, "STATUS_API_PORT", 0) or None,
        log_level=(environ.get("LOG_LEVEL") or DEFAULT_LOG_LEVEL).upper(),
        log_file=environ.get("LOG_FILE") or None,
    )
