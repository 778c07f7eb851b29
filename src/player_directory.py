"""
player_directory.py
Extracts the addresses of connected players and SourceTV spectators.

Two console commands are parsed:
- status: one "#"-prefixed row per client, address:port in the last column
- tv_clients: one "ID ..." row per spectator, address:port in the 4th
  comma-separated field

The result keeps file order (players first, then spectators) and is not
deduplicated across the two tables.
"""

import logging
from typing import Callable, List

from remote_console import RemoteConsoleError

logger = logging.getLogger(__name__)

STATUS_COMMAND = "status"
TV_CLIENTS_COMMAND = "tv_clients"

ExecuteCommand = Callable[[str], str]


def parse_status_ips(response: str) -> List[str]:
    """
    Return player addresses from a `status` response.

    Bot rows have no address column; their last field is the state
    ("active") and they are skipped.
    """
    ips = []
    for line in response.splitlines():
        if not line.startswith("#") or "active" not in line:
            continue
        parts = line.split()
        ip = parts[-1].split(":")[0]
        if ip != "active":
            ips.append(ip)
    return ips


def parse_tv_client_ips(response: str) -> List[str]:
    """Return spectator addresses from a `tv_clients` response."""
    ips = []
    for line in response.splitlines():
        if not line.startswith("ID") or line.count(",") < 3:
            continue
        address = line.split(",")[3].strip()
        idx = address.find(":")
        if idx > 0:
            ips.append(address[:idx])
    return ips


def get_player_ips(execute_command: ExecuteCommand) -> List[str]:
    """
    Collect the addresses that must keep access while the shield is up.

    Args:
        execute_command: Runs a console command and returns its response

    Returns:
        Player addresses followed by SourceTV spectator addresses

    Raises:
        RemoteConsoleError: the status command failed (a failing tv_clients
        command is ignored)
    """
    ips = parse_status_ips(execute_command(STATUS_COMMAND))

    try:
        tv_response = execute_command(TV_CLIENTS_COMMAND)
    except RemoteConsoleError as e:
        logger.info(f"Could not list SourceTV clients, using players only: {e}")
        return ips

    if tv_response:
        ips.extend(parse_tv_client_ips(tv_response))
    return ips
