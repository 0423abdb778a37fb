"""
Host address discovery for the startup diagnostics.

The LAN-facing URL printed at startup is derived from the machine's own
interfaces instead of a fixed literal.
"""

from __future__ import annotations

import ipaddress
import socket
from typing import List, Optional

from serverboot.observability.logging import get_logger

logger = get_logger(__name__)

WILDCARD_HOSTS = {"", "0.0.0.0", "::"}

# Connecting a UDP socket sends no packets; it only selects the route.
_ROUTE_TARGET_ADDRESS = ("192.0.2.1", 80)


def _is_network_address(address: str, allow_ipv6: bool = False) -> bool:
    try:
        ip = ipaddress.ip_address(address)
    except ValueError:
        return False
    if ip.version == 6 and not allow_ipv6:
        return False
    return not (ip.is_loopback or ip.is_unspecified or ip.is_link_local)


def default_route_address() -> Optional[str]:
    """Return the IPv4 address of the interface carrying the default route."""

    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as udp:
            udp.connect(_ROUTE_TARGET_ADDRESS)
            return udp.getsockname()[0]
    except OSError as exc:
        logger.debug("default_route_lookup_failed", error=str(exc))
        return None


def hostname_addresses() -> List[str]:
    """Return the IPv4 addresses the local host name resolves to."""

    try:
        infos = socket.getaddrinfo(socket.gethostname(), None, socket.AF_INET, socket.SOCK_STREAM)
    except OSError as exc:
        logger.debug("hostname_lookup_failed", error=str(exc))
        return []
    return [info[4][0] for info in infos]


def discover_network_addresses() -> List[str]:
    """
    Return the host's non-loopback IPv4 addresses, de-duplicated.

    The default-route address comes first, followed by the addresses of the
    host name. An empty list means no LAN address could be determined.
    """

    candidates: List[str] = []
    route_address = default_route_address()
    if route_address:
        candidates.append(route_address)
    candidates.extend(hostname_addresses())

    addresses: List[str] = []
    for address in candidates:
        if _is_network_address(address) and address not in addresses:
            addresses.append(address)
    return addresses


def display_addresses(host: str) -> List[str]:
    """Addresses worth advertising for a listener bound to `host`."""

    if host in WILDCARD_HOSTS:
        return discover_network_addresses()
    try:
        ipaddress.ip_address(host)
    except ValueError:
        # Host names other than localhost are advertised as given.
        return [] if host == "localhost" else [host]
    return [host] if _is_network_address(host, allow_ipv6=True) else []


__all__ = [
    "default_route_address",
    "discover_network_addresses",
    "display_addresses",
    "hostname_addresses",
]
