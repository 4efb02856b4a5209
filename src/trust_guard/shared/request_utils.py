"""Client address helpers: proxy-aware IP extraction and private range checks."""

from __future__ import annotations

import ipaddress
from typing import Mapping, Optional

INVALID_IP = "invalid_ip"

# Checked in order; the first header whose first element parses wins.
CLIENT_IP_HEADERS = ("X-Forwarded-For", "X-Real-IP", "CF-Connecting-IP")

PRIVATE_NETWORKS = tuple(
    ipaddress.ip_network(cidr)
    for cidr in (
        "10.0.0.0/8",
        "172.16.0.0/12",
        "192.168.0.0/16",
        "127.0.0.0/8",  # loopback
        "169.254.0.0/16",  # link-local
        "::1/128",
        "fe80::/10",  # IPv6 link-local
        "fc00::/7",  # IPv6 unique local
    )
)


def parse_ip(value: Optional[str]) -> Optional[ipaddress.IPv4Address | ipaddress.IPv6Address]:
    if not value:
        return None
    try:
        return ipaddress.ip_address(value.strip())
    except ValueError:
        return None


def is_private_ip(ip: str | ipaddress.IPv4Address | ipaddress.IPv6Address) -> bool:
    """True for RFC1918, loopback and link-local addresses (v4 and v6).

    IPv4-mapped IPv6 addresses are checked against their IPv4 form.
    """
    addr = parse_ip(ip) if isinstance(ip, str) else ip
    if addr is None:
        return False
    if isinstance(addr, ipaddress.IPv6Address) and addr.ipv4_mapped is not None:
        addr = addr.ipv4_mapped
    return any(addr in network for network in PRIVATE_NETWORKS if addr.version == network.version)


def _split_host_port(peer: str) -> str:
    peer = peer.strip()
    if peer.startswith("["):
        # [v6]:port
        return peer[1:].split("]", 1)[0]
    if peer.count(":") == 1:
        # v4:port
        return peer.rsplit(":", 1)[0]
    return peer


def get_client_ip(headers: Mapping[str, str], peer: Optional[str] = None) -> str:
    """Return the client address for a request, or ``INVALID_IP``.

    Proxy headers are trusted in ``CLIENT_IP_HEADERS`` order; the peer address
    (with or without a port) is the fallback.
    """
    lowered = {key.lower(): value for key, value in headers.items()}
    for header in CLIENT_IP_HEADERS:
        raw = lowered.get(header.lower())
        if not raw:
            continue
        candidate = raw.split(",")[0].strip()
        if parse_ip(candidate) is not None:
            return candidate

    if peer:
        if parse_ip(peer) is not None:
            return peer.strip()
        host = _split_host_port(peer)
        if parse_ip(host) is not None:
            return host
    return INVALID_IP
