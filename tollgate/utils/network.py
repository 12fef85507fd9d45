"""Client address resolution."""
import ipaddress
import logging
from typing import Iterable, List, Union

from starlette.requests import Request

logger = logging.getLogger(__name__)

Network = Union[ipaddress.IPv4Network, ipaddress.IPv6Network]


def parse_trusted_proxies(entries: Iterable[str]) -> List[Network]:
    """Parse IPs and CIDR blocks; a bare address becomes a single-host network."""
    networks = []
    for entry in entries:
        try:
            networks.append(ipaddress.ip_network(entry.strip(), strict=False))
        except ValueError:
            logger.warning(f"Ignoring invalid trusted proxy entry: {entry!r}")
    return networks


def _is_trusted(address: str, trusted: List[Network]) -> bool:
    try:
        ip = ipaddress.ip_address(address)
    except ValueError:
        return False
    return any(ip in network for network in trusted)


def client_ip(request: Request, trusted: List[Network]) -> str:
    """Best-effort client address.

    Forwarding headers are honoured only when the direct peer is a trusted
    proxy. ``X-Forwarded-For`` is walked from the right and the first hop that
    is not a trusted proxy wins; hops to its left are client supplied.
    """
    peer = request.client.host if request.client else "unknown"
    if not trusted or not _is_trusted(peer, trusted):
        return peer

    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        hops = [hop.strip() for hop in forwarded.split(",") if hop.strip()]
        for hop in reversed(hops):
            if not _is_trusted(hop, trusted):
                return hop
        if hops:
            return hops[0]
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    return peer
