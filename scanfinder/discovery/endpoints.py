"""
Endpoint construction for resolved eSCL services.

Turns a resolved (address, port, TXT "rs") tuple into a normalized eSCL
endpoint URI, e.g. ``http://[fe80::1%253]:80/eSCL/``.
"""

import ipaddress
import logging
from typing import Optional
from urllib.parse import urlsplit

from .addrset import IPAddress, is_link_local
from .exceptions import DiscoveryInvariantError
from .models import Endpoint, MdnsService, Proto

logger = logging.getLogger("scanfinder.discovery.endpoints")

# Resource path assumed when the TXT record has no "rs" key
DEFAULT_ESCL_PATH = "/eSCL/"


def format_host(addr: IPAddress, ifindex: int) -> str:
    """
    Format address as a URI host.

    IPv6 addresses are bracketed. Link-local IPv6 addresses need an explicit
    zone; the '%' delimiter is escaped as '%25' (RFC 6874).
    """
    if addr.version == 4:
        return str(addr)

    bare = ipaddress.IPv6Address(addr.packed)
    if is_link_local(bare):
        return f"[{bare.compressed}%25{ifindex}]"
    return f"[{bare.compressed}]"


def normalize_resource_path(rs: Optional[str]) -> str:
    """Normalize the TXT "rs" value into a '/'-wrapped path."""
    if rs is None:
        return DEFAULT_ESCL_PATH

    trimmed = rs.strip("/")
    if not trimmed:
        # Empty rs, avoid double '/'
        return "/"
    return f"/{trimmed}/"


def make_escl_endpoint(
    service: MdnsService,
    addr: IPAddress,
    port: int,
    rs: Optional[str],
    ifindex: int,
) -> Endpoint:
    """
    Build the eSCL endpoint of a resolved service.

    Args:
        service: eSCL service type the instance was browsed under
        addr: Resolved address
        port: Resolved port
        rs: Raw TXT "rs" value, None if absent
        ifindex: Interface the address was resolved on

    Returns:
        The endpoint

    Raises:
        DiscoveryInvariantError: If the composed URI does not parse. The
            inputs are constructed locally, so this is a bug.
    """
    scheme = service.spec.scheme
    if scheme is None:
        raise DiscoveryInvariantError(f"{service.value} is not an eSCL service")

    uri = f"{scheme}://{format_host(addr, ifindex)}:{port}{normalize_resource_path(rs)}"

    try:
        parsed = urlsplit(uri)
        valid = bool(parsed.hostname) and parsed.port is not None
    except ValueError as e:
        logger.error("Failed to parse constructed eSCL URI %s: %s", uri, e)
        raise DiscoveryInvariantError(f"Invalid eSCL URI constructed: {uri}") from e

    if not valid:
        logger.error("Constructed eSCL URI lacks host or port: %s", uri)
        raise DiscoveryInvariantError(f"Invalid eSCL URI constructed: {uri}")

    return Endpoint(proto=Proto.ESCL, uri=uri)
