"""
Scanner discovery module.

Finds eSCL/IPP scanners announced over mDNS (DNS-SD), resolves them into
endpoints and publishes them to a device catalog.
"""

from .catalog import DeviceCatalog, DiscoveredScanner, sort_and_dedup
from .engine import MdnsEngine
from .exceptions import (
    DiscoveryError,
    DiscoveryInvariantError,
    DiscoveryStartupError,
    TransportError,
)
from .models import Endpoint, FindingSnapshot, MdnsService, Proto, ZeroconfMethod
from .service import (
    DiscoveryService,
    get_discovery_service,
    init_discovery,
    shutdown_discovery,
)

__all__ = [
    "DeviceCatalog",
    "DiscoveredScanner",
    "sort_and_dedup",
    "MdnsEngine",
    "DiscoveryError",
    "DiscoveryInvariantError",
    "DiscoveryStartupError",
    "TransportError",
    "Endpoint",
    "FindingSnapshot",
    "MdnsService",
    "Proto",
    "ZeroconfMethod",
    "DiscoveryService",
    "get_discovery_service",
    "init_discovery",
    "shutdown_discovery",
]
