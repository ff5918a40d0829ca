"""
mDNS transports for device discovery.

- base: interface the discovery engine drives
- mdns: python-zeroconf implementation
"""

from .base import DiscoveryTransport, EventSink
from .mdns import ZeroconfTransport

__all__ = [
    "DiscoveryTransport",
    "EventSink",
    "ZeroconfTransport",
]
