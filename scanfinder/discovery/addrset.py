"""
Small duplicate-free set of IP addresses.

A device usually announces only a handful of addresses, so the set is a
plain list searched linearly.
"""

import ipaddress
from typing import Iterator, Union

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]

_IPV4_LINK_LOCAL = ipaddress.IPv4Network("169.254.0.0/16")
_IPV6_LINK_LOCAL = ipaddress.IPv6Network("fe80::/10")


def is_link_local(addr: IPAddress) -> bool:
    """Check if address is link-local (169.254/16 or fe80::/10)."""
    if addr.version == 4:
        return addr in _IPV4_LINK_LOCAL
    return addr in _IPV6_LINK_LOCAL


class AddressSet:
    """Set of IP addresses. Two addresses never compare equal within a set."""

    def __init__(self) -> None:
        self._addrs: list[IPAddress] = []

    def contains(self, addr: IPAddress) -> bool:
        return addr in self._addrs

    def add(self, addr: IPAddress) -> bool:
        """
        Add address to the set.

        Returns:
            True if the address was added, False if it was already present
        """
        if self.contains(addr):
            return False
        self.add_unconditional(addr)
        return True

    def add_unconditional(self, addr: IPAddress) -> None:
        """Add address without the duplicate check. Caller guarantees absence."""
        self._addrs.append(addr)

    def remove(self, addr: IPAddress) -> None:
        try:
            self._addrs.remove(addr)
        except ValueError:
            pass

    def __contains__(self, addr: object) -> bool:
        return addr in self._addrs

    def __iter__(self) -> Iterator[IPAddress]:
        return iter(list(self._addrs))

    def __len__(self) -> int:
        return len(self._addrs)

    def __repr__(self) -> str:
        return f"AddressSet({[str(a) for a in self._addrs]})"
