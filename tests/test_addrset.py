"""Tests for AddressSet and link-local detection."""

import ipaddress

from scanfinder.discovery.addrset import AddressSet, is_link_local


def _ip(text: str):
    return ipaddress.ip_address(text)


class TestAddressSet:

    def test_empty(self):
        addrs = AddressSet()
        assert len(addrs) == 0
        assert not addrs.contains(_ip("192.168.1.1"))

    def test_add_reports_change(self):
        addrs = AddressSet()
        assert addrs.add(_ip("192.168.1.1")) is True
        assert addrs.add(_ip("192.168.1.1")) is False
        assert len(addrs) == 1

    def test_mixed_families(self):
        addrs = AddressSet()
        addrs.add(_ip("192.168.1.1"))
        addrs.add(_ip("fe80::1"))
        assert _ip("fe80::1") in addrs
        assert len(addrs) == 2

    def test_add_unconditional_skips_check(self):
        addrs = AddressSet()
        addrs.add_unconditional(_ip("10.0.0.1"))
        addrs.add_unconditional(_ip("10.0.0.2"))
        assert [str(a) for a in addrs] == ["10.0.0.1", "10.0.0.2"]

    def test_remove(self):
        addrs = AddressSet()
        addrs.add(_ip("10.0.0.1"))
        addrs.add(_ip("10.0.0.2"))
        addrs.remove(_ip("10.0.0.1"))
        assert not addrs.contains(_ip("10.0.0.1"))
        assert addrs.contains(_ip("10.0.0.2"))

    def test_remove_absent_is_noop(self):
        addrs = AddressSet()
        addrs.add(_ip("10.0.0.1"))
        addrs.remove(_ip("10.0.0.9"))
        assert len(addrs) == 1


class TestIsLinkLocal:

    def test_ipv4(self):
        assert is_link_local(_ip("169.254.10.20"))
        assert not is_link_local(_ip("192.168.1.1"))

    def test_ipv6(self):
        assert is_link_local(_ip("fe80::1"))
        assert is_link_local(_ip("febf::1"))
        assert not is_link_local(_ip("2001:db8::1"))
