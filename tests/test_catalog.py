"""Tests for endpoint ordering and the device catalog."""

import asyncio
import ipaddress
from uuid import UUID

import pytest

from scanfinder.discovery.catalog import DeviceCatalog, sort_and_dedup
from scanfinder.discovery.models import (
    Endpoint,
    FindingSnapshot,
    MdnsService,
    Proto,
    ZeroconfMethod,
)

_UUID = UUID("4509a320-00a0-008f-00b6-002507510eca")


def _ep(uri: str) -> Endpoint:
    return Endpoint(proto=Proto.ESCL, uri=uri)


def _make_snapshot(
    service=MdnsService.USCAN_TCP,
    name="Scanner",
    uuid=_UUID,
    endpoints=(),
    ifindex=2,
    model="Model X",
) -> FindingSnapshot:
    return FindingSnapshot(
        method=service.method,
        service=service,
        ifindex=ifindex,
        name=name,
        model=model,
        uuid=uuid,
        addrs=(ipaddress.ip_address("192.168.1.10"),),
        endpoints=tuple(endpoints),
    )


# ---------------------------------------------------------------------------
# Endpoint ordering
# ---------------------------------------------------------------------------


class TestSortAndDedup:

    def test_canonical_order(self):
        endpoints = [
            _ep("http://[fe80::1%252]:80/eSCL/"),
            _ep("http://169.254.1.5:80/eSCL/"),
            _ep("http://192.168.1.10:80/eSCL/"),
            _ep("http://[2001:db8::10]:80/eSCL/"),
        ]
        assert [e.uri for e in sort_and_dedup(endpoints)] == [
            "http://[2001:db8::10]:80/eSCL/",
            "http://192.168.1.10:80/eSCL/",
            "http://[fe80::1%252]:80/eSCL/",
            "http://169.254.1.5:80/eSCL/",
        ]

    def test_lexicographic_within_class(self):
        endpoints = [_ep("https://192.168.1.10:443/eSCL/"), _ep("http://192.168.1.10:80/eSCL/")]
        assert [e.uri for e in sort_and_dedup(endpoints)] == [
            "http://192.168.1.10:80/eSCL/",
            "https://192.168.1.10:443/eSCL/",
        ]

    def test_duplicates_removed(self):
        endpoints = [_ep("http://192.168.1.10:80/eSCL/")] * 3
        assert len(sort_and_dedup(endpoints)) == 1

    def test_empty(self):
        assert sort_and_dedup([]) == []


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------


class TestDeviceCatalog:

    def test_publish_and_withdraw(self):
        catalog = DeviceCatalog()
        snap = _make_snapshot()

        catalog.publish(snap)
        assert catalog.findings() == [snap]

        catalog.withdraw(snap)
        assert catalog.findings() == []

    def test_withdraw_unknown_is_ignored(self):
        catalog = DeviceCatalog()
        catalog.withdraw(_make_snapshot())
        assert catalog.findings() == []

    def test_listener_notified(self):
        catalog = DeviceCatalog()
        seen = []
        catalog.add_listener(lambda action, snap: seen.append((action, snap.name)))

        snap = _make_snapshot()
        catalog.publish(snap)
        catalog.withdraw(snap)

        assert seen == [("publish", "Scanner"), ("withdraw", "Scanner")]

    def test_failing_listener_does_not_break_publish(self):
        catalog = DeviceCatalog()

        def broken(action, snap):
            raise RuntimeError("boom")

        catalog.add_listener(broken)
        catalog.publish(_make_snapshot())
        assert len(catalog.findings()) == 1

    def test_devices_merge_by_uuid(self):
        catalog = DeviceCatalog()
        catalog.publish(_make_snapshot(
            service=MdnsService.USCAN_TCP,
            endpoints=[_ep("http://192.168.1.10:80/eSCL/")],
        ))
        catalog.publish(_make_snapshot(
            service=MdnsService.USCANS_TCP,
            endpoints=[_ep("https://192.168.1.10:443/eSCL/")],
        ))
        catalog.publish(_make_snapshot(service=MdnsService.IPP_TCP))
        catalog.publish(_make_snapshot(
            name="Other",
            uuid=UUID("00000000-0000-0000-0000-000000000001"),
        ))

        devices = catalog.devices()
        assert [d.name for d in devices] == ["Other", "Scanner"]

        scanner = devices[1]
        assert scanner.methods == {
            ZeroconfMethod.USCAN_TCP,
            ZeroconfMethod.USCANS_TCP,
            ZeroconfMethod.MDNS_HINT,
        }
        assert [e.uri for e in scanner.endpoints] == [
            "http://192.168.1.10:80/eSCL/",
            "https://192.168.1.10:443/eSCL/",
        ]
        assert scanner.to_dict()["uuid"] == str(_UUID)

    def test_ready_after_every_method(self):
        catalog = DeviceCatalog()
        for method in list(ZeroconfMethod)[:-1]:
            catalog.initial_scan_done(method)
        assert not catalog.is_ready

        catalog.initial_scan_done(list(ZeroconfMethod)[-1])
        assert catalog.is_ready
        assert catalog.is_method_done(ZeroconfMethod.USCAN_TCP)

    @pytest.mark.asyncio
    async def test_wait_initial_scan(self):
        catalog = DeviceCatalog()

        assert await catalog.wait_initial_scan(timeout=0.01) is False

        async def finish():
            await asyncio.sleep(0.01)
            for method in ZeroconfMethod:
                catalog.initial_scan_done(method)

        task = asyncio.create_task(finish())
        assert await catalog.wait_initial_scan(timeout=1.0) is True
        await task
