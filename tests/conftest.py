"""Shared test doubles for the discovery engine tests."""

from dataclasses import dataclass
from typing import Hashable

import pytest

from scanfinder.config import DiscoveryConfig
from scanfinder.discovery.catalog import DeviceCatalog
from scanfinder.discovery.exceptions import TransportError
from scanfinder.discovery.models import (
    AddressFamily,
    ClientState,
    ClientStateEvent,
    FindingSnapshot,
    MdnsService,
    ZeroconfMethod,
)
from scanfinder.discovery.transport.base import DiscoveryTransport, EventSink


@dataclass
class ResolveCall:
    op: int
    service: MdnsService
    name: str
    ifindex: int
    family: AddressFamily


class FakeTransport(DiscoveryTransport):
    """Transport double: records calls, never touches the network."""

    def __init__(self) -> None:
        self.post: EventSink | None = None
        self.client_starts = 0
        self.client_stops = 0
        self.browses: dict[MdnsService, str] = {}
        self.resolves: list[ResolveCall] = []
        self.cancelled: list[Hashable] = []
        self.fail_client = False
        self.fail_browse: set[MdnsService] = set()
        self.fail_resolve = False
        self.report_running = True
        self._next_op = 0

    @property
    def name(self) -> str:
        return "fake"

    async def start_client(self, post: EventSink) -> None:
        self.client_starts += 1
        if self.fail_client:
            raise TransportError("start_client", OSError("no memory"))
        self.post = post
        if self.report_running:
            post(ClientStateEvent(ClientState.RUNNING))

    async def stop_client(self) -> None:
        self.client_stops += 1
        self.post = None
        self.browses.clear()

    def start_browse(self, service: MdnsService) -> Hashable:
        if service in self.fail_browse:
            raise TransportError(f"browse {service.value}")
        handle = f"browse:{service.value}:{self.client_starts}"
        self.browses[service] = handle
        return handle

    async def stop_browse(self, handle: Hashable) -> None:
        for service, h in list(self.browses.items()):
            if h == handle:
                del self.browses[service]

    def resolve(self, service: MdnsService, name: str, ifindex: int, family: AddressFamily) -> Hashable:
        if self.fail_resolve:
            raise TransportError(f"resolve {name}")
        self._next_op += 1
        self.resolves.append(ResolveCall(self._next_op, service, name, ifindex, family))
        return self._next_op

    def cancel_resolve(self, op: Hashable) -> None:
        self.cancelled.append(op)

    def ops_for(self, name: str, family: AddressFamily | None = None) -> list[int]:
        return [
            r.op for r in self.resolves
            if r.name == name and (family is None or r.family is family)
        ]


class RecordingCatalog(DeviceCatalog):
    """DeviceCatalog that also records every call in order."""

    def __init__(self) -> None:
        super().__init__()
        self.calls: list[tuple[str, object]] = []

    def publish(self, finding: FindingSnapshot) -> None:
        self.calls.append(("publish", finding))
        super().publish(finding)

    def withdraw(self, finding: FindingSnapshot) -> None:
        self.calls.append(("withdraw", finding))
        super().withdraw(finding)

    def initial_scan_done(self, method: ZeroconfMethod) -> None:
        self.calls.append(("done", method))
        super().initial_scan_done(method)

    def actions(self, action: str) -> list:
        return [arg for name, arg in self.calls if name == action]


def make_config(**overrides) -> DiscoveryConfig:
    values = {
        "enabled": True,
        "restart_delay_seconds": 0.01,
        "all_for_now_seconds": 0.05,
        "resolve_timeout_seconds": 0.5,
        "ready_timeout_seconds": 0.5,
        "ip_version": "all",
    }
    values.update(overrides)
    return DiscoveryConfig(**values)


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def catalog() -> RecordingCatalog:
    return RecordingCatalog()
