"""
Data models for mDNS scanner discovery.

Covers the DNS-SD service types the engine browses, the per-instance
Finding record it builds, and the events the transport feeds it.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Hashable, Optional
from uuid import UUID

from .addrset import AddressSet, IPAddress
from .tracker import ResolutionTracker


class ZeroconfMethod(str, Enum):
    """How a device was discovered, as seen by the device catalog."""

    MDNS_HINT = "mdns_hint"  # Indirect sign of a scanner (IPP, _scanner._tcp)
    USCAN_TCP = "uscan_tcp"  # _uscan._tcp, plain eSCL
    USCANS_TCP = "uscans_tcp"  # _uscans._tcp, eSCL over TLS


class Proto(str, Enum):
    """Scan protocol an endpoint speaks."""

    ESCL = "escl"
    WSD = "wsd"


class AddressFamily(str, Enum):
    IPV4 = "ipv4"
    IPV6 = "ipv6"


class PublishRule(Enum):
    """When a resolved service makes its finding publishable."""

    ALWAYS = "always"
    TXT_SCAN_FLAG = "txt_scan_flag"  # Only if TXT "scan=T" is present


@dataclass(frozen=True)
class ServiceSpec:
    """Static properties of a DNS-SD service type."""

    type: str
    method: ZeroconfMethod
    scheme: Optional[str]  # URI scheme for eSCL endpoints, None if not eSCL
    publish: PublishRule

    @property
    def is_escl(self) -> bool:
        return self.scheme is not None


class MdnsService(str, Enum):
    """DNS-SD service types browsed for scanners."""

    IPP_TCP = "_ipp._tcp"
    IPPS_TCP = "_ipps._tcp"
    USCAN_TCP = "_uscan._tcp"
    USCANS_TCP = "_uscans._tcp"
    SCANNER_TCP = "_scanner._tcp"

    @property
    def spec(self) -> ServiceSpec:
        return _SERVICE_TABLE[self]

    @property
    def method(self) -> ZeroconfMethod:
        return _SERVICE_TABLE[self].method

    @property
    def fqdn(self) -> str:
        """Service type as used on the wire, e.g. '_uscan._tcp.local.'."""
        return f"{self.value}.local."


_SERVICE_TABLE: dict[MdnsService, ServiceSpec] = {
    MdnsService.IPP_TCP: ServiceSpec("_ipp._tcp", ZeroconfMethod.MDNS_HINT, None, PublishRule.TXT_SCAN_FLAG),
    MdnsService.IPPS_TCP: ServiceSpec("_ipps._tcp", ZeroconfMethod.MDNS_HINT, None, PublishRule.TXT_SCAN_FLAG),
    MdnsService.USCAN_TCP: ServiceSpec("_uscan._tcp", ZeroconfMethod.USCAN_TCP, "http", PublishRule.ALWAYS),
    MdnsService.USCANS_TCP: ServiceSpec("_uscans._tcp", ZeroconfMethod.USCANS_TCP, "https", PublishRule.ALWAYS),
    MdnsService.SCANNER_TCP: ServiceSpec("_scanner._tcp", ZeroconfMethod.MDNS_HINT, None, PublishRule.ALWAYS),
}


@dataclass(frozen=True)
class Endpoint:
    """A protocol plus the URI the device serves it at."""

    proto: Proto
    uri: str  # I.e., "http://192.168.1.1:8080/eSCL/"

    def __str__(self) -> str:
        return f"{self.proto.value} {self.uri}"


class FindingState(str, Enum):
    DISCOVERING = "discovering"  # Resolve operations outstanding
    FINALIZING = "finalizing"  # All resolves completed, being finalized
    PUBLISHED = "published"
    UNPUBLISHED = "unpublished"  # Finalized, but nothing to publish
    DELETED = "deleted"


@dataclass(frozen=True)
class FindingSnapshot:
    """Read-only copy of a Finding handed to the device catalog."""

    method: ZeroconfMethod
    service: MdnsService
    ifindex: int
    name: str
    model: Optional[str]
    uuid: Optional[UUID]
    addrs: tuple[IPAddress, ...]
    endpoints: tuple[Endpoint, ...]


@dataclass(eq=False)
class Finding:
    """
    One service instance, as seen on one network interface, browsed
    under one service type.

    Findings are compared by identity; at most one exists per ``key``.
    """

    service: MdnsService
    ifindex: int
    name: str
    initscan: bool = False  # Counted toward the initial scan of its method
    model: Optional[str] = None
    uuid: Optional[UUID] = None
    addrs: AddressSet = field(default_factory=AddressSet)
    endpoints: list[Endpoint] = field(default_factory=list)
    should_publish: bool = False
    is_published: bool = False
    state: FindingState = FindingState.DISCOVERING
    tracker: ResolutionTracker = field(default_factory=ResolutionTracker)

    @property
    def method(self) -> ZeroconfMethod:
        return self.service.method

    @property
    def key(self) -> tuple[MdnsService, int, str]:
        return finding_key(self.service, self.ifindex, self.name)

    def snapshot(self) -> FindingSnapshot:
        return FindingSnapshot(
            method=self.method,
            service=self.service,
            ifindex=self.ifindex,
            name=self.name,
            model=self.model,
            uuid=self.uuid,
            addrs=tuple(self.addrs),
            endpoints=tuple(self.endpoints),
        )


def finding_key(service: MdnsService, ifindex: int, name: str) -> tuple[MdnsService, int, str]:
    """Identity key of a Finding. Instance names compare case-insensitively."""
    return (service, ifindex, name.casefold())


# ---------------------------------------------------------------------------
# Transport events
# ---------------------------------------------------------------------------

# Interface index of events whose interface is unknown
UNSPEC_IFINDEX = 0


class BrowseEventKind(str, Enum):
    NEW = "new"
    REMOVE = "remove"
    FAILURE = "failure"
    CACHE_EXHAUSTED = "cache_exhausted"
    ALL_FOR_NOW = "all_for_now"


class ResolveEventKind(str, Enum):
    FOUND = "found"
    FAILURE = "failure"


class ClientState(str, Enum):
    REGISTERING = "registering"
    RUNNING = "running"
    COLLISION = "collision"
    FAILURE = "failure"
    CONNECTING = "connecting"


@dataclass(frozen=True)
class BrowseEvent:
    """
    Event from a service browser.

    ``families`` lists the address families the instance was seen on;
    the engine starts one resolve per family.
    """

    service: MdnsService
    kind: BrowseEventKind
    name: Optional[str] = None
    ifindex: int = -1
    families: tuple[AddressFamily, ...] = ()


@dataclass(frozen=True)
class ResolveEvent:
    """Completion of a single resolve operation.

    ``ifindex`` overrides the interface of the Finding for address scoping,
    for transports that learn the interface only when resolving.
    """

    op: Hashable
    kind: ResolveEventKind
    address: Optional[IPAddress] = None
    port: int = 0
    txt: dict[str, str] = field(default_factory=dict)
    ifindex: Optional[int] = None


@dataclass(frozen=True)
class ClientStateEvent:
    state: ClientState
