"""
Device catalog fed by the discovery engine.

Receives publish/withdraw notifications for individual findings and
merges findings that belong to the same device (same UUID) into a
single scanner record with a canonical endpoint list.
"""

import asyncio
import ipaddress
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Optional
from urllib.parse import urlsplit
from uuid import UUID

from .addrset import is_link_local
from .models import Endpoint, FindingSnapshot, MdnsService, ZeroconfMethod

logger = logging.getLogger("scanfinder.discovery.catalog")

CatalogListener = Callable[[str, FindingSnapshot], None]


def _endpoint_sort_key(endpoint: Endpoint) -> tuple[bool, bool, str]:
    """
    Ordering of endpoints:

    1. Normal addresses before link-local ones
    2. IPv6 before IPv4
    3. Lexicographically by URI
    """
    linklocal = False
    ipv6 = False

    try:
        host = urlsplit(endpoint.uri).hostname or ""
        addr = ipaddress.ip_address(host.split("%", 1)[0])
    except ValueError:
        addr = None

    if addr is not None:
        linklocal = is_link_local(addr)
        ipv6 = addr.version == 6

    return (linklocal, not ipv6, endpoint.uri)


def sort_and_dedup(endpoints: Iterable[Endpoint]) -> list[Endpoint]:
    """Return endpoints in canonical order with duplicates removed."""
    result: list[Endpoint] = []
    for endpoint in sorted(endpoints, key=_endpoint_sort_key):
        if not result or result[-1] != endpoint:
            result.append(endpoint)
    return result


@dataclass
class DiscoveredScanner:
    """A device assembled from all findings sharing its UUID."""

    uuid: UUID
    name: str
    model: str
    methods: set[ZeroconfMethod] = field(default_factory=set)
    ifindexes: set[int] = field(default_factory=set)
    endpoints: list[Endpoint] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "uuid": str(self.uuid),
            "name": self.name,
            "model": self.model,
            "methods": sorted(m.value for m in self.methods),
            "ifindexes": sorted(self.ifindexes),
            "endpoints": [{"proto": e.proto.value, "uri": e.uri} for e in self.endpoints],
        }


class DeviceCatalog:
    """
    In-memory catalog of published findings.

    Supports:
    - Publish/withdraw of individual findings
    - Per-method "initial scan done" tracking
    - Merged device view keyed by UUID
    """

    def __init__(self) -> None:
        self._findings: dict[tuple[MdnsService, int, str], FindingSnapshot] = {}
        self._done: set[ZeroconfMethod] = set()
        self._ready = asyncio.Event()
        self._listeners: list[CatalogListener] = []

    # -- Engine-facing API ------------------------------------------------

    def publish(self, finding: FindingSnapshot) -> None:
        key = (finding.service, finding.ifindex, finding.name.casefold())
        if key in self._findings:
            logger.warning("Overwriting published finding: %s \"%s\"", finding.service.value, finding.name)
        self._findings[key] = finding
        logger.info(
            "Published %s \"%s\" (%s), %d endpoint(s)",
            finding.method.value,
            finding.name,
            finding.uuid,
            len(finding.endpoints),
        )
        self._notify("publish", finding)

    def withdraw(self, finding: FindingSnapshot) -> None:
        key = (finding.service, finding.ifindex, finding.name.casefold())
        if self._findings.pop(key, None) is None:
            logger.warning("Withdraw of unknown finding: %s \"%s\"", finding.service.value, finding.name)
            return
        logger.info("Withdrawn %s \"%s\" (%s)", finding.method.value, finding.name, finding.uuid)
        self._notify("withdraw", finding)

    def initial_scan_done(self, method: ZeroconfMethod) -> None:
        self._done.add(method)
        if self._done.issuperset(ZeroconfMethod):
            self._ready.set()

    @staticmethod
    def sort_and_dedup(endpoints: Iterable[Endpoint]) -> list[Endpoint]:
        return sort_and_dedup(endpoints)

    # -- Consumer-facing API ----------------------------------------------

    def add_listener(self, listener: CatalogListener) -> None:
        """Register a callback invoked as listener(action, snapshot)."""
        self._listeners.append(listener)

    @property
    def is_ready(self) -> bool:
        return self._ready.is_set()

    def is_method_done(self, method: ZeroconfMethod) -> bool:
        return method in self._done

    async def wait_initial_scan(self, timeout: Optional[float] = None) -> bool:
        """
        Wait until every discovery method has finished its initial scan.

        Returns:
            True if the scan finished, False on timeout
        """
        try:
            await asyncio.wait_for(self._ready.wait(), timeout)
        except asyncio.TimeoutError:
            logger.debug("Initial scan not finished within %.1fs", timeout)
            return False
        return True

    def findings(self) -> list[FindingSnapshot]:
        return list(self._findings.values())

    def devices(self) -> list[DiscoveredScanner]:
        """Merge published findings by UUID into scanner records."""
        devices: dict[UUID, DiscoveredScanner] = {}
        endpoints: dict[UUID, list[Endpoint]] = {}

        for finding in self._findings.values():
            if finding.uuid is None:
                continue

            device = devices.get(finding.uuid)
            if device is None:
                device = DiscoveredScanner(
                    uuid=finding.uuid,
                    name=finding.name,
                    model=finding.model or finding.name,
                )
                devices[finding.uuid] = device
                endpoints[finding.uuid] = []

            device.methods.add(finding.method)
            device.ifindexes.add(finding.ifindex)
            endpoints[finding.uuid].extend(finding.endpoints)

        for uuid, device in devices.items():
            device.endpoints = sort_and_dedup(endpoints[uuid])

        return sorted(devices.values(), key=lambda d: (d.name.casefold(), str(d.uuid)))

    # -- Internal ---------------------------------------------------------

    def _notify(self, action: str, finding: FindingSnapshot) -> None:
        for listener in self._listeners:
            try:
                listener(action, finding)
            except Exception as e:
                logger.error("Catalog listener failed: %s", e)
