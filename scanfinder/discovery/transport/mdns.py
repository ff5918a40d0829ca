"""
mDNS (Multicast DNS) transport backed by python-zeroconf.

Maps zeroconf's service browser and service info lookups onto the
browse/resolve/client-state events the discovery engine consumes.
"""

import asyncio
import ipaddress
import logging
from dataclasses import dataclass, field
from typing import Hashable, Optional

from zeroconf import IPVersion, ServiceStateChange, Zeroconf
from zeroconf.asyncio import AsyncServiceBrowser, AsyncServiceInfo, AsyncZeroconf

from ...config import DiscoveryConfig, settings
from ..addrset import IPAddress
from ..exceptions import TransportError
from ..models import (
    AddressFamily,
    BrowseEvent,
    BrowseEventKind,
    ClientState,
    ClientStateEvent,
    MdnsService,
    ResolveEvent,
    ResolveEventKind,
    UNSPEC_IFINDEX,
)
from .base import DiscoveryTransport, EventSink

logger = logging.getLogger("scanfinder.discovery.transport.mdns")

_IP_VERSIONS = {
    "all": IPVersion.All,
    "v4": IPVersion.V4Only,
    "v6": IPVersion.V6Only,
}

_FAMILIES = {
    "all": (AddressFamily.IPV4, AddressFamily.IPV6),
    "v4": (AddressFamily.IPV4,),
    "v6": (AddressFamily.IPV6,),
}


@dataclass(eq=False)
class _Browse:
    service: MdnsService
    browser: Optional[AsyncServiceBrowser] = None
    all_for_now: Optional[asyncio.TimerHandle] = None
    reported: bool = False  # ALL_FOR_NOW already posted


@dataclass(eq=False)
class _ResolveOp:
    service: MdnsService
    name: str
    family: AddressFamily
    task: Optional[asyncio.Task] = field(default=None, repr=False)


def _decode_properties(properties: Optional[dict]) -> dict[str, str]:
    """Decode TXT record properties to str. Keys without a value map to ''."""
    decoded: dict[str, str] = {}
    if not properties:
        return decoded
    for key, value in properties.items():
        if isinstance(key, bytes):
            key = key.decode("utf-8", errors="ignore")
        if value is None:
            value = ""
        elif isinstance(value, bytes):
            value = value.decode("utf-8", errors="ignore")
        decoded[str(key)] = str(value)
    return decoded


def _instance_name(full_name: str, service: MdnsService) -> str:
    """Strip the service type suffix: 'Foo._uscan._tcp.local.' -> 'Foo'."""
    suffix = f".{service.fqdn}"
    if full_name.lower().endswith(suffix):
        return full_name[: -len(suffix)]
    return full_name


def _pick_address(info: AsyncServiceInfo, family: AddressFamily) -> tuple[Optional[IPAddress], Optional[int]]:
    """First address of the family, with the interface index taken from an IPv6 scope."""
    if family is AddressFamily.IPV4:
        for text in info.parsed_scoped_addresses(IPVersion.V4Only):
            return ipaddress.ip_address(text), None
        return None, None

    for text in info.parsed_scoped_addresses(IPVersion.V6Only):
        bare, _, scope = text.partition("%")
        ifindex = int(scope) if scope.isdigit() else None
        return ipaddress.IPv6Address(bare), ifindex
    return None, None


class ZeroconfTransport(DiscoveryTransport):
    """
    mDNS transport using python-zeroconf's asyncio API.

    zeroconf has no "all for now" notification; it is synthesized once a
    browse has seen no new service for ``all_for_now_seconds``.
    """

    def __init__(self, config: Optional[DiscoveryConfig] = None):
        self._config = config or settings.discovery
        self._aiozc: Optional[AsyncZeroconf] = None
        self._post: Optional[EventSink] = None
        self._browses: list[_Browse] = []
        self._resolves: set[_ResolveOp] = set()

    @property
    def name(self) -> str:
        return "zeroconf"

    async def start_client(self, post: EventSink) -> None:
        if self._aiozc is not None:
            raise TransportError("start_client", RuntimeError("client already running"))

        try:
            self._aiozc = AsyncZeroconf(ip_version=_IP_VERSIONS[self._config.ip_version])
        except Exception as e:
            raise TransportError("start_client", e) from e

        self._post = post
        logger.debug("zeroconf client created (ip_version=%s)", self._config.ip_version)
        post(ClientStateEvent(ClientState.RUNNING))

    async def stop_client(self) -> None:
        for browse in list(self._browses):
            await self.stop_browse(browse)

        for op in list(self._resolves):
            self.cancel_resolve(op)

        aiozc, self._aiozc = self._aiozc, None
        self._post = None
        if aiozc is not None:
            await aiozc.async_close()
            logger.debug("zeroconf client closed")

    def start_browse(self, service: MdnsService) -> Hashable:
        if self._aiozc is None:
            raise TransportError(f"browse {service.value}", RuntimeError("client not running"))

        browse = _Browse(service=service)

        def on_service_state_change(
            zeroconf: Zeroconf,
            service_type: str,
            name: str,
            state_change: ServiceStateChange,
        ) -> None:
            self._on_browse(browse, name, state_change)

        self._browses.append(browse)
        try:
            browse.browser = AsyncServiceBrowser(
                self._aiozc.zeroconf,
                [service.fqdn],
                handlers=[on_service_state_change],
            )
        except Exception as e:
            self._browses.remove(browse)
            raise TransportError(f"browse {service.value}", e) from e

        self._arm_all_for_now(browse)
        return browse

    async def stop_browse(self, handle: Hashable) -> None:
        browse = handle
        if not isinstance(browse, _Browse) or browse not in self._browses:
            return

        self._browses.remove(browse)
        if browse.all_for_now is not None:
            browse.all_for_now.cancel()
        if browse.browser is not None:
            await browse.browser.async_cancel()

    def resolve(self, service: MdnsService, name: str, ifindex: int, family: AddressFamily) -> Hashable:
        if self._aiozc is None:
            raise TransportError(f"resolve {name}", RuntimeError("client not running"))

        if family not in _FAMILIES[self._config.ip_version]:
            raise TransportError(f"resolve {name}", ValueError(f"{family.value} not enabled"))

        op = _ResolveOp(service=service, name=name, family=family)
        op.task = asyncio.get_running_loop().create_task(self._resolve(op))
        self._resolves.add(op)
        return op

    def cancel_resolve(self, op: Hashable) -> None:
        if not isinstance(op, _ResolveOp) or op not in self._resolves:
            return
        self._resolves.discard(op)
        if op.task is not None and not op.task.done():
            op.task.cancel()

    # -- Internal ---------------------------------------------------------

    def _on_browse(self, browse: _Browse, full_name: str, state_change: ServiceStateChange) -> None:
        if self._post is None or browse not in self._browses:
            return

        name = _instance_name(full_name, browse.service)

        if state_change == ServiceStateChange.Added:
            self._post(
                BrowseEvent(
                    service=browse.service,
                    kind=BrowseEventKind.NEW,
                    name=name,
                    ifindex=UNSPEC_IFINDEX,  # zeroconf reports no interface for browse results
                    families=_FAMILIES[self._config.ip_version],
                )
            )
            self._arm_all_for_now(browse)

        elif state_change == ServiceStateChange.Removed:
            self._post(
                BrowseEvent(
                    service=browse.service,
                    kind=BrowseEventKind.REMOVE,
                    name=name,
                    ifindex=UNSPEC_IFINDEX,
                )
            )

    def _arm_all_for_now(self, browse: _Browse) -> None:
        """(Re)start the quiet-period timer; no-op once it has fired."""
        if browse.reported:
            return
        if browse.all_for_now is not None:
            browse.all_for_now.cancel()

        loop = asyncio.get_running_loop()
        browse.all_for_now = loop.call_later(
            self._config.all_for_now_seconds,
            self._fire_all_for_now,
            browse,
        )

    def _fire_all_for_now(self, browse: _Browse) -> None:
        if self._post is None or browse not in self._browses:
            return
        browse.reported = True
        self._post(BrowseEvent(service=browse.service, kind=BrowseEventKind.ALL_FOR_NOW))

    async def _resolve(self, op: _ResolveOp) -> None:
        event: Optional[ResolveEvent] = None
        aiozc = self._aiozc
        if aiozc is None:
            return

        try:
            info = AsyncServiceInfo(op.service.fqdn, f"{op.name}.{op.service.fqdn}")
            timeout_ms = int(self._config.resolve_timeout_seconds * 1000)

            if await info.async_request(aiozc.zeroconf, timeout_ms):
                address, ifindex = _pick_address(info, op.family)
                if address is not None and info.port:
                    event = ResolveEvent(
                        op=op,
                        kind=ResolveEventKind.FOUND,
                        address=address,
                        port=info.port,
                        txt=_decode_properties(info.properties),
                        ifindex=ifindex,
                    )
                else:
                    logger.debug("resolve/%s \"%s\": no address", op.family.value, op.name)
            else:
                logger.debug("resolve/%s \"%s\": timed out", op.family.value, op.name)

        except asyncio.CancelledError:
            return
        except Exception as e:
            logger.warning("resolve/%s \"%s\" failed: %s", op.family.value, op.name, e)

        if op not in self._resolves:
            return
        self._resolves.discard(op)

        if event is None:
            event = ResolveEvent(op=op, kind=ResolveEventKind.FAILURE)
        if self._post is not None:
            self._post(event)
