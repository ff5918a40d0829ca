"""
mDNS discovery engine.

Consumes browse, resolve and client-state events from an mDNS transport,
builds one Finding per (service type, interface, instance name), and
publishes finalized findings to the device catalog. Transport failures
tear the whole session down and restart the client after a short delay.

All state is owned by a single consumer task reading one event queue, so
handlers never run concurrently and no locking is needed. Code outside
the engine reads state through query().
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Hashable, Optional, TypeVar

from ..config import DiscoveryConfig, settings
from .addrset import IPAddress, is_link_local
from .catalog import DeviceCatalog
from .endpoints import make_escl_endpoint
from .exceptions import DiscoveryError, DiscoveryInvariantError, DiscoveryStartupError, TransportError
from .ids import hash_uuid, parse_uuid
from .initscan import InitialScanGate
from .models import (
    AddressFamily,
    BrowseEvent,
    BrowseEventKind,
    ClientState,
    ClientStateEvent,
    Finding,
    FindingSnapshot,
    FindingState,
    MdnsService,
    PublishRule,
    ResolveEvent,
    ResolveEventKind,
    UNSPEC_IFINDEX,
)
from .registry import FindingRegistry
from .transport.base import DiscoveryTransport

logger = logging.getLogger("scanfinder.discovery.engine")

T = TypeVar("T")

AddressListener = Callable[[int, IPAddress], None]

_FAMILIES_BY_IP_VERSION = {
    "all": (AddressFamily.IPV4, AddressFamily.IPV6),
    "v4": (AddressFamily.IPV4,),
    "v6": (AddressFamily.IPV6,),
}


@dataclass(frozen=True)
class _RestartTimerFired:
    generation: int


@dataclass(frozen=True)
class _Query:
    fn: Callable[[FindingRegistry], Any]
    future: asyncio.Future


def _txt_value(txt: dict[str, str], key: str) -> Optional[str]:
    """Get a TXT value; keys compare case-insensitively, empty values count as absent."""
    for k, v in txt.items():
        if k.lower() == key:
            return v or None
    return None


class MdnsEngine:
    """
    Discovery engine for one mDNS transport.

    Features:
    - Per-service browse sessions, started once the client is ready
    - One resolve per address family for every new service instance
    - Finalization (endpoint ordering, model/UUID fallbacks) and publishing
    - Deferred client restart on any transport failure
    - Initial scan accounting per discovery method
    """

    def __init__(
        self,
        transport: DiscoveryTransport,
        catalog: DeviceCatalog,
        config: Optional[DiscoveryConfig] = None,
    ):
        self._transport = transport
        self._catalog = catalog
        self._config = config or settings.discovery

        self._gate = InitialScanGate(catalog.initial_scan_done)
        self._registry = FindingRegistry(self._gate, catalog.withdraw, on_release=self._release_ops)

        # Resolve operation handle -> Finding it belongs to
        self._resolving: dict[Hashable, Finding] = {}
        self._browsers: dict[MdnsService, Hashable] = {}
        self._browser_running = False
        self._client_running = False

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._queue: Optional[asyncio.Queue] = None
        self._consumer_task: Optional[asyncio.Task] = None
        self._restart_task: Optional[asyncio.Task] = None
        self._restart_generation = 0
        self._started = False
        self._stopping = False
        self._address_listeners: list[AddressListener] = []
        self._failure: Optional[DiscoveryInvariantError] = None

    # -- Public API -------------------------------------------------------

    @property
    def registry(self) -> FindingRegistry:
        return self._registry

    @property
    def gate(self) -> InitialScanGate:
        return self._gate

    @property
    def is_running(self) -> bool:
        return self._started and self._failure is None

    @property
    def failure(self) -> Optional[DiscoveryInvariantError]:
        """Invariant violation that stopped event processing, if any."""
        return self._failure

    @property
    def browser_running(self) -> bool:
        return self._browser_running

    @property
    def client_running(self) -> bool:
        return self._client_running

    @property
    def restart_pending(self) -> bool:
        return self._restart_task is not None and not self._restart_task.done()

    def add_address_listener(self, listener: AddressListener) -> None:
        """Register a callback invoked as listener(ifindex, address) for every resolved address."""
        self._address_listeners.append(listener)

    async def start(self) -> None:
        """
        Start discovery.

        Raises:
            DiscoveryStartupError: If the transport client cannot be created
        """
        if self._started:
            return

        if not self._config.enabled:
            logger.info("Device discovery disabled")
            self._gate.fire_all()
            self._started = True
            return

        self._loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue()
        self._stopping = False
        self._failure = None

        try:
            await self._transport.start_client(self.post)
        except TransportError as e:
            self._queue = None
            raise DiscoveryStartupError(e) from e

        self._client_running = True
        self._consumer_task = asyncio.create_task(self._consume())
        self._started = True
        logger.info("mDNS discovery started (transport=%s)", self._transport.name)

    async def stop(self) -> None:
        """Stop discovery, withdrawing everything published and releasing the transport."""
        if not self._started:
            return

        logger.info("Stopping mDNS discovery")
        self._stopping = True

        try:
            if self._consumer_task and not self._consumer_task.done():
                self._consumer_task.cancel()
                try:
                    await self._consumer_task
                except asyncio.CancelledError:
                    pass
            elif self._consumer_task and not self._consumer_task.cancelled():
                # Already logged by the consumer; retrieve so asyncio doesn't warn
                self._consumer_task.exception()
        finally:
            self._consumer_task = None
            # Detach first so queries issued during teardown run directly
            queue, self._queue = self._queue, None
            if queue is not None:
                self._fail_pending(queue, DiscoveryError("mDNS discovery stopped"))

            if self._restart_task and not self._restart_task.done():
                self._restart_task.cancel()
            self._restart_task = None

            await self._browser_stop()
            await self._client_stop()
            self._registry.delete_all()
            self._resolving.clear()

            self._started = False
            logger.info("mDNS discovery stopped")

    def post(self, event: Any) -> None:
        """
        Hand an event to the engine. Safe to call from any thread.

        Events posted before start(), after stop() or after an invariant
        violation are dropped.
        """
        queue, loop = self._queue, self._loop
        if queue is None or loop is None:
            logger.debug("Dropping event posted while stopped: %r", event)
            return
        if self._failure is not None:
            logger.debug("Dropping event posted to failed engine: %r", event)
            return

        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is loop:
            queue.put_nowait(event)
        else:
            loop.call_soon_threadsafe(queue.put_nowait, event)

    async def drain(self) -> None:
        """Wait until every queued event, including ones posted meanwhile, is handled."""
        if self._queue is not None and self._failure is None:
            await self._queue.join()

    async def query(self, fn: Callable[[FindingRegistry], T]) -> T:
        """
        Run fn(registry) inside the engine, ordered with pending events.

        Raises:
            DiscoveryInvariantError: If the engine stopped processing events
                after an invariant violation
            DiscoveryError: If the engine is stopped before the query runs
        """
        if self._failure is not None:
            raise DiscoveryInvariantError("mDNS discovery engine failed") from self._failure
        if self._queue is None or self._loop is None:
            return fn(self._registry)

        future = self._loop.create_future()
        self.post(_Query(fn, future))
        return await future

    def query_threadsafe(self, fn: Callable[[FindingRegistry], T], timeout: Optional[float] = None) -> T:
        """Blocking variant of query() for callers on other threads."""
        if self._loop is None:
            return fn(self._registry)
        return asyncio.run_coroutine_threadsafe(self.query(fn), self._loop).result(timeout)

    async def findings(self) -> list[FindingSnapshot]:
        """Snapshot of every live Finding, published or not."""
        return await self.query(lambda registry: [f.snapshot() for f in registry])

    # -- Event loop -------------------------------------------------------

    async def _consume(self) -> None:
        assert self._queue is not None
        queue = self._queue

        while True:
            event = await queue.get()
            try:
                await self._dispatch(event)
            except DiscoveryInvariantError as e:
                logger.exception("Discovery invariant violated while handling %r, engine halted", event)
                self._failure = e
                self._fail_pending(queue, e)
                raise
            except Exception as e:
                logger.error("Failed to handle discovery event %r: %s", event, e)
            finally:
                queue.task_done()

    @staticmethod
    def _fail_pending(queue: asyncio.Queue, exc: Exception) -> None:
        """Discard queued events, failing the queries among them."""
        while not queue.empty():
            event = queue.get_nowait()
            queue.task_done()
            if isinstance(event, _Query) and not event.future.done():
                event.future.set_exception(exc)

    async def _dispatch(self, event: Any) -> None:
        if isinstance(event, BrowseEvent):
            await self._on_browse(event)
        elif isinstance(event, ResolveEvent):
            self._on_resolve(event)
        elif isinstance(event, ClientStateEvent):
            await self._on_client_state(event)
        elif isinstance(event, _RestartTimerFired):
            await self._on_restart_timer(event)
        elif isinstance(event, _Query):
            if not event.future.done():
                try:
                    event.future.set_result(event.fn(self._registry))
                except Exception as e:
                    event.future.set_exception(e)
        else:
            logger.warning("Unknown discovery event: %r", event)

    # -- Browse events ----------------------------------------------------

    async def _on_browse(self, event: BrowseEvent) -> None:
        service = event.service
        logger.debug(
            "browse/%s \"%s\": %s %s",
            "+".join(f.value for f in event.families) or "-",
            event.name,
            event.kind.name,
            service.value,
        )

        if not self._browser_running:
            logger.debug("browse: event from stopped browser ignored")
            return

        if event.kind is BrowseEventKind.NEW:
            await self._browse_new(event)

        elif event.kind is BrowseEventKind.REMOVE:
            finding = self._registry.find(service, event.ifindex, event.name or "")
            if finding is not None:
                self._registry.delete(finding)

        elif event.kind is BrowseEventKind.FAILURE:
            logger.warning("Browse for %s failed, restarting mDNS client", service.value)
            await self._restart_defer()

        elif event.kind is BrowseEventKind.CACHE_EXHAUSTED:
            pass

        elif event.kind is BrowseEventKind.ALL_FOR_NOW:
            self._gate.all_for_now(service)

    async def _browse_new(self, event: BrowseEvent) -> None:
        finding, created = self._registry.get_or_create(event.service, event.ifindex, event.name or "")
        if not created:
            logger.debug("browse: duplicate \"%s\" ignored", event.name)
            return

        families = event.families or _FAMILIES_BY_IP_VERSION[self._config.ip_version]
        for family in families:
            try:
                op = self._transport.resolve(finding.service, finding.name, finding.ifindex, family)
            except TransportError as e:
                logger.warning("resolve/%s \"%s\": %s", family.value, finding.name, e)
                await self._restart_defer()
                return

            finding.tracker.begin(op)
            self._resolving[op] = finding

    # -- Resolve events ---------------------------------------------------

    def _on_resolve(self, event: ResolveEvent) -> None:
        finding = self._resolving.pop(event.op, None)
        if finding is None:
            logger.debug("resolve: spurious callback for %r", event.op)
            return

        was_pending, done = finding.tracker.complete(event.op)
        if not was_pending:
            logger.debug("resolve \"%s\": spurious callback", finding.name)
            return

        logger.debug(
            "resolve/%s \"%s\": %s %s",
            f"ipv{event.address.version}" if event.address is not None else "-",
            finding.name,
            event.kind.name,
            finding.service.value,
        )

        if event.kind is ResolveEventKind.FOUND:
            self._resolve_found(finding, event)

        if done:
            self._finalize(finding)

        if event.kind is ResolveEventKind.FOUND and event.address is not None:
            for listener in self._address_listeners:
                try:
                    listener(finding.ifindex, event.address)
                except Exception as e:
                    logger.error("Address listener failed: %s", e)

    def _resolve_found(self, finding: Finding, event: ResolveEvent) -> None:
        spec = finding.service.spec
        txt = event.txt

        ty = _txt_value(txt, "ty")
        if finding.model is None and ty is not None:
            finding.model = ty

        if finding.uuid is None:
            finding.uuid = parse_uuid(_txt_value(txt, "uuid"))

        if event.address is not None:
            finding.addrs.add(event.address)

        if spec.is_escl:
            if event.address is None:
                logger.warning("resolve \"%s\": no address, endpoint skipped", finding.name)
                return

            ifindex = event.ifindex if event.ifindex is not None else finding.ifindex
            if event.address.version == 6 and is_link_local(event.address) and ifindex == UNSPEC_IFINDEX:
                # A link-local URI without a zone cannot be connected to
                logger.warning(
                    "resolve \"%s\": no interface for %s, endpoint skipped",
                    finding.name,
                    event.address,
                )
                return

            endpoint = make_escl_endpoint(
                finding.service,
                event.address,
                event.port,
                _txt_value(txt, "rs"),
                ifindex,
            )
            finding.endpoints.insert(0, endpoint)
            finding.should_publish = True

        elif spec.publish is PublishRule.TXT_SCAN_FLAG:
            scan = _txt_value(txt, "scan")
            if scan is not None and scan.lower() == "t":
                finding.should_publish = True

        else:
            finding.should_publish = True

    def _finalize(self, finding: Finding) -> None:
        finding.state = FindingState.FINALIZING
        finding.endpoints = self._catalog.sort_and_dedup(finding.endpoints)

        if finding.model is None:
            finding.model = finding.name

        if finding.uuid is None:
            # Device doesn't advertise its UUID; derive a stable one from the name
            finding.uuid = hash_uuid(finding.name)

        if finding.should_publish and not finding.is_published:
            finding.is_published = True
            finding.state = FindingState.PUBLISHED
            self._catalog.publish(finding.snapshot())
        else:
            finding.state = FindingState.UNPUBLISHED
            logger.debug("Finding \"%s\" resolved, nothing to publish", finding.name)

        if finding.initscan:
            finding.initscan = False
            self._gate.dec(finding.method)

    def _release_ops(self, finding: Finding, ops: list) -> None:
        for op in ops:
            self._resolving.pop(op, None)
            self._transport.cancel_resolve(op)

    # -- Client lifecycle -------------------------------------------------

    async def _on_client_state(self, event: ClientStateEvent) -> None:
        logger.debug("client state: %s", event.state.name)

        if not self._client_running:
            logger.debug("client state: event from stopped client ignored")
            return

        if event.state in (ClientState.REGISTERING, ClientState.RUNNING, ClientState.COLLISION):
            if not self._browser_running and not self._browser_start():
                await self._restart_defer()

        elif event.state is ClientState.FAILURE:
            logger.warning("mDNS client failed, restarting")
            await self._restart_defer()

    def _browser_start(self) -> bool:
        # Marked running even on partial failure, so _browser_stop() cleans up
        self._browser_running = True

        for service in MdnsService:
            try:
                handle = self._transport.start_browse(service)
            except TransportError as e:
                logger.warning("Failed to browse %s: %s", service.value, e)
                return False

            self._browsers[service] = handle
            if self._gate.in_initial_scan(service):
                self._gate.inc(service.method)

        logger.info("Browsing %d service types", len(self._browsers))
        return True

    async def _browser_stop(self) -> None:
        for service, handle in list(self._browsers.items()):
            del self._browsers[service]
            try:
                await self._transport.stop_browse(handle)
            except TransportError as e:
                logger.warning("Failed to stop browsing %s: %s", service.value, e)
            if self._gate.in_initial_scan(service):
                self._gate.dec(service.method)

        self._registry.delete_all()
        self._browser_running = False

    async def _client_stop(self) -> None:
        if not self._client_running:
            return
        self._client_running = False
        try:
            await self._transport.stop_client()
        except TransportError as e:
            logger.warning("Failed to stop mDNS client: %s", e)

    async def _client_start(self) -> None:
        try:
            await self._transport.start_client(self.post)
        except TransportError as e:
            logger.warning("mDNS client restart failed: %s", e)
            self._arm_restart_timer()
            return

        self._client_running = True
        logger.info("mDNS client restarted")

    async def _restart_defer(self) -> None:
        """Tear down browsers and client, then restart the client after a delay."""
        await self._browser_stop()
        await self._client_stop()
        self._arm_restart_timer()

    def _arm_restart_timer(self) -> None:
        if self._restart_task and not self._restart_task.done():
            self._restart_task.cancel()

        self._restart_generation += 1
        self._restart_task = asyncio.create_task(
            self._delayed_restart(self._restart_generation)
        )
        logger.info("mDNS client restart scheduled in %.1fs", self._config.restart_delay_seconds)

    async def _delayed_restart(self, generation: int) -> None:
        try:
            await asyncio.sleep(self._config.restart_delay_seconds)
            self.post(_RestartTimerFired(generation))
        except asyncio.CancelledError:
            pass

    async def _on_restart_timer(self, event: _RestartTimerFired) -> None:
        if self._stopping or event.generation != self._restart_generation:
            logger.debug("Stale restart timer ignored")
            return

        self._restart_task = None
        if not self._client_running:
            await self._client_start()
