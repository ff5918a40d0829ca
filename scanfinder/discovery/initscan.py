"""
Initial scan accounting.

During startup the catalog waits until every discovery method has
enumerated the devices already present on the network. Per method, the
gate counts outstanding tasks that block that:

- every browse session whose "all for now" has not been seen yet
- every Finding created during the initial scan that has not finished
  resolving yet

When a method's count drops to zero, the catalog is told the method is
done. That happens exactly once per method for the lifetime of the gate.
"""

import logging
from typing import Callable

from .exceptions import DiscoveryInvariantError
from .models import MdnsService, ZeroconfMethod

logger = logging.getLogger("scanfinder.discovery.initscan")


class InitialScanGate:
    """Per-method initial scan counters with an exactly-once done signal."""

    def __init__(self, on_done: Callable[[ZeroconfMethod], None]):
        self._on_done = on_done
        self._phase: dict[MdnsService, bool] = {s: True for s in MdnsService}
        self._count: dict[ZeroconfMethod, int] = {m: 0 for m in ZeroconfMethod}
        self._done: set[ZeroconfMethod] = set()

    def in_initial_scan(self, service: MdnsService) -> bool:
        """Check if browsing for the service is still in its initial phase."""
        return self._phase[service]

    def is_done(self, method: ZeroconfMethod) -> bool:
        return method in self._done

    def count(self, method: ZeroconfMethod) -> int:
        return self._count[method]

    def inc(self, method: ZeroconfMethod) -> None:
        self._count[method] += 1

    def dec(self, method: ZeroconfMethod) -> None:
        if self._count[method] <= 0:
            logger.error("Initial scan counter for %s would go negative", method.value)
            raise DiscoveryInvariantError(f"initial scan counter underflow for {method.value}")

        self._count[method] -= 1
        if self._count[method] == 0:
            self._fire(method)

    def all_for_now(self, service: MdnsService) -> None:
        """Browse for the service reported everything it had cached."""
        if self._phase[service]:
            self._phase[service] = False
            self.dec(service.method)

    def fire_all(self) -> None:
        """Report every method as done. Used when discovery is disabled."""
        for service in MdnsService:
            self._phase[service] = False
        for method in ZeroconfMethod:
            self._fire(method)

    def _fire(self, method: ZeroconfMethod) -> None:
        if method in self._done:
            logger.debug("Initial scan for %s already reported done", method.value)
            return

        self._done.add(method)
        logger.info("Initial scan done: %s", method.value)
        self._on_done(method)
