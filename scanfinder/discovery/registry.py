"""
Registry of live Findings.

Provides create-or-get, lookup and deletion, keeping at most one Finding
per (service, interface, case-insensitive instance name).
"""

import logging
from typing import Callable, Iterator, Optional

from .initscan import InitialScanGate
from .models import Finding, FindingSnapshot, FindingState, MdnsService, finding_key

logger = logging.getLogger("scanfinder.discovery.registry")


class FindingRegistry:
    """
    Keyed store of in-progress and finalized Findings.

    Args:
        gate: Initial scan gate; findings created during the initial scan
            are counted toward their method
        withdraw: Called with a snapshot of a published Finding before
            it is deleted
        on_release: Called with a Finding after it has been removed, so
            the owner can drop resolve operations still attached to it
    """

    def __init__(
        self,
        gate: InitialScanGate,
        withdraw: Callable[[FindingSnapshot], None],
        on_release: Optional[Callable[[Finding, list], None]] = None,
    ):
        self._gate = gate
        self._withdraw = withdraw
        self._on_release = on_release
        self._findings: list[Finding] = []

    def find(self, service: MdnsService, ifindex: int, name: str) -> Optional[Finding]:
        key = finding_key(service, ifindex, name)
        for finding in self._findings:
            if finding.key == key:
                return finding
        return None

    def get_or_create(self, service: MdnsService, ifindex: int, name: str) -> tuple[Finding, bool]:
        """
        Return the existing Finding for the key, or register a new one.

        Returns:
            (finding, created)
        """
        finding = self.find(service, ifindex, name)
        if finding is not None:
            return finding, False

        initscan = self._gate.in_initial_scan(service)
        finding = Finding(service=service, ifindex=ifindex, name=name, initscan=initscan)
        if initscan:
            self._gate.inc(finding.method)

        self._findings.append(finding)
        logger.debug(
            "Finding added: %s \"%s\" on if=%d (initscan=%s)",
            service.value, name, ifindex, initscan,
        )
        return finding, True

    def delete(self, finding: Finding) -> None:
        """Remove a Finding, withdrawing it first if it was published."""
        if finding.is_published:
            logger.info("Withdrawing %s \"%s\" on if=%d", finding.service.value, finding.name, finding.ifindex)
            self._withdraw(finding.snapshot())
            finding.is_published = False

        try:
            self._findings.remove(finding)
        except ValueError:
            logger.debug("Finding \"%s\" already deleted", finding.name)
            return

        finding.state = FindingState.DELETED
        ops = finding.tracker.clear()

        if finding.initscan:
            finding.initscan = False
            self._gate.dec(finding.method)

        if self._on_release is not None:
            self._on_release(finding, ops)

        logger.debug("Finding deleted: %s \"%s\" on if=%d", finding.service.value, finding.name, finding.ifindex)

    def delete_all(self) -> None:
        """Delete every live Finding."""
        while self._findings:
            self.delete(self._findings[0])

    def list_published(self) -> list[Finding]:
        return [f for f in self._findings if f.is_published]

    def __iter__(self) -> Iterator[Finding]:
        return iter(list(self._findings))

    def __len__(self) -> int:
        return len(self._findings)
