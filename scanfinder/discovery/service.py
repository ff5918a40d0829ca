"""
Discovery Service - Wires the mDNS engine, its transport and the device catalog.

Owns the lifecycle of discovery for the process and exposes the merged
list of discovered scanners.
"""

import logging
from typing import Optional

from ..config import DiscoveryConfig, settings
from .catalog import DeviceCatalog, DiscoveredScanner
from .engine import MdnsEngine
from .transport import DiscoveryTransport, ZeroconfTransport

logger = logging.getLogger("scanfinder.discovery.service")


class DiscoveryService:
    """
    Main discovery service.

    Features:
    - mDNS engine over a zeroconf transport (or any DiscoveryTransport)
    - Device catalog merging findings into scanners
    - Bounded wait for the initial scan
    """

    def __init__(
        self,
        config: Optional[DiscoveryConfig] = None,
        transport: Optional[DiscoveryTransport] = None,
        catalog: Optional[DeviceCatalog] = None,
    ):
        self._config = config or settings.discovery
        self.catalog = catalog or DeviceCatalog()
        self.transport = transport or ZeroconfTransport(self._config)
        self.engine = MdnsEngine(self.transport, self.catalog, self._config)
        self._initialized = False

    @property
    def is_running(self) -> bool:
        return self._initialized

    async def start(self) -> None:
        """Start discovery. Raises DiscoveryStartupError if the transport cannot start."""
        if self._initialized:
            return

        logger.info("Initializing discovery service")
        await self.engine.start()
        self._initialized = True

    async def stop(self) -> None:
        """Shutdown the discovery service."""
        if not self._initialized:
            return

        logger.info("Shutting down discovery service")
        await self.engine.stop()
        self._initialized = False
        logger.info("Discovery service shutdown complete")

    async def wait_ready(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for the initial scan to complete.

        Args:
            timeout: Max seconds to wait, defaults to ready_timeout_seconds

        Returns:
            True if every discovery method finished its initial scan
        """
        if timeout is None:
            timeout = self._config.ready_timeout_seconds
        return await self.catalog.wait_initial_scan(timeout)

    def devices(self) -> list[DiscoveredScanner]:
        """Get all currently published scanners."""
        return self.catalog.devices()


# Global service instance
_discovery_service: Optional[DiscoveryService] = None


def get_discovery_service() -> DiscoveryService:
    """Get or create the global discovery service."""
    global _discovery_service
    if _discovery_service is None:
        _discovery_service = DiscoveryService()
    return _discovery_service


async def init_discovery() -> DiscoveryService:
    """Start the global discovery service (call from app startup)."""
    service = get_discovery_service()
    await service.start()
    return service


async def shutdown_discovery() -> None:
    """Shutdown the global discovery service (call from app shutdown)."""
    global _discovery_service
    if _discovery_service is None:
        return
    await _discovery_service.stop()
    _discovery_service = None
