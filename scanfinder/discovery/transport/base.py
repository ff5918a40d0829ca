"""
Base transport protocol for mDNS discovery.

The engine drives a transport through this interface; the transport
reports back by posting events (browse, resolve, client state) through
the callback handed to start_client().
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Hashable

from ..models import AddressFamily, MdnsService

logger = logging.getLogger("scanfinder.discovery.transport.base")

# Callback used by transports to hand events to the engine
EventSink = Callable[[Any], None]


class DiscoveryTransport(ABC):
    """
    Abstract base class for mDNS transports.

    Every operation either starts successfully or raises TransportError.
    Operations are cancelled implicitly when the client is stopped.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Name of the transport, for logging."""
        ...

    @abstractmethod
    async def start_client(self, post: EventSink) -> None:
        """
        Create the transport client.

        Client state changes are reported as ClientStateEvent through post.

        Raises:
            TransportError: If the client cannot be allocated
        """
        ...

    @abstractmethod
    async def stop_client(self) -> None:
        """Destroy the client, cancelling every browse and resolve it owns."""
        ...

    @abstractmethod
    def start_browse(self, service: MdnsService) -> Hashable:
        """
        Start browsing for a service type.

        Returns:
            Browse handle, passed back to stop_browse()

        Raises:
            TransportError: If the browse cannot be started
        """
        ...

    @abstractmethod
    async def stop_browse(self, handle: Hashable) -> None:
        ...

    @abstractmethod
    def resolve(self, service: MdnsService, name: str, ifindex: int, family: AddressFamily) -> Hashable:
        """
        Start resolving a service instance for one address family.

        Exactly one ResolveEvent carrying the returned handle is posted
        later, unless the operation is cancelled first.

        Raises:
            TransportError: If the resolve cannot be started
        """
        ...

    def cancel_resolve(self, op: Hashable) -> None:
        """Cancel a pending resolve. Override if the transport supports it."""
        return None
