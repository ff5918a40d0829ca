"""Device UUID helpers.

Parses UUIDs advertised in DNS-SD TXT records, which come in a variety
of decorations (``urn:uuid:`` prefix, braces, upper case), and derives a
stable synthetic UUID for devices that do not advertise one.
"""

import logging
import string
from uuid import UUID, uuid5

logger = logging.getLogger("scanfinder.discovery.ids")

# Fixed namespace for deterministic UUID5 derivation.
# The same instance name always produces the same device UUID, across
# engine restarts and across processes.
_SCANFINDER_DEVICE_NS = UUID("5c1a7d0e-3b52-4f0e-9a57-6b2d1f0c8e41")

_HEXDIGITS = frozenset(string.hexdigits)


def parse_uuid(text: str | None) -> UUID | None:
    """Parse a UUID, ignoring everything but hexadecimal digits.

    Returns None unless exactly 32 hex digits are present.
    """
    if not text:
        return None

    # The urn prefix contains hex digits of its own ("d" in "uuid")
    lowered = text.strip().lower()
    if lowered.startswith("urn:uuid:"):
        lowered = lowered[len("urn:uuid:"):]

    digits = "".join(c for c in lowered if c in _HEXDIGITS)
    if len(digits) != 32:
        logger.debug("Ignoring malformed UUID %r", text)
        return None

    return UUID(hex=digits)


def hash_uuid(name: str) -> UUID:
    """Derive a synthetic device UUID from a service instance name."""
    return uuid5(_SCANFINDER_DEVICE_NS, name)
