"""Identity history lookup.

Endpoint:
  - GET {base}/history/{identity}
"""

from __future__ import annotations

import logging

from geoflow._transport import Transport
from geoflow.config import GeoflowConfig

_logger = logging.getLogger(__name__)


async def fetch_history_count(transport: Transport, config: GeoflowConfig, identity: str) -> int:
    """Return how many tracking records the collector holds for *identity*.

    Anything other than a JSON array counts as no history.  Transport
    failures propagate as :class:`~geoflow.exceptions.GeoflowTransportError`.
    """
    data = await transport.get_json(config.history_url(identity), timeout=config.lookup_timeout)
    if not isinstance(data, list):
        _logger.debug("History for %s is not a list (%s); treating as empty", identity, type(data).__name__)
        return 0
    return len(data)
