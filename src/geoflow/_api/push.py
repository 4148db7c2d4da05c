"""Sample push endpoint.

Endpoint:
  - POST {base}/push
"""

from __future__ import annotations

from pydantic import ValidationError

from geoflow._transport import Transport
from geoflow.config import GeoflowConfig
from geoflow.exceptions import GeoflowTransportError, NetworkErrorKind
from geoflow.models.collector import PushReceipt
from geoflow.models.location import Sample


async def push_sample(transport: Transport, config: GeoflowConfig, sample: Sample, identity: str) -> PushReceipt:
    """Send the reduced projection of *sample* and parse the receipt."""
    url = config.push_url
    data = await transport.post_json(url, sample.push_payload(identity), timeout=config.delivery_timeout)
    if not isinstance(data, dict):
        raise GeoflowTransportError(
            f"Unexpected push response from {url}: {data!r}"[:240],
            kind=NetworkErrorKind.MALFORMED_RESPONSE,
            endpoint=url,
        )
    try:
        return PushReceipt.model_validate(data)
    except ValidationError as exc:
        raise GeoflowTransportError(
            f"Push response from {url} has no record id",
            kind=NetworkErrorKind.MALFORMED_RESPONSE,
            endpoint=url,
        ) from exc
