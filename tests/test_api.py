from __future__ import annotations

from typing import Any

import pytest

from geoflow._api.history import fetch_history_count
from geoflow._api.push import push_sample
from geoflow.config import GeoflowConfig
from geoflow.exceptions import GeoflowTransportError, NetworkErrorKind
from geoflow.models.location import Sample


class _StaticTransport:
    def __init__(self, response: Any) -> None:
        self._response = response
        self.timeouts: list[float | None] = []

    async def get_json(self, url: str, *, timeout: float | None = None) -> Any:
        self.timeouts.append(timeout)
        return self._response

    async def post_json(self, url: str, payload: Any, *, timeout: float | None = None) -> Any:
        self.timeouts.append(timeout)
        return self._response


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("response", "expected"),
    [
        ([], 0),
        ([{"id": 1}, {"id": 2}], 2),
        (None, 0),
        ({"records": [1, 2, 3]}, 0),
    ],
)
async def test_history_count(response: Any, expected: int) -> None:
    config = GeoflowConfig(base_url="http://collector.test/api", lookup_timeout=2.0)
    transport = _StaticTransport(response)

    assert await fetch_history_count(transport, config, "walker") == expected
    assert transport.timeouts == [2.0]


@pytest.mark.asyncio
async def test_push_sample_rejects_receipt_without_id(sample: Sample) -> None:
    config = GeoflowConfig(base_url="http://collector.test/api")

    with pytest.raises(GeoflowTransportError) as exc_info:
        await push_sample(_StaticTransport({"status": "ok"}), config, sample, "walker")

    assert exc_info.value.kind is NetworkErrorKind.MALFORMED_RESPONSE
    assert exc_info.value.endpoint == "http://collector.test/api/push"
