from __future__ import annotations

from datetime import UTC, datetime

import pytest

from geoflow.models.location import Sample


@pytest.fixture
def sample() -> Sample:
    return Sample(
        latitude=37.5,
        longitude=127.0,
        accuracy=12.3,
        altitude=41.0,
        heading=90.0,
        speed=1.5,
        timestamp=datetime(2026, 1, 1, 12, 0, 0, tzinfo=UTC),
    )
