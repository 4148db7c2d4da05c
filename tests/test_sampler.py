from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

import pytest

from geoflow.config import GeoflowConfig
from geoflow.delivery import DeliveryPipeline
from geoflow.exceptions import GeoflowProviderError, GeoflowStateError, ProviderErrorCode, StateErrorKind
from geoflow.models.identity import IdentityAcceptance, IdentityMode
from geoflow.models.location import Coordinates
from geoflow.models.session import TrackingState
from geoflow.models.status import Severity
from geoflow.provider import ErrorCallback, PositionCallback, PushLocationProvider, WatchHandle, WatchOptions
from geoflow.sampler import LocationSampler
from geoflow.session import SessionState
from geoflow.status import StatusSink
from geoflow.storage import TrackerStorage

_NOW = datetime(2026, 3, 1, 8, 30, tzinfo=UTC)


class _AcceptingCollector:
    def __init__(self) -> None:
        self.pushed: list[dict[str, Any]] = []

    async def get_json(self, url: str, *, timeout: float | None = None) -> Any:  # pragma: no cover
        return []

    async def post_json(self, url: str, payload: Any, *, timeout: float | None = None) -> Any:
        self.pushed.append(dict(payload))
        return {"id": f"rec-{len(self.pushed)}"}


class _CountingProvider(PushLocationProvider):
    """Tracks the largest number of simultaneously live watches."""

    def __init__(self) -> None:
        super().__init__()
        self.max_live = 0
        self.unsubscribed: list[WatchHandle] = []
        self.callbacks: list[tuple[PositionCallback, ErrorCallback]] = []
        self.last_options: WatchOptions | None = None

    def subscribe(self, on_position: PositionCallback, on_error: ErrorCallback, options: WatchOptions) -> WatchHandle:
        handle = super().subscribe(on_position, on_error, options)
        self.callbacks.append((on_position, on_error))
        self.last_options = options
        self.max_live = max(self.max_live, self.active_watches)
        return handle

    def unsubscribe(self, handle: WatchHandle) -> None:
        self.unsubscribed.append(handle)
        super().unsubscribe(handle)


class _BrokenProvider(_CountingProvider):
    def subscribe(self, on_position: PositionCallback, on_error: ErrorCallback, options: WatchOptions) -> WatchHandle:
        raise GeoflowProviderError("Geolocation not supported")


class _DenyingProvider(_CountingProvider):
    def subscribe(self, on_position: PositionCallback, on_error: ErrorCallback, options: WatchOptions) -> WatchHandle:
        handle = super().subscribe(on_position, on_error, options)
        on_error(ProviderErrorCode.PERMISSION_DENIED)
        return handle


@dataclass
class _Harness:
    sampler: LocationSampler
    provider: _CountingProvider
    session: SessionState
    storage: TrackerStorage
    status: StatusSink
    pipeline: DeliveryPipeline
    collector: _AcceptingCollector


def _harness(
    *,
    identity: str | None = "walker",
    provider: _CountingProvider | None = None,
    config: GeoflowConfig | None = None,
) -> _Harness:
    config = config or GeoflowConfig(base_url="http://collector.test/api")
    provider = provider or _CountingProvider()
    storage = TrackerStorage()
    session = SessionState()
    status = StatusSink()
    collector = _AcceptingCollector()
    pipeline = DeliveryPipeline(config, collector, storage, status)
    if identity is not None:
        session.accept_identity(IdentityAcceptance(identity=identity, mode=IdentityMode.ONLINE), 0)
    sampler = LocationSampler(config, provider, session, storage, status, pipeline, clock=lambda: _NOW)
    return _Harness(sampler, provider, session, storage, status, pipeline, collector)


_FIX = {"latitude": 37.5, "longitude": 127.0, "accuracy": 12.3, "altitude": 40.0, "heading": None, "speed": 0.0}


def test_start_without_identity_is_rejected() -> None:
    h = _harness(identity=None)

    assert h.sampler.start() is False

    assert h.session.tracking_state is TrackingState.IDLE
    assert h.provider.active_watches == 0
    assert h.status.status is not None
    assert h.status.status.severity is Severity.ERROR


def test_start_registers_single_watch_and_counts_session() -> None:
    h = _harness()

    assert h.sampler.start() is True

    assert h.session.tracking_state is TrackingState.ACTIVE
    assert h.sampler.handle is not None
    assert h.provider.active_watches == 1
    assert h.session.session_count == 1
    assert h.storage.session_count("walker") == 1


def test_second_start_is_noop_without_counting() -> None:
    h = _harness()
    h.sampler.start()

    assert h.sampler.start() is False

    assert h.session.session_count == 1
    assert h.storage.session_count("walker") == 1
    assert h.provider.active_watches == 1
    assert h.status.entries[-1].severity is Severity.WARNING


def test_stop_twice_second_is_warning_noop() -> None:
    h = _harness()
    h.sampler.start()

    assert h.sampler.stop() is True
    assert h.sampler.stop() is False

    assert h.session.tracking_state is TrackingState.IDLE
    assert h.sampler.handle is None
    assert h.provider.active_watches == 0
    assert len(h.provider.unsubscribed) == 1
    assert h.status.entries[-1].severity is Severity.WARNING


def test_start_stop_sequences_never_overlap_watches() -> None:
    h = _harness()

    for op in ["start", "start", "stop", "stop", "start", "stop", "start", "start", "stop"]:
        getattr(h.sampler, op)()
        assert h.provider.active_watches <= 1

    assert h.provider.max_live == 1
    assert h.session.session_count == 3


@pytest.mark.asyncio
async def test_position_becomes_sample_and_is_delivered() -> None:
    h = _harness()
    h.sampler.start()

    h.provider.emit(_FIX)
    outcomes = await h.pipeline.drain()

    assert len(outcomes) == 1
    assert outcomes[0].delivered is True
    sample = h.session.last_sample
    assert sample is not None
    assert sample.timestamp == _NOW
    assert sample.altitude == 40.0
    assert sample.heading is None
    assert h.pipeline.local_log("walker") == [sample]
    assert h.collector.pushed[0]["user_id"] == "walker"


@pytest.mark.asyncio
async def test_coordinates_model_is_accepted_as_is() -> None:
    h = _harness()
    h.sampler.start()

    h.provider.emit(Coordinates(latitude=1.0, longitude=2.0, accuracy=3.0))
    await h.pipeline.drain()

    assert len(h.pipeline.local_log("walker")) == 1


@pytest.mark.asyncio
async def test_permission_denied_stops_tracking() -> None:
    h = _harness()
    h.sampler.start()

    h.provider.fail(ProviderErrorCode.PERMISSION_DENIED)

    assert h.session.tracking_state is TrackingState.IDLE
    assert h.sampler.handle is None
    assert h.session.last_error is not None
    assert "Permission denied" in h.session.last_error

    # Tracking can be resumed once permission is back.
    assert h.sampler.start() is True
    assert h.session.session_count == 2


@pytest.mark.parametrize(
    "code",
    [ProviderErrorCode.POSITION_UNAVAILABLE, ProviderErrorCode.TIMEOUT, 42],
)
def test_transient_provider_errors_keep_tracking(code: int) -> None:
    h = _harness()
    h.sampler.start()

    h.provider.fail(code)

    assert h.session.tracking_state is TrackingState.ACTIVE
    assert h.provider.active_watches == 1
    assert h.status.status is not None
    assert h.status.status.severity is Severity.ERROR


def test_unknown_error_code_is_classified_generically() -> None:
    h = _harness()
    h.sampler.start()

    assert h.sampler.handle_error(42) is ProviderErrorCode.UNKNOWN
    assert h.session.last_error == "Unknown geolocation error"


@pytest.mark.asyncio
async def test_malformed_position_is_reported_and_tracking_survives() -> None:
    h = _harness()
    h.sampler.start()

    h.provider.emit({"latitude": "north", "longitude": 127.0, "accuracy": 5})
    h.provider.emit({"latitude": 37.5, "longitude": 127.0, "accuracy": -1})
    await h.pipeline.drain()

    assert h.pipeline.local_log("walker") == []
    assert h.session.tracking_state is TrackingState.ACTIVE
    assert h.session.last_error is not None
    assert "Malformed position" in h.session.last_error


@pytest.mark.asyncio
async def test_callbacks_from_cancelled_watch_are_discarded() -> None:
    h = _harness()
    h.sampler.start()
    stale_position, stale_error = h.provider.callbacks[0]
    h.sampler.stop()
    h.sampler.start()

    stale_position(_FIX)
    stale_error(ProviderErrorCode.PERMISSION_DENIED)
    await h.pipeline.drain()

    assert h.pipeline.local_log("walker") == []
    assert h.session.tracking_state is TrackingState.ACTIVE


def test_subscribe_failure_leaves_session_idle() -> None:
    h = _harness(provider=_BrokenProvider())

    assert h.sampler.start() is False

    assert h.session.tracking_state is TrackingState.IDLE
    assert h.session.session_count == 0
    assert h.sampler.handle is None


def test_permission_denied_during_registration_aborts_start() -> None:
    h = _harness(provider=_DenyingProvider())

    assert h.sampler.start() is False

    assert h.session.tracking_state is TrackingState.IDLE
    assert h.session.session_count == 0
    assert h.sampler.handle is None
    assert h.provider.active_watches == 0


def test_watch_options_follow_config_and_stored_interval() -> None:
    config = GeoflowConfig(
        base_url="http://collector.test/api",
        high_accuracy=False,
        provider_timeout_ms=5000,
        tracking_interval=30,
    )
    h = _harness(config=config)
    assert h.sampler.watch_options().interval_ms == 30_000

    h.storage.set_tracking_interval(2.5)
    h.sampler.start()

    options = h.provider.last_options
    assert options is not None
    assert options.high_accuracy is False
    assert options.timeout_ms == 5000
    assert options.max_cache_age_ms == 0
    assert options.interval_ms == 2500


@pytest.mark.asyncio
async def test_locate_once_processes_a_single_fix() -> None:
    h = _harness()

    task = asyncio.create_task(h.sampler.locate_once())
    await asyncio.sleep(0)
    h.provider.emit(_FIX)
    sample = await task
    await h.pipeline.drain()

    assert sample is not None
    assert h.session.tracking_state is TrackingState.IDLE
    assert h.pipeline.local_log("walker") == [sample]


@pytest.mark.asyncio
async def test_locate_once_timeout_is_reported() -> None:
    config = GeoflowConfig(base_url="http://collector.test/api", provider_timeout_ms=10)
    h = _harness(config=config)

    assert await h.sampler.locate_once() is None

    assert h.session.last_error == "Location request timeout"


@pytest.mark.asyncio
async def test_locate_once_requires_identity() -> None:
    h = _harness(identity=None)

    assert await h.sampler.locate_once() is None
    assert h.status.status is not None
    assert h.status.status.severity is Severity.ERROR


@pytest.mark.asyncio
async def test_locate_once_during_tracking_processes_shared_fix_once() -> None:
    h = _harness()
    h.sampler.start()

    task = asyncio.create_task(h.sampler.locate_once())
    await asyncio.sleep(0)
    h.provider.emit(_FIX)
    sample = await task
    await h.pipeline.drain()

    assert sample is not None
    assert sample is h.session.last_sample
    assert h.pipeline.local_log("walker") == [sample]
    assert len(h.collector.pushed) == 1


@pytest.mark.asyncio
async def test_locate_once_during_tracking_reports_shared_error_once() -> None:
    h = _harness()
    h.sampler.start()

    task = asyncio.create_task(h.sampler.locate_once())
    await asyncio.sleep(0)
    h.provider.fail(ProviderErrorCode.POSITION_UNAVAILABLE)

    assert await task is None
    errors = [e for e in h.status.entries if e.severity is Severity.ERROR]
    assert [e.message for e in errors] == ["Position unavailable - Check GPS signal"]
    assert h.session.tracking_state is TrackingState.ACTIVE


def test_start_with_inconsistent_guard_raises_state_error(monkeypatch: pytest.MonkeyPatch) -> None:
    h = _harness(identity=None)
    monkeypatch.setattr(h.session, "check_start", lambda: None)

    with pytest.raises(GeoflowStateError) as exc_info:
        h.sampler.start()

    assert exc_info.value.kind is StateErrorKind.NOT_INITIALIZED
    assert h.provider.active_watches == 0
