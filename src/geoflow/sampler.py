"""Continuous location sampling.

State machine (owned by :class:`~geoflow.session.SessionState`)::

    IDLE --start()--> STARTING --subscribed--> ACTIVE --stop()--> STOPPING --> IDLE
                                               ACTIVE --permission denied--> IDLE

At most one provider watch is live at a time.  Callbacks that arrive
for a watch that has since been cancelled are discarded with a warning.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime

from pydantic import ValidationError

from geoflow.config import GeoflowConfig
from geoflow.delivery import DeliveryPipeline
from geoflow.exceptions import GeoflowProviderError, GeoflowStateError, ProviderErrorCode, StateErrorKind
from geoflow.models._base import utcnow
from geoflow.models.location import Coordinates, Sample
from geoflow.models.session import TrackingState
from geoflow.models.status import Severity
from geoflow.provider import LocationProvider, RawPosition, WatchHandle, WatchOptions
from geoflow.session import SessionState
from geoflow.status import StatusSink
from geoflow.storage import TrackerStorage

_logger = logging.getLogger(__name__)

_ERROR_MESSAGES: dict[ProviderErrorCode, str] = {
    ProviderErrorCode.PERMISSION_DENIED: "Permission denied - Enable location access",
    ProviderErrorCode.POSITION_UNAVAILABLE: "Position unavailable - Check GPS signal",
    ProviderErrorCode.TIMEOUT: "Location request timeout",
    ProviderErrorCode.UNKNOWN: "Unknown geolocation error",
}


class LocationSampler:
    """Owns the provider watch and turns callbacks into samples."""

    def __init__(
        self,
        config: GeoflowConfig,
        provider: LocationProvider,
        session: SessionState,
        storage: TrackerStorage,
        status: StatusSink,
        pipeline: DeliveryPipeline,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._config = config
        self._provider = provider
        self._session = session
        self._storage = storage
        self._status = status
        self._pipeline = pipeline
        self._clock = clock
        self._handle: WatchHandle | None = None
        self._generation = 0
        self._live_generation: int | None = None
        # Last events seen by the live watch, so a one-shot request that
        # receives the same event does not process it a second time.
        self._watch_fix: RawPosition | None = None
        self._watch_sample: Sample | None = None
        self._watch_errors = 0
        self._watch_error_code: ProviderErrorCode | None = None

    @property
    def handle(self) -> WatchHandle | None:
        return self._handle

    def watch_options(self) -> WatchOptions:
        interval = self._storage.tracking_interval() or self._config.tracking_interval
        return WatchOptions(
            high_accuracy=self._config.high_accuracy,
            timeout_ms=self._config.provider_timeout_ms,
            max_cache_age_ms=self._config.max_cache_age_ms,
            interval_ms=int(interval * 1000),
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> bool:
        """Begin continuous sampling.  Returns ``False`` when nothing changed."""
        problem = self._session.check_start()
        if problem is StateErrorKind.NOT_INITIALIZED:
            self._status.report("Please set User ID first", Severity.ERROR)
            return False
        if problem is not None:
            self._status.debug("Tracking already active", Severity.WARNING)
            return False

        identity = self._session.identity
        if identity is None:
            raise GeoflowStateError("Tracking started without an identity", kind=StateErrorKind.NOT_INITIALIZED)

        self._session.begin_start()
        self._status.set_status("Starting...")
        self._generation += 1
        generation = self._generation
        self._live_generation = generation

        try:
            handle = self._provider.subscribe(
                lambda raw: self._on_position(generation, raw),
                lambda code: self._on_error(generation, code),
                self.watch_options(),
            )
        except GeoflowProviderError as exc:
            self._live_generation = None
            self._session.mark_idle()
            self._session.last_error = str(exc)
            self._status.report(f"Could not start tracking: {exc}", Severity.ERROR)
            return False

        if self._live_generation != generation:
            # A terminal error arrived while the watch was being registered.
            self._provider.unsubscribe(handle)
            return False

        self._handle = handle
        self._session.mark_active()
        count = self._session.record_session_start()
        self._storage.set_session_count(identity, count)
        self._status.debug("Tracking started (watch active)", Severity.SUCCESS)
        self._status.set_status("Tracking active", Severity.SUCCESS)
        return True

    def stop(self) -> bool:
        """Cancel the watch.  Returns ``False`` when tracking was not active."""
        if self._session.check_stop() is not None:
            self._status.debug("Tracking not active", Severity.WARNING)
            return False
        self._session.begin_stop()
        self._teardown()
        self._status.debug("Tracking stopped")
        self._status.set_status("Tracking stopped")
        return True

    def _teardown(self) -> None:
        handle, self._handle = self._handle, None
        self._live_generation = None
        self._watch_fix = None
        self._watch_sample = None
        if handle is not None:
            self._provider.unsubscribe(handle)
            self._status.debug("Cleared location watch")
        self._session.mark_idle()

    # ------------------------------------------------------------------
    # Provider callbacks
    # ------------------------------------------------------------------

    def _on_position(self, generation: int, raw: RawPosition) -> None:
        if generation != self._live_generation:
            self._status.debug("Discarded position from a cancelled watch", Severity.WARNING)
            return
        self._watch_fix = raw
        self._watch_sample = self.handle_position(raw)

    def _on_error(self, generation: int, code: int) -> None:
        if generation != self._live_generation:
            _logger.debug("Ignoring provider error %s from a cancelled watch", code)
            return
        self._watch_errors += 1
        self._watch_error_code = ProviderErrorCode(code)
        self.handle_error(code)

    def handle_position(self, raw: RawPosition) -> Sample | None:
        """Normalize a provider fix and hand it to the delivery pipeline."""
        identity = self._session.identity
        if identity is None:
            self._status.debug("Position received before User ID was set", Severity.WARNING)
            return None
        try:
            coords = raw if isinstance(raw, Coordinates) else Coordinates.model_validate(raw)
        except ValidationError as exc:
            message = f"Malformed position from provider ({exc.error_count()} invalid field(s))"
            self._session.last_error = message
            self._status.report(message, Severity.ERROR)
            return None

        sample = Sample.from_coordinates(coords, self._clock())
        self._pipeline.deliver(sample, identity)
        self._session.last_sample = sample
        self._status.debug(f"Location: {sample.describe()}", Severity.SUCCESS)
        return sample

    def handle_error(self, code: int) -> ProviderErrorCode:
        """Classify a provider error; only a permission denial stops tracking."""
        error_code = ProviderErrorCode(code)
        message = _ERROR_MESSAGES[error_code]
        self._session.last_error = message
        self._status.report(message, Severity.ERROR)

        if error_code is ProviderErrorCode.PERMISSION_DENIED and self._session.tracking_state in (
            TrackingState.STARTING,
            TrackingState.ACTIVE,
        ):
            self._teardown()
            self._status.debug("Tracking stopped: location permission denied", Severity.WARNING)
        return error_code

    async def locate_once(self) -> Sample | None:
        """Request a single fix and process it like a watch callback."""
        if self._session.identity is None:
            self._status.report("Please set User ID first", Severity.ERROR)
            return None
        self._status.debug("Requesting location...")
        errors_before = self._watch_errors
        try:
            raw = await self._provider.current_position(self.watch_options())
        except GeoflowProviderError as exc:
            if self._watch_errors != errors_before and self._watch_error_code == exc.code:
                _logger.debug("Provider error %s already handled by the live watch", exc.code)
                return None
            self.handle_error(exc.code)
            return None
        if raw is self._watch_fix:
            _logger.debug("One-shot fix already handled by the live watch")
            return self._watch_sample
        return self.handle_position(raw)
