"""High-level async facade for a tracking session."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any, TypeVar

import aiohttp

from geoflow._transport import HttpTransport
from geoflow.config import GeoflowConfig
from geoflow.delivery import DeliveryOutcome, DeliveryPipeline
from geoflow.exceptions import GeoflowConfigError, GeoflowProviderError, GeoflowStateError, StateErrorKind
from geoflow.identity import IdentityRegistry
from geoflow.models._base import utcnow
from geoflow.models.identity import IdentityAcceptance
from geoflow.models.location import PermissionState, Sample
from geoflow.models.session import TrackerSnapshot
from geoflow.models.status import DebugEntry, Severity, StatusLine
from geoflow.provider import LocationProvider, PermissionService
from geoflow.sampler import LocationSampler
from geoflow.session import SessionState
from geoflow.status import StatusSink
from geoflow.storage import TrackerStorage

_logger = logging.getLogger(__name__)

T = TypeVar("T")


class GeoflowTracker:
    """Async tracker tying identity, sampling and delivery together.

    Usage::

        async with GeoflowTracker(config, provider) as tracker:
            await tracker.submit_identity("field_unit-7")
            tracker.start()
            ...
            tracker.stop()
    """

    def __init__(
        self,
        config: GeoflowConfig,
        provider: LocationProvider,
        *,
        permissions: PermissionService | None = None,
        storage: TrackerStorage | None = None,
        session: aiohttp.ClientSession | None = None,
        on_status: Callable[[StatusLine], None] | None = None,
        on_debug: Callable[[DebugEntry], None] | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._config = config
        self._provider = provider
        self._permissions = permissions
        self._storage = storage if storage is not None else TrackerStorage.open(config.storage_path)
        self._external_session = session is not None
        self._http_session = session
        self._clock = clock
        self._state = SessionState()
        self._status = StatusSink(
            max_entries=config.max_debug_logs,
            clock=clock,
            on_entry=on_debug,
            on_status=on_status,
        )
        self._registry: IdentityRegistry | None = None
        self._pipeline: DeliveryPipeline | None = None
        self._sampler: LocationSampler | None = None
        self._remove_permission_listener: Callable[[], None] | None = None
        self._status.debug("App started", Severity.SYSTEM)

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> GeoflowTracker:
        if self._http_session is None:
            self._http_session = aiohttp.ClientSession()
        transport = HttpTransport(self._http_session)
        self._registry = IdentityRegistry(
            self._config,
            transport,
            self._storage,
            self._state,
            self._status,
            clock=self._clock,
        )
        self._pipeline = DeliveryPipeline(self._config, transport, self._storage, self._status)
        self._sampler = LocationSampler(
            self._config,
            self._provider,
            self._state,
            self._storage,
            self._status,
            self._pipeline,
            clock=self._clock,
        )
        return self

    async def __aexit__(self, *exc: Any) -> None:
        if self._remove_permission_listener is not None:
            self._remove_permission_listener()
            self._remove_permission_listener = None
        if self._sampler is not None and self._state.is_tracking:
            self._sampler.stop()
        if self._pipeline is not None:
            await self._pipeline.drain()
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None
        self._registry = None
        self._pipeline = None
        self._sampler = None

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def session(self) -> SessionState:
        return self._state

    @property
    def status(self) -> StatusSink:
        return self._status

    @property
    def storage(self) -> TrackerStorage:
        return self._storage

    @property
    def stored_identity(self) -> str | None:
        """Identity persisted by a previous run, if any."""
        return self._storage.current_identity()

    def snapshot(self) -> TrackerSnapshot:
        acceptance = self._state.acceptance
        identity = self._state.identity
        return TrackerSnapshot(
            identity=identity,
            identity_mode=acceptance.mode if acceptance is not None else None,
            tracking_state=self._state.tracking_state,
            session_count=self._state.session_count,
            permission=self._state.permission,
            last_sample=self._state.last_sample,
            last_error=self._state.last_error,
            local_log_size=self._storage.history_size(identity) if identity is not None else 0,
            status=self._status.status,
        )

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def submit_identity(self, candidate: str) -> IdentityAcceptance:
        return await self._require(self._registry).submit(candidate)

    def start(self) -> bool:
        return self._require(self._sampler).start()

    def stop(self) -> bool:
        return self._require(self._sampler).stop()

    async def locate_once(self) -> Sample | None:
        return await self._require(self._sampler).locate_once()

    async def drain(self) -> list[DeliveryOutcome]:
        """Wait for in-flight deliveries to finish."""
        return await self._require(self._pipeline).drain()

    def set_tracking_interval(self, seconds: float) -> None:
        """Persist a sampling interval override, applied on the next start."""
        if seconds <= 0:
            raise GeoflowConfigError("tracking interval must be positive")
        self._storage.set_tracking_interval(seconds)
        self._status.debug(f"Tracking interval set to {seconds:g}s")

    async def check_permissions(self) -> PermissionState:
        """Query the permission service and follow later changes."""
        if self._permissions is None:
            self._status.debug("Permissions API not available", Severity.WARNING)
            return self._state.permission

        try:
            state = await self._permissions.query()
        except GeoflowProviderError as exc:
            self._status.debug(f"Permission check failed: {exc}", Severity.WARNING)
            return self._state.permission

        self._on_permission_change(state)
        if self._remove_permission_listener is None:
            self._remove_permission_listener = self._permissions.add_listener(self._on_permission_change)
        return state

    def _on_permission_change(self, state: PermissionState) -> None:
        self._state.permission = state
        self._status.debug(f"Permission state: {state.value}")

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _require(component: T | None) -> T:
        if component is None:
            raise GeoflowStateError(
                "Tracker not initialized. Use 'async with GeoflowTracker(...) as tracker:'",
                kind=StateErrorKind.NOT_INITIALIZED,
            )
        return component
