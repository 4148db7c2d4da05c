"""Session snapshot models."""

from __future__ import annotations

from enum import StrEnum

from pydantic import Field

from geoflow.models._base import GeoflowBaseModel
from geoflow.models.identity import IdentityMode
from geoflow.models.location import PermissionState, Sample
from geoflow.models.status import StatusLine


class TrackingState(StrEnum):
    IDLE = "idle"
    STARTING = "starting"
    ACTIVE = "active"
    STOPPING = "stopping"


class TrackerSnapshot(GeoflowBaseModel):
    """Read-only view of the tracker for a display.

    Parameters
    ----------
    identity : str or None
        Accepted identity, if any.
    identity_mode : IdentityMode or None
        Whether the identity was verified online or offline.
    tracking_state : TrackingState
        Current sampler state.
    session_count : int
        Tracking sessions started for the identity, across runs.
    permission : PermissionState
        Last known geolocation permission state.
    last_sample : Sample or None
        Most recent sample produced by the provider.
    last_error : str or None
        Most recent provider error message.
    local_log_size : int
        Samples recorded locally for the identity.
    status : StatusLine or None
        Current status line.
    """

    identity: str | None = None
    identity_mode: IdentityMode | None = None
    tracking_state: TrackingState = TrackingState.IDLE
    session_count: int = Field(default=0, ge=0)
    permission: PermissionState = PermissionState.UNKNOWN
    last_sample: Sample | None = None
    last_error: str | None = None
    local_log_size: int = Field(default=0, ge=0)
    status: StatusLine | None = None
