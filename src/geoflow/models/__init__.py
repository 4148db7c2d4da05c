"""Data models for geoflow."""

from geoflow.models.collector import PushReceipt
from geoflow.models.identity import IdentityAcceptance, IdentityMode
from geoflow.models.location import Coordinates, PermissionState, Sample
from geoflow.models.session import TrackerSnapshot, TrackingState
from geoflow.models.status import DebugEntry, Severity, StatusLine

__all__ = [
    "Coordinates",
    "DebugEntry",
    "IdentityAcceptance",
    "IdentityMode",
    "PermissionState",
    "PushReceipt",
    "Sample",
    "Severity",
    "StatusLine",
    "TrackerSnapshot",
    "TrackingState",
]
