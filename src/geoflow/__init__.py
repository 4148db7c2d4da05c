"""geoflow - Async location tracker relaying position samples to a remote collector."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("geoflow")
except PackageNotFoundError:
    __version__ = "0+local"
from geoflow.config import GeoflowConfig
from geoflow.delivery import DeliveryOutcome, DeliveryPipeline
from geoflow.exceptions import (
    FormatViolation,
    GeoflowConfigError,
    GeoflowError,
    GeoflowProviderError,
    GeoflowStateError,
    GeoflowTransportError,
    GeoflowValidationError,
    IdentityAlreadyTakenError,
    IdentityFormatError,
    NetworkErrorKind,
    ProviderErrorCode,
    StateErrorKind,
    TakenSource,
)
from geoflow.identity import IdentityRegistry, validate_identity
from geoflow.models import (
    Coordinates,
    DebugEntry,
    IdentityAcceptance,
    IdentityMode,
    PermissionState,
    PushReceipt,
    Sample,
    Severity,
    StatusLine,
    TrackerSnapshot,
    TrackingState,
)
from geoflow.provider import (
    LocationProvider,
    PermissionService,
    PushLocationProvider,
    StaticPermissionService,
    WatchOptions,
)
from geoflow.sampler import LocationSampler
from geoflow.session import SessionState
from geoflow.status import StatusSink
from geoflow.storage import JsonFileStore, KeyValueStore, MemoryStore, TrackerStorage
from geoflow.tracker import GeoflowTracker

__all__ = [
    "__version__",
    "Coordinates",
    "DebugEntry",
    "DeliveryOutcome",
    "DeliveryPipeline",
    "FormatViolation",
    "GeoflowConfig",
    "GeoflowConfigError",
    "GeoflowError",
    "GeoflowProviderError",
    "GeoflowStateError",
    "GeoflowTracker",
    "GeoflowTransportError",
    "GeoflowValidationError",
    "IdentityAcceptance",
    "IdentityAlreadyTakenError",
    "IdentityFormatError",
    "IdentityMode",
    "IdentityRegistry",
    "JsonFileStore",
    "KeyValueStore",
    "LocationProvider",
    "LocationSampler",
    "MemoryStore",
    "NetworkErrorKind",
    "PermissionService",
    "PermissionState",
    "ProviderErrorCode",
    "PushLocationProvider",
    "PushReceipt",
    "Sample",
    "SessionState",
    "Severity",
    "StateErrorKind",
    "StaticPermissionService",
    "StatusLine",
    "StatusSink",
    "TakenSource",
    "TrackerSnapshot",
    "TrackerStorage",
    "TrackingState",
    "WatchOptions",
    "validate_identity",
]
