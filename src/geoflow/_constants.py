"""Internal constants shared across the library."""

import re

BASE_URL = "http://localhost:8080/api/v1/tracking"
PUSH_PATH = "/push"
HISTORY_PATH = "/history/{identity}"
USER_AGENT = "geoflow/1.0"

# ------------------------------------------------------------------
# Identity rules
# ------------------------------------------------------------------

IDENTITY_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")
IDENTITY_MIN_LENGTH = 3
IDENTITY_MAX_LENGTH = 50

# ------------------------------------------------------------------
# Durable storage key schema
# ------------------------------------------------------------------

KEY_CURRENT_IDENTITY = "current_user_id"
KEY_SESSION_COUNT = "session_count_{identity}"
KEY_HISTORY = "tracking_data_{identity}"
KEY_HISTORY_REJECTED = "tracking_data_{identity}.corrupt"
KEY_TRACKING_INTERVAL = "tracking_interval"

# ------------------------------------------------------------------
# Provider / delivery defaults
# ------------------------------------------------------------------

DEFAULT_TRACKING_INTERVAL_S = 10.0
DEFAULT_DELIVERY_TIMEOUT_S = 10.0
DEFAULT_PROVIDER_TIMEOUT_MS = 15_000
DEFAULT_MAX_CACHE_AGE_MS = 0
DEFAULT_MAX_DEBUG_LOGS = 50
