"""Client configuration for geoflow."""

from __future__ import annotations

import dataclasses
import os
from pathlib import Path
from typing import Any

from geoflow._constants import (
    BASE_URL,
    DEFAULT_DELIVERY_TIMEOUT_S,
    DEFAULT_MAX_CACHE_AGE_MS,
    DEFAULT_MAX_DEBUG_LOGS,
    DEFAULT_PROVIDER_TIMEOUT_MS,
    DEFAULT_TRACKING_INTERVAL_S,
    HISTORY_PATH,
    PUSH_PATH,
)
from geoflow.exceptions import GeoflowConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _env_number(env_key: str, value: str, cast: type[float] | type[int]) -> float | int:
    try:
        return cast(value)
    except ValueError as exc:
        raise GeoflowConfigError(f"{env_key} must be numeric, got {value!r}") from exc


@dataclasses.dataclass(frozen=True)
class GeoflowConfig:
    """Tracker configuration.

    Parameters
    ----------
    base_url : str
        Collector API base URL, without a trailing slash.  Samples are
        pushed to ``{base_url}/push`` and identity lookups go to
        ``{base_url}/history/{identity}``.
    push_path : str
        Path of the sample push endpoint, relative to ``base_url``.
    history_path : str
        Path template of the history lookup endpoint.  Must contain
        ``{identity}``.
    delivery_timeout : float
        Client-side timeout in seconds for a single sample push.
    lookup_timeout : float or None
        Timeout in seconds for the identity lookup.  ``None`` keeps the
        HTTP client's default.
    tracking_interval : float
        Default sampling interval in seconds, used unless an override is
        stored locally.
    high_accuracy : bool
        Ask the location provider for its most accurate fix.
    provider_timeout_ms : int
        Maximum time the provider may take to produce a fix.
    max_cache_age_ms : int
        Maximum age of a cached fix the provider may return.
    max_debug_logs : int
        Capacity of the debug log; older entries are evicted first.
    storage_path : Path or None
        JSON file backing durable local storage.  ``None`` keeps storage
        in memory for the life of the process.
    """

    base_url: str = BASE_URL
    push_path: str = PUSH_PATH
    history_path: str = HISTORY_PATH
    delivery_timeout: float = DEFAULT_DELIVERY_TIMEOUT_S
    lookup_timeout: float | None = None
    tracking_interval: float = DEFAULT_TRACKING_INTERVAL_S
    high_accuracy: bool = True
    provider_timeout_ms: int = DEFAULT_PROVIDER_TIMEOUT_MS
    max_cache_age_ms: int = DEFAULT_MAX_CACHE_AGE_MS
    max_debug_logs: int = DEFAULT_MAX_DEBUG_LOGS
    storage_path: Path | None = None

    def __post_init__(self) -> None:
        if not self.base_url:
            raise GeoflowConfigError("base_url must be non-empty")
        if "{identity}" not in self.history_path:
            raise GeoflowConfigError("history_path must contain '{identity}'")
        if self.delivery_timeout <= 0:
            raise GeoflowConfigError("delivery_timeout must be positive")
        if self.lookup_timeout is not None and self.lookup_timeout <= 0:
            raise GeoflowConfigError("lookup_timeout must be positive when set")
        if self.tracking_interval <= 0:
            raise GeoflowConfigError("tracking_interval must be positive")
        if self.max_debug_logs < 1:
            raise GeoflowConfigError("max_debug_logs must be at least 1")
        # Normalise so endpoint joins never produce a double slash.
        object.__setattr__(self, "base_url", self.base_url.rstrip("/"))

    @property
    def push_url(self) -> str:
        return f"{self.base_url}{self.push_path}"

    def history_url(self, identity: str) -> str:
        return f"{self.base_url}{self.history_path.format(identity=identity)}"

    @classmethod
    def from_env(cls, **overrides: Any) -> GeoflowConfig:
        """Create configuration from environment variables.

        Reads optional ``GEOFLOW_*`` variables.  Explicit keyword
        arguments override environment values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        GeoflowConfig
            Populated configuration.

        Raises
        ------
        GeoflowConfigError
            If a numeric variable cannot be parsed or a value is out of range.
        """
        env = os.environ
        config_kwargs: dict[str, Any] = {}

        base_url = env.get("GEOFLOW_BASE_URL")
        if base_url is not None:
            config_kwargs["base_url"] = base_url

        _ENV_FLOAT_MAP = {
            "GEOFLOW_DELIVERY_TIMEOUT": "delivery_timeout",
            "GEOFLOW_LOOKUP_TIMEOUT": "lookup_timeout",
            "GEOFLOW_TRACKING_INTERVAL": "tracking_interval",
        }
        for env_key, field_name in _ENV_FLOAT_MAP.items():
            val = env.get(env_key)
            if val is not None and field_name not in overrides:
                config_kwargs[field_name] = _env_number(env_key, val, float)

        _ENV_INT_MAP = {
            "GEOFLOW_PROVIDER_TIMEOUT_MS": "provider_timeout_ms",
            "GEOFLOW_MAX_CACHE_AGE_MS": "max_cache_age_ms",
            "GEOFLOW_MAX_DEBUG_LOGS": "max_debug_logs",
        }
        for env_key, field_name in _ENV_INT_MAP.items():
            val = env.get(env_key)
            if val is not None and field_name not in overrides:
                config_kwargs[field_name] = _env_number(env_key, val, int)

        if "high_accuracy" not in overrides:
            config_kwargs["high_accuracy"] = _env_bool(env.get("GEOFLOW_HIGH_ACCURACY"), True)

        storage_path = env.get("GEOFLOW_STORAGE_PATH")
        if storage_path:
            config_kwargs["storage_path"] = Path(storage_path).expanduser()

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
