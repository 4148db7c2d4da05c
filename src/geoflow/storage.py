"""Durable local storage.

Values are kept in a string-keyed store (:class:`KeyValueStore`).
:class:`TrackerStorage` wraps it with a typed API over a fixed key schema
so callers never build keys by hand:

=====================================  =====================================
Key                                    Value
=====================================  =====================================
``current_user_id``                    accepted identity
``session_count_{identity}``           tracking sessions started (int)
``tracking_data_{identity}``           JSON array of locally logged samples
``tracking_data_{identity}.corrupt``   unreadable history entries moved aside
``tracking_interval``                  sampling interval override (seconds)
=====================================  =====================================
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

from pydantic import TypeAdapter, ValidationError

from geoflow._constants import (
    KEY_CURRENT_IDENTITY,
    KEY_HISTORY,
    KEY_HISTORY_REJECTED,
    KEY_SESSION_COUNT,
    KEY_TRACKING_INTERVAL,
)
from geoflow.models.location import Sample

_logger = logging.getLogger(__name__)

_SAMPLES = TypeAdapter(list[Sample])


@dataclass
class _DecodedHistory:
    raw: str
    samples: list[Sample]
    rejected: list[Any]


def _decode_history(raw: str) -> _DecodedHistory:
    try:
        items = json.loads(raw)
    except json.JSONDecodeError:
        return _DecodedHistory(raw=raw, samples=[], rejected=[raw])
    if not isinstance(items, list):
        return _DecodedHistory(raw=raw, samples=[], rejected=[items])
    samples: list[Sample] = []
    rejected: list[Any] = []
    for item in items:
        try:
            samples.append(Sample.model_validate(item))
        except ValidationError:
            rejected.append(item)
    return _DecodedHistory(raw=raw, samples=samples, rejected=rejected)


class KeyValueStore(Protocol):
    def get(self, key: str) -> str | None:
        ...

    def set(self, key: str, value: str) -> None:
        ...

    def remove(self, key: str) -> None:
        ...


class MemoryStore:
    """Process-local store; contents vanish with the process."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)


class JsonFileStore:
    """Store persisted as a single JSON object on disk.

    Every write rewrites the file through a temporary sibling and an
    atomic rename, so a crash never leaves a truncated file behind.  An
    unreadable file found on load is renamed to ``<name>.corrupt`` before
    the store starts empty.
    """

    def __init__(self, path: Path) -> None:
        self._path = Path(path)
        self._data: dict[str, str] = self._load()

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> dict[str, str]:
        try:
            data = self._path.read_bytes()
        except FileNotFoundError:
            return {}
        try:
            raw = json.loads(data.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError):
            self._set_aside("not valid JSON")
            return {}
        if not isinstance(raw, dict):
            self._set_aside("top level is not an object")
            return {}
        return {str(k): str(v) for k, v in raw.items()}

    def _set_aside(self, reason: str) -> None:
        corrupt = self._path.with_name(f"{self._path.name}.corrupt")
        os.replace(self._path, corrupt)
        _logger.warning("Storage file %s is unreadable (%s); moved to %s", self._path, reason, corrupt)

    def _flush(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self._path.parent, prefix=f".{self._path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(self._data, fh, separators=(",", ":"))
            os.replace(tmp_name, self._path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value
        self._flush()

    def remove(self, key: str) -> None:
        if self._data.pop(key, None) is not None:
            self._flush()


class TrackerStorage:
    """Typed view over a :class:`KeyValueStore`."""

    def __init__(self, store: KeyValueStore | None = None) -> None:
        self._store: KeyValueStore = store if store is not None else MemoryStore()
        self._decoded: dict[str, _DecodedHistory] = {}

    @classmethod
    def open(cls, path: Path | None) -> TrackerStorage:
        return cls(JsonFileStore(path) if path is not None else MemoryStore())

    # ------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------

    def current_identity(self) -> str | None:
        return self._store.get(KEY_CURRENT_IDENTITY)

    def set_current_identity(self, identity: str) -> None:
        self._store.set(KEY_CURRENT_IDENTITY, identity)

    def clear_current_identity(self) -> None:
        self._store.remove(KEY_CURRENT_IDENTITY)

    # ------------------------------------------------------------------
    # Session counters
    # ------------------------------------------------------------------

    def session_count(self, identity: str) -> int:
        raw = self._store.get(KEY_SESSION_COUNT.format(identity=identity))
        if raw is None:
            return 0
        try:
            return max(0, int(raw))
        except ValueError:
            _logger.warning("Discarding invalid session counter for %s: %r", identity, raw)
            return 0

    def set_session_count(self, identity: str, count: int) -> None:
        self._store.set(KEY_SESSION_COUNT.format(identity=identity), str(count))

    # ------------------------------------------------------------------
    # Local history
    # ------------------------------------------------------------------

    def _load_history(self, identity: str) -> _DecodedHistory | None:
        raw = self._store.get(KEY_HISTORY.format(identity=identity))
        if raw is None:
            self._decoded.pop(identity, None)
            return None
        cached = self._decoded.get(identity)
        if cached is not None and cached.raw is raw:
            return cached
        decoded = _decode_history(raw)
        if decoded.rejected:
            _logger.warning(
                "Local history for %s has %d unreadable entries; they are kept aside on the next write",
                identity,
                len(decoded.rejected),
            )
        self._decoded[identity] = decoded
        return decoded

    def history(self, identity: str) -> list[Sample]:
        """Readable samples logged for *identity*, oldest first."""
        decoded = self._load_history(identity)
        return list(decoded.samples) if decoded is not None else []

    def rejected_history(self, identity: str) -> list[Any]:
        """Raw entries that could not be read back as samples."""
        pending = self._load_history(identity)
        return self._quarantined(identity) + (pending.rejected if pending is not None else [])

    def history_size(self, identity: str) -> int:
        """Entries recorded for *identity*, counting unreadable ones."""
        decoded = self._load_history(identity)
        readable = len(decoded.samples) + len(decoded.rejected) if decoded is not None else 0
        return readable + len(self._quarantined(identity))

    def append_history(self, identity: str, sample: Sample) -> int:
        """Append *sample* to the identity's local history.

        Entries that no longer validate are moved to
        ``tracking_data_{identity}.corrupt`` instead of being overwritten.
        Returns the number of readable samples after the append.
        """
        decoded = self._load_history(identity)
        item = sample.model_dump_json()
        if decoded is None or (not decoded.samples and not decoded.rejected):
            samples = [sample]
            raw = f"[{item}]"
        elif decoded.rejected:
            self._quarantine(identity, decoded.rejected)
            samples = [*decoded.samples, sample]
            raw = _SAMPLES.dump_json(samples).decode("utf-8")
        else:
            samples = [*decoded.samples, sample]
            raw = f"{decoded.raw.rstrip()[:-1]},{item}]"

        self._store.set(KEY_HISTORY.format(identity=identity), raw)
        stored = self._store.get(KEY_HISTORY.format(identity=identity))
        if stored is not None:
            self._decoded[identity] = _DecodedHistory(raw=stored, samples=samples, rejected=[])
        return len(samples)

    def _quarantined(self, identity: str) -> list[Any]:
        raw = self._store.get(KEY_HISTORY_REJECTED.format(identity=identity))
        if raw is None:
            return []
        try:
            items = json.loads(raw)
        except json.JSONDecodeError:
            return [raw]
        return items if isinstance(items, list) else [items]

    def _quarantine(self, identity: str, entries: list[Any]) -> None:
        kept = self._quarantined(identity) + entries
        self._store.set(KEY_HISTORY_REJECTED.format(identity=identity), json.dumps(kept, separators=(",", ":")))
        _logger.warning("Moved %d unreadable history entries for %s aside", len(entries), identity)

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    def tracking_interval(self) -> float | None:
        raw = self._store.get(KEY_TRACKING_INTERVAL)
        if raw is None:
            return None
        try:
            value = float(raw)
        except ValueError:
            return None
        return value if value > 0 else None

    def set_tracking_interval(self, seconds: float) -> None:
        self._store.set(KEY_TRACKING_INTERVAL, repr(float(seconds)))
