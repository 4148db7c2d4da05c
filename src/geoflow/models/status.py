"""Status/debug event models."""

from __future__ import annotations

from enum import StrEnum

from pydantic import Field

from geoflow.models._base import GeoflowBaseModel, UtcDatetime, utcnow


class Severity(StrEnum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"
    SYSTEM = "system"


class DebugEntry(GeoflowBaseModel):
    message: str
    severity: Severity = Severity.INFO
    timestamp: UtcDatetime = Field(default_factory=utcnow)


class StatusLine(GeoflowBaseModel):
    """Latest notable event, shown apart from the full debug log."""

    message: str
    severity: Severity = Severity.INFO
    updated_at: UtcDatetime = Field(default_factory=utcnow)
