"""Position models: raw provider coordinates and normalized samples."""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import AliasChoices, Field, field_serializer, field_validator

from geoflow.models._base import GeoflowBaseModel, UtcDatetime, format_timestamp, safe_float


class PermissionState(StrEnum):
    GRANTED = "granted"
    DENIED = "denied"
    PROMPT = "prompt"
    UNKNOWN = "unknown"

    @classmethod
    def _missing_(cls, value: object) -> PermissionState:
        return cls.UNKNOWN


class Coordinates(GeoflowBaseModel):
    """Raw coordinate payload handed over by a location provider.

    Parameters
    ----------
    latitude : float
        Latitude in degrees.
    longitude : float
        Longitude in degrees.
    accuracy : float
        Confidence radius in meters.
    altitude : float or None
        Altitude in meters, when the provider knows it.
    heading : float or None
        Direction of travel in degrees from true north.
    speed : float or None
        Ground speed in meters per second.
    """

    latitude: float = Field(ge=-90.0, le=90.0, validation_alias=AliasChoices("latitude", "lat"))
    longitude: float = Field(ge=-180.0, le=180.0, validation_alias=AliasChoices("longitude", "lon", "lng"))
    accuracy: float = Field(ge=0.0)
    altitude: float | None = None
    heading: float | None = Field(default=None, validation_alias=AliasChoices("heading", "course", "direction"))
    speed: float | None = None

    @field_validator("altitude", "heading", "speed", mode="before")
    @classmethod
    def _coerce_optional_floats(cls, value: Any) -> float | None:
        return safe_float(value)


class Sample(GeoflowBaseModel):
    """One normalized position reading.

    The full reading is kept locally; only :meth:`push_payload` is sent to
    the collector, which leaves out altitude, heading and speed.
    """

    latitude: float
    longitude: float
    accuracy: float = Field(ge=0.0)
    altitude: float | None = None
    heading: float | None = None
    speed: float | None = None
    timestamp: UtcDatetime

    @classmethod
    def from_coordinates(cls, coords: Coordinates, timestamp: UtcDatetime) -> Sample:
        return cls(
            latitude=coords.latitude,
            longitude=coords.longitude,
            accuracy=coords.accuracy,
            altitude=coords.altitude,
            heading=coords.heading,
            speed=coords.speed,
            timestamp=timestamp,
        )

    @field_serializer("timestamp")
    def _serialize_timestamp(self, value: UtcDatetime) -> str:
        return format_timestamp(value)

    def push_payload(self, identity: str) -> dict[str, Any]:
        return {
            "user_id": identity,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "accuracy": self.accuracy,
            "timestamp": format_timestamp(self.timestamp),
        }

    def describe(self) -> str:
        return f"{self.latitude:.6f}, {self.longitude:.6f} (±{self.accuracy:.0f}m)"
