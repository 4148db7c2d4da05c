"""Collector response models."""

from __future__ import annotations

from typing import Any

from pydantic import field_validator

from geoflow.models._base import GeoflowBaseModel


class PushReceipt(GeoflowBaseModel):
    """Acknowledgement returned by the collector for a pushed sample."""

    id: str

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> Any:
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value
