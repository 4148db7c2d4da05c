"""Identity acceptance model."""

from __future__ import annotations

from enum import StrEnum

from pydantic import Field

from geoflow.models._base import GeoflowBaseModel, UtcDatetime, utcnow


class IdentityMode(StrEnum):
    """How an identity was verified.

    ``OFFLINE`` means the collector could not be reached and only the
    local history was consulted.
    """

    ONLINE = "online"
    OFFLINE = "offline"


class IdentityAcceptance(GeoflowBaseModel):
    identity: str
    mode: IdentityMode
    accepted_at: UtcDatetime = Field(default_factory=utcnow)

    @property
    def degraded(self) -> bool:
        return self.mode is IdentityMode.OFFLINE
