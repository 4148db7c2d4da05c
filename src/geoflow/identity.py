"""Identity validation and reservation.

A candidate identity is checked in two tiers:

1. The collector's history lookup is authoritative when it answers.
2. When the collector cannot be reached (network error, timeout, non-2xx,
   unparseable body), the local history decides.  An identity with local
   records is refused; otherwise it is accepted in offline mode so a
   collector outage never blocks a legitimate new user.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime

from geoflow._api.history import fetch_history_count
from geoflow._constants import IDENTITY_MAX_LENGTH, IDENTITY_MIN_LENGTH, IDENTITY_PATTERN
from geoflow._transport import Transport
from geoflow.config import GeoflowConfig
from geoflow.exceptions import (
    FormatViolation,
    GeoflowTransportError,
    IdentityAlreadyTakenError,
    IdentityFormatError,
    TakenSource,
)
from geoflow.models._base import utcnow
from geoflow.models.identity import IdentityAcceptance, IdentityMode
from geoflow.models.status import Severity
from geoflow.session import SessionState
from geoflow.status import StatusSink
from geoflow.storage import TrackerStorage

_logger = logging.getLogger(__name__)


def validate_identity(candidate: str) -> str:
    """Return the stripped *candidate* if it is a well-formed identity.

    Raises
    ------
    IdentityFormatError
        With ``reason`` set to the first rule the candidate breaks.
    """
    value = candidate.strip()
    if not value:
        raise IdentityFormatError("Please enter a User ID", candidate=value, reason=FormatViolation.EMPTY)
    if not IDENTITY_PATTERN.fullmatch(value):
        raise IdentityFormatError(
            "Only letters, numbers, underscores, and hyphens allowed",
            candidate=value,
            reason=FormatViolation.CHARSET,
        )
    if len(value) < IDENTITY_MIN_LENGTH:
        raise IdentityFormatError(
            f"User ID must be at least {IDENTITY_MIN_LENGTH} characters",
            candidate=value,
            reason=FormatViolation.TOO_SHORT,
        )
    if len(value) > IDENTITY_MAX_LENGTH:
        raise IdentityFormatError(
            f"User ID must not exceed {IDENTITY_MAX_LENGTH} characters",
            candidate=value,
            reason=FormatViolation.TOO_LONG,
        )
    return value


class IdentityRegistry:
    def __init__(
        self,
        config: GeoflowConfig,
        transport: Transport,
        storage: TrackerStorage,
        session: SessionState,
        status: StatusSink,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._config = config
        self._transport = transport
        self._storage = storage
        self._session = session
        self._status = status
        self._clock = clock

    async def submit(self, candidate: str) -> IdentityAcceptance:
        """Validate, check availability of, and reserve *candidate*.

        Returns the acceptance record.  Submitting a different identity
        while one is already held is a logged no-op that returns the held
        acceptance.

        Raises
        ------
        IdentityFormatError
            The candidate breaks the charset/length rule.  No request is made.
        IdentityAlreadyTakenError
            The collector, the local history or the current session already
            knows the identity.
        """
        try:
            identity = validate_identity(candidate)
        except IdentityFormatError as exc:
            self._status.report(str(exc), Severity.ERROR)
            raise

        held = self._resubmission(identity)
        if held is not None:
            return held

        self._status.debug(f"Checking User ID availability: {identity}")
        self._status.set_status("Checking User ID...")

        try:
            remote_count = await fetch_history_count(self._transport, self._config, identity)
        except GeoflowTransportError as exc:
            self._status.debug(f"Could not verify User ID online: {exc}", Severity.WARNING)
            held = self._resubmission(identity)
            return held if held is not None else self._accept_offline(identity)

        # Another submission may have completed while the lookup was in flight.
        held = self._resubmission(identity)
        if held is not None:
            return held

        if remote_count > 0:
            message = (
                f"User ID '{identity}' already exists with {remote_count} tracking records. "
                "Please use a different User ID."
            )
            self._status.report(message, Severity.ERROR)
            raise IdentityAlreadyTakenError(
                message,
                candidate=identity,
                count=remote_count,
                source=TakenSource.REMOTE,
            )

        acceptance = self._accept(identity, IdentityMode.ONLINE)
        self._status.debug(f"User ID '{identity}' verified and set", Severity.SUCCESS)
        self._status.set_status("Ready to track", Severity.SUCCESS)
        return acceptance

    def _accept_offline(self, identity: str) -> IdentityAcceptance:
        local_count = self._storage.history_size(identity)
        if local_count > 0:
            message = f"User ID '{identity}' already used locally. Please use a different User ID."
            self._status.report(message, Severity.ERROR)
            raise IdentityAlreadyTakenError(
                message,
                candidate=identity,
                count=local_count,
                source=TakenSource.LOCAL,
            )

        acceptance = self._accept(identity, IdentityMode.OFFLINE)
        self._status.debug(f"User ID set to '{identity}' (offline validation)")
        self._status.set_status("Offline mode - Ready to track", Severity.WARNING)
        return acceptance

    def _accept(self, identity: str, mode: IdentityMode) -> IdentityAcceptance:
        acceptance = IdentityAcceptance(identity=identity, mode=mode, accepted_at=self._clock())
        self._storage.set_current_identity(identity)
        self._session.accept_identity(acceptance, self._storage.session_count(identity))
        _logger.info("Identity %s accepted (%s)", identity, mode.value)
        return acceptance

    def _resubmission(self, identity: str) -> IdentityAcceptance | None:
        """Handle a submission made while an identity is already held.

        Returns ``None`` when no identity is held yet.
        """
        held = self._session.acceptance
        if held is None:
            return None
        if held.identity == identity:
            count = self._storage.history_size(identity)
            message = f"User ID '{identity}' is already in use by this session"
            self._status.report(message, Severity.ERROR)
            raise IdentityAlreadyTakenError(
                message,
                candidate=identity,
                count=count,
                source=TakenSource.SESSION,
            )
        self._status.debug(
            f"User ID already set to '{held.identity}'; ignoring '{identity}'",
            Severity.WARNING,
        )
        return held
