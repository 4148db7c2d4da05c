"""Session state: the single owner of tracking/identity state.

Other components consult the ``check_*`` guards before mutating anything
and turn a reported :class:`StateErrorKind` into a logged no-op.  The
transition methods themselves refuse illegal moves with
:class:`GeoflowStateError`.
"""

from __future__ import annotations

from geoflow.exceptions import GeoflowStateError, StateErrorKind
from geoflow.models.identity import IdentityAcceptance
from geoflow.models.location import PermissionState, Sample
from geoflow.models.session import TrackingState

_TRANSITIONS: dict[TrackingState, frozenset[TrackingState]] = {
    TrackingState.IDLE: frozenset({TrackingState.STARTING}),
    TrackingState.STARTING: frozenset({TrackingState.ACTIVE, TrackingState.IDLE}),
    TrackingState.ACTIVE: frozenset({TrackingState.STOPPING, TrackingState.IDLE}),
    TrackingState.STOPPING: frozenset({TrackingState.IDLE}),
}


class SessionState:
    """Mutable tracking session aggregate.

    Holds the accepted identity, the tracking state machine, the session
    counter for the identity and the latest sample/error.
    """

    def __init__(self) -> None:
        self._acceptance: IdentityAcceptance | None = None
        self._tracking_state = TrackingState.IDLE
        self._session_count = 0
        self.permission = PermissionState.UNKNOWN
        self.last_sample: Sample | None = None
        self.last_error: str | None = None

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def identity(self) -> str | None:
        return self._acceptance.identity if self._acceptance is not None else None

    @property
    def acceptance(self) -> IdentityAcceptance | None:
        return self._acceptance

    @property
    def initialized(self) -> bool:
        return self._acceptance is not None

    @property
    def tracking_state(self) -> TrackingState:
        return self._tracking_state

    @property
    def session_count(self) -> int:
        return self._session_count

    @property
    def is_tracking(self) -> bool:
        return self._tracking_state is TrackingState.ACTIVE

    # ------------------------------------------------------------------
    # Guards
    # ------------------------------------------------------------------

    def check_submit(self) -> StateErrorKind | None:
        if self._acceptance is not None:
            return StateErrorKind.ALREADY_ACTIVE
        return None

    def check_start(self) -> StateErrorKind | None:
        if self._acceptance is None:
            return StateErrorKind.NOT_INITIALIZED
        if self._tracking_state is not TrackingState.IDLE:
            return StateErrorKind.ALREADY_ACTIVE
        return None

    def check_stop(self) -> StateErrorKind | None:
        if self._tracking_state is not TrackingState.ACTIVE:
            return StateErrorKind.NOT_ACTIVE
        return None

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def accept_identity(self, acceptance: IdentityAcceptance, session_count: int) -> None:
        if self._acceptance is not None:
            raise GeoflowStateError(
                f"Identity already set to {self._acceptance.identity!r}",
                kind=StateErrorKind.ALREADY_ACTIVE,
            )
        self._acceptance = acceptance
        self._session_count = max(0, session_count)

    def record_session_start(self) -> int:
        """Count one successful tracking start and return the new total."""
        if self._tracking_state is not TrackingState.ACTIVE:
            raise GeoflowStateError("Session start recorded while not active", kind=StateErrorKind.NOT_ACTIVE)
        self._session_count += 1
        return self._session_count

    def begin_start(self) -> None:
        if self._acceptance is None:
            raise GeoflowStateError("Identity not set", kind=StateErrorKind.NOT_INITIALIZED)
        self._transition(TrackingState.STARTING)

    def mark_active(self) -> None:
        self._transition(TrackingState.ACTIVE)

    def begin_stop(self) -> None:
        self._transition(TrackingState.STOPPING)

    def mark_idle(self) -> None:
        self._transition(TrackingState.IDLE)

    def _transition(self, target: TrackingState) -> None:
        if target not in _TRANSITIONS[self._tracking_state]:
            kind = StateErrorKind.ALREADY_ACTIVE if target is TrackingState.STARTING else StateErrorKind.NOT_ACTIVE
            raise GeoflowStateError(
                f"Illegal tracking transition {self._tracking_state.value} -> {target.value}",
                kind=kind,
            )
        self._tracking_state = target
