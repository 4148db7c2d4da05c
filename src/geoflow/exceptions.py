"""Custom exception hierarchy for geoflow."""

from __future__ import annotations

from enum import IntEnum, StrEnum


class FormatViolation(StrEnum):
    """Why a candidate identity failed the format check."""

    EMPTY = "empty"
    CHARSET = "charset"
    TOO_SHORT = "too_short"
    TOO_LONG = "too_long"


class TakenSource(StrEnum):
    """Which tier reported an identity as already in use."""

    REMOTE = "remote"
    LOCAL = "local"
    SESSION = "session"


class ProviderErrorCode(IntEnum):
    """Location provider error codes.

    Codes the provider sends that have no mapped member resolve to
    ``UNKNOWN`` instead of raising ``ValueError``.
    """

    UNKNOWN = -1
    PERMISSION_DENIED = 1
    POSITION_UNAVAILABLE = 2
    TIMEOUT = 3

    @classmethod
    def _missing_(cls, value: object) -> ProviderErrorCode:
        return cls.UNKNOWN


class NetworkErrorKind(StrEnum):
    UNREACHABLE = "unreachable"
    TIMEOUT = "timeout"
    BAD_STATUS = "bad_status"
    MALFORMED_RESPONSE = "malformed_response"


class StateErrorKind(StrEnum):
    NOT_INITIALIZED = "not_initialized"
    ALREADY_ACTIVE = "already_active"
    NOT_ACTIVE = "not_active"


class GeoflowError(Exception):
    """Base exception for all geoflow errors."""


class GeoflowConfigError(GeoflowError):
    """Invalid or missing configuration."""


class GeoflowValidationError(GeoflowError):
    """A candidate identity was rejected."""

    def __init__(self, message: str, *, candidate: str = "") -> None:
        self.candidate = candidate
        super().__init__(message)


class IdentityFormatError(GeoflowValidationError):
    """Candidate identity does not match the charset/length rule."""

    def __init__(self, message: str, *, candidate: str = "", reason: FormatViolation) -> None:
        self.reason = reason
        super().__init__(message, candidate=candidate)


class IdentityAlreadyTakenError(GeoflowValidationError):
    """Candidate identity already has tracking records.

    ``count`` is the number of prior records the reporting tier knows
    about.  ``source`` tells whether the collector, the local history or
    the current session made the call.
    """

    def __init__(
        self,
        message: str,
        *,
        candidate: str = "",
        count: int = 0,
        source: TakenSource = TakenSource.REMOTE,
    ) -> None:
        self.count = count
        self.source = source
        super().__init__(message, candidate=candidate)


class GeoflowProviderError(GeoflowError):
    """Location or permission provider failure."""

    def __init__(self, message: str, *, code: int = ProviderErrorCode.UNKNOWN) -> None:
        self.code = ProviderErrorCode(code)
        super().__init__(message)


class GeoflowTransportError(GeoflowError):
    """HTTP-level failure (network, timeout, non-2xx, invalid JSON)."""

    def __init__(
        self,
        message: str,
        *,
        kind: NetworkErrorKind,
        status_code: int | None = None,
        endpoint: str = "",
    ) -> None:
        self.kind = kind
        self.status_code = status_code
        self.endpoint = endpoint
        super().__init__(message)


class GeoflowStateError(GeoflowError):
    """Operation attempted in a session state that does not allow it.

    Public entry points check the session guards first and turn a
    violation into a logged no-op, so this only escapes on misuse of the
    internal transition API or of an uninitialized tracker.
    """

    def __init__(self, message: str, *, kind: StateErrorKind) -> None:
        self.kind = kind
        super().__init__(message)
