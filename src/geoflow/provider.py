"""Location provider and permission service interfaces.

The platform supplies positions through a callback subscription:
``subscribe(on_position, on_error, options) -> handle`` registers a
continuous watch synchronously, ``unsubscribe(handle)`` cancels it and
must tolerate a handle that is already gone.  Callbacks run on the event
loop, in the order the platform emits them.

:class:`PushLocationProvider` implements the interface for hosts that
receive fixes from elsewhere (a GPS daemon bridge, a recorded track) and
push them in with :meth:`~PushLocationProvider.emit`.
"""

from __future__ import annotations

import asyncio
import dataclasses
import itertools
import logging
import time
from collections.abc import Callable, Mapping
from typing import Any, Protocol, TypeAlias

from geoflow.exceptions import GeoflowProviderError, ProviderErrorCode
from geoflow.models.location import Coordinates, PermissionState

_logger = logging.getLogger(__name__)

RawPosition: TypeAlias = Coordinates | Mapping[str, Any]
PositionCallback: TypeAlias = Callable[[RawPosition], None]
ErrorCallback: TypeAlias = Callable[[int], None]
WatchHandle: TypeAlias = int


@dataclasses.dataclass(frozen=True)
class WatchOptions:
    """Options passed to the provider with every subscription.

    ``interval_ms`` is a hint for providers that poll; push-style
    providers may ignore it.
    """

    high_accuracy: bool = True
    timeout_ms: int = 15_000
    max_cache_age_ms: int = 0
    interval_ms: int | None = None


class LocationProvider(Protocol):
    def subscribe(
        self,
        on_position: PositionCallback,
        on_error: ErrorCallback,
        options: WatchOptions,
    ) -> WatchHandle:
        ...

    def unsubscribe(self, handle: WatchHandle) -> None:
        ...

    async def current_position(self, options: WatchOptions) -> RawPosition:
        """Return a single fix or raise :class:`GeoflowProviderError`."""
        ...


class PermissionService(Protocol):
    async def query(self) -> PermissionState:
        ...

    def add_listener(self, callback: Callable[[PermissionState], None]) -> Callable[[], None]:
        """Register *callback* for state changes; returns a function that removes it."""
        ...


@dataclasses.dataclass(slots=True)
class _Watch:
    on_position: PositionCallback
    on_error: ErrorCallback
    options: WatchOptions


class PushLocationProvider:
    """Provider driven by explicit :meth:`emit` / :meth:`fail` calls."""

    def __init__(self, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._ids = itertools.count(1)
        self._watches: dict[WatchHandle, _Watch] = {}
        self._waiters: list[asyncio.Future[RawPosition]] = []
        self._last_fix: tuple[float, RawPosition] | None = None

    @property
    def active_watches(self) -> int:
        return len(self._watches)

    def subscribe(
        self,
        on_position: PositionCallback,
        on_error: ErrorCallback,
        options: WatchOptions,
    ) -> WatchHandle:
        handle = next(self._ids)
        self._watches[handle] = _Watch(on_position, on_error, options)
        _logger.debug("Watch %d registered (%s)", handle, options)
        return handle

    def unsubscribe(self, handle: WatchHandle) -> None:
        if self._watches.pop(handle, None) is None:
            _logger.debug("Watch %d already cleared", handle)

    def emit(self, position: RawPosition) -> None:
        """Hand a fix to every watch and to pending one-shot requests."""
        self._last_fix = (self._clock(), position)
        waiters, self._waiters = self._waiters, []
        for waiter in waiters:
            if not waiter.done():
                waiter.set_result(position)
        for watch in list(self._watches.values()):
            watch.on_position(position)

    def fail(self, code: int) -> None:
        """Report a provider error to every watch and pending request.

        A permission denial also invalidates all watches, as platform
        providers do.
        """
        error_code = ProviderErrorCode(code)
        waiters, self._waiters = self._waiters, []
        for waiter in waiters:
            if not waiter.done():
                waiter.set_exception(GeoflowProviderError(f"Provider error {error_code.name}", code=code))
        watches = list(self._watches.values())
        if error_code is ProviderErrorCode.PERMISSION_DENIED:
            self._watches.clear()
        for watch in watches:
            watch.on_error(code)

    async def current_position(self, options: WatchOptions) -> RawPosition:
        if self._last_fix is not None and options.max_cache_age_ms > 0:
            fixed_at, position = self._last_fix
            if (self._clock() - fixed_at) * 1000 <= options.max_cache_age_ms:
                return position

        waiter: asyncio.Future[RawPosition] = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        try:
            return await asyncio.wait_for(waiter, timeout=options.timeout_ms / 1000)
        except TimeoutError as exc:
            raise GeoflowProviderError("Location request timeout", code=ProviderErrorCode.TIMEOUT) from exc
        finally:
            if waiter in self._waiters:
                self._waiters.remove(waiter)


class StaticPermissionService:
    """Permission service whose state is set by the host."""

    def __init__(self, state: PermissionState = PermissionState.GRANTED) -> None:
        self._state = state
        self._listeners: list[Callable[[PermissionState], None]] = []

    async def query(self) -> PermissionState:
        return self._state

    def add_listener(self, callback: Callable[[PermissionState], None]) -> Callable[[], None]:
        self._listeners.append(callback)

        def _remove() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return _remove

    def set_state(self, state: PermissionState) -> None:
        if state == self._state:
            return
        self._state = state
        for listener in list(self._listeners):
            listener(state)
