"""Sample delivery to the remote collector.

Every sample is appended to the identity's local log exactly once, at
the moment it is handed over, so the log keeps provider arrival order.
The push itself runs as an independent task.  Its outcome only decides
which status is reported; a failed push is not retried.
"""

from __future__ import annotations

import asyncio
import logging

from pydantic import BaseModel, ConfigDict

from geoflow._api.push import push_sample
from geoflow._transport import Transport
from geoflow.config import GeoflowConfig
from geoflow.exceptions import GeoflowTransportError, NetworkErrorKind
from geoflow.models.location import Sample
from geoflow.models.status import Severity
from geoflow.status import StatusSink
from geoflow.storage import TrackerStorage

_logger = logging.getLogger(__name__)


class DeliveryOutcome(BaseModel):
    """Result of one push attempt."""

    model_config = ConfigDict(frozen=True)

    sample: Sample
    identity: str
    delivered: bool
    record_id: str | None = None
    error_kind: NetworkErrorKind | None = None
    error: str | None = None


class DeliveryPipeline:
    def __init__(
        self,
        config: GeoflowConfig,
        transport: Transport,
        storage: TrackerStorage,
        status: StatusSink,
    ) -> None:
        self._config = config
        self._transport = transport
        self._storage = storage
        self._status = status
        self._inflight: set[asyncio.Task[DeliveryOutcome]] = set()
        self._finished: list[DeliveryOutcome] = []
        self.delivered_count = 0
        self.failed_count = 0

    @property
    def pending(self) -> int:
        return len(self._inflight)

    def local_log(self, identity: str) -> list[Sample]:
        return self._storage.history(identity)

    def deliver(self, sample: Sample, identity: str) -> None:
        """Record *sample* locally and push it in the background.

        Must be called from the event loop.  Never raises for remote or
        local storage failures; those are reported on the status sink and
        the push is still attempted.
        """
        try:
            size = self._storage.append_history(identity, sample)
        except OSError as exc:
            self._status.debug(f"Local log write failed: {exc}", Severity.ERROR)
        else:
            _logger.debug("Sample logged locally for %s (%d total)", identity, size)

        task = asyncio.get_running_loop().create_task(self.send(sample, identity))
        self._inflight.add(task)
        task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Task[DeliveryOutcome]) -> None:
        self._inflight.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            _logger.error("Delivery task crashed", exc_info=exc)
            return
        self._finished.append(task.result())

    async def send(self, sample: Sample, identity: str) -> DeliveryOutcome:
        """Push *sample* to the collector and report the outcome.

        Does not touch the local log.
        """
        url = self._config.push_url
        self._status.debug(f"Sending to: {url}")
        try:
            receipt = await push_sample(self._transport, self._config, sample, identity)
        except GeoflowTransportError as exc:
            self.failed_count += 1
            self._status.debug(f"Backend error: {exc} (URL: {exc.endpoint or url})", Severity.WARNING)
            return DeliveryOutcome(
                sample=sample,
                identity=identity,
                delivered=False,
                error_kind=exc.kind,
                error=str(exc),
            )

        self.delivered_count += 1
        self._status.debug(f"Data sent successfully (ID: {receipt.id})", Severity.SUCCESS)
        return DeliveryOutcome(sample=sample, identity=identity, delivered=True, record_id=receipt.id)

    async def drain(self) -> list[DeliveryOutcome]:
        """Wait for in-flight pushes and return every outcome collected so far."""
        while self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)
        finished, self._finished = self._finished, []
        return finished
