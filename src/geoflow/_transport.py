"""JSON-over-HTTP transport for the collector API."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import Any, Protocol

import aiohttp

from geoflow._constants import USER_AGENT
from geoflow.exceptions import GeoflowTransportError, NetworkErrorKind

_logger = logging.getLogger(__name__)


class Transport(Protocol):
    """Structural transport interface used by endpoint modules.

    Having a protocol here makes it easy to pass test doubles while
    keeping the production implementation (`HttpTransport`) concrete.
    """

    async def get_json(self, url: str, *, timeout: float | None = None) -> Any:
        ...

    async def post_json(self, url: str, payload: Mapping[str, Any], *, timeout: float | None = None) -> Any:
        ...


class HttpTransport:
    """aiohttp transport that maps every failure onto :class:`GeoflowTransportError`."""

    def __init__(self, http_session: aiohttp.ClientSession) -> None:
        self._http = http_session

    async def get_json(self, url: str, *, timeout: float | None = None) -> Any:
        return await self._request("GET", url, timeout=timeout)

    async def post_json(self, url: str, payload: Mapping[str, Any], *, timeout: float | None = None) -> Any:
        return await self._request("POST", url, payload=payload, timeout=timeout)

    async def _request(
        self,
        method: str,
        url: str,
        *,
        payload: Mapping[str, Any] | None = None,
        timeout: float | None = None,
    ) -> Any:
        headers: dict[str, str] = {
            "accept": "application/json",
            "user-agent": USER_AGENT,
        }
        body: str | None = None
        if payload is not None:
            headers["content-type"] = "application/json"
            body = json.dumps(payload, separators=(",", ":"))

        kwargs: dict[str, Any] = {"data": body, "headers": headers}
        if timeout is not None:
            kwargs["timeout"] = aiohttp.ClientTimeout(total=timeout)

        _logger.debug("%s %s", method, url)

        try:
            async with self._http.request(method, url, **kwargs) as resp:
                raw = await resp.read()
                if not 200 <= resp.status < 300:
                    raise GeoflowTransportError(
                        f"HTTP {resp.status}: {resp.reason or ''}".rstrip(),
                        kind=NetworkErrorKind.BAD_STATUS,
                        status_code=resp.status,
                        endpoint=url,
                    )
        except GeoflowTransportError:
            raise
        except TimeoutError as exc:
            raise GeoflowTransportError(
                f"Request to {url} timed out",
                kind=NetworkErrorKind.TIMEOUT,
                endpoint=url,
            ) from exc
        except aiohttp.ClientError as exc:
            raise GeoflowTransportError(
                f"Request to {url} failed: {exc}",
                kind=NetworkErrorKind.UNREACHABLE,
                endpoint=url,
            ) from exc

        if not raw.strip():
            return None

        try:
            return json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise GeoflowTransportError(
                f"Invalid JSON from {url}: {raw[:200]!r}",
                kind=NetworkErrorKind.MALFORMED_RESPONSE,
                endpoint=url,
            ) from exc
