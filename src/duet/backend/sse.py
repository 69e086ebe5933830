"""Server-sent-events push channel for job documents.

The channel owns reconnection: a dropped or finished stream is reopened with
exponential backoff until ``unsubscribe`` is called for the scope.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator, Awaitable, Callable

import httpx

from duet.backend.base import JobUpdateChannel
from duet.errors.exceptions import BackendError
from duet.models.job import JobScope

logger = logging.getLogger(__name__)

STREAM_PATH = "/processing/stream"

# SSE event names that carry job documents
_JOB_EVENTS = {None, "message", "job"}


def _decode(data_lines: list[str], event_name: str | None) -> dict | None:
    payload = "\n".join(data_lines)
    if event_name not in _JOB_EVENTS or not payload:
        return None
    try:
        doc = json.loads(payload)
    except json.JSONDecodeError:
        logger.warning("Skipping non-JSON job event: %.80s", payload)
        return None
    if not isinstance(doc, dict):
        logger.warning("Skipping non-object job event: %.80s", payload)
        return None
    return doc


async def iter_sse_documents(lines: AsyncIterator[str]) -> AsyncIterator[dict]:
    """Decode an SSE line stream into JSON object payloads.

    Comment lines (``: keepalive``) are skipped, multi-line ``data`` fields are
    joined, and events named anything other than ``message``/``job`` are
    ignored. Payloads that are not JSON objects are logged and skipped.
    """
    data_lines: list[str] = []
    event_name: str | None = None

    async for raw in lines:
        line = raw.rstrip("\r")
        if not line:
            doc = _decode(data_lines, event_name)
            data_lines, event_name = [], None
            if doc is not None:
                yield doc
            continue
        if line.startswith(":"):
            continue
        field, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if field == "data":
            data_lines.append(value)
        elif field == "event":
            event_name = value or None

    if data_lines:
        doc = _decode(data_lines, event_name)
        if doc is not None:
            yield doc


class SSEJobUpdateChannel(JobUpdateChannel):
    channel_type = "sse"

    def __init__(
        self,
        client: httpx.AsyncClient,
        owner_id: str,
        *,
        backoff_initial: float = 1.0,
        backoff_max: float = 30.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._client = client
        self.owner_id = owner_id
        self.backoff_initial = backoff_initial
        self.backoff_max = backoff_max
        self._sleep = sleep
        self._stopped: set[JobScope] = set()
        self.connect_count = 0

    def _params(self, scope: JobScope) -> dict[str, str]:
        params = {"user_id": self.owner_id}
        if scope.group_id is not None:
            params["group_id"] = scope.group_id
        return params

    async def subscribe(self, scope: JobScope) -> AsyncIterator[dict]:
        self._stopped.discard(scope)
        delay = self.backoff_initial

        while scope not in self._stopped:
            try:
                async with self._client.stream(
                    "GET", STREAM_PATH, params=self._params(scope), timeout=httpx.Timeout(10.0, read=None)
                ) as resp:
                    if resp.status_code >= 400:
                        raise BackendError(f"Job stream refused (HTTP {resp.status_code})", status_code=resp.status_code)
                    self.connect_count += 1
                    delay = self.backoff_initial
                    logger.info("Job stream connected for %s", scope)
                    async for doc in iter_sse_documents(resp.aiter_lines()):
                        if scope in self._stopped:
                            return
                        yield doc
                logger.info("Job stream for %s ended", scope)
            except (httpx.HTTPError, BackendError) as exc:
                logger.warning("Job stream for %s dropped: %s", scope, exc)

            if scope in self._stopped:
                return
            logger.info("Reconnecting job stream for %s in %.1fs", scope, delay)
            await self._sleep(delay)
            delay = min(delay * 2, self.backoff_max)

    async def unsubscribe(self, scope: JobScope) -> None:
        self._stopped.add(scope)
