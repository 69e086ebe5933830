"""Server-Sent Events stream of job documents."""

import asyncio
import json
import logging
from typing import AsyncGenerator

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import StreamingResponse

from duet.api.dependencies import get_backend, get_channel
from duet.backend.memory import InMemoryProcessingBackend, InMemoryUpdateChannel
from duet.models.job import JobScope

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Stream"])

_KEEPALIVE_SECONDS = 15.0


def _frame(doc: dict) -> str:
    return f"data: {json.dumps(doc)}\n\n"


async def _event_generator(
    request: Request,
    backend: InMemoryProcessingBackend,
    channel: InMemoryUpdateChannel,
    scope: JobScope,
    user_id: str,
) -> AsyncGenerator[str, None]:
    """Yield the scope's current documents, then every later mutation."""
    owner = user_id if scope.is_personal else None
    stream = channel.subscribe(scope)
    next_doc = asyncio.ensure_future(anext(stream))
    logger.info("SSE subscriber connected (user=%s, scope=%s)", user_id, scope)

    try:
        yield f"event: connected\ndata: {json.dumps({'user_id': user_id, 'scope': str(scope)})}\n\n"
        for job in backend.list_jobs(scope, owner):
            yield _frame(job.to_document())

        while True:
            if await request.is_disconnected():
                break
            done, _ = await asyncio.wait({next_doc}, timeout=_KEEPALIVE_SECONDS)
            if not done:
                yield ": keepalive\n\n"
                continue
            try:
                doc = next_doc.result()
            except StopAsyncIteration:
                break
            next_doc = asyncio.ensure_future(anext(stream))
            if owner is not None and doc.get("user_id") != owner:
                continue
            yield _frame(doc)

    except asyncio.CancelledError:
        pass
    finally:
        next_doc.cancel()
        try:
            await next_doc
        except (asyncio.CancelledError, StopAsyncIteration):
            pass
        await stream.aclose()
        logger.info("SSE subscriber disconnected (user=%s, scope=%s)", user_id, scope)


@router.get("/processing/stream")
async def stream_jobs(
    request: Request,
    user_id: str = Query(..., min_length=1),
    group_id: str | None = None,
    backend: InMemoryProcessingBackend = Depends(get_backend),
    channel: InMemoryUpdateChannel = Depends(get_channel),
):
    """Stream job documents for the user's personal list or one group."""
    return StreamingResponse(
        _event_generator(request, backend, channel, JobScope(group_id), user_id),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",  # Disable nginx buffering
            "Connection": "keep-alive",
        },
    )
