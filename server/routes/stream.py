"""Streaming generation endpoint (server-sent events)."""

import asyncio

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import StreamingResponse

from orchestrator.core import WidgetOrchestrator
from server.dependencies import get_orchestrator
from server.schemas.requests import StreamRequest
from server.utils import to_sse
from utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/api", tags=["Stream"])

_DONE = object()


def _error_complete(message: str) -> dict:
    return {"type": "complete", "response": {"textResponse": message, "error": True}}


@router.post("/stream")
async def stream(
    request: StreamRequest,
    orchestrator: WidgetOrchestrator = Depends(get_orchestrator),
):
    """
    Run the generation pipeline and stream its events as SSE frames.

    The pipeline runs in a worker thread; events are handed to the event loop
    through an asyncio queue. The stream always ends with one ``complete``.
    """
    message = request.message.strip()
    if not message:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="message must not be empty")

    loop = asyncio.get_running_loop()
    queue: asyncio.Queue = asyncio.Queue()

    def on_update(event: dict) -> None:
        loop.call_soon_threadsafe(queue.put_nowait, event)

    def worker() -> None:
        try:
            orchestrator.run(message, on_update, model=request.model, data_mode=request.data_mode)
        except Exception as exc:
            logger.exception("Stream pipeline crashed")
            on_update(_error_complete(str(exc) or "Error generating widget"))
        finally:
            loop.call_soon_threadsafe(queue.put_nowait, _DONE)

    async def event_stream():
        task = asyncio.create_task(asyncio.to_thread(worker))
        completed = False
        while True:
            event = await queue.get()
            if event is _DONE:
                break
            if completed:
                continue
            if event.get("type") == "complete":
                completed = True
            yield to_sse(event)
        await task
        if not completed:
            logger.error("Pipeline finished without a complete event")
            yield to_sse(_error_complete("Error generating widget"))

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )
