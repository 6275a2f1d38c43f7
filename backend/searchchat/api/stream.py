"""Server-sent events response channel

One stream carries the generated text, tool activity, out-of-band data
frames and, when something breaks, a single error frame. The HTTP
response itself always completes normally.
"""
import json
from typing import Any, AsyncIterator, Callable, Dict

from fastapi.responses import StreamingResponse

from ..utils.structured_logger import get_logger

logger = get_logger(__name__)

ERROR_MESSAGE = "Oops, an error occured!"

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def sse_frame(payload: Dict[str, Any]) -> str:
    """Encode one frame as an SSE data line"""
    return f"data: {json.dumps(payload, ensure_ascii=False, default=str)}\n\n"


def default_on_error(error: BaseException) -> str:
    logger.error("Chat stream failed", error=f"{type(error).__name__}: {error}", exc_info=error)
    return ERROR_MESSAGE


async def guarded_stream(
    frames: AsyncIterator[Dict[str, Any]],
    on_error: Callable[[BaseException], str] = default_on_error,
) -> AsyncIterator[str]:
    """
    Encode frames, turning any failure into one error frame

    Cancellation (client disconnect) is not a failure and propagates.
    """
    try:
        async for frame in frames:
            yield sse_frame(frame)
    except Exception as e:
        yield sse_frame({"type": "error", "message": on_error(e)})


def create_stream_response(
    frames: AsyncIterator[Dict[str, Any]],
    on_error: Callable[[BaseException], str] = default_on_error,
) -> StreamingResponse:
    return StreamingResponse(
        guarded_stream(frames, on_error),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )
