import json

import structlog
from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from channel_ideas.models.schemas import AnalyzeRequest
from channel_ideas.services.pipeline import Collaborators, stream_pipeline

logger = structlog.get_logger(__name__)

router = APIRouter()


def get_collaborators() -> Collaborators:
    """Production collaborators; overridden in tests via app.dependency_overrides."""
    return Collaborators()


async def _read_analyze_request(request: Request) -> AnalyzeRequest:
    """Parse the body leniently: anything that is not a JSON object means "no URL"."""
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        logger.warning("analyze.invalid_json_body")
        body = None
    if not isinstance(body, dict):
        return AnalyzeRequest()
    return AnalyzeRequest.model_validate(body)


@router.post("", response_class=StreamingResponse)
async def analyze(
    request: Request,
    collaborators: Collaborators = Depends(get_collaborators),
):
    """
    Stream a channel analysis via SSE.

    Every frame is `data: {"type": "progress" | "complete" | "error", "data": ...}`.
    Input problems are reported as an `error` frame, never as an HTTP error, so
    the client has a single code path for failures.
    """
    payload = await _read_analyze_request(request)
    logger.info(
        "analyze.request",
        url_preview=str(payload.url)[:120] if payload.url is not None else None,
    )

    return StreamingResponse(
        stream_pipeline(payload.url, collaborators),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )
