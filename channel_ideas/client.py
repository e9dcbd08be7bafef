"""Synchronous consumer for the POST /api/v1/analyze event stream.

Uses httpx.Client so it can be driven from scripts or a UI loop without an
async runtime. Frames are decoded as they arrive.
"""

import json
from collections.abc import Generator
from typing import Any

import httpx
import structlog

from channel_ideas.core.config import settings
from channel_ideas.core.constants import EventType, StepId, step_rank

logger = structlog.get_logger(__name__)

_DATA_PREFIX = "data: "
_TERMINAL_TYPES = {EventType.COMPLETE.value, EventType.ERROR.value}


def parse_sse_line(line: str) -> dict[str, Any] | None:
    """Decode one `data: {...}` line into an envelope; None for anything else."""
    if not line.startswith(_DATA_PREFIX):
        return None
    try:
        envelope = json.loads(line[len(_DATA_PREFIX) :])
    except json.JSONDecodeError as exc:
        logger.warning("client.sse_parse_error", error=str(exc), line_preview=line[:120])
        return None
    if not isinstance(envelope, dict) or "type" not in envelope:
        return None
    return envelope


class ProgressTracker:
    """
    Progress rows for one analysis, as a UI would show them.

    Starts with the local `starting` row. Each progress event replaces the row
    for its step (or adds one) and rows are kept in display order, so the two
    stage-4 announcements land in the same place whichever arrives first.
    """

    def __init__(self) -> None:
        self.rows: list[dict[str, Any]] = [
            {
                "step": StepId.STARTING.value,
                "message": "Starting analysis...",
                "completed": False,
                "data": None,
            }
        ]
        self.result: dict[str, Any] | None = None
        self.error: str | None = None

    @property
    def finished(self) -> bool:
        return self.result is not None or self.error is not None

    @property
    def steps(self) -> list[str]:
        return [row["step"] for row in self.rows]

    def update(self, envelope: dict[str, Any]) -> None:
        event_type = envelope.get("type")
        data = envelope.get("data") or {}
        if event_type == EventType.PROGRESS.value:
            self._upsert(data)
        elif event_type == EventType.COMPLETE.value:
            self.result = data
        elif event_type == EventType.ERROR.value:
            self.error = str(data.get("message") or "An error occurred")

    def _upsert(self, data: dict[str, Any]) -> None:
        step = data.get("step")
        if not step:
            return
        row = {
            "step": step,
            "message": data.get("message", ""),
            "completed": True,
            "data": data.get("data"),
        }
        self.rows = [existing for existing in self.rows if existing["step"] != step]
        self.rows.append(row)
        self.rows.sort(key=lambda r: step_rank(r["step"]))


def stream_analysis(
    url: str, base_url: str | None = None
) -> Generator[dict[str, Any], None, None]:
    """
    Stream decoded envelopes from POST /api/v1/analyze.

    Stops after the first `complete` or `error` envelope. Connection and HTTP
    failures are yielded as a single `error` envelope rather than raised.
    """
    endpoint = f"{(base_url or settings.API_BASE_URL).rstrip('/')}/api/v1/analyze"
    try:
        with httpx.Client(timeout=None) as client:
            with client.stream(
                "POST",
                endpoint,
                headers={"Content-Type": "application/json", "Accept": "text/event-stream"},
                json={"url": url},
            ) as response:
                response.raise_for_status()
                for raw_line in response.iter_lines():
                    envelope = parse_sse_line(raw_line)
                    if envelope is None:
                        continue
                    yield envelope
                    if envelope["type"] in _TERMINAL_TYPES:
                        return
    except httpx.HTTPStatusError as exc:
        logger.warning("client.stream_analysis.http_error", error=str(exc))
        yield {
            "type": EventType.ERROR.value,
            "data": {"message": f"API error {exc.response.status_code}"},
        }
        return
    except httpx.HTTPError as exc:
        logger.warning("client.stream_analysis.connection_error", error=str(exc))
        yield {
            "type": EventType.ERROR.value,
            "data": {"message": f"Connection error: {exc}"},
        }
        return

    logger.warning("client.stream_analysis.no_terminal_event")
    yield {"type": EventType.ERROR.value, "data": {"message": "Stream ended unexpectedly"}}
