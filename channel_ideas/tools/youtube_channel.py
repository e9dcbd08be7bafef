"""YouTube channel lookup using the YouTube Data API v3.

Unlike the other tools this one raises: a channel that cannot be resolved is a
terminal error for the analysis, and the message is shown to the user as-is.
"""

import re
import time
from dataclasses import dataclass

import httpx
import structlog

from channel_ideas.core.config import settings
from channel_ideas.core.constants import PipelineLimits
from channel_ideas.core.metrics import api_call_duration_seconds, api_calls_total
from channel_ideas.models.schemas import VideoSummary

logger = structlog.get_logger(__name__)

YOUTUBE_API_BASE = "https://www.googleapis.com/youtube/v3"
HANDLE_SEARCH_MAX_RESULTS = 5

_CHANNEL_PATTERNS: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"youtube\.com/channel/([A-Za-z0-9_-]+)"), "id"),
    (re.compile(r"youtube\.com/c/([A-Za-z0-9_-]+)"), "username"),
    (re.compile(r"youtube\.com/user/([A-Za-z0-9_-]+)"), "username"),
    (re.compile(r"youtube\.com/@([A-Za-z0-9_.-]+)"), "handle"),
)


class ChannelLookupError(Exception):
    """The channel URL could not be turned into a list of videos."""


@dataclass(frozen=True)
class ChannelIdentifier:
    kind: str  # id | username | handle
    value: str


def extract_channel_identifier(url: str) -> ChannelIdentifier | None:
    """Recognise /channel/<id>, /c/<name>, /user/<name> and /@<handle> URLs."""
    raw = str(url or "").strip()
    for pattern, kind in _CHANNEL_PATTERNS:
        match = pattern.search(raw)
        if match:
            return ChannelIdentifier(kind=kind, value=match.group(1))
    return None


def _items(payload: object) -> list[dict]:
    if not isinstance(payload, dict):
        return []
    items = payload.get("items")
    if not isinstance(items, list):
        return []
    return [item for item in items if isinstance(item, dict)]


async def _get_json(client: httpx.AsyncClient, resource: str, params: dict) -> object:
    response = await client.get(
        f"{YOUTUBE_API_BASE}/{resource}",
        params={**params, "key": settings.YOUTUBE_API_KEY},
        headers={"Accept": "application/json"},
    )
    response.raise_for_status()
    return response.json()


async def _resolve_handle(client: httpx.AsyncClient, handle: str) -> str | None:
    """Direct forHandle lookup, then channel search preferring an exact match."""
    try:
        items = _items(
            await _get_json(client, "channels", {"part": "id", "forHandle": handle})
        )
        if items and items[0].get("id"):
            return str(items[0]["id"])
    except httpx.HTTPError as exc:
        logger.info("youtube.for_handle_failed", handle=handle, error=str(exc)[:200])

    items = _items(
        await _get_json(
            client,
            "search",
            {
                "part": "snippet",
                "q": handle,
                "type": "channel",
                "maxResults": HANDLE_SEARCH_MAX_RESULTS,
            },
        )
    )
    if not items:
        return None

    wanted = handle.lower()
    for item in items:
        snippet = item.get("snippet") or {}
        custom_url = str(snippet.get("customUrl") or "").lower()
        title = str(snippet.get("title") or "").lower()
        if custom_url == f"@{wanted}" or wanted in title:
            return snippet.get("channelId") or None
    return (items[0].get("snippet") or {}).get("channelId") or None


async def _resolve_channel_id(
    client: httpx.AsyncClient, identifier: ChannelIdentifier
) -> str | None:
    """Map a username or handle to a channel id; None when it cannot be resolved."""
    try:
        if identifier.kind == "username":
            items = _items(
                await _get_json(
                    client, "channels", {"part": "id", "forUsername": identifier.value}
                )
            )
            if not items:
                return None
            return str(items[0].get("id") or "") or None
        return await _resolve_handle(client, identifier.value.lstrip("@"))
    except Exception as exc:
        logger.warning(
            "youtube.resolve_failed",
            kind=identifier.kind,
            value=identifier.value,
            error_type=type(exc).__name__,
            error=str(exc)[:200],
        )
        return None


def _normalize_playlist_item(item: dict) -> VideoSummary | None:
    snippet = item.get("snippet") or {}
    video_id = str((snippet.get("resourceId") or {}).get("videoId") or "").strip()
    if not video_id:
        return None
    thumbnails = snippet.get("thumbnails") or {}
    thumbnail = thumbnails.get("high") or thumbnails.get("default") or {}
    return VideoSummary(
        id=video_id,
        title=str(snippet.get("title") or "").strip(),
        description=str(snippet.get("description") or ""),
        published_at=str(snippet.get("publishedAt") or ""),
        thumbnail_url=str(thumbnail.get("url") or ""),
    )


async def fetch_channel_videos(url: str) -> list[VideoSummary]:
    """
    Fetch the most recent uploads (up to 10) of the channel behind `url`.

    Raises ChannelLookupError when the key is missing, the URL is not a
    channel URL, the channel cannot be resolved or found, or the API rejects
    the request (quota / invalid key).
    """
    if not settings.YOUTUBE_API_KEY:
        raise ChannelLookupError("YOUTUBE_API_KEY is not set")

    identifier = extract_channel_identifier(url)
    if identifier is None:
        raise ChannelLookupError("Invalid YouTube channel URL")

    logger.info("youtube.fetch.start", kind=identifier.kind, value=identifier.value)
    start_time = time.perf_counter()
    try:
        async with httpx.AsyncClient(timeout=settings.YOUTUBE_TIMEOUT) as client:
            channel_id = identifier.value
            if identifier.kind != "id":
                resolved = await _resolve_channel_id(client, identifier)
                if not resolved:
                    raise ChannelLookupError("Could not resolve channel ID from URL")
                channel_id = resolved

            try:
                channels = _items(
                    await _get_json(
                        client, "channels", {"part": "contentDetails", "id": channel_id}
                    )
                )
                if not channels:
                    raise ChannelLookupError("Channel not found")
                uploads_playlist_id = (
                    (channels[0].get("contentDetails") or {}).get("relatedPlaylists") or {}
                ).get("uploads")
                if not uploads_playlist_id:
                    raise ChannelLookupError("Channel not found")

                playlist = _items(
                    await _get_json(
                        client,
                        "playlistItems",
                        {
                            "part": "snippet",
                            "playlistId": uploads_playlist_id,
                            "maxResults": PipelineLimits.MAX_VIDEOS,
                        },
                    )
                )
            except httpx.HTTPStatusError as exc:
                status_code = exc.response.status_code
                logger.warning("youtube.http_error", status_code=status_code, channel_id=channel_id)
                if status_code == 403:
                    raise ChannelLookupError(
                        "YouTube API quota exceeded or invalid API key"
                    ) from exc
                if status_code == 404:
                    raise ChannelLookupError("Channel not found") from exc
                # The request URL carries the API key, so never echo str(exc).
                raise ChannelLookupError(f"Failed to fetch videos: HTTP {status_code}") from exc
            except (httpx.HTTPError, ValueError) as exc:
                # ValueError covers a 200 whose body is not JSON
                raise ChannelLookupError(
                    f"Failed to fetch videos: {type(exc).__name__}"
                ) from exc
    except ChannelLookupError:
        api_calls_total.labels(api_name="youtube", status="error").inc()
        raise
    finally:
        api_call_duration_seconds.labels(api_name="youtube").observe(
            time.perf_counter() - start_time
        )

    videos = [video for item in playlist if (video := _normalize_playlist_item(item))]
    api_calls_total.labels(api_name="youtube", status="success").inc()
    logger.info("youtube.fetch.success", channel_id=channel_id, count=len(videos))
    return videos[: PipelineLimits.MAX_VIDEOS]
