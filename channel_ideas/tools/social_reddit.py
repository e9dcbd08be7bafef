"""Reddit discussion search backed by the public search.json endpoint.

Read-only search needs no OAuth, but Reddit blocks unknown user agents and
often answers 403 from cloud IP ranges, so every topic tries www.reddit.com
first and old.reddit.com second. Never raises.
"""

import asyncio

import httpx
import structlog

from channel_ideas.core.config import settings
from channel_ideas.core.constants import PipelineLimits
from channel_ideas.core.metrics import api_calls_total
from channel_ideas.models.schemas import DiscussionItem

logger = structlog.get_logger(__name__)

REDDIT_SEARCH_ENDPOINTS: tuple[str, ...] = (
    "https://www.reddit.com/search.json",
    "https://old.reddit.com/search.json",
)
REDDIT_PERMALINK_BASE = "https://www.reddit.com"
REDDIT_REQUEST_SPACING_SECONDS = 1.0
REDDIT_RATE_LIMIT_BACKOFF_SECONDS = 2.0
REDDIT_TIME_FILTER = "week"


def _headers() -> dict[str, str]:
    return {
        "User-Agent": settings.REDDIT_USER_AGENT,
        "Accept": "application/json",
        "Accept-Language": "en-US,en;q=0.9",
        "Referer": "https://www.reddit.com/",
    }


def _extract_posts(payload: object) -> list[DiscussionItem] | None:
    """Map a Listing payload to safe-for-work posts; None when the shape is not a Listing."""
    if not isinstance(payload, dict):
        return None
    data = payload.get("data")
    children = data.get("children") if isinstance(data, dict) else None
    if not isinstance(children, list):
        return None

    posts: list[DiscussionItem] = []
    for child in children:
        row = child.get("data") if isinstance(child, dict) else None
        if not isinstance(row, dict) or row.get("over_18"):
            continue
        permalink = str(row.get("permalink") or "").strip()
        title = str(row.get("title") or "").strip()
        if not permalink or not title:
            continue
        posts.append(
            DiscussionItem(
                title=title,
                url=f"{REDDIT_PERMALINK_BASE}{permalink}",
                community=str(row.get("subreddit") or "").strip(),
            )
        )
    return posts


def dedupe_by_url(
    posts: list[DiscussionItem], limit: int = PipelineLimits.MAX_DISCUSSION_ITEMS
) -> list[DiscussionItem]:
    """Keep the first post per URL, in order, up to `limit`."""
    seen: set[str] = set()
    unique: list[DiscussionItem] = []
    for post in posts:
        if post.url in seen:
            continue
        seen.add(post.url)
        unique.append(post)
        if len(unique) >= limit:
            break
    return unique


async def _search_topic(
    client: httpx.AsyncClient, topic: str, spaced: bool
) -> list[DiscussionItem] | None:
    """Search one topic across the endpoint list; None when every endpoint failed."""
    params = {
        "q": topic,
        "sort": "relevance",
        "limit": PipelineLimits.REDDIT_POSTS_PER_TOPIC,
        "t": REDDIT_TIME_FILTER,
    }
    for endpoint in REDDIT_SEARCH_ENDPOINTS:
        if spaced:
            await asyncio.sleep(REDDIT_REQUEST_SPACING_SECONDS)
        try:
            response = await client.get(endpoint, params=params)
        except httpx.TimeoutException:
            api_calls_total.labels(api_name="reddit", status="timeout").inc()
            logger.warning("reddit.endpoint_timeout", topic=topic, endpoint=endpoint)
            continue
        except httpx.HTTPError as exc:
            api_calls_total.labels(api_name="reddit", status="error").inc()
            logger.warning(
                "reddit.endpoint_failed",
                topic=topic,
                endpoint=endpoint,
                error_type=type(exc).__name__,
                error=str(exc)[:200],
            )
            continue

        if response.status_code == 403:
            api_calls_total.labels(api_name="reddit", status="error").inc()
            logger.warning("reddit.forbidden", topic=topic, endpoint=endpoint)
            continue
        if response.status_code == 429:
            api_calls_total.labels(api_name="reddit", status="error").inc()
            logger.warning("reddit.rate_limited", topic=topic, endpoint=endpoint)
            await asyncio.sleep(REDDIT_RATE_LIMIT_BACKOFF_SECONDS)
            continue
        if response.status_code >= 400:
            api_calls_total.labels(api_name="reddit", status="error").inc()
            logger.warning(
                "reddit.endpoint_failed",
                topic=topic,
                endpoint=endpoint,
                status_code=response.status_code,
            )
            continue

        try:
            posts = _extract_posts(response.json())
        except ValueError:
            posts = None
        if posts is None:
            logger.warning("reddit.unexpected_payload", topic=topic, endpoint=endpoint)
            continue

        api_calls_total.labels(api_name="reddit", status="success").inc()
        return posts
    return None


async def search_reddit_posts(topics: list[str]) -> list[DiscussionItem]:
    """
    Search Reddit for recent (past week) discussions of the leading topics.

    Only the first three topics are searched, five posts each. Adult posts are
    dropped and results are de-duplicated by URL, capped at ten. Any failure
    returns whatever was collected so far (possibly []).
    """
    search_terms = [str(topic).strip() for topic in topics if str(topic or "").strip()]
    search_terms = search_terms[: PipelineLimits.REDDIT_TOPIC_LIMIT]
    if not search_terms:
        return []

    logger.info("reddit.search.start", topics=search_terms)
    collected: list[DiscussionItem] = []
    try:
        async with httpx.AsyncClient(
            timeout=settings.REDDIT_TIMEOUT, headers=_headers()
        ) as client:
            for topic in search_terms:
                posts = await _search_topic(client, topic, spaced=bool(collected))
                if posts is None:
                    logger.warning("reddit.topic_failed_all_endpoints", topic=topic)
                    continue
                collected.extend(posts)
    except Exception:
        logger.exception("reddit.unexpected_error", collected=len(collected))

    results = dedupe_by_url(collected)
    logger.info("reddit.search.success", count=len(results))
    return results
