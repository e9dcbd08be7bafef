"""NewsAPI search tool.

All public functions return list[NewsItem] on success and [] on any failure; they never raise.
The orchestrator must never see exceptions from this tool.
"""

import time
from datetime import UTC, datetime

import httpx
import structlog

from channel_ideas.core.config import settings
from channel_ideas.core.constants import PipelineLimits
from channel_ideas.core.metrics import api_call_duration_seconds, api_calls_total
from channel_ideas.models.schemas import NewsItem

logger = structlog.get_logger(__name__)

_NEWSAPI_URL = "https://newsapi.org/v2/everything"


def _main_topic(topics: list[str]) -> str:
    """First non-blank topic."""
    for topic in topics:
        cleaned = str(topic or "").strip()
        if cleaned:
            return cleaned
    return ""


def _normalize_articles(articles: object) -> list[NewsItem]:
    if not isinstance(articles, list):
        return []
    normalized: list[NewsItem] = []
    for article in articles:
        if not isinstance(article, dict):
            continue
        title = str(article.get("title") or "").strip()
        url = str(article.get("url") or "").strip()
        if not title or not url:
            continue
        source = article.get("source")
        source_name = source.get("name") if isinstance(source, dict) else None
        normalized.append(NewsItem(title=title, url=url, source=source_name or "Unknown"))
        if len(normalized) >= PipelineLimits.MAX_NEWS_ITEMS:
            break
    return normalized


async def fetch_relevant_news(topics: list[str]) -> list[NewsItem]:
    """
    Fetch today's most relevant English articles for the channel's main topic.

    Returns [] when NEWS_API_KEY is not configured, on timeout, HTTP error,
    empty results, or any unexpected failure. Never raises.
    """
    if not settings.NEWS_API_KEY:
        logger.warning("news.api_key_missing")
        return []

    query = _main_topic(topics)
    if not query:
        logger.warning("news.empty_query")
        return []

    logger.info("news.start", query_preview=query[:80])
    start_time = time.perf_counter()
    try:
        async with httpx.AsyncClient(timeout=settings.NEWS_TIMEOUT) as client:
            response = await client.get(
                _NEWSAPI_URL,
                params={
                    "q": query,
                    "from": datetime.now(UTC).date().isoformat(),
                    "sortBy": "relevancy",
                    "language": "en",
                    "pageSize": PipelineLimits.MAX_NEWS_ITEMS,
                    "apiKey": settings.NEWS_API_KEY,
                },
            )
            response.raise_for_status()
            data = response.json()
        api_calls_total.labels(api_name="newsapi", status="success").inc()
    except httpx.HTTPStatusError as exc:
        api_calls_total.labels(api_name="newsapi", status="error").inc()
        logger.error(
            "news.http_error",
            status_code=exc.response.status_code,
            response_preview=exc.response.text[:200] if exc.response.text else "",
            query_preview=query[:80],
        )
        return []
    except httpx.TimeoutException:
        api_calls_total.labels(api_name="newsapi", status="timeout").inc()
        logger.warning("news.timeout", timeout=settings.NEWS_TIMEOUT, query_preview=query[:80])
        return []
    except Exception:
        api_calls_total.labels(api_name="newsapi", status="error").inc()
        logger.exception("news.unexpected_error", query_preview=query[:80])
        return []
    finally:
        api_call_duration_seconds.labels(api_name="newsapi").observe(
            time.perf_counter() - start_time
        )

    articles = data.get("articles") if isinstance(data, dict) else None
    results = _normalize_articles(articles)
    logger.info("news.complete", result_count=len(results))
    return results
