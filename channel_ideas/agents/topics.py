"""Topic extraction for a channel's recent uploads.

A plain async function, not an agent: one structured LLM call (JSON in, JSON
out) with no tool use. It never raises; when the model is unavailable or
returns garbage the topics are derived from title keywords instead.
"""

import json

import structlog

from channel_ideas.core.config import settings
from channel_ideas.core.constants import PipelineLimits
from channel_ideas.core.metrics import api_calls_total
from channel_ideas.core.openai_client import get_openai_client
from channel_ideas.models.schemas import VideoSummary

logger = structlog.get_logger(__name__)

_SYSTEM_MESSAGE = (
    "You are a helpful assistant that analyzes YouTube content to identify topics. "
    'Always return a JSON object with a "topics" array.'
)

_DESCRIPTION_EXCERPT_CHARS = 500
_MIN_KEYWORD_LEN = 5

_STOPWORDS: frozenset[str] = frozenset(
    {
        "the",
        "a",
        "an",
        "and",
        "or",
        "but",
        "in",
        "on",
        "at",
        "to",
        "for",
        "of",
        "with",
        "by",
        "is",
        "are",
        "was",
        "were",
        "this",
        "that",
        "how",
        "what",
        "why",
        "when",
        "where",
    }
)


def _build_prompt(videos: list[VideoSummary]) -> str:
    titles = "\n".join(video.title for video in videos)
    descriptions = "\n\n".join(
        video.description[:_DESCRIPTION_EXCERPT_CHARS] for video in videos if video.description
    )
    return (
        "Analyze the following YouTube video titles and descriptions from a channel's "
        "last 10 videos.\n"
        "Extract the main topics, themes, and subject areas covered. "
        "Return a list of 5-8 key topics as a JSON array of strings.\n\n"
        f"Titles:\n{titles}\n\n"
        f"Descriptions (excerpts):\n{descriptions}\n\n"
        'Return ONLY JSON, nothing else. Example: {"topics": ["Technology", "AI", '
        '"Programming", "Web Development"]}'
    )


def _parse_topics(text: str) -> list[str]:
    """Accept {"topics": [...]} or a bare JSON list; raise ValueError otherwise."""
    parsed = json.loads(text.strip())
    raw = parsed.get("topics") if isinstance(parsed, dict) else parsed
    if not isinstance(raw, list):
        raise ValueError("topics payload is not a list")
    topics: list[str] = []
    seen: set[str] = set()
    for item in raw:
        topic = str(item).strip() if isinstance(item, (str, int, float)) else ""
        if not topic or topic.lower() in seen:
            continue
        seen.add(topic.lower())
        topics.append(topic)
    return topics[: PipelineLimits.MAX_TOPICS]


def keyword_topics(videos: list[VideoSummary]) -> list[str]:
    """Fallback topics: distinct lower-cased title words longer than four letters."""
    words = " ".join(video.title for video in videos).lower().split()
    keywords: list[str] = []
    seen: set[str] = set()
    for word in words:
        if len(word) < _MIN_KEYWORD_LEN or word in _STOPWORDS or word in seen:
            continue
        seen.add(word)
        keywords.append(word)
        if len(keywords) >= PipelineLimits.MAX_TOPICS:
            break
    return keywords


async def analyze_topics(videos: list[VideoSummary]) -> list[str]:
    """
    Identify the 5-8 main topics of a channel from its recent uploads.

    Falls back to keyword_topics() when OPENAI_API_KEY is missing, the call
    fails, or the model returns no usable topics. Never raises.
    """
    if not settings.OPENAI_API_KEY:
        logger.warning("topics.no_api_key")
        return keyword_topics(videos)

    logger.info("topics.analyze.start", video_count=len(videos))
    try:
        client = get_openai_client()
        response = await client.chat.completions.create(
            model=settings.OPENAI_MODEL,
            messages=[
                {"role": "system", "content": _SYSTEM_MESSAGE},
                {"role": "user", "content": _build_prompt(videos)},
            ],
            temperature=settings.TOPIC_TEMPERATURE,
            response_format={"type": "json_object"},
            timeout=settings.AGENT_TIMEOUT,
        )
        text = response.choices[0].message.content or ""
        if not text.strip():
            raise ValueError("No response from OpenAI")
        topics = _parse_topics(text)
        if not topics:
            raise ValueError("Model returned no topics")
    except (json.JSONDecodeError, ValueError) as exc:
        api_calls_total.labels(api_name="openai_topics", status="fallback").inc()
        logger.warning("topics.analyze.parse_error", error=str(exc))
        return keyword_topics(videos)
    except Exception as exc:
        api_calls_total.labels(api_name="openai_topics", status="error").inc()
        logger.error(
            "topics.analyze.error",
            error_type=type(exc).__name__,
            error=str(exc),
        )
        return keyword_topics(videos)

    api_calls_total.labels(api_name="openai_topics", status="success").inc()
    logger.info("topics.analyze.success", topics=topics)
    return topics
