"""Video idea generation from topics, news and Reddit discussions.

Same shape as topic extraction: one JSON-mode chat completion, never raises,
and a deterministic templated fallback (one idea per topic, up to five).
"""

import json

import structlog

from channel_ideas.core.config import settings
from channel_ideas.core.constants import PipelineLimits
from channel_ideas.core.metrics import api_calls_total
from channel_ideas.core.openai_client import get_openai_client
from channel_ideas.models.schemas import DiscussionItem, Idea, NewsItem

logger = structlog.get_logger(__name__)

_SYSTEM_MESSAGE = (
    "You are a creative YouTube content strategist. Generate engaging, relevant "
    "video ideas that match the channel style."
)

_FALLBACK_THUMB_DESIGN = (
    "Bold text on gradient background with relevant icon, bright colors to stand out"
)


def _build_prompt(
    topics: list[str],
    news: list[NewsItem],
    discussions: list[DiscussionItem],
    sample_titles: list[str],
) -> str:
    news_text = "\n".join(item.title for item in news) or "No recent news available"
    reddit_text = "\n".join(post.title for post in discussions) or "No Reddit discussions found"
    titles_text = "\n".join(sample_titles)
    return f"""\
You are a YouTube content strategist. Based on the following information, generate \
{PipelineLimits.MAX_IDEAS} video ideas that match the channel's style and are relevant \
to current trends.

Channel Topics: {", ".join(topics)}

Recent News:
{news_text}

Reddit Discussions:
{reddit_text}

Sample Video Titles from Channel (for style reference):
{titles_text}

Each idea should include:
1. TITLE - A catchy title in the same style as the sample titles
2. THUMB DESIGN - Description of thumbnail design (colors, text, imagery)
3. VIDEO IDEA - A detailed description of the video concept (2-3 sentences)

Return a JSON object with this structure:
{{
  "ideas": [
    {{
      "title": "Video Title Here",
      "thumbDesign": "Thumbnail design description",
      "videoIdea": "Detailed video concept description"
    }}
  ]
}}"""


def _parse_ideas(text: str) -> list[Idea]:
    """Keep well-formed ideas from {"ideas": [...]}; raise ValueError if none survive."""
    parsed = json.loads(text.strip())
    raw = parsed.get("ideas") if isinstance(parsed, dict) else None
    if not isinstance(raw, list) or not raw:
        raise ValueError("Invalid response format")

    ideas: list[Idea] = []
    for item in raw:
        if not isinstance(item, dict):
            continue
        title = str(item.get("title") or "").strip()
        thumb_design = str(item.get("thumbDesign") or item.get("thumb_design") or "").strip()
        video_idea = str(item.get("videoIdea") or item.get("video_idea") or "").strip()
        if not title:
            continue
        ideas.append(Idea(title=title, thumb_design=thumb_design, video_idea=video_idea))
        if len(ideas) >= PipelineLimits.MAX_IDEAS:
            break
    if not ideas:
        raise ValueError("Invalid response format")
    return ideas


def fallback_ideas(topics: list[str]) -> list[Idea]:
    """One templated idea per topic, at most five."""
    return [
        Idea(
            title=f"Latest Updates on {topic} - 2024",
            thumb_design=_FALLBACK_THUMB_DESIGN,
            video_idea=(
                f"Create a comprehensive video covering the latest developments and trends "
                f"in {topic}, including recent news and community discussions."
            ),
        )
        for topic in topics[: PipelineLimits.MAX_IDEAS]
    ]


async def generate_video_ideas(
    topics: list[str],
    news: list[NewsItem],
    discussions: list[DiscussionItem],
    sample_titles: list[str],
) -> list[Idea]:
    """
    Generate up to five video ideas in the channel's style.

    Returns fallback_ideas(topics) when OPENAI_API_KEY is missing, the call
    fails, or the response has no usable ideas. Never raises.
    """
    if not settings.OPENAI_API_KEY:
        logger.warning("ideas.no_api_key")
        return fallback_ideas(topics)

    logger.info(
        "ideas.generate.start",
        topic_count=len(topics),
        news_count=len(news),
        discussion_count=len(discussions),
    )
    try:
        client = get_openai_client()
        response = await client.chat.completions.create(
            model=settings.OPENAI_MODEL,
            messages=[
                {"role": "system", "content": _SYSTEM_MESSAGE},
                {
                    "role": "user",
                    "content": _build_prompt(topics, news, discussions, sample_titles),
                },
            ],
            temperature=settings.IDEA_TEMPERATURE,
            response_format={"type": "json_object"},
            timeout=settings.AGENT_TIMEOUT,
        )
        text = response.choices[0].message.content or ""
        if not text.strip():
            raise ValueError("No response from OpenAI")
        ideas = _parse_ideas(text)
    except (json.JSONDecodeError, ValueError) as exc:
        api_calls_total.labels(api_name="openai_ideas", status="fallback").inc()
        logger.warning("ideas.generate.parse_error", error=str(exc))
        return fallback_ideas(topics)
    except Exception as exc:
        api_calls_total.labels(api_name="openai_ideas", status="error").inc()
        logger.error(
            "ideas.generate.error",
            error_type=type(exc).__name__,
            error=str(exc),
        )
        return fallback_ideas(topics)

    api_calls_total.labels(api_name="openai_ideas", status="success").inc()
    logger.info("ideas.generate.success", idea_count=len(ideas))
    return ideas
