from enum import Enum


class StepId(str, Enum):
    STARTING = "starting"
    FETCHING_VIDEOS = "fetching_videos"
    VIDEOS_FETCHED = "videos_fetched"
    ANALYZING_TOPICS = "analyzing_topics"
    TOPICS_ANALYZED = "topics_analyzed"
    FETCHING_NEWS = "fetching_news"
    SEARCHING_REDDIT = "searching_reddit"
    NEWS_FETCHED = "news_fetched"
    REDDIT_SEARCHED = "reddit_searched"
    GENERATING_IDEAS = "generating_ideas"
    IDEAS_GENERATED = "ideas_generated"


# Canonical display order. Consumers sort by this table; the producer only
# guarantees it up to the two concurrent stage-4 announcements.
STEP_ORDER: tuple[StepId, ...] = tuple(StepId)

_STEP_RANK: dict[str, int] = {step.value: idx for idx, step in enumerate(STEP_ORDER)}


def step_rank(step: str) -> int:
    """Position of a step in STEP_ORDER; unknown steps sort last."""
    return _STEP_RANK.get(str(getattr(step, "value", step)), len(STEP_ORDER))


class EventType(str, Enum):
    PROGRESS = "progress"
    COMPLETE = "complete"
    ERROR = "error"


class PipelineLimits:
    MAX_VIDEOS = 10
    MAX_TOPICS = 8
    MAX_NEWS_ITEMS = 5
    MAX_DISCUSSION_ITEMS = 10
    MAX_IDEAS = 5
    REDDIT_TOPIC_LIMIT = 3
    REDDIT_POSTS_PER_TOPIC = 5


class ErrorMessages:
    URL_REQUIRED = "YouTube channel URL is required"
    NO_VIDEOS = "No videos found for this channel"
    GENERIC = "An error occurred while analyzing the channel"
