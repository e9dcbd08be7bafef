"""Channel analysis pipeline: videos → topics → news + Reddit → ideas → stream.

One `AnalysisPipeline` per request. It pushes ordered progress envelopes to an
`EventSink` and finishes with exactly one terminal envelope (`complete` or
`error`), after which the sink is closed.

Only the video lookup is allowed to fail the run. Topic extraction and idea
generation fall back internally; news and Reddit search are additionally
wrapped here so that a fault in one never cancels or blocks the other.
"""

import asyncio
import time
from collections.abc import AsyncGenerator, Awaitable, Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Any, TypeVar

import structlog
from pydantic import BaseModel

from channel_ideas.agents.ideas import generate_video_ideas
from channel_ideas.agents.topics import analyze_topics
from channel_ideas.core.config import settings
from channel_ideas.core.constants import ErrorMessages, EventType, PipelineLimits, StepId
from channel_ideas.core.metrics import pipeline_runs_total, pipeline_stage_duration_seconds
from channel_ideas.models.schemas import (
    DiscussionItem,
    ErrorEvent,
    Idea,
    NewsItem,
    PipelineResult,
    ProgressEvent,
    VideoSummary,
)
from channel_ideas.services.events import Envelope, EventSink, QueueEventSink, encode_sse
from channel_ideas.tools.news_newsapi import fetch_relevant_news
from channel_ideas.tools.social_reddit import dedupe_by_url, search_reddit_posts
from channel_ideas.tools.youtube_channel import ChannelLookupError, fetch_channel_videos

logger = structlog.get_logger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class PipelineState(str, Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    FETCHING_VIDEOS = "fetching_videos"
    ANALYZING_TOPICS = "analyzing_topics"
    FETCHING_NEWS_AND_REDDIT = "fetching_news_and_reddit"
    GENERATING_IDEAS = "generating_ideas"
    COMPLETE = "complete"
    FAILED = "failed"


class PipelineAbort(Exception):
    """Expected terminal condition (bad input, no videos); message goes to the client."""


@dataclass(frozen=True)
class Collaborators:
    """External services the pipeline calls. Swap any of them in tests."""

    fetch_videos: Callable[[str], Awaitable[list[VideoSummary]]] = fetch_channel_videos
    analyze_topics: Callable[[list[VideoSummary]], Awaitable[list[str]]] = analyze_topics
    fetch_news: Callable[[list[str]], Awaitable[list[NewsItem]]] = fetch_relevant_news
    search_discussions: Callable[[list[str]], Awaitable[list[DiscussionItem]]] = (
        search_reddit_posts
    )
    generate_ideas: Callable[..., Awaitable[list[Idea]]] = generate_video_ideas


def _dump(items: list) -> list[dict]:
    return [item.model_dump(mode="json", by_alias=True) for item in items]


@contextmanager
def _timed_stage(stage: str) -> Iterator[None]:
    stage_start = time.perf_counter()
    logger.info("pipeline.stage.start", stage=stage)
    try:
        yield
    finally:
        duration = time.perf_counter() - stage_start
        pipeline_stage_duration_seconds.labels(stage=stage).observe(duration)
        logger.info("pipeline.stage.complete", stage=stage, duration_seconds=round(duration, 2))


async def _result_or_default(
    name: str,
    model: type[ModelT],
    func: Callable[..., Awaitable[list]],
    *args: Any,
) -> list[ModelT]:
    """Await one fan-out branch and coerce its items; any failure becomes an empty list."""
    try:
        return [model.model_validate(item) for item in await func(*args)]
    except Exception as exc:
        logger.warning(
            "pipeline.fanout_branch_failed",
            branch=name,
            error_type=type(exc).__name__,
            error=str(exc)[:200],
        )
        return []


class AnalysisPipeline:
    """Runs the five-stage analysis for one channel URL."""

    def __init__(
        self,
        sink: EventSink,
        collaborators: Collaborators | None = None,
        timeout: float | None = None,
    ) -> None:
        self._sink = sink
        self._collaborators = collaborators or Collaborators()
        self._timeout = settings.PIPELINE_TIMEOUT_SECONDS if timeout is None else timeout
        self._events: list[Envelope] = []
        self.state = PipelineState.IDLE
        self.result: PipelineResult | None = None

    @property
    def events(self) -> tuple[Envelope, ...]:
        """Append-only log of every envelope emitted by this run."""
        return tuple(self._events)

    async def _emit(self, event_type: EventType, payload: dict[str, Any]) -> None:
        self._events.append((event_type, payload))
        await self._sink.emit(event_type, payload)

    async def _progress(
        self, step: StepId, message: str, data: dict[str, Any] | None = None
    ) -> None:
        event = ProgressEvent(step=step, message=message, data=data)
        await self._emit(EventType.PROGRESS, event.to_payload())

    async def _fail(self, message: str) -> None:
        self.state = PipelineState.FAILED
        await self._emit(EventType.ERROR, ErrorEvent(message=message).to_payload())

    async def run(self, url: object) -> PipelineResult | None:
        """
        Run all stages and always close the sink.

        Returns the result on success, None after an error envelope. Only
        cancellation propagates; every other failure becomes the error envelope.
        """
        start_time = time.perf_counter()
        outcome = "error"
        deadline = asyncio.timeout(self._timeout)
        try:
            async with deadline:
                self.result = await self._run_stages(url)
            outcome = "complete"
        except (PipelineAbort, ChannelLookupError) as exc:
            logger.warning("pipeline.aborted", reason=str(exc), state=self.state.value)
            await self._fail(str(exc))
        except TimeoutError as exc:
            if not deadline.expired():
                # Raised by a stage itself, not the run deadline
                logger.exception("pipeline.error", state=self.state.value)
                await self._fail(str(exc) or ErrorMessages.GENERIC)
            else:
                outcome = "timeout"
                logger.error("pipeline.timeout", timeout=self._timeout, state=self.state.value)
                await self._fail(f"Analysis timed out after {self._timeout:g} seconds")
        except asyncio.CancelledError:
            outcome = "cancelled"
            logger.info("pipeline.cancelled", state=self.state.value)
            raise
        except Exception as exc:
            logger.exception("pipeline.error", state=self.state.value)
            await self._fail(str(exc) or ErrorMessages.GENERIC)
        finally:
            await self._sink.close()
            pipeline_runs_total.labels(outcome=outcome).inc()
            logger.info(
                "pipeline.finished",
                outcome=outcome,
                event_count=len(self._events),
                duration_seconds=round(time.perf_counter() - start_time, 2),
            )
        return self.result

    async def _run_stages(self, url: object) -> PipelineResult:
        collaborators = self._collaborators

        # Stage 1: validate before any external call
        self.state = PipelineState.VALIDATING
        if not isinstance(url, str) or not url.strip():
            raise PipelineAbort(ErrorMessages.URL_REQUIRED)
        channel_url = url.strip()
        logger.info("pipeline.start", url_preview=channel_url[:120])

        # Stage 2: recent uploads (the only stage whose failure is terminal)
        self.state = PipelineState.FETCHING_VIDEOS
        await self._progress(StepId.FETCHING_VIDEOS, "Fetching YouTube videos...")
        with _timed_stage("fetch_videos"):
            videos = [
                VideoSummary.model_validate(video)
                for video in await collaborators.fetch_videos(channel_url)
            ]
        if not videos:
            raise PipelineAbort(ErrorMessages.NO_VIDEOS)
        await self._progress(
            StepId.VIDEOS_FETCHED,
            f"Found {len(videos)} videos",
            {"videoCount": len(videos)},
        )

        # Stage 3: topics (collaborator falls back internally)
        self.state = PipelineState.ANALYZING_TOPICS
        await self._progress(StepId.ANALYZING_TOPICS, "Analyzing topics with AI...")
        with _timed_stage("analyze_topics"):
            topics = [str(topic) for topic in await collaborators.analyze_topics(videos)]
        await self._progress(
            StepId.TOPICS_ANALYZED,
            f"Identified {len(topics)} main topics",
            {"topics": topics, "topicCount": len(topics)},
        )

        # Stage 4: news + Reddit in parallel, joined at a barrier
        self.state = PipelineState.FETCHING_NEWS_AND_REDDIT
        await self._progress(StepId.FETCHING_NEWS, "Fetching relevant news...")
        await self._progress(StepId.SEARCHING_REDDIT, "Searching Reddit discussions...")
        with _timed_stage("news_and_reddit"):
            news, discussions = await asyncio.gather(
                _result_or_default("news", NewsItem, collaborators.fetch_news, topics),
                _result_or_default(
                    "reddit", DiscussionItem, collaborators.search_discussions, topics
                ),
            )
        news = news[: PipelineLimits.MAX_NEWS_ITEMS]
        discussions = dedupe_by_url(discussions)
        await self._progress(
            StepId.NEWS_FETCHED,
            f"Found {len(news)} news articles",
            {"news": _dump(news)},
        )
        await self._progress(
            StepId.REDDIT_SEARCHED,
            f"Found {len(discussions)} Reddit discussions",
            {"redditPosts": _dump(discussions)},
        )

        # Stage 5: ideas (collaborator falls back internally)
        self.state = PipelineState.GENERATING_IDEAS
        await self._progress(StepId.GENERATING_IDEAS, "Generating video ideas with AI...")
        sample_titles = [video.title for video in videos]
        with _timed_stage("generate_ideas"):
            ideas = [
                Idea.model_validate(idea)
                for idea in await collaborators.generate_ideas(
                    topics, news, discussions, sample_titles
                )
            ][: PipelineLimits.MAX_IDEAS]
        await self._progress(
            StepId.IDEAS_GENERATED,
            f"Generated {len(ideas)} video ideas",
            {"videoIdeas": _dump(ideas)},
        )

        # Stage 6: terminal payload
        result = PipelineResult(
            topics=topics,
            news=news,
            reddit_posts=discussions,
            video_ideas=ideas,
        )
        self.state = PipelineState.COMPLETE
        await self._emit(EventType.COMPLETE, result.to_payload())
        logger.info(
            "pipeline.complete",
            topic_count=len(topics),
            news_count=len(news),
            discussion_count=len(discussions),
            idea_count=len(ideas),
        )
        return result


async def stream_pipeline(
    url: object,
    collaborators: Collaborators | None = None,
) -> AsyncGenerator[str, None]:
    """
    Run the pipeline in a background task and yield SSE frames as they arrive.

    If the consumer stops iterating (client disconnect), the pipeline task is
    cancelled, which aborts any in-flight upstream call.
    """
    sink = QueueEventSink()
    pipeline = AnalysisPipeline(sink, collaborators)
    task = asyncio.create_task(pipeline.run(url))
    try:
        async for event_type, payload in sink:
            yield encode_sse(event_type, payload)
        await task
    finally:
        if not task.done():
            logger.info("pipeline.consumer_gone", state=pipeline.state.value)
            task.cancel()
