"""Unit tests for the analysis orchestrator and its SSE stream."""

import asyncio
import json
from unittest.mock import AsyncMock

import pytest

from channel_ideas.core.constants import ErrorMessages, EventType, StepId, step_rank
from channel_ideas.models.schemas import DiscussionItem, Idea, NewsItem, VideoSummary
from channel_ideas.services.pipeline import (
    AnalysisPipeline,
    Collaborators,
    PipelineState,
    stream_pipeline,
)
from channel_ideas.tools.youtube_channel import ChannelLookupError

CHANNEL_URL = "https://www.youtube.com/@somechannel"


class RecordingSink:
    def __init__(self) -> None:
        self.events: list[tuple[EventType, dict]] = []
        self.close_calls = 0

    async def emit(self, event_type, payload) -> None:
        self.events.append((event_type, payload))

    async def close(self) -> None:
        self.close_calls += 1


def _videos(count: int = 3) -> list[VideoSummary]:
    return [
        VideoSummary(id=f"v{i}", title=f"Video {i}", description="desc") for i in range(count)
    ]


def _ideas(count: int) -> list[Idea]:
    return [
        Idea(title=f"Idea {i}", thumb_design="bold", video_idea="concept") for i in range(count)
    ]


def _collaborators(**overrides) -> Collaborators:
    defaults = {
        "fetch_videos": AsyncMock(return_value=_videos()),
        "analyze_topics": AsyncMock(return_value=["AI", "Python"]),
        "fetch_news": AsyncMock(
            return_value=[NewsItem(title="AI news", url="https://news.example/1", source="Wire")]
        ),
        "search_discussions": AsyncMock(
            return_value=[
                DiscussionItem(
                    title="AI thread",
                    url="https://www.reddit.com/r/ai/1",
                    community="ai",
                )
            ]
        ),
        "generate_ideas": AsyncMock(return_value=_ideas(2)),
    }
    defaults.update(overrides)
    return Collaborators(**defaults)


def _progress_steps(events) -> list[str]:
    return [payload["step"] for event_type, payload in events if event_type == EventType.PROGRESS]


@pytest.mark.asyncio
async def test_successful_run_emits_all_steps_then_complete() -> None:
    """A full run emits ten progress steps in order and one complete envelope."""
    sink = RecordingSink()
    pipeline = AnalysisPipeline(sink, _collaborators())

    result = await pipeline.run(CHANNEL_URL)

    assert result is not None
    assert pipeline.state == PipelineState.COMPLETE
    assert _progress_steps(sink.events) == [
        "fetching_videos",
        "videos_fetched",
        "analyzing_topics",
        "topics_analyzed",
        "fetching_news",
        "searching_reddit",
        "news_fetched",
        "reddit_searched",
        "generating_ideas",
        "ideas_generated",
    ]
    terminal_type, terminal = sink.events[-1]
    assert terminal_type == EventType.COMPLETE
    assert terminal == {
        "topics": ["AI", "Python"],
        "news": [{"title": "AI news", "url": "https://news.example/1", "source": "Wire"}],
        "redditPosts": [
            {"title": "AI thread", "url": "https://www.reddit.com/r/ai/1", "community": "ai"}
        ],
        "videoIdeas": [
            {"title": "Idea 0", "thumbDesign": "bold", "videoIdea": "concept"},
            {"title": "Idea 1", "thumbDesign": "bold", "videoIdea": "concept"},
        ],
    }
    assert sink.close_calls == 1
    assert pipeline.events == tuple(sink.events)


@pytest.mark.asyncio
async def test_progress_payloads_carry_stage_data() -> None:
    sink = RecordingSink()
    await AnalysisPipeline(sink, _collaborators()).run(CHANNEL_URL)

    by_step = {p["step"]: p for t, p in sink.events if t == EventType.PROGRESS}
    assert by_step["videos_fetched"]["data"] == {"videoCount": 3}
    assert by_step["videos_fetched"]["message"] == "Found 3 videos"
    assert by_step["topics_analyzed"]["data"] == {"topics": ["AI", "Python"], "topicCount": 2}
    assert by_step["ideas_generated"]["message"] == "Generated 2 video ideas"
    assert "data" not in by_step["fetching_videos"]


@pytest.mark.asyncio
async def test_progress_steps_never_go_backwards_in_display_order() -> None:
    sink = RecordingSink()
    await AnalysisPipeline(sink, _collaborators()).run(CHANNEL_URL)

    ranks = [step_rank(step) for step in _progress_steps(sink.events)]
    assert ranks == sorted(ranks)


@pytest.mark.parametrize("url", [None, "", "   ", 42, {"url": "x"}])
@pytest.mark.asyncio
async def test_missing_url_fails_before_any_external_call(url) -> None:
    sink = RecordingSink()
    collaborators = _collaborators()

    result = await AnalysisPipeline(sink, collaborators).run(url)

    assert result is None
    assert sink.events == [(EventType.ERROR, {"message": ErrorMessages.URL_REQUIRED})]
    collaborators.fetch_videos.assert_not_called()
    assert sink.close_calls == 1


@pytest.mark.asyncio
async def test_empty_video_list_ends_with_no_videos_error() -> None:
    sink = RecordingSink()
    collaborators = _collaborators(fetch_videos=AsyncMock(return_value=[]))

    pipeline = AnalysisPipeline(sink, collaborators)
    await pipeline.run(CHANNEL_URL)

    assert _progress_steps(sink.events) == ["fetching_videos"]
    assert sink.events[-1] == (EventType.ERROR, {"message": ErrorMessages.NO_VIDEOS})
    assert pipeline.state == PipelineState.FAILED
    collaborators.analyze_topics.assert_not_called()


@pytest.mark.asyncio
async def test_channel_lookup_error_message_is_forwarded_verbatim() -> None:
    sink = RecordingSink()
    collaborators = _collaborators(
        fetch_videos=AsyncMock(side_effect=ChannelLookupError("Channel not found"))
    )

    await AnalysisPipeline(sink, collaborators).run(CHANNEL_URL)

    assert sink.events[-1] == (EventType.ERROR, {"message": "Channel not found"})
    assert sum(1 for t, _ in sink.events if t in (EventType.ERROR, EventType.COMPLETE)) == 1


@pytest.mark.asyncio
async def test_lookup_timeout_message_is_not_mistaken_for_run_deadline() -> None:
    sink = RecordingSink()
    collaborators = _collaborators(
        fetch_videos=AsyncMock(side_effect=TimeoutError("YouTube upstream timed out"))
    )

    await AnalysisPipeline(sink, collaborators).run(CHANNEL_URL)

    assert sink.events[-1] == (EventType.ERROR, {"message": "YouTube upstream timed out"})


@pytest.mark.asyncio
async def test_unexpected_error_without_message_uses_generic_text() -> None:
    sink = RecordingSink()
    collaborators = _collaborators(analyze_topics=AsyncMock(side_effect=RuntimeError()))

    await AnalysisPipeline(sink, collaborators).run(CHANNEL_URL)

    assert sink.events[-1] == (EventType.ERROR, {"message": ErrorMessages.GENERIC})


@pytest.mark.asyncio
async def test_news_and_reddit_failures_degrade_to_empty_lists() -> None:
    """Neither parallel branch can fail the run."""
    sink = RecordingSink()
    collaborators = _collaborators(
        fetch_news=AsyncMock(side_effect=RuntimeError("news down")),
        search_discussions=AsyncMock(side_effect=TimeoutError()),
    )

    result = await AnalysisPipeline(sink, collaborators).run(CHANNEL_URL)

    assert result is not None
    terminal_type, terminal = sink.events[-1]
    assert terminal_type == EventType.COMPLETE
    assert terminal["news"] == []
    assert terminal["redditPosts"] == []
    collaborators.generate_ideas.assert_awaited_once()


@pytest.mark.asyncio
async def test_one_failing_branch_does_not_affect_the_other() -> None:
    sink = RecordingSink()
    collaborators = _collaborators(search_discussions=AsyncMock(side_effect=RuntimeError("x")))

    await AnalysisPipeline(sink, collaborators).run(CHANNEL_URL)

    terminal = sink.events[-1][1]
    assert [item["title"] for item in terminal["news"]] == ["AI news"]
    assert terminal["redditPosts"] == []


@pytest.mark.asyncio
async def test_malformed_branch_items_degrade_to_empty_list() -> None:
    sink = RecordingSink()
    collaborators = _collaborators(
        fetch_news=AsyncMock(return_value=[{"title": "no url"}]),
        search_discussions=AsyncMock(return_value=[{"community": "python"}]),
    )

    result = await AnalysisPipeline(sink, collaborators).run(CHANNEL_URL)

    assert result is not None
    terminal_type, terminal = sink.events[-1]
    assert terminal_type == EventType.COMPLETE
    assert terminal["news"] == []
    assert terminal["redditPosts"] == []
    assert all(t != EventType.ERROR for t, _ in sink.events)


@pytest.mark.asyncio
async def test_example_channel_end_to_end() -> None:
    """Three videos, two topics, no news or discussions, two ideas."""
    sink = RecordingSink()
    collaborators = _collaborators(
        fetch_videos=AsyncMock(return_value=_videos(3)),
        analyze_topics=AsyncMock(return_value=["Tech", "AI"]),
        fetch_news=AsyncMock(return_value=[]),
        search_discussions=AsyncMock(return_value=[]),
        generate_ideas=AsyncMock(return_value=_ideas(2)),
    )

    await AnalysisPipeline(sink, collaborators).run("https://www.youtube.com/@example")

    collaborators.fetch_videos.assert_awaited_once_with("https://www.youtube.com/@example")
    by_step = {p["step"]: p for t, p in sink.events if t == EventType.PROGRESS}
    assert by_step["videos_fetched"]["data"] == {"videoCount": 3}
    assert by_step["topics_analyzed"]["data"] == {"topics": ["Tech", "AI"], "topicCount": 2}
    assert by_step["news_fetched"]["data"] == {"news": []}
    assert by_step["reddit_searched"]["data"] == {"redditPosts": []}
    assert by_step["ideas_generated"]["message"] == "Generated 2 video ideas"
    terminal_types = [t for t, _ in sink.events if t != EventType.PROGRESS]
    assert terminal_types == [EventType.COMPLETE]
    terminal = sink.events[-1][1]
    assert terminal["topics"] == ["Tech", "AI"]
    assert terminal["news"] == []
    assert terminal["redditPosts"] == []
    assert len(terminal["videoIdeas"]) == 2


@pytest.mark.asyncio
async def test_branches_run_concurrently() -> None:
    """Both branches are in flight before either returns."""
    both_started = asyncio.Event()
    started: list[str] = []

    async def branch(name, result):
        started.append(name)
        if len(started) == 2:
            both_started.set()
        await asyncio.wait_for(both_started.wait(), timeout=1)
        return result

    collaborators = _collaborators(
        fetch_news=lambda topics: branch("news", []),
        search_discussions=lambda topics: branch("reddit", []),
    )
    sink = RecordingSink()

    result = await AnalysisPipeline(sink, collaborators).run(CHANNEL_URL)

    assert result is not None
    assert sorted(started) == ["news", "reddit"]


@pytest.mark.asyncio
async def test_results_are_clamped_and_discussions_deduplicated() -> None:
    news = [NewsItem(title=f"n{i}", url=f"https://n/{i}") for i in range(8)]
    discussions = [
        DiscussionItem(title=f"r{i}", url=f"https://www.reddit.com/r/x/{i % 12}")
        for i in range(15)
    ]
    collaborators = _collaborators(
        fetch_news=AsyncMock(return_value=news),
        search_discussions=AsyncMock(return_value=discussions),
        generate_ideas=AsyncMock(return_value=_ideas(7)),
    )
    sink = RecordingSink()

    result = await AnalysisPipeline(sink, collaborators).run(CHANNEL_URL)

    assert len(result.news) == 5
    assert len(result.reddit_posts) == 10
    assert len({post.url for post in result.reddit_posts}) == 10
    assert len(result.video_ideas) == 5


@pytest.mark.asyncio
async def test_ideas_receive_topics_news_discussions_and_sample_titles() -> None:
    collaborators = _collaborators()

    await AnalysisPipeline(RecordingSink(), collaborators).run(CHANNEL_URL)

    topics, news, discussions, titles = collaborators.generate_ideas.await_args.args
    assert topics == ["AI", "Python"]
    assert [item.title for item in news] == ["AI news"]
    assert [item.title for item in discussions] == ["AI thread"]
    assert titles == ["Video 0", "Video 1", "Video 2"]


@pytest.mark.asyncio
async def test_collaborator_dicts_are_coerced_to_models() -> None:
    collaborators = _collaborators(
        fetch_videos=AsyncMock(return_value=[{"id": "a", "title": "T", "publishedAt": "2024"}]),
        generate_ideas=AsyncMock(
            return_value=[{"title": "I", "thumbDesign": "t", "videoIdea": "v"}]
        ),
    )

    result = await AnalysisPipeline(RecordingSink(), collaborators).run(CHANNEL_URL)

    assert result.video_ideas[0].thumb_design == "t"


@pytest.mark.asyncio
async def test_overall_deadline_ends_run_with_timeout_error() -> None:
    async def hang(url):
        await asyncio.sleep(10)

    sink = RecordingSink()
    pipeline = AnalysisPipeline(sink, _collaborators(fetch_videos=hang), timeout=0.05)

    result = await pipeline.run(CHANNEL_URL)

    assert result is None
    assert sink.events[-1] == (
        EventType.ERROR,
        {"message": "Analysis timed out after 0.05 seconds"},
    )
    assert sink.close_calls == 1


@pytest.mark.asyncio
async def test_stream_pipeline_yields_sse_frames_ending_with_complete() -> None:
    frames = [frame async for frame in stream_pipeline(CHANNEL_URL, _collaborators())]

    assert all(frame.startswith("data: ") and frame.endswith("\n\n") for frame in frames)
    envelopes = [json.loads(frame[len("data: ") :]) for frame in frames]
    assert envelopes[0] == {
        "type": "progress",
        "data": {"step": "fetching_videos", "message": "Fetching YouTube videos..."},
    }
    assert envelopes[-1]["type"] == "complete"
    assert [e["type"] for e in envelopes].count("complete") == 1
    assert StepId.STARTING.value not in [e["data"].get("step") for e in envelopes]


@pytest.mark.asyncio
async def test_stream_pipeline_error_is_last_frame() -> None:
    frames = [frame async for frame in stream_pipeline("", _collaborators())]

    assert len(frames) == 1
    assert json.loads(frames[0][len("data: ") :]) == {
        "type": "error",
        "data": {"message": ErrorMessages.URL_REQUIRED},
    }


@pytest.mark.asyncio
async def test_consumer_disconnect_cancels_in_flight_work() -> None:
    cancelled = asyncio.Event()

    async def slow_fetch(url):
        try:
            await asyncio.sleep(10)
        except asyncio.CancelledError:
            cancelled.set()
            raise

    stream = stream_pipeline(CHANNEL_URL, _collaborators(fetch_videos=slow_fetch))
    first = await stream.__anext__()
    assert '"fetching_videos"' in first

    await stream.aclose()

    await asyncio.wait_for(cancelled.wait(), timeout=1)
