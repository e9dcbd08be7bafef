"""Pydantic request/response schemas for the analysis stream.

Centralised here so that schemas can be shared across routes, services and
tools without circular imports. Wire names are camelCase (the renderer's
contract); Python attributes stay snake_case and are populated by either name.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from channel_ideas.core.constants import StepId

_WIRE_CONFIG = ConfigDict(populate_by_name=True, frozen=True)


# ---------------------------------------------------------------------------
# Request
# ---------------------------------------------------------------------------


class AnalyzeRequest(BaseModel):
    """Incoming body. The URL is validated by the pipeline, not here."""

    model_config = ConfigDict(extra="ignore")

    url: Any = None


# ---------------------------------------------------------------------------
# Collaborator payloads
# ---------------------------------------------------------------------------


class VideoSummary(BaseModel):
    model_config = _WIRE_CONFIG

    id: str
    title: str
    description: str = ""
    published_at: str = Field(default="", alias="publishedAt")
    thumbnail_url: str = Field(default="", alias="thumbnailUrl")


class NewsItem(BaseModel):
    model_config = _WIRE_CONFIG

    title: str
    url: str
    source: str = "Unknown"


class DiscussionItem(BaseModel):
    model_config = _WIRE_CONFIG

    title: str
    url: str
    community: str = ""


class Idea(BaseModel):
    model_config = _WIRE_CONFIG

    title: str
    thumb_design: str = Field(alias="thumbDesign")
    video_idea: str = Field(alias="videoIdea")


# ---------------------------------------------------------------------------
# Stream events
# ---------------------------------------------------------------------------


class PipelineResult(BaseModel):
    """Terminal payload of a successful run."""

    model_config = _WIRE_CONFIG

    topics: list[str]
    news: list[NewsItem]
    reddit_posts: list[DiscussionItem] = Field(alias="redditPosts")
    video_ideas: list[Idea] = Field(alias="videoIdeas")

    def to_payload(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class ProgressEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    step: StepId
    message: str
    data: dict[str, Any] | None = None

    def to_payload(self) -> dict:
        """Wire payload; `data` is omitted when the step carries none."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ErrorEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str

    def to_payload(self) -> dict:
        return self.model_dump(mode="json")
