"""Shared AsyncOpenAI client used by topic extraction and idea generation."""

from openai import AsyncOpenAI

from channel_ideas.core.config import settings

_openai_client: AsyncOpenAI | None = None


def get_openai_client() -> AsyncOpenAI:
    """Return the process-wide client, creating it on first use.

    Callers still pass a per-request timeout. At most one retry per call.
    """
    global _openai_client
    if _openai_client is None:
        _openai_client = AsyncOpenAI(
            api_key=settings.OPENAI_API_KEY,
            timeout=settings.AGENT_TIMEOUT,
            max_retries=1,
        )
    return _openai_client
