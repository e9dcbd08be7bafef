"""Shared fixtures: upstream HTTP is replaced with httpx.MockTransport."""

import httpx
import pytest

from channel_ideas.core.config import settings

_REAL_ASYNC_CLIENT = httpx.AsyncClient
_REAL_CLIENT = httpx.Client


@pytest.fixture
def async_client_factory():
    """Build a drop-in for httpx.AsyncClient that routes every request to `handler`."""

    def build(handler):
        def factory(*args, **kwargs):
            kwargs["transport"] = httpx.MockTransport(handler)
            return _REAL_ASYNC_CLIENT(*args, **kwargs)

        return factory

    return build


@pytest.fixture
def sync_client_factory():
    def build(handler):
        def factory(*args, **kwargs):
            kwargs["transport"] = httpx.MockTransport(handler)
            return _REAL_CLIENT(*args, **kwargs)

        return factory

    return build


@pytest.fixture
def api_keys(monkeypatch):
    monkeypatch.setattr(settings, "YOUTUBE_API_KEY", "yt-test-key")
    monkeypatch.setattr(settings, "NEWS_API_KEY", "news-test-key")
    monkeypatch.setattr(settings, "OPENAI_API_KEY", "sk-test")


@pytest.fixture
def no_api_keys(monkeypatch):
    monkeypatch.setattr(settings, "YOUTUBE_API_KEY", None)
    monkeypatch.setattr(settings, "NEWS_API_KEY", None)
    monkeypatch.setattr(settings, "OPENAI_API_KEY", None)
