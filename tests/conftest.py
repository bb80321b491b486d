"""Shared fixtures: settings, fake clock, in-memory cache, mock upstreams."""

from __future__ import annotations

from collections.abc import Callable

import httpx
import pytest

from app.config import Settings
from app.core.cache import MemoryCacheStore
from app.core.retry import RetryingFetcher


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class SleepRecorder:
    """Stands in for asyncio.sleep; records requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


def make_settings(**overrides) -> Settings:
    values = {
        "serp_api_key": "serp-test-key",
        "hf_api_key": "hf-test-key",
        "serp_backoff_seconds": 0.5,
        "hf_backoff_seconds": 5.0,
        "variation_pause_seconds": 1.0,
        "cache_backend": "memory",
    }
    values.update(overrides)
    return Settings(**values)


def video_item(n: int, **extra) -> dict:
    item = {
        "link": f"https://www.youtube.com/watch?v=vid{n}",
        "title": f"Video {n}",
        "channel": {"name": f"Channel {n}"},
        "thumbnail": {"static": f"https://i.ytimg.com/vi/vid{n}/hq.jpg"},
        "views": 1000 + n,
        "published_date": "2 days ago",
        "length": "10:00",
        "description": f"About video {n}",
    }
    item.update(extra)
    return item


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock) -> MemoryCacheStore:
    return MemoryCacheStore(clock=clock)


@pytest.fixture
def sleeper() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def make_fetcher(sleeper) -> Callable:
    """Build a RetryingFetcher whose client answers through ``handler``."""

    def _make(handler) -> RetryingFetcher:
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return RetryingFetcher(client, sleep=sleeper)

    return _make
