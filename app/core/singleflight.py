"""Single-flight registry: coalesce concurrent identical calls.

Two requests that miss the cache for the same key at the same time would
otherwise each call the provider and each write the cache. With a shared
:class:`SingleFlight`, the first caller runs the work and every concurrent
caller for that key awaits the same result.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

from app.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class _LeaderCancelled(Exception):
    """Delivered to followers when the call they joined was cancelled."""


class SingleFlight:
    """Per-key in-flight call registry.

    Usage::

        flight = SingleFlight()
        result = await flight.do("serp:video:cats", lambda: fetch_and_cache())

    The entry is dropped as soon as the call settles, so a later call for
    the same key runs fresh (by then the cache normally answers it). If the
    leader is cancelled, its followers start over and one of them leads.
    """

    def __init__(self) -> None:
        self._inflight: dict[str, asyncio.Future] = {}
        self.coalesced = 0

    def in_flight(self, key: str) -> bool:
        return key in self._inflight

    async def do(self, key: str, fn: Callable[[], Awaitable[T]]) -> T:
        while (existing := self._inflight.get(key)) is not None:
            self.coalesced += 1
            logger.debug("singleflight_joined", key=key[:120])
            try:
                # shield: a cancelled follower must not cancel the leader's call
                return await asyncio.shield(existing)
            except _LeaderCancelled:
                logger.debug("singleflight_leader_cancelled", key=key[:120])

        future: asyncio.Future = asyncio.get_running_loop().create_future()
        self._inflight[key] = future
        try:
            result = await fn()
        except asyncio.CancelledError:
            future.set_exception(_LeaderCancelled())
            future.exception()
            raise
        except Exception as e:
            future.set_exception(e)
            # mark retrieved so a leader-only failure is not reported twice
            future.exception()
            raise
        else:
            future.set_result(result)
            return result
        finally:
            if self._inflight.get(key) is future:
                del self._inflight[key]
