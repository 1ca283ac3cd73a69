"""Debounced external search used when local results are thin.

Two mechanisms work together. The debounce timer collapses a burst of
keystrokes into one request. The generation token makes sure a slow
response for an older query can never overwrite the state of a newer one:
every dispatch (and every reset) bumps the generation, and a response is
committed only if it still carries the latest value.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional, Set

from loguru import logger

from config import Configuration
from errors import FallbackSearchError
from models import FallbackPlace, LatLng


SearchFn = Callable[[str, LatLng], Awaitable[List[FallbackPlace]]]


@dataclass(frozen=True)
class FallbackState:
    query: str = ""
    results: List[FallbackPlace] = field(default_factory=list)
    visible: bool = False
    loading: bool = False
    generation: int = 0


class FallbackSearchBroker:
    def __init__(
        self,
        search: SearchFn,
        *,
        debounce_sec: float = 0.5,
        timeout_sec: float = 5.0,
        min_query_len: int = 3,
        thin_threshold: int = 3,
    ) -> None:
        self._search = search
        self.debounce_sec = debounce_sec
        self.timeout_sec = timeout_sec
        self.min_query_len = min_query_len
        self.thin_threshold = thin_threshold
        self.requests_issued = 0
        self.state = FallbackState()
        self._generation = 0
        self._timer: Optional[asyncio.TimerHandle] = None
        self._in_flight: Set[asyncio.Task] = set()

    @classmethod
    def from_config(cls, cfg: Configuration, search: SearchFn) -> "FallbackSearchBroker":
        return cls(
            search,
            debounce_sec=cfg.fallback_debounce_sec,
            timeout_sec=cfg.fallback_timeout_sec,
            min_query_len=cfg.fallback_min_query_len,
            thin_threshold=cfg.fallback_thin_threshold,
        )

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def pending(self) -> bool:
        return self._timer is not None

    def should_trigger(self, query: str, location: Optional[LatLng], local_count: int) -> bool:
        return (
            len((query or "").strip()) >= self.min_query_len
            and location is not None
            and local_count < self.thin_threshold
        )

    def submit(self, query: str, location: Optional[LatLng], local_count: int) -> bool:
        """Feed one input change. Must run inside the event loop.

        Returns True when an external search was scheduled.
        """
        self._cancel_timer()
        if not self.should_trigger(query, location, local_count):
            self._reset()
            return False
        assert location is not None
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self.debounce_sec, self._dispatch, query.strip(), location)
        return True

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _reset(self) -> None:
        # in-flight requests from older generations are left to finish and dropped
        self._generation += 1
        self.state = FallbackState(generation=self._generation)

    def _dispatch(self, query: str, location: LatLng) -> None:
        self._timer = None
        self._generation += 1
        token = self._generation
        self.requests_issued += 1
        self.state = FallbackState(
            query=query,
            results=list(self.state.results),
            visible=self.state.visible,
            loading=True,
            generation=token,
        )
        task = asyncio.get_running_loop().create_task(self._run(token, query, location))
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)

    async def _run(self, token: int, query: str, location: LatLng) -> None:
        try:
            results = await asyncio.wait_for(self._search(query, location), timeout=self.timeout_sec)
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # provider error or timeout, never user-facing
            logger.warning("{}", FallbackSearchError(query, exc))
            results = []

        if token != self._generation:
            logger.debug("discarding stale fallback results query={!r} token={} latest={}", query, token, self._generation)
            return
        self.state = FallbackState(
            query=query,
            results=list(results),
            visible=bool(results),
            loading=False,
            generation=token,
        )

    async def wait_idle(self) -> None:
        """Wait for the pending timer and every in-flight request to finish."""
        loop = asyncio.get_running_loop()
        while self._timer is not None or self._in_flight:
            if self._timer is not None:
                await asyncio.sleep(max(0.0, self._timer.when() - loop.time()) + 0.001)
                continue
            await asyncio.gather(*list(self._in_flight), return_exceptions=True)

    def close(self) -> None:
        self._cancel_timer()
        for task in list(self._in_flight):
            task.cancel()
        self._reset()
