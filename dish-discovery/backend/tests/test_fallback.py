from __future__ import annotations

import asyncio

from config import Configuration
from errors import PlacesProviderError
from models import FallbackPlace, LatLng
from services.fallback import FallbackSearchBroker


HERE = LatLng(37.7599, -122.4148)


class _Recorder:
    def __init__(self, delays=None, error=None):
        self.calls = []
        self.delays = delays or {}
        self.error = error

    async def __call__(self, query, location):
        self.calls.append(query)
        await asyncio.sleep(self.delays.get(query, 0.0))
        if self.error is not None:
            raise self.error
        return [FallbackPlace(place_id=f"p-{query}", name=query)]


def test_burst_of_keystrokes_issues_one_request() -> None:
    search = _Recorder()

    async def main():
        broker = FallbackSearchBroker(search, debounce_sec=0.05, min_query_len=1)
        for text in ("a", "ab", "abc"):
            assert broker.submit(text, HERE, 0)
        assert broker.pending
        await broker.wait_idle()
        return broker

    broker = asyncio.run(main())
    assert search.calls == ["abc"]
    assert broker.requests_issued == 1
    assert broker.state.visible
    assert broker.state.query == "abc"
    assert [p.name for p in broker.state.results] == ["abc"]


def test_slow_stale_response_is_discarded() -> None:
    search = _Recorder(delays={"pizza": 0.2, "ramen": 0.01})

    async def main():
        broker = FallbackSearchBroker(search, debounce_sec=0.01)
        broker.submit("pizza", HERE, 0)
        await asyncio.sleep(0.05)  # pizza is now in flight
        assert broker.state.loading
        broker.submit("ramen", HERE, 0)
        await broker.wait_idle()
        return broker

    broker = asyncio.run(main())
    assert search.calls == ["pizza", "ramen"]
    assert broker.state.query == "ramen"
    assert [p.name for p in broker.state.results] == ["ramen"]
    assert broker.state.generation == broker.generation


def test_timeout_is_silent() -> None:
    search = _Recorder(delays={"slow food": 1.0})

    async def main():
        broker = FallbackSearchBroker(search, debounce_sec=0.0, timeout_sec=0.05)
        broker.submit("slow food", HERE, 1)
        await broker.wait_idle()
        return broker

    broker = asyncio.run(main())
    assert broker.state.results == []
    assert not broker.state.visible
    assert not broker.state.loading


def test_provider_error_is_silent() -> None:
    search = _Recorder(error=PlacesProviderError("REQUEST_DENIED"))

    async def main():
        broker = FallbackSearchBroker(search, debounce_sec=0.0)
        broker.submit("tacos", HERE, 0)
        await broker.wait_idle()
        return broker

    broker = asyncio.run(main())
    assert broker.requests_issued == 1
    assert not broker.state.visible


def test_trigger_conditions() -> None:
    broker = FallbackSearchBroker(_Recorder())
    assert broker.should_trigger("tacos", HERE, 2)
    assert not broker.should_trigger("ta", HERE, 0)
    assert not broker.should_trigger("  ta  ", HERE, 0)
    assert not broker.should_trigger("tacos", None, 0)
    assert not broker.should_trigger("tacos", HERE, 3)


def test_non_triggering_input_resets_and_invalidates() -> None:
    search = _Recorder(delays={"ramen": 0.1})

    async def main():
        broker = FallbackSearchBroker(search, debounce_sec=0.0)
        broker.submit("ramen", HERE, 0)
        await asyncio.sleep(0.02)
        before = broker.generation
        # local results filled in; external results must not appear
        assert not broker.submit("ramen", HERE, 5)
        assert broker.generation == before + 1
        await broker.wait_idle()
        return broker

    broker = asyncio.run(main())
    assert broker.state.results == []
    assert not broker.state.visible
    assert broker.state.query == ""


def test_close_cancels_pending_search() -> None:
    search = _Recorder()

    async def main():
        broker = FallbackSearchBroker(search, debounce_sec=0.02)
        broker.submit("tacos", HERE, 0)
        broker.close()
        assert not broker.pending
        await asyncio.sleep(0.05)
        return broker

    broker = asyncio.run(main())
    assert search.calls == []
    assert broker.requests_issued == 0


def test_from_config() -> None:
    cfg = Configuration(fallback_debounce_ms=250, fallback_timeout_sec=2.0, fallback_min_query_len=2)
    broker = FallbackSearchBroker.from_config(cfg, _Recorder())
    assert broker.debounce_sec == 0.25
    assert broker.timeout_sec == 2.0
    assert broker.min_query_len == 2
    assert broker.thin_threshold == 3
