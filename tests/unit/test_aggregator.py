"""Live-data aggregator tests"""

import asyncio
import time

import pytest

from travelstory.aggregator import LiveDataAggregator
from travelstory.errors import SourceUnavailableError
from travelstory.models import FetchState
from travelstory.sources.base import SourceAdapter

from conftest import GatedSource, InstantSource


async def settle():
    """Let every ready callback on the loop run"""
    for _ in range(5):
        await asyncio.sleep(0)


class BlockingSource(SourceAdapter):
    """Plain (non-async) adapter, run on the worker pool"""

    name = "country"
    fields = ("country_info",)

    def fetch(self, query):
        time.sleep(0.01)
        return {"name": query.country}


class TestFanOut:
    """Start, resolve and fail"""

    @pytest.mark.asyncio
    async def test_start_marks_all_fields_pending(self, catalog, cfg):
        weather = GatedSource("weather", fields=("weather", "forecast"))
        summary = GatedSource("encyclopedia", fields=("summary",))
        aggregator = LiveDataAggregator([weather, summary], cfg=cfg)

        aggregator.start(catalog.get("kyoto"))
        assert aggregator.bundle.value.city_id == "kyoto"
        assert aggregator.bundle.value.resolved_fields() == []
        assert set(aggregator.fetch_states.value.values()) == {FetchState.PENDING}
        assert set(aggregator.fetch_states.value) == {"weather", "forecast", "summary"}
        aggregator.teardown()

    @pytest.mark.asyncio
    async def test_weather_failure_leaves_other_fields(self, catalog, cfg):
        """one failing source never hides the others"""
        sources = [
            InstantSource("weather", error=SourceUnavailableError("weather", "503"), fields=("weather", "forecast")),
            InstantSource("encyclopedia", payload="Kyoto was the capital...", fields=("summary",)),
            InstantSource("country", payload={"name": "Japan"}, fields=("country_info",)),
            InstantSource("photos", payload=[{"url": "p.jpg"}], fields=("photos",)),
        ]
        aggregator = LiveDataAggregator(sources, cfg=cfg)
        aggregator.start(catalog.get("kyoto"))
        bundle = await aggregator.wait(1)

        assert bundle.weather is None
        assert bundle.forecast is None
        assert set(bundle.resolved_fields()) == {"summary", "country_info", "photos"}
        states = aggregator.fetch_states.value
        assert states["weather"] == FetchState.FAILED
        assert states["summary"] == FetchState.RESOLVED
        aggregator.teardown()

    @pytest.mark.asyncio
    async def test_weather_splits_into_two_fields(self, catalog, cfg):
        class TwoFieldSource(InstantSource):
            def split(self, payload):
                return {"weather": payload["now"], "forecast": payload["days"]}

        source = TwoFieldSource("weather", payload={"now": {"t": 21}, "days": [{"t": 23}]},
                                fields=("weather", "forecast"))
        aggregator = LiveDataAggregator([source], cfg=cfg)
        aggregator.start(catalog.get("kyoto"))
        bundle = await aggregator.wait(1)
        assert bundle.weather == {"t": 21}
        assert bundle.forecast == [{"t": 23}]

    @pytest.mark.asyncio
    async def test_empty_result_is_absent_but_resolved(self, catalog, cfg):
        aggregator = LiveDataAggregator([InstantSource("photos", payload=[])], cfg=cfg)
        aggregator.start(catalog.get("kyoto"))
        bundle = await aggregator.wait(1)
        assert bundle.photos is None
        assert aggregator.fetch_states.value["photos"] == FetchState.RESOLVED

    @pytest.mark.asyncio
    async def test_blocking_adapter_runs_on_executor(self, catalog, cfg):
        aggregator = LiveDataAggregator([BlockingSource()], cfg=cfg)
        aggregator.start(catalog.get("kyoto"))
        bundle = await aggregator.wait(2)
        assert bundle.country_info == {"name": "Japan"}
        aggregator.teardown()

    @pytest.mark.asyncio
    async def test_merge_order_independent(self, catalog, cfg):
        a = GatedSource("summary", payloads={"Kyoto": "text"})
        b = GatedSource("photos", payloads={"Kyoto": ["p.jpg"]})
        aggregator = LiveDataAggregator([a, b], cfg=cfg)
        updates = []
        aggregator.bundle.subscribe(lambda bundle: updates.append(bundle.resolved_fields()))

        aggregator.start(catalog.get("kyoto"))
        await settle()
        b.release("Kyoto")
        await settle()
        a.release("Kyoto")
        bundle = await aggregator.wait(1)

        assert set(bundle.resolved_fields()) == {"summary", "photos"}
        assert updates[-2:] == [["photos"], ["summary", "photos"]]


class TestStaleDiscard:
    """Generation checks"""

    @pytest.mark.asyncio
    async def test_navigation_discards_previous_city(self, catalog, cfg):
        """results for A that land after moving to B are never written"""
        summary = GatedSource("summary", payloads={"Kyoto": "Kyoto text", "Hanoi": "Hanoi text"})
        photos = GatedSource("photos", payloads={"Kyoto": ["k.jpg"], "Hanoi": ["h.jpg"]})
        aggregator = LiveDataAggregator([summary, photos], cfg=cfg)

        first = aggregator.start(catalog.get("kyoto"))
        await settle()
        second = aggregator.start(catalog.get("hanoi"))
        await settle()
        assert second != first

        summary.release("Kyoto")
        photos.release("Kyoto")
        await settle()
        bundle = aggregator.bundle.value
        assert bundle.city_id == "hanoi"
        assert bundle.resolved_fields() == []
        assert set(aggregator.fetch_states.value.values()) == {FetchState.PENDING}

        summary.release("Hanoi")
        photos.release("Hanoi")
        bundle = await aggregator.wait(1)
        assert bundle.summary == "Hanoi text"
        assert bundle.photos == ["h.jpg"]

    @pytest.mark.asyncio
    async def test_stale_failure_does_not_mark_failed(self, catalog, cfg):
        broken = GatedSource("summary", error=RuntimeError("late"))
        aggregator = LiveDataAggregator([broken], cfg=cfg)

        aggregator.start(catalog.get("kyoto"))
        await settle()
        aggregator.start(catalog.get("hanoi"))
        broken.release("Kyoto")
        await settle()
        assert aggregator.fetch_states.value["summary"] == FetchState.PENDING
        aggregator.teardown()


class TestTeardownAndWait:
    """Cancellation and timeouts"""

    @pytest.mark.asyncio
    async def test_teardown_cancels_pending(self, catalog, cfg):
        source = GatedSource("summary", payloads={"Kyoto": "text"})
        aggregator = LiveDataAggregator([source], cfg=cfg)
        aggregator.start(catalog.get("kyoto"))
        await settle()
        assert aggregator.pending_tasks == 1

        aggregator.teardown()
        await settle()
        assert aggregator.pending_tasks == 0
        assert aggregator.bundle.value.summary is None

    @pytest.mark.asyncio
    async def test_reset_clears_cells(self, catalog, cfg):
        aggregator = LiveDataAggregator([InstantSource("summary", payload="text")], cfg=cfg)
        aggregator.start(catalog.get("kyoto"))
        await aggregator.wait(1)
        generation = aggregator.generation

        aggregator.reset()
        assert aggregator.bundle.value is None
        assert aggregator.fetch_states.value == {}
        assert aggregator.generation > generation

    @pytest.mark.asyncio
    async def test_wait_timeout_leaves_pending(self, catalog, cfg):
        slow = GatedSource("summary", payloads={"Kyoto": "text"})
        fast = InstantSource("photos", payload=["p.jpg"])
        aggregator = LiveDataAggregator([slow, fast], cfg=cfg)

        aggregator.start(catalog.get("kyoto"))
        bundle = await aggregator.wait(0.05)
        assert bundle.photos == ["p.jpg"]
        assert aggregator.fetch_states.value["summary"] == FetchState.PENDING
        aggregator.teardown()

    @pytest.mark.asyncio
    async def test_no_sources_settles_immediately(self, catalog, cfg):
        aggregator = LiveDataAggregator([], cfg=cfg)
        generation = aggregator.start(catalog.get("kyoto"))
        assert generation == 1
        assert await aggregator.wait(0.1) == aggregator.bundle.value
