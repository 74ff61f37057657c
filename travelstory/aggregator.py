import asyncio
import inspect
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, Iterable, List, Optional, Set

from .config import Config, config
from .models import CityRecord, FetchState, LiveDataBundle, SourceQuery
from .observable import StateCell
from .sources.base import SourceAdapter

logger = logging.getLogger(__name__)


def _is_empty(value) -> bool:
    return value is None or (hasattr(value, "__len__") and len(value) == 0)


# -------------------- LIVE DATA AGGREGATOR --------------------
class LiveDataAggregator:
    """Fans out to every source for one city and merges results as they land.

    Each ``start`` opens a new generation. A source result is written only if
    its generation is still the active one; anything older is dropped without
    touching the bundle or the fetch states. Source failures are logged and
    leave their fields absent. Nothing raised by a source reaches the caller.
    """

    def __init__(self, sources: Iterable[SourceAdapter], cfg: Config = None, executor: ThreadPoolExecutor = None):
        self.cfg = cfg or config
        self.sources: List[SourceAdapter] = list(sources)
        self.bundle: StateCell[Optional[LiveDataBundle]] = StateCell(None)
        self.fetch_states: StateCell[Dict[str, FetchState]] = StateCell({})

        self._generation = 0
        self._current: List[asyncio.Task] = []
        self._tasks: Set[asyncio.Task] = set()
        self._executor = executor
        self._owns_executor = executor is None

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def pending_tasks(self) -> int:
        return sum(1 for t in self._tasks if not t.done())

    def start(self, city: CityRecord) -> int:
        """Begin fetching live data for ``city``; must run inside an event loop"""
        loop = asyncio.get_running_loop()
        self._generation += 1
        generation = self._generation

        self.bundle.set(LiveDataBundle(city_id=city.id))
        self.fetch_states.set({f: FetchState.PENDING for source in self.sources for f in source.fields})
        logger.info(f"Fetching live data for {city.id} from {len(self.sources)} sources (generation {generation})")

        query = SourceQuery(city_name=city.name, country=city.country, coordinates=city.coordinates)
        self._current = []
        for source in self.sources:
            task = loop.create_task(self._run(source, query, generation))
            task.add_done_callback(self._tasks.discard)
            self._tasks.add(task)
            self._current.append(task)
        return generation

    async def wait(self, timeout: float = None) -> Optional[LiveDataBundle]:
        """Wait for the active generation's sources; stragglers stay pending"""
        pending = [t for t in self._current if not t.done()]
        if pending:
            _, still_pending = await asyncio.wait(pending, timeout=timeout)
            if still_pending:
                logger.warning(f"{len(still_pending)} sources still pending after {timeout}s")
        return self.bundle.value

    def teardown(self):
        """Cancel in-flight work; late results are inert afterwards"""
        self._generation += 1
        cancelled = 0
        for task in list(self._tasks):
            if not task.done():
                task.cancel()
                cancelled += 1
        self._current = []
        if cancelled:
            logger.debug(f"Cancelled {cancelled} pending source fetches")

        if self._owns_executor and self._executor is not None:
            self._executor.shutdown(wait=False)
            self._executor = None

    def reset(self):
        """Teardown, then drop the bundle and fetch states so no city is shown"""
        self.teardown()
        self.bundle.set(None)
        self.fetch_states.set({})

    # ---- internals ----
    def _get_executor(self) -> ThreadPoolExecutor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=self.cfg.MAX_CONCURRENT_REQUESTS)
        return self._executor

    async def _call(self, source: SourceAdapter, query: SourceQuery):
        if inspect.iscoroutinefunction(source.fetch):
            return await source.fetch(query)
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._get_executor(), source.fetch, query)

    async def _run(self, source: SourceAdapter, query: SourceQuery, generation: int):
        try:
            values = source.split(await self._call(source, query))
        except Exception as e:
            if generation != self._generation:
                logger.debug(f"Ignoring stale failure from {source.name} (generation {generation})")
                return
            logger.warning(f"Source {source.name} failed for {query.city_name}: {e}")
            self._mark(source.fields, FetchState.FAILED)
            return

        if generation != self._generation:
            logger.debug(f"Discarding stale result from {source.name} (generation {generation})")
            return

        present = {k: v for k, v in values.items() if k in source.fields and not _is_empty(v)}
        if present:
            self.bundle.update(lambda bundle: bundle.with_fields(**present))
        self._mark(source.fields, FetchState.RESOLVED)

    def _mark(self, fields, state: FetchState):
        states = dict(self.fetch_states.value)
        for f in fields:
            states[f] = state
        self.fetch_states.set(states)
