import asyncio
import logging
from enum import Enum
from typing import List, Optional

from .aggregator import LiveDataAggregator
from .behavior import BehavioralStore
from .catalog import Catalog
from .config import Config, config
from .models import CityRecord, SimilarCity
from .personalization import PersonalizationEngine

logger = logging.getLogger(__name__)


class PageState(str, Enum):
    IDLE = "idle"
    READY = "ready"
    NOT_FOUND = "not_found"


class CityPageSession:
    """Lifecycle of one city detail page: live data, similar cities, visit timer.

    The visit-tracking timer keeps recording visits while the page stays open.
    It is stopped on navigation and on teardown and is never cancelled twice.
    """

    def __init__(
        self,
        catalog: Catalog,
        store: BehavioralStore,
        aggregator: LiveDataAggregator,
        engine: PersonalizationEngine = None,
        cfg: Config = None,
        tracking_interval: float = None,
        similar_limit: int = 4,
    ):
        self.cfg = cfg or config
        self.catalog = catalog
        self.store = store
        self.aggregator = aggregator
        self.engine = engine or PersonalizationEngine(catalog, store, cfg=self.cfg)
        self.tracking_interval = self.cfg.VISIT_TRACKING_INTERVAL if tracking_interval is None else tracking_interval
        self.similar_limit = similar_limit

        self.state = PageState.IDLE
        self.city: Optional[CityRecord] = None
        self.similar: List[SimilarCity] = []
        self._timer: Optional[asyncio.Task] = None

    @property
    def tracking(self) -> bool:
        return self._timer is not None and not self._timer.done()

    def enter(self, city_id: str) -> PageState:
        self._stop_timer()
        city = self.catalog.lookup(city_id)
        if city is None:
            logger.info(f"City page requested for unknown city {city_id}")
            self.aggregator.reset()
            self.state = PageState.NOT_FOUND
            self.city = None
            self.similar = []
            return self.state

        self.state = PageState.READY
        self.city = city
        self.store.record_visit(city.id)
        self.similar = self.engine.similar_cities(city.id, self.similar_limit)
        self.aggregator.start(city)
        self._timer = asyncio.get_running_loop().create_task(self._track(city.id))
        return self.state

    def navigate(self, city_id: str) -> PageState:
        return self.enter(city_id)

    def teardown(self):
        self.aggregator.teardown()
        self._stop_timer()

    def _stop_timer(self):
        timer, self._timer = self._timer, None
        if timer is not None:
            timer.cancel()

    async def _track(self, city_id: str):
        while True:
            await asyncio.sleep(self.tracking_interval)
            self.store.record_visit(city_id)
