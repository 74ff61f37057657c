"""Shared fixtures"""

import asyncio
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# project root on sys.path so tests run without an install
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from travelstory.behavior import BehavioralStore
from travelstory.catalog import Catalog
from travelstory.config import Config
from travelstory.models import UserProfile
from travelstory.personalization import PersonalizationEngine
from travelstory.sources.base import SourceAdapter


class FakeClock:
    """Manually advanced clock"""

    def __init__(self, start: datetime = None):
        self.now = start or datetime(2024, 5, 1, 9, 30, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class GatedSource(SourceAdapter):
    """Async source whose results are released per city by the test"""

    def __init__(self, name: str, fields=None, payloads=None, error: Exception = None):
        self.name = name
        self.fields = tuple(fields or (name,))
        self.payloads = payloads or {}
        self.error = error
        self.gates = {}
        self.calls = []

    def gate(self, city_name: str) -> asyncio.Event:
        if city_name not in self.gates:
            self.gates[city_name] = asyncio.Event()
        return self.gates[city_name]

    def release(self, city_name: str):
        self.gate(city_name).set()

    async def fetch(self, query):
        self.calls.append(query.city_name)
        await self.gate(query.city_name).wait()
        if self.error is not None:
            raise self.error
        return self.payloads[query.city_name]


class InstantSource(SourceAdapter):
    """Async source that answers (or fails) immediately"""

    def __init__(self, name: str, payload=None, error: Exception = None, fields=None):
        self.name = name
        self.fields = tuple(fields or (name,))
        self.payload = payload
        self.error = error
        self.calls = 0

    async def fetch(self, query):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.payload


CITY_ROWS = [
    {"id": "xtown", "name": "Xtown", "country": "Italy", "continent": "Europe",
     "tags": ["foodie", "cultural"], "price_level": 2, "rating": 4.5, "popularity_score": 60,
     "coordinates": {"lat": 41.9, "lng": 12.5}},
    {"id": "yville", "name": "Yville", "country": "Switzerland", "continent": "Europe",
     "tags": ["luxury", "nature"], "price_level": 5, "rating": 4.9, "popularity_score": 90,
     "coordinates": {"lat": 46.2, "lng": 6.1}},
    {"id": "lisbon", "name": "Lisbon", "country": "Portugal", "continent": "Europe",
     "tags": ["cultural", "foodie", "romantic"], "price_level": 2, "rating": 4.6, "popularity_score": 85,
     "coordinates": {"lat": 38.72, "lng": -9.14}},
    {"id": "kyoto", "name": "Kyoto", "country": "Japan", "continent": "Asia",
     "tags": ["cultural", "historic", "spiritual"], "price_level": 3, "rating": 4.9, "popularity_score": 88,
     "coordinates": {"lat": 35.01, "lng": 135.77}},
    {"id": "hanoi", "name": "Hanoi", "country": "Vietnam", "continent": "Asia",
     "tags": ["foodie", "budget", "cultural", "historic"], "price_level": 1, "rating": 4.5, "popularity_score": 55,
     "coordinates": {"lat": 21.03, "lng": 105.85}},
]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cfg():
    return Config(
        VISIT_THROTTLE_SECONDS=30,
        VISIT_TRACKING_INTERVAL=30,
        INTERACTION_LOG_CAPACITY=50,
        USE_PERSISTENT_CACHE=False,
        LIVE_DATA_TIMEOUT=2,
        MAX_CONCURRENT_REQUESTS=2,
    )


@pytest.fixture
def catalog():
    return Catalog.from_dicts(CITY_ROWS)


@pytest.fixture
def store(clock):
    profile = UserProfile(user_id="test-user", created_at=clock(), last_seen_at=clock())
    return BehavioralStore(profile=profile, clock=clock, throttle_seconds=30, log_capacity=50)


@pytest.fixture
def engine(catalog, store, cfg, clock):
    return PersonalizationEngine(catalog, store, cfg=cfg, clock=clock)
