import os
import json
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from .config import config
from .errors import CityNotFoundError
from .models import CityRecord

logger = logging.getLogger(__name__)

# -------------------- SEED CITIES --------------------
DEFAULT_CITIES = [
    # ASIA
    {"id": "tokyo", "name": "Tokyo", "country": "Japan", "continent": "Asia", "tagline": "Where tradition and the future dance together", "coordinates": {"lat": 35.6762, "lng": 139.6503}, "tags": ["cultural", "foodie", "technology", "nightlife", "adventure"], "rating": 4.8, "popularity_score": 95, "price_level": 4},
    {"id": "bali", "name": "Bali", "country": "Indonesia", "continent": "Asia", "tagline": "The island of the gods", "coordinates": {"lat": -8.3405, "lng": 115.0920}, "tags": ["relaxation", "nature", "spiritual", "budget", "romantic"], "rating": 4.5, "popularity_score": 90, "price_level": 2},
    {"id": "bangkok", "name": "Bangkok", "country": "Thailand", "continent": "Asia", "tagline": "Golden temples and street food chaos", "coordinates": {"lat": 13.7563, "lng": 100.5018}, "tags": ["foodie", "budget", "nightlife", "cultural", "adventure"], "rating": 4.5, "popularity_score": 88, "price_level": 1},
    {"id": "singapore", "name": "Singapore", "country": "Singapore", "continent": "Asia", "tagline": "The green city-state of the future", "coordinates": {"lat": 1.3521, "lng": 103.8198}, "tags": ["luxury", "foodie", "technology", "cultural", "family"], "rating": 4.7, "popularity_score": 85, "price_level": 4},
    {"id": "kyoto", "name": "Kyoto", "country": "Japan", "continent": "Asia", "tagline": "The traditional soul of Japan", "coordinates": {"lat": 35.0116, "lng": 135.7681}, "tags": ["cultural", "spiritual", "romantic", "photography", "nature"], "rating": 4.9, "popularity_score": 87, "price_level": 3},
    {"id": "hanoi", "name": "Hanoi", "country": "Vietnam", "continent": "Asia", "tagline": "A thousand years of lakes and pagodas", "coordinates": {"lat": 21.0278, "lng": 105.8342}, "tags": ["cultural", "budget", "foodie", "adventure", "historic"], "rating": 4.4, "popularity_score": 75, "price_level": 1},
    {"id": "dubai", "name": "Dubai", "country": "United Arab Emirates", "continent": "Asia", "tagline": "The impossible, built in the desert", "coordinates": {"lat": 25.2048, "lng": 55.2708}, "tags": ["luxury", "shopping", "architecture", "beach", "family"], "rating": 4.5, "popularity_score": 91, "price_level": 5},
    # EUROPE
    {"id": "lisbon", "name": "Lisbon", "country": "Portugal", "continent": "Europe", "tagline": "Seven hills of poetry facing the ocean", "coordinates": {"lat": 38.7223, "lng": -9.1393}, "tags": ["romantic", "foodie", "budget", "cultural", "nightlife"], "rating": 4.6, "popularity_score": 88, "price_level": 2},
    {"id": "barcelona", "name": "Barcelona", "country": "Spain", "continent": "Europe", "tagline": "Art, sea and Mediterranean nights", "coordinates": {"lat": 41.3851, "lng": 2.1734}, "tags": ["cultural", "nightlife", "foodie", "beach", "architecture"], "rating": 4.6, "popularity_score": 92, "price_level": 3},
    {"id": "paris", "name": "Paris", "country": "France", "continent": "Europe", "tagline": "The city of light", "coordinates": {"lat": 48.8566, "lng": 2.3522}, "tags": ["romantic", "cultural", "foodie", "luxury", "architecture"], "rating": 4.7, "popularity_score": 97, "price_level": 4},
    {"id": "rome", "name": "Rome", "country": "Italy", "continent": "Europe", "tagline": "The eternal city", "coordinates": {"lat": 41.9028, "lng": 12.4964}, "tags": ["cultural", "historic", "foodie", "romantic", "architecture"], "rating": 4.7, "popularity_score": 94, "price_level": 3},
    {"id": "prague", "name": "Prague", "country": "Czech Republic", "continent": "Europe", "tagline": "The city of a hundred spires", "coordinates": {"lat": 50.0755, "lng": 14.4378}, "tags": ["cultural", "budget", "romantic", "nightlife", "historic"], "rating": 4.6, "popularity_score": 84, "price_level": 2},
    {"id": "reykjavik", "name": "Reykjavik", "country": "Iceland", "continent": "Europe", "tagline": "Where nature writes the rules", "coordinates": {"lat": 64.1466, "lng": -21.9426}, "tags": ["nature", "adventure", "unique", "photography"], "rating": 4.7, "popularity_score": 75, "price_level": 5},
    {"id": "athens", "name": "Athens", "country": "Greece", "continent": "Europe", "tagline": "Cradle of western civilisation", "coordinates": {"lat": 37.9838, "lng": 23.7275}, "tags": ["historic", "cultural", "budget", "foodie", "beach"], "rating": 4.4, "popularity_score": 79, "price_level": 2},
    {"id": "florence", "name": "Florence", "country": "Italy", "continent": "Europe", "tagline": "The beating heart of the Renaissance", "coordinates": {"lat": 43.7696, "lng": 11.2558}, "tags": ["cultural", "architecture", "foodie", "romantic", "art"], "rating": 4.8, "popularity_score": 89, "price_level": 3},
    # AFRICA
    {"id": "marrakech", "name": "Marrakech", "country": "Morocco", "continent": "Africa", "tagline": "A journey for the senses in the red city", "coordinates": {"lat": 31.6295, "lng": -7.9811}, "tags": ["adventure", "cultural", "budget", "foodie", "exotic"], "rating": 4.4, "popularity_score": 82, "price_level": 2},
    {"id": "capetown", "name": "Cape Town", "country": "South Africa", "continent": "Africa", "tagline": "Where two oceans meet", "coordinates": {"lat": -33.9249, "lng": 18.4241}, "tags": ["nature", "adventure", "wine", "beach", "wildlife"], "rating": 4.6, "popularity_score": 78, "price_level": 3},
    {"id": "zanzibar", "name": "Zanzibar", "country": "Tanzania", "continent": "Africa", "tagline": "Spices, white beaches and Swahili history", "coordinates": {"lat": -6.1659, "lng": 39.2026}, "tags": ["beach", "relaxation", "exotic", "romantic", "adventure"], "rating": 4.5, "popularity_score": 72, "price_level": 2},
    # NORTH AMERICA
    {"id": "newyork", "name": "New York", "country": "United States", "continent": "North America", "tagline": "The city that never sleeps", "coordinates": {"lat": 40.7128, "lng": -74.0060}, "tags": ["cultural", "nightlife", "foodie", "luxury", "adventure"], "rating": 4.7, "popularity_score": 98, "price_level": 5},
    {"id": "mexicocity", "name": "Mexico City", "country": "Mexico", "continent": "North America", "tagline": "Art, Aztec history and incredible tacos", "coordinates": {"lat": 19.4326, "lng": -99.1332}, "tags": ["cultural", "foodie", "budget", "historic", "art"], "rating": 4.5, "popularity_score": 80, "price_level": 2},
    {"id": "vancouver", "name": "Vancouver", "country": "Canada", "continent": "North America", "tagline": "Mountains and ocean in harmony", "coordinates": {"lat": 49.2827, "lng": -123.1207}, "tags": ["nature", "adventure", "foodie", "cultural", "skiing"], "rating": 4.6, "popularity_score": 77, "price_level": 4},
    # SOUTH AMERICA
    {"id": "buenosaires", "name": "Buenos Aires", "country": "Argentina", "continent": "South America", "tagline": "Tango and South American passion", "coordinates": {"lat": -34.6037, "lng": -58.3816}, "tags": ["cultural", "foodie", "nightlife", "romantic", "budget"], "rating": 4.5, "popularity_score": 79, "price_level": 2},
    {"id": "cusco", "name": "Cusco", "country": "Peru", "continent": "South America", "tagline": "Gateway to Machu Picchu", "coordinates": {"lat": -13.5319, "lng": -71.9675}, "tags": ["adventure", "historic", "cultural", "nature", "trekking"], "rating": 4.7, "popularity_score": 81, "price_level": 2},
    # OCEANIA
    {"id": "sydney", "name": "Sydney", "country": "Australia", "continent": "Oceania", "tagline": "Opera, surf and outdoor living", "coordinates": {"lat": -33.8688, "lng": 151.2093}, "tags": ["beach", "cultural", "foodie", "nature", "adventure"], "rating": 4.6, "popularity_score": 87, "price_level": 4},
    {"id": "queenstown", "name": "Queenstown", "country": "New Zealand", "continent": "Oceania", "tagline": "Adventure capital of the world", "coordinates": {"lat": -45.0312, "lng": 168.6626}, "tags": ["adventure", "nature", "skiing", "photography", "extreme"], "rating": 4.8, "popularity_score": 76, "price_level": 4},
]

AUTHENTIC_TAGS = {"cultural", "historic", "traditional", "local", "authentic"}
UNIQUE_TAGS = {"nature", "adventure", "spiritual", "art", "foodie"}

SORT_KEYS = {
    "popularity": lambda c: (-c.popularity_score, c.name),
    "rating": lambda c: (-c.rating, c.name),
    "price": lambda c: (c.price_level, -c.rating, c.name),
    "name": lambda c: c.name.lower(),
}


@dataclass(frozen=True)
class HiddenGemInfo:
    score: int
    reasons: List[str] = field(default_factory=list)

    @property
    def is_hidden_gem(self) -> bool:
        return len(self.reasons) >= 2 and self.score >= 50


# -------------------- CATALOG --------------------
class Catalog:
    """Read-only collection of city records, loaded once"""

    def __init__(self, cities: Iterable[CityRecord]):
        self._cities: Dict[str, CityRecord] = {}
        for city in cities:
            if city.id in self._cities:
                logger.warning(f"Duplicate city id in catalog: {city.id}")
                continue
            self._cities[city.id] = city

    @classmethod
    def from_dicts(cls, rows: Iterable[dict]) -> "Catalog":
        return cls(CityRecord.from_dict(row) for row in rows)

    @classmethod
    def load(cls, path: str = None) -> "Catalog":
        """Load from a JSON list of city objects, falling back to the seed list"""
        path = path if path is not None else config.CATALOG_FILE
        if path and os.path.exists(path):
            with open(path, "r", encoding="utf-8") as f:
                rows = json.load(f)
            logger.info(f"Loaded {len(rows)} cities from {path}")
            return cls.from_dicts(rows)

        if path:
            logger.warning(f"Catalog file {path} not found, using built-in cities")
        return cls.from_dicts(DEFAULT_CITIES)

    def __len__(self):
        return len(self._cities)

    def __contains__(self, city_id):
        return city_id in self._cities

    def all(self) -> List[CityRecord]:
        return list(self._cities.values())

    def lookup(self, city_id: str) -> Optional[CityRecord]:
        return self._cities.get(city_id)

    def get(self, city_id: str) -> CityRecord:
        city = self._cities.get(city_id)
        if city is None:
            raise CityNotFoundError(city_id)
        return city

    def continents(self) -> List[str]:
        return sorted({c.continent for c in self._cities.values()})

    def search(self, query: str) -> List[CityRecord]:
        """Match on name, country or tag, exact name matches first"""
        q = query.strip().lower()
        if not q:
            return []
        matches = [
            c for c in self._cities.values()
            if q in c.name.lower() or q in c.country.lower() or any(q in tag for tag in c.tags)
        ]
        matches.sort(key=lambda c: (0 if c.name.lower() == q else 1 if q in c.name.lower() else 2, c.name))
        return matches

    def filter(self, continent: str = None, tag: str = None, max_price: int = None) -> List[CityRecord]:
        cities = self.all()
        if continent:
            cities = [c for c in cities if c.continent.lower() == continent.lower()]
        if tag:
            cities = [c for c in cities if tag.lower() in c.tags]
        if max_price is not None:
            cities = [c for c in cities if c.price_level <= max_price]
        return cities

    def sort(self, cities: List[CityRecord], by: str = "popularity") -> List[CityRecord]:
        if by not in SORT_KEYS:
            raise ValueError(f"Unknown sort key: {by}")
        return sorted(cities, key=SORT_KEYS[by])

    def trending(self, limit: int = 6) -> List[CityRecord]:
        return self.sort(self.all(), "popularity")[:limit]

    def budget_friendly(self, limit: int = 4) -> List[CityRecord]:
        return self.sort(self.filter(max_price=2), "price")[:limit]

    def hidden_gem_info(self, city: CityRecord) -> HiddenGemInfo:
        """Score how much of an under-visited gem a city is (0-100)"""
        reasons = []
        score = 0

        if city.popularity_score < 60 and city.rating >= 4.2:
            reasons.append("low-popularity")
            score += 30
        elif city.popularity_score < 70 and city.rating >= 4.0:
            reasons.append("underrated")
            score += 20

        if city.price_level <= 2:
            reasons.append("budget-friendly")
            score += 25

        if city.tags & AUTHENTIC_TAGS:
            reasons.append("authentic")
            score += 20

        if city.tags & UNIQUE_TAGS and city.rating >= 4.3:
            reasons.append("unique-experience")
            score += 25

        if city.popularity_score < 50 and city.rating >= 4.5:
            reasons.append("emerging")
            score += 15

        return HiddenGemInfo(score=min(100, score), reasons=reasons)

    def emerging_destinations(self, limit: int = 4) -> List[CityRecord]:
        gems = []
        for city in self._cities.values():
            info = self.hidden_gem_info(city)
            if info.is_hidden_gem and city.rating >= 4.0:
                gems.append((info.score, city))
        gems.sort(key=lambda item: (-item[0], -item[1].rating, item[1].name))
        return [city for _, city in gems[:limit]]
