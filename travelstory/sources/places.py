import logging
from dataclasses import dataclass, field
from typing import List, Optional

from geopy.distance import geodesic

from ..config import Config, config
from ..errors import SourceUnavailableError
from ..models import SourceQuery
from ..request_handler import RequestHandler
from .base import SourceAdapter

logger = logging.getLogger(__name__)

OPENTRIPMAP_RADIUS_URL = "https://api.opentripmap.com/0.1/en/places/radius"
FOURSQUARE_SEARCH_URL = "https://api.foursquare.com/v3/places/search"
FOURSQUARE_PHOTOS_URL = "https://api.foursquare.com/v3/places/{fsq_id}/photos"

ATTRACTION_KINDS = "interesting_places,tourist_facilities,amusements,architecture,historic,museums"
RESTAURANT_KINDS = "foods,restaurants,cafes,bars,pubs,fast_food,biergartens"

# Foursquare category ids: landmarks, arts & entertainment / dining & drinking
FOURSQUARE_ATTRACTION_CATEGORIES = "16000,10000"
FOURSQUARE_RESTAURANT_CATEGORIES = "13000"

CATEGORY_KEYWORDS = [
    ("food", ("restaurant", "food", "cafe")),
    ("museum", ("museum", "gallerie")),
    ("historic", ("historic", "monument", "castle")),
    ("nature", ("natural", "park", "garden", "beach")),
    ("architecture", ("architecture", "tower", "bridge")),
    ("religious", ("religion", "church", "temple", "mosque")),
    ("cultural", ("cultural", "theatre", "opera")),
]


def categorize(kinds: str) -> str:
    kinds = kinds.lower()
    for category, keywords in CATEGORY_KEYWORDS:
        if any(k in kinds for k in keywords):
            return category
    return "attraction"


def distance_km(query: SourceQuery, lat: float, lng: float) -> float:
    center = (query.coordinates.lat, query.coordinates.lng)
    return round(geodesic(center, (lat, lng)).km, 2)


@dataclass(frozen=True)
class Place:
    id: str
    name: str
    category: str
    lat: float
    lng: float
    distance_km: float
    rating: Optional[float] = None
    kinds: List[str] = field(default_factory=list)
    photo_url: Optional[str] = None
    address: str = ""


# -------------------- OPENTRIPMAP --------------------
class OpenTripMapSource(SourceAdapter):
    """Points of interest within a radius of the city centre"""

    def __init__(self, name: str, field_name: str, kinds: str, radius_m: int,
                 handler: RequestHandler = None, cfg: Config = None, limit: int = 20):
        self.name = name
        self.fields = (field_name,)
        self.kinds = kinds
        self.radius_m = radius_m
        self.limit = limit
        self.cfg = cfg or config
        self.handler = handler or RequestHandler(self.cfg)

    @classmethod
    def attractions(cls, **kwargs) -> "OpenTripMapSource":
        return cls("attractions", "attractions", ATTRACTION_KINDS, 5000, **kwargs)

    @classmethod
    def restaurants(cls, **kwargs) -> "OpenTripMapSource":
        return cls("restaurants", "restaurants", RESTAURANT_KINDS, 3000, limit=15, **kwargs)

    def fetch(self, query: SourceQuery) -> List[Place]:
        if not self.cfg.OPENTRIPMAP_API_KEY:
            raise SourceUnavailableError(self.name, "OPENTRIPMAP_API_KEY not configured")

        params = {
            "apikey": self.cfg.OPENTRIPMAP_API_KEY,
            "lat": query.coordinates.lat,
            "lon": query.coordinates.lng,
            "radius": self.radius_m,
            "kinds": self.kinds,
            "limit": self.limit,
            "rate": 2,  # "worth seeing" and above
            "format": "json"
        }
        places = self.handler.get_json(OPENTRIPMAP_RADIUS_URL, params=params)
        return [self._parse(query, p) for p in places if (p.get("name") or "").strip()]

    @staticmethod
    def _parse(query: SourceQuery, data: dict) -> Place:
        point = data.get("point", {})
        kinds = data.get("kinds", "")
        return Place(
            id=data["xid"],
            name=data["name"].strip(),
            category=categorize(kinds),
            lat=point.get("lat", 0.0),
            lng=point.get("lon", 0.0),
            distance_km=distance_km(query, point.get("lat", 0.0), point.get("lon", 0.0)),
            rating=_opentripmap_rating(data.get("rate")),
            kinds=[k.strip() for k in kinds.split(",") if k.strip()]
        )


def _opentripmap_rating(rate) -> Optional[float]:
    # OpenTripMap rates 1-3 (with an "h" suffix for heritage); map onto 0-5
    if rate is None:
        return None
    try:
        value = int(str(rate).rstrip("h"))
    except ValueError:
        return None
    return round(min(value, 3) / 3 * 5, 1)


# -------------------- FOURSQUARE --------------------
class FoursquarePhotoSource(SourceAdapter):
    """Nearby places that have a real photo, from Foursquare"""

    def __init__(self, name: str, field_name: str, categories: str, suffix: str = "",
                 handler: RequestHandler = None, cfg: Config = None, limit: int = 6):
        self.name = name
        self.fields = (field_name,)
        self.categories = categories
        self.suffix = suffix
        self.limit = limit
        self.cfg = cfg or config
        self.handler = handler or RequestHandler(self.cfg)

    @classmethod
    def attractions(cls, **kwargs) -> "FoursquarePhotoSource":
        return cls("real_photo_attractions", "real_photo_attractions", FOURSQUARE_ATTRACTION_CATEGORIES, **kwargs)

    @classmethod
    def restaurants(cls, **kwargs) -> "FoursquarePhotoSource":
        return cls("real_photo_restaurants", "real_photo_restaurants", FOURSQUARE_RESTAURANT_CATEGORIES,
                   suffix=" restaurant", **kwargs)

    def _headers(self):
        return {"Authorization": self.cfg.FOURSQUARE_API_KEY}

    def fetch(self, query: SourceQuery) -> List[Place]:
        if not self.cfg.FOURSQUARE_API_KEY:
            raise SourceUnavailableError(self.name, "FOURSQUARE_API_KEY not configured")

        params = {
            "query": f"{query.city_name}{self.suffix}",
            "ll": f"{query.coordinates.lat},{query.coordinates.lng}",
            "categories": self.categories,
            "limit": self.limit,
            "sort": "RELEVANCE"
        }
        data = self.handler.get_json(FOURSQUARE_SEARCH_URL, params=params, headers=self._headers())

        places = []
        for result in data.get("results", []):
            photo_url = self._main_photo(result["fsq_id"])
            if photo_url:
                places.append(self._parse(query, result, photo_url))
        return places

    def _main_photo(self, fsq_id: str) -> Optional[str]:
        try:
            photos = self.handler.get_json(
                FOURSQUARE_PHOTOS_URL.format(fsq_id=fsq_id),
                params={"limit": 1},
                headers=self._headers()
            )
        except Exception as e:
            logger.debug(f"No photos for Foursquare place {fsq_id}: {e}")
            return None
        if not photos:
            return None
        return f"{photos[0]['prefix']}600x400{photos[0]['suffix']}"

    @staticmethod
    def _parse(query: SourceQuery, data: dict, photo_url: str) -> Place:
        main = (data.get("geocodes") or {}).get("main", {})
        lat = main.get("latitude", query.coordinates.lat)
        lng = main.get("longitude", query.coordinates.lng)
        categories = [c.get("name", "") for c in data.get("categories", [])]
        return Place(
            id=data["fsq_id"],
            name=data.get("name", ""),
            category=categorize(",".join(categories)),
            lat=lat,
            lng=lng,
            distance_km=distance_km(query, lat, lng),
            kinds=categories,
            photo_url=photo_url,
            address=(data.get("location") or {}).get("formatted_address", "")
        )
