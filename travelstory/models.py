from collections import deque
from dataclasses import dataclass, field, fields, asdict, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Deque, Dict, FrozenSet, List, Optional, Set


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UserKind(str, Enum):
    GUEST = "guest"
    REGISTERED = "registered"


class InteractionType(str, Enum):
    VIEW = "view"
    SAVE = "save"
    SHARE = "share"
    CLICK_EXTERNAL = "click_external"
    EXPAND_SECTION = "expand_section"


class VisitorKind(str, Enum):
    FIRST_TIME = "first_time"
    RETURNING_INFREQUENT = "returning_infrequent"
    RETURNING_FREQUENT = "returning_frequent"


class FetchState(str, Enum):
    PENDING = "pending"
    RESOLVED = "resolved"
    FAILED = "failed"


# -------------------- CATALOG --------------------
@dataclass(frozen=True)
class Coordinates:
    lat: float
    lng: float


@dataclass(frozen=True)
class CityRecord:
    id: str
    name: str
    country: str
    continent: str
    tags: FrozenSet[str]
    price_level: int          # 1 to 5
    rating: float             # 0 to 5
    popularity_score: float   # 0 to 100
    coordinates: Coordinates
    tagline: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CityRecord":
        coords = data.get("coordinates") or {}
        return cls(
            id=data["id"],
            name=data["name"],
            country=data.get("country", ""),
            continent=data.get("continent", ""),
            tags=frozenset(data.get("tags", [])),
            price_level=int(data.get("price_level", data.get("priceLevel", 3))),
            rating=float(data.get("rating", 0)),
            popularity_score=float(data.get("popularity_score", data.get("popularityScore", 0))),
            coordinates=Coordinates(
                lat=float(coords.get("lat", 0)),
                lng=float(coords.get("lng", coords.get("lon", 0)))
            ),
            tagline=data.get("tagline", "")
        )

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["tags"] = sorted(self.tags)
        return data


# -------------------- USER --------------------
def tag_set(value, name: str) -> Set[str]:
    """Tags from a list, set or tuple of strings; anything else is a ValueError"""
    if not isinstance(value, (list, set, frozenset, tuple)):
        raise ValueError(f"{name} must be a list of strings, got {type(value).__name__}")
    if not all(isinstance(tag, str) for tag in value):
        raise ValueError(f"{name} must contain only strings")
    return {tag.strip().lower() for tag in value if tag.strip()}


@dataclass
class UserPreferences:
    preferred_styles: Set[str] = field(default_factory=set)
    budget_level: int = 3     # 1 to 5
    interests: Set[str] = field(default_factory=set)
    avoid_crowds: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "preferred_styles": sorted(self.preferred_styles),
            "budget_level": self.budget_level,
            "interests": sorted(self.interests),
            "avoid_crowds": self.avoid_crowds
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UserPreferences":
        return cls(
            preferred_styles=tag_set(data.get("preferred_styles", []), "preferred_styles"),
            budget_level=int(data.get("budget_level", 3)),
            interests=tag_set(data.get("interests", []), "interests"),
            avoid_crowds=bool(data.get("avoid_crowds", False))
        )


@dataclass
class UserProfile:
    user_id: str
    kind: UserKind = UserKind.GUEST
    name: Optional[str] = None
    email: Optional[str] = None
    preferences: UserPreferences = field(default_factory=UserPreferences)
    created_at: datetime = field(default_factory=utcnow)
    last_seen_at: datetime = field(default_factory=utcnow)

    @property
    def is_named(self) -> bool:
        return self.kind == UserKind.REGISTERED and bool(self.name)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "kind": self.kind.value,
            "name": self.name,
            "email": self.email,
            "preferences": self.preferences.to_dict(),
            "created_at": self.created_at.isoformat(),
            "last_seen_at": self.last_seen_at.isoformat()
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UserProfile":
        return cls(
            user_id=data["user_id"],
            kind=UserKind(data.get("kind", UserKind.GUEST.value)),
            name=data.get("name"),
            email=data.get("email"),
            preferences=UserPreferences.from_dict(data.get("preferences", {})),
            created_at=datetime.fromisoformat(data["created_at"]),
            last_seen_at=datetime.fromisoformat(data["last_seen_at"])
        )


# -------------------- BEHAVIOR --------------------
@dataclass(frozen=True)
class Interaction:
    type: InteractionType
    target: str
    timestamp: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type.value, "target": self.target, "timestamp": self.timestamp.isoformat()}


@dataclass
class VisitRecord:
    city_id: str
    last_visited_at: datetime
    visit_count: int = 1
    explored_section_ids: Set[str] = field(default_factory=set)
    interactions: Deque[Interaction] = field(default_factory=deque)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "city_id": self.city_id,
            "visit_count": self.visit_count,
            "last_visited_at": self.last_visited_at.isoformat(),
            "explored_section_ids": sorted(self.explored_section_ids),
            "interactions": [i.to_dict() for i in self.interactions]
        }


# -------------------- ENGINE OUTPUTS --------------------
@dataclass(frozen=True)
class Greeting:
    salutation: str
    tagline: str
    visitor_kind: VisitorKind
    is_anonymous: bool
    name: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "salutation": self.salutation,
            "name": self.name,
            "tagline": self.tagline,
            "visitor_kind": self.visitor_kind.value,
            "identity": "anonymous" if self.is_anonymous else "named"
        }


@dataclass(frozen=True)
class ScoreBreakdown:
    tag_match: float = 0.0
    budget_match: float = 0.0
    popularity: float = 0.0
    novelty: float = 0.0

    @property
    def total(self) -> float:
        return self.tag_match + self.budget_match + self.popularity + self.novelty


@dataclass(frozen=True)
class Recommendation:
    city: CityRecord
    score: float
    reason: str
    breakdown: ScoreBreakdown

    def to_dict(self) -> Dict[str, Any]:
        return {
            "city": self.city.to_dict(),
            "score": round(self.score, 3),
            "reason": self.reason,
            "breakdown": asdict(self.breakdown)
        }


@dataclass(frozen=True)
class SimilarCity:
    city: CityRecord
    similarity: float

    def to_dict(self) -> Dict[str, Any]:
        return {"city": self.city.to_dict(), "similarity": round(self.similarity, 3)}


# -------------------- LIVE DATA --------------------
@dataclass(frozen=True)
class SourceQuery:
    city_name: str
    country: str
    coordinates: Coordinates


@dataclass(frozen=True)
class LiveDataBundle:
    """Independently populated live fields for exactly one city"""
    city_id: str
    weather: Optional[Any] = None
    forecast: Optional[List[Any]] = None
    summary: Optional[Any] = None
    country_info: Optional[Any] = None
    photos: Optional[List[Any]] = None
    attractions: Optional[List[Any]] = None
    restaurants: Optional[List[Any]] = None
    real_photo_attractions: Optional[List[Any]] = None
    real_photo_restaurants: Optional[List[Any]] = None

    def with_fields(self, **values) -> "LiveDataBundle":
        return replace(self, **values)

    def resolved_fields(self) -> List[str]:
        return [name for name in LIVE_DATA_FIELDS if getattr(self, name) is not None]

    def to_dict(self) -> Dict[str, Any]:
        data = {"city_id": self.city_id}
        for name in LIVE_DATA_FIELDS:
            value = getattr(self, name)
            if value is not None:
                data[name] = _to_jsonable(value)
        return data


LIVE_DATA_FIELDS = tuple(f.name for f in fields(LiveDataBundle) if f.name != "city_id")


def _to_jsonable(value):
    if isinstance(value, list):
        return [_to_jsonable(v) for v in value]
    if hasattr(value, "__dataclass_fields__"):
        return asdict(value)
    return value
