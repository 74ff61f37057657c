import uuid
import logging
import threading
from collections import OrderedDict, deque
from functools import wraps
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from .config import config
from .models import (
    Interaction,
    InteractionType,
    UserKind,
    UserPreferences,
    UserProfile,
    VisitRecord,
    tag_set,
    utcnow,
)
from .observable import StateCell

logger = logging.getLogger(__name__)


def generate_user_id() -> str:
    return f"user_{uuid.uuid4().hex[:12]}"


def _locked(method):
    @wraps(method)
    def wrapper(self, *args, **kwargs):
        with self._lock:
            return method(self, *args, **kwargs)
    return wrapper


# -------------------- BEHAVIORAL STORE --------------------
class BehavioralStore:
    """Per-user record of visits, saved cities, explored sections and interactions.

    All operations are synchronous and take effect immediately. Mutations that
    UI events can fire faster than intended (visits, saves, sections) are
    throttled or idempotent. Subscribers are called after every change.
    """

    def __init__(
        self,
        profile: Optional[UserProfile] = None,
        clock: Callable[[], datetime] = utcnow,
        throttle_seconds: float = None,
        log_capacity: int = None,
    ):
        self._clock = clock
        self._profile = profile or UserProfile(user_id=generate_user_id(), created_at=clock(), last_seen_at=clock())
        self._throttle = timedelta(seconds=config.VISIT_THROTTLE_SECONDS if throttle_seconds is None else throttle_seconds)
        self._log_capacity = config.INTERACTION_LOG_CAPACITY if log_capacity is None else log_capacity
        self._visits: Dict[str, VisitRecord] = {}
        self._saved: Dict[str, None] = {}  # insertion-ordered set
        self._revision = StateCell(0)
        # reentrant: subscribers run under the lock and read the store back
        self._lock = threading.RLock()

    # ---- read accessors ----
    @property
    def profile(self) -> UserProfile:
        return self._profile

    @property
    def clock(self) -> Callable[[], datetime]:
        return self._clock

    def visit_record(self, city_id: str) -> Optional[VisitRecord]:
        return self._visits.get(city_id)

    @_locked
    def visit_records(self) -> List[VisitRecord]:
        return list(self._visits.values())

    def distinct_visited_count(self) -> int:
        return len(self._visits)

    @_locked
    def saved_cities(self) -> List[str]:
        return list(self._saved)

    def is_saved(self, city_id: str) -> bool:
        return city_id in self._saved

    @_locked
    def recently_visited(self, limit: int = 5) -> List[str]:
        """Most recently visited city ids, newest first, one entry per city"""
        if limit <= 0:
            return []
        records = sorted(self._visits.values(), key=lambda r: r.last_visited_at, reverse=True)
        return [r.city_id for r in records[:limit]]

    def subscribe(self, callback: Callable[["BehavioralStore"], None]) -> Callable[[], None]:
        return self._revision.subscribe(lambda _revision: callback(self))

    # ---- visits ----
    @_locked
    def record_visit(self, city_id: str) -> VisitRecord:
        now = self._clock()
        record = self._visits.get(city_id)
        if record is None:
            record = VisitRecord(
                city_id=city_id,
                last_visited_at=now,
                interactions=deque(maxlen=self._log_capacity)
            )
            self._visits[city_id] = record
            logger.debug(f"First visit to {city_id}")
        else:
            if now - record.last_visited_at >= self._throttle:
                record.visit_count += 1
            record.last_visited_at = now

        self._profile.last_seen_at = now
        self._changed()
        return record

    # ---- saved cities ----
    @_locked
    def save(self, city_id: str) -> bool:
        """Add to saved cities; returns False if it was already saved"""
        if city_id in self._saved:
            return False
        self._saved[city_id] = None
        self._changed()
        return True

    @_locked
    def unsave(self, city_id: str) -> bool:
        """Remove from saved cities; returns False if it was not saved"""
        if city_id not in self._saved:
            return False
        del self._saved[city_id]
        self._changed()
        return True

    @_locked
    def toggle_saved(self, city_id: str) -> bool:
        """Flip saved state, returning the new state"""
        if city_id in self._saved:
            self.unsave(city_id)
            return False
        self.save(city_id)
        return True

    # ---- sections & interactions ----
    @_locked
    def record_section_explored(self, city_id: str, section_id: str) -> bool:
        record = self._visits.get(city_id)
        if record is None:
            logger.debug(f"Ignoring section {section_id} for unvisited city {city_id}")
            return False
        if section_id in record.explored_section_ids:
            return False
        record.explored_section_ids.add(section_id)
        self._changed()
        return True

    @_locked
    def record_interaction(self, city_id: str, type, target: str) -> bool:
        interaction_type = InteractionType(type)
        record = self._visits.get(city_id)
        if record is None:
            logger.debug(f"Ignoring {interaction_type.value} interaction for unvisited city {city_id}")
            return False
        record.interactions.append(Interaction(type=interaction_type, target=target, timestamp=self._clock()))
        self._changed()
        return True

    # ---- profile ----
    @_locked
    def register(self, name: str, email: str = None, preferences: UserPreferences = None) -> UserProfile:
        """Upgrade the current user to a named one, keeping all history"""
        if not name or not name.strip():
            raise ValueError("name is required")
        if preferences is not None:
            _validate_budget(preferences.budget_level)
        self._profile.kind = UserKind.REGISTERED
        self._profile.name = name.strip()
        self._profile.email = email
        if preferences is not None:
            self._profile.preferences = preferences
        self._profile.last_seen_at = self._clock()
        self._changed()
        logger.info(f"User {self._profile.user_id} registered as {self._profile.name}")
        return self._profile

    @_locked
    def logout(self) -> UserProfile:
        """Start over as a fresh anonymous user"""
        now = self._clock()
        self._profile = UserProfile(user_id=generate_user_id(), created_at=now, last_seen_at=now)
        self._visits.clear()
        self._saved.clear()
        self._changed()
        return self._profile

    @_locked
    def update_preferences(self, preferred_styles=None, budget_level: int = None, interests=None, avoid_crowds: bool = None) -> UserPreferences:
        # validate everything before touching the profile
        if budget_level is not None:
            _validate_budget(budget_level)
        styles = tag_set(preferred_styles, "preferred_styles") if preferred_styles is not None else None
        tags = tag_set(interests, "interests") if interests is not None else None

        prefs = self._profile.preferences
        if budget_level is not None:
            prefs.budget_level = int(budget_level)
        if styles is not None:
            prefs.preferred_styles = styles
        if tags is not None:
            prefs.interests = tags
        if avoid_crowds is not None:
            prefs.avoid_crowds = bool(avoid_crowds)
        self._changed()
        return prefs

    # ---- serialization ----
    @_locked
    def to_dict(self) -> Dict[str, Any]:
        return {
            "profile": self._profile.to_dict(),
            "visits": [r.to_dict() for r in self._visits.values()],
            "saved": list(self._saved)
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], **kwargs) -> "BehavioralStore":
        store = cls(profile=UserProfile.from_dict(data["profile"]), **kwargs)
        for row in data.get("visits", []):
            interactions = deque(
                (Interaction(InteractionType(i["type"]), i["target"], datetime.fromisoformat(i["timestamp"]))
                 for i in row.get("interactions", [])),
                maxlen=store._log_capacity
            )
            store._visits[row["city_id"]] = VisitRecord(
                city_id=row["city_id"],
                last_visited_at=datetime.fromisoformat(row["last_visited_at"]),
                visit_count=int(row.get("visit_count", 1)),
                explored_section_ids=set(row.get("explored_section_ids", [])),
                interactions=interactions
            )
        for city_id in data.get("saved", []):
            store._saved[city_id] = None
        return store

    def _changed(self):
        self._revision.update(lambda revision: revision + 1)


def _validate_budget(level):
    if not 1 <= int(level) <= 5:
        raise ValueError(f"budget_level must be between 1 and 5, got {level}")


# -------------------- SESSION REGISTRY --------------------
class SessionRegistry:
    """One BehavioralStore per session id, optionally mirrored into a diskcache.

    At most ``max_sessions`` stores stay in memory; the least recently used
    one is dropped first. With a cache configured, a dropped session is
    restored from its last snapshot on the next request.
    """

    KEY_PREFIX = "session:"

    def __init__(self, cache=None, clock: Callable[[], datetime] = utcnow, max_sessions: int = None):
        self._stores: "OrderedDict[str, BehavioralStore]" = OrderedDict()
        self._cache = cache
        self._clock = clock
        self._max_sessions = max(1, config.MAX_SESSIONS if max_sessions is None else max_sessions)
        self._lock = threading.Lock()

    def __len__(self):
        return len(self._stores)

    def get(self, session_id: str) -> BehavioralStore:
        with self._lock:
            store = self._stores.get(session_id)
            if store is not None:
                self._stores.move_to_end(session_id)
                return store

            store = self._load(session_id)
            if self._cache is not None:
                store.subscribe(lambda s, sid=session_id: self._persist(sid, s))
            self._stores[session_id] = store
            while len(self._stores) > self._max_sessions:
                evicted, _ = self._stores.popitem(last=False)
                logger.debug(f"Evicted session {evicted} from memory")
            return store

    def _load(self, session_id: str) -> BehavioralStore:
        if self._cache is not None:
            try:
                data = self._cache.get(self.KEY_PREFIX + session_id)
            except Exception as e:
                logger.warning(f"Failed to read session {session_id} from cache: {e}")
                data = None
            if data:
                logger.debug(f"Restored session {session_id} from cache")
                return BehavioralStore.from_dict(data, clock=self._clock)

        now = self._clock()
        profile = UserProfile(user_id=session_id, created_at=now, last_seen_at=now)
        return BehavioralStore(profile=profile, clock=self._clock)

    def _persist(self, session_id: str, store: BehavioralStore):
        try:
            self._cache[self.KEY_PREFIX + session_id] = store.to_dict()
        except Exception as e:
            logger.warning(f"Failed to persist session {session_id}: {e}")
