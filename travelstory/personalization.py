import logging
import math
from collections import defaultdict
from datetime import datetime
from typing import Callable, Dict, List

from .behavior import BehavioralStore
from .catalog import Catalog
from .config import Config, ScoringWeights, SimilarityWeights, config
from .models import (
    CityRecord,
    Greeting,
    Recommendation,
    ScoreBreakdown,
    SimilarCity,
    VisitorKind,
)

logger = logging.getLogger(__name__)

REASON_TAG_MATCH = "Matches your travel style"
REASON_BUDGET_MATCH = "Fits your budget"
REASON_POPULARITY = "Popular with travellers"

ANONYMOUS_RETURNING_NAME = "explorer"

TAGLINES = {
    VisitorKind.FIRST_TIME: "where shall we go?",
    VisitorKind.RETURNING_INFREQUENT: "welcome back",
    VisitorKind.RETURNING_FREQUENT: "good to see you again",
}
NAMED_TAGLINE = "ready to set off?"


def salutation_for(moment: datetime) -> str:
    if moment.hour < 12:
        return "Good morning"
    if moment.hour < 18:
        return "Good afternoon"
    return "Good evening"


def jaccard(a, b) -> float:
    union = set(a) | set(b)
    if not union:
        return 0.0
    return len(set(a) & set(b)) / len(union)


def _ranking_key(score: float, city: CityRecord):
    # score desc, rating desc, name asc
    return (-score, -city.rating, city.name)


# -------------------- PERSONALIZATION ENGINE --------------------
class PersonalizationEngine:
    """Derives greetings, gates, recommendations and similarity from behavior.

    Every method reads the current store and catalog and returns fresh values;
    nothing is cached between calls, so results always reflect the latest
    recorded behavior.
    """

    def __init__(
        self,
        catalog: Catalog,
        store: BehavioralStore,
        cfg: Config = None,
        clock: Callable[[], datetime] = None,
    ):
        self.catalog = catalog
        self.store = store
        self.cfg = cfg or config
        self.weights: ScoringWeights = self.cfg.SCORING
        self.similarity: SimilarityWeights = self.cfg.SIMILARITY
        self._clock = clock or store.clock

    # ---- greeting ----
    def visitor_kind(self) -> VisitorKind:
        records = self.store.visit_records()
        if not records:
            return VisitorKind.FIRST_TIME

        total_visits = sum(r.visit_count for r in records)
        latest = max(r.last_visited_at for r in records)
        days_since = (self._clock() - latest).total_seconds() / 86400
        if total_visits >= self.cfg.FREQUENT_VISITS_THRESHOLD and days_since <= self.cfg.RECENCY_DAYS:
            return VisitorKind.RETURNING_FREQUENT
        return VisitorKind.RETURNING_INFREQUENT

    def personalized_greeting(self) -> Greeting:
        profile = self.store.profile
        kind = self.visitor_kind()
        salutation = salutation_for(self._clock())

        if profile.is_named:
            return Greeting(salutation, NAMED_TAGLINE, kind, is_anonymous=False, name=profile.name)

        name = ANONYMOUS_RETURNING_NAME if kind != VisitorKind.FIRST_TIME else None
        return Greeting(salutation, TAGLINES[kind], kind, is_anonymous=True, name=name)

    # ---- gates ----
    def is_personalization_eligible(self) -> bool:
        return (
            len(self.store.saved_cities()) >= 1
            or self.store.distinct_visited_count() >= self.cfg.ELIGIBILITY_MIN_VISITED_CITIES
        )

    def section_visibility(self) -> Dict[str, bool]:
        visited = self.store.distinct_visited_count()
        return {
            "recommended": self.is_personalization_eligible(),
            "recent": visited >= 1,
            "comparisons": visited >= 3 or self.store.profile.is_named,
            "deals": True
        }

    # ---- scoring ----
    def score_breakdown(self, city: CityRecord) -> ScoreBreakdown:
        w = self.weights
        prefs = self.store.profile.preferences
        popularity = w.RATING * city.rating / 5 + w.POPULARITY * city.popularity_score / 100

        # No travel style chosen: rank on the rating/popularity baseline alone,
        # even if interests were inferred or typed in
        if not prefs.preferred_styles:
            return ScoreBreakdown(popularity=popularity)

        tag_match = (
            w.STYLE_MATCH * len(city.tags & prefs.preferred_styles)
            + w.INTEREST_MATCH * len(city.tags & prefs.interests)
        )
        budget_match = w.BUDGET_MATCH / (1 + abs(city.price_level - prefs.budget_level))
        novelty = w.NOVELTY if self.store.visit_record(city.id) is None else 0.0
        return ScoreBreakdown(tag_match, budget_match, popularity, novelty)

    def score(self, city: CityRecord) -> float:
        return self.score_breakdown(city).total

    def recommendation_reason(self, city: CityRecord) -> str:
        return self._reason(self.score_breakdown(city))

    @staticmethod
    def _reason(breakdown: ScoreBreakdown) -> str:
        candidates = [
            (REASON_TAG_MATCH, breakdown.tag_match),
            (REASON_BUDGET_MATCH, breakdown.budget_match),
            (REASON_POPULARITY, breakdown.popularity),
        ]
        best = max(value for _, value in candidates)
        if best <= 0:
            return REASON_POPULARITY
        # first in declaration order wins ties
        return next(label for label, value in candidates if value == best)

    def recommendations(self, n: int = 6) -> List[Recommendation]:
        """Top-n unsaved cities for the current user, best first"""
        if n <= 0:
            return []

        saved = set(self.store.saved_cities())
        scored = []
        for city in self.catalog.all():
            if city.id in saved:
                continue
            breakdown = self.score_breakdown(city)
            scored.append(Recommendation(city, breakdown.total, self._reason(breakdown), breakdown))

        scored.sort(key=lambda r: _ranking_key(r.score, r.city))
        return scored[:n]

    # ---- similarity ----
    def similarity_score(self, a: CityRecord, b: CityRecord) -> float:
        score = jaccard(a.tags, b.tags)
        if a.continent == b.continent:
            score += self.similarity.CONTINENT_BONUS
        score += self.similarity.PRICE_BONUS / (1 + abs(a.price_level - b.price_level))
        return score

    def similar_cities(self, city_id: str, n: int = 4) -> List[SimilarCity]:
        target = self.catalog.get(city_id)
        if n <= 0:
            return []

        ranked = [
            SimilarCity(city, self.similarity_score(target, city))
            for city in self.catalog.all()
            if city.id != target.id
        ]
        ranked.sort(key=lambda s: _ranking_key(s.similarity, s.city))
        return ranked[:n]

    # ---- implicit interests ----
    def implicit_interests(self, limit: int = 5) -> List[str]:
        """Interests inferred from explored sections and save/expand interactions.

        Each visit contributes with a recency weight that decays by 5% per day
        since the visit, floored at 0.1. Interaction targets count double.
        """
        now = self._clock()
        weights: Dict[str, float] = defaultdict(float)

        for record in self.store.visit_records():
            days = math.floor((now - record.last_visited_at).total_seconds() / 86400)
            recency = max(0.1, 1 - days * 0.05)

            for section in record.explored_section_ids:
                weights[section] += recency
            for interaction in record.interactions:
                if interaction.type.value in ("save", "expand_section"):
                    weights[interaction.target] += recency * 2

        ranked = sorted(weights.items(), key=lambda item: (-item[1], item[0]))
        return [interest for interest, _ in ranked[:limit]]
