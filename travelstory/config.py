import os
import logging
from dataclasses import dataclass, field


def _env_float(name: str, default: str) -> float:
    return float(os.getenv(name, default))


# -------------------- SCORING WEIGHTS --------------------
@dataclass(frozen=True)
class ScoringWeights:
    """Per-factor weights of the recommendation score.

    The relative sizes were inferred from how the site ranks cities; keep
    them tunable rather than treating them as ground truth.
    """
    STYLE_MATCH: float = _env_float("SCORE_STYLE_MATCH", "15")
    INTEREST_MATCH: float = _env_float("SCORE_INTEREST_MATCH", "10")
    BUDGET_MATCH: float = _env_float("SCORE_BUDGET_MATCH", "20")
    RATING: float = _env_float("SCORE_RATING", "10")
    POPULARITY: float = _env_float("SCORE_POPULARITY", "10")
    NOVELTY: float = _env_float("SCORE_NOVELTY", "5")


@dataclass(frozen=True)
class SimilarityWeights:
    CONTINENT_BONUS: float = _env_float("SIMILARITY_CONTINENT_BONUS", "0.3")
    PRICE_BONUS: float = _env_float("SIMILARITY_PRICE_BONUS", "0.2")


# -------------------- CONFIG --------------------
@dataclass
class Config:
    # External providers
    UNSPLASH_ACCESS_KEY: str = os.getenv("UNSPLASH_ACCESS_KEY", "")
    OPENTRIPMAP_API_KEY: str = os.getenv("OPENTRIPMAP_API_KEY", "")
    FOURSQUARE_API_KEY: str = os.getenv("FOURSQUARE_API_KEY", "")
    WIKIPEDIA_LANGUAGE: str = os.getenv("WIKIPEDIA_LANGUAGE", "en")
    USER_AGENT: str = os.getenv("USER_AGENT", "TravelStory/1.0 (https://github.com/travelstory/travelstory)")
    REQUEST_TIMEOUT: int = int(os.getenv("REQUEST_TIMEOUT", "10"))
    SOURCE_RETRY_ATTEMPTS: int = int(os.getenv("SOURCE_RETRY_ATTEMPTS", "2"))
    MAX_CONCURRENT_REQUESTS: int = int(os.getenv("MAX_CONCURRENT_REQUESTS", "8"))
    LIVE_DATA_TIMEOUT: float = _env_float("LIVE_DATA_TIMEOUT", "12")

    # Caching
    CACHE_TTL: int = int(os.getenv("CACHE_TTL", "3600"))  # 1 hour
    CACHE_DIR: str = os.getenv("CACHE_DIR", "/tmp/travelstory-cache")
    USE_PERSISTENT_CACHE: bool = os.getenv("USE_PERSISTENT_CACHE", "False").lower() == "true"

    # Catalog
    CATALOG_FILE: str = os.getenv("CATALOG_FILE", "")

    # Behavioral tracking
    VISIT_THROTTLE_SECONDS: float = _env_float("VISIT_THROTTLE_SECONDS", "30")
    VISIT_TRACKING_INTERVAL: float = _env_float("VISIT_TRACKING_INTERVAL", "30")
    INTERACTION_LOG_CAPACITY: int = int(os.getenv("INTERACTION_LOG_CAPACITY", "50"))
    MAX_SESSIONS: int = int(os.getenv("MAX_SESSIONS", "1000"))

    # Personalization thresholds
    ELIGIBILITY_MIN_VISITED_CITIES: int = int(os.getenv("ELIGIBILITY_MIN_VISITED_CITIES", "2"))
    FREQUENT_VISITS_THRESHOLD: int = int(os.getenv("FREQUENT_VISITS_THRESHOLD", "5"))
    RECENCY_DAYS: int = int(os.getenv("RECENCY_DAYS", "14"))
    SCORING: ScoringWeights = field(default_factory=ScoringWeights)
    SIMILARITY: SimilarityWeights = field(default_factory=SimilarityWeights)

    # Flask
    FLASK_DEBUG: bool = os.getenv("FLASK_DEBUG", "False").lower() == "true"
    FLASK_PORT: int = int(os.getenv("PORT", os.getenv("FLASK_PORT", "5000")))

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    LOG_FILE: str = os.getenv("LOG_FILE", "")

config = Config()


# -------------------- LOGGING --------------------
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def configure_logging(cfg: Config = None):
    """Set up root logging: console always, file when LOG_FILE is set"""
    cfg = cfg or config
    handlers = [logging.StreamHandler()]
    if cfg.LOG_FILE:
        try:
            handlers.append(logging.FileHandler(cfg.LOG_FILE))
        except OSError as e:
            logging.getLogger(__name__).warning(f"Could not set up file logging: {e}")

    logging.basicConfig(
        level=getattr(logging, cfg.LOG_LEVEL.upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=handlers
    )
