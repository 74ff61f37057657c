"""TravelStory: behavioral personalization and live city data for a travel site"""

from .aggregator import LiveDataAggregator
from .behavior import BehavioralStore, SessionRegistry
from .catalog import Catalog
from .config import Config, config, configure_logging
from .errors import CityNotFoundError, SourceUnavailableError, TravelStoryError
from .page import CityPageSession, PageState
from .personalization import PersonalizationEngine

__version__ = "1.0.0"

__all__ = [
    "BehavioralStore",
    "Catalog",
    "CityNotFoundError",
    "CityPageSession",
    "Config",
    "LiveDataAggregator",
    "PageState",
    "PersonalizationEngine",
    "SessionRegistry",
    "SourceUnavailableError",
    "TravelStoryError",
    "config",
    "configure_logging",
]
