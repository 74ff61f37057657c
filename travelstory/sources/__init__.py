from typing import List

from ..config import Config, config
from ..request_handler import RequestHandler
from .base import SourceAdapter
from .country import CountrySource
from .encyclopedia import EncyclopediaSource
from .photos import PhotoSource
from .places import FoursquarePhotoSource, OpenTripMapSource
from .weather import WeatherSource


def default_sources(cfg: Config = None, handler: RequestHandler = None) -> List[SourceAdapter]:
    """All live-data providers, sharing one request handler"""
    cfg = cfg or config
    handler = handler or RequestHandler(cfg)
    return [
        WeatherSource(handler=handler, cfg=cfg),
        EncyclopediaSource(cfg=cfg),
        CountrySource(handler=handler, cfg=cfg),
        PhotoSource(handler=handler, cfg=cfg),
        OpenTripMapSource.attractions(handler=handler, cfg=cfg),
        OpenTripMapSource.restaurants(handler=handler, cfg=cfg),
        FoursquarePhotoSource.attractions(handler=handler, cfg=cfg),
        FoursquarePhotoSource.restaurants(handler=handler, cfg=cfg),
    ]


__all__ = [
    "SourceAdapter",
    "WeatherSource",
    "EncyclopediaSource",
    "CountrySource",
    "PhotoSource",
    "OpenTripMapSource",
    "FoursquarePhotoSource",
    "default_sources",
]
