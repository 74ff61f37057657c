import logging
from dataclasses import dataclass
from typing import List

from ..config import Config, config
from ..errors import SourceUnavailableError
from ..models import SourceQuery
from ..request_handler import RequestHandler
from .base import SourceAdapter

logger = logging.getLogger(__name__)

UNSPLASH_SEARCH_URL = "https://api.unsplash.com/search/photos"


@dataclass(frozen=True)
class Photo:
    id: str
    url: str
    thumb: str
    description: str
    photographer: str
    photographer_url: str
    source: str = "unsplash"


class PhotoSource(SourceAdapter):
    """Landscape city photos from Unsplash"""

    name = "photos"
    fields = ("photos",)

    def __init__(self, handler: RequestHandler = None, cfg: Config = None, count: int = 5):
        self.cfg = cfg or config
        self.handler = handler or RequestHandler(self.cfg)
        self.count = count

    def fetch(self, query: SourceQuery) -> List[Photo]:
        if not self.cfg.UNSPLASH_ACCESS_KEY:
            raise SourceUnavailableError(self.name, "UNSPLASH_ACCESS_KEY not configured")

        search = f"{query.city_name} {query.country} city travel" if query.country else f"{query.city_name} city travel"
        data = self.handler.get_json(
            UNSPLASH_SEARCH_URL,
            params={"query": search, "per_page": self.count, "orientation": "landscape"},
            headers={"Authorization": f"Client-ID {self.cfg.UNSPLASH_ACCESS_KEY}"}
        )
        return [self._parse(item) for item in data.get("results", [])]

    @staticmethod
    def _parse(item: dict) -> Photo:
        urls = item.get("urls", {})
        user = item.get("user", {})
        return Photo(
            id=item["id"],
            url=urls.get("regular", ""),
            thumb=urls.get("thumb", ""),
            description=item.get("alt_description") or item.get("description") or "",
            photographer=user.get("name", ""),
            photographer_url=(user.get("links") or {}).get("html", "")
        )
