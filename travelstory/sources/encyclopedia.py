import re
import logging
from dataclasses import dataclass

import wikipediaapi

from ..config import Config, config
from ..errors import SourceUnavailableError
from ..models import SourceQuery
from .base import SourceAdapter

logger = logging.getLogger(__name__)

MAX_SUMMARY_CHARS = 2000


@dataclass(frozen=True)
class EncyclopediaSummary:
    title: str
    extract: str
    url: str


def clean_summary(text: str) -> str:
    text = re.sub(r'\[\d+\]', '', text or "")
    return re.sub(r'\s+', ' ', text).strip()[:MAX_SUMMARY_CHARS]


class EncyclopediaSource(SourceAdapter):
    """Lead section and canonical link of the city's Wikipedia article"""

    name = "encyclopedia"
    fields = ("summary",)

    def __init__(self, wiki: wikipediaapi.Wikipedia = None, cfg: Config = None):
        self.cfg = cfg or config
        self.wiki = wiki or wikipediaapi.Wikipedia(
            user_agent=self.cfg.USER_AGENT,
            language=self.cfg.WIKIPEDIA_LANGUAGE
        )

    def _titles(self, query: SourceQuery):
        yield query.city_name
        if query.country:
            yield f"{query.city_name}, {query.country}"
        yield f"{query.city_name} (city)"

    def fetch(self, query: SourceQuery) -> EncyclopediaSummary:
        for title in self._titles(query):
            page = self.wiki.page(title)
            if page.exists() and page.ns == 0 and page.summary:
                summary = clean_summary(page.summary)
                if summary:
                    return EncyclopediaSummary(title=page.title, extract=summary, url=getattr(page, "fullurl", ""))
            logger.debug(f"No usable Wikipedia page for '{title}'")

        raise SourceUnavailableError(self.name, f"no article for {query.city_name}")
