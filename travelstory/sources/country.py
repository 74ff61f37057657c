import logging
from dataclasses import dataclass, field
from typing import Dict, List
from urllib.parse import quote

from ..config import Config, config
from ..errors import SourceUnavailableError
from ..models import SourceQuery
from ..request_handler import RequestHandler
from .base import SourceAdapter

logger = logging.getLogger(__name__)

REST_COUNTRIES_URL = "https://restcountries.com/v3.1/name/{name}"


@dataclass(frozen=True)
class Currency:
    code: str
    name: str
    symbol: str


@dataclass(frozen=True)
class CountryInfo:
    name: str
    official_name: str
    capital: List[str]
    region: str
    subregion: str
    population: int
    area: float
    languages: Dict[str, str]
    currencies: List[Currency] = field(default_factory=list)
    timezones: List[str] = field(default_factory=list)
    flag: str = ""
    flag_png: str = ""
    driving_side: str = "right"
    calling_code: str = ""
    population_text: str = ""


def format_population(population: int) -> str:
    if population >= 1_000_000_000:
        return f"{population / 1_000_000_000:.1f} billion"
    if population >= 1_000_000:
        return f"{population / 1_000_000:.1f} million"
    if population >= 1_000:
        return f"{population / 1_000:.0f} thousand"
    return str(population)


class CountrySource(SourceAdapter):
    """Country facts from REST Countries"""

    name = "country"
    fields = ("country_info",)

    def __init__(self, handler: RequestHandler = None, cfg: Config = None):
        self.cfg = cfg or config
        self.handler = handler or RequestHandler(self.cfg)

    def fetch(self, query: SourceQuery) -> CountryInfo:
        if not query.country:
            raise SourceUnavailableError(self.name, "no country given")

        url = REST_COUNTRIES_URL.format(name=quote(query.country.lower()))
        results = self.handler.get_json(url, params={"fullText": "false"}, ttl=self.cfg.CACHE_TTL * 24)
        if not results:
            raise SourceUnavailableError(self.name, f"unknown country {query.country}")

        # prefer an exact common-name match over partial hits
        wanted = query.country.lower()
        best = next((r for r in results if r.get("name", {}).get("common", "").lower() == wanted), results[0])
        return self._parse(best)

    @staticmethod
    def _parse(data: dict) -> CountryInfo:
        currencies = [
            Currency(code=code, name=info.get("name", code), symbol=info.get("symbol") or code)
            for code, info in (data.get("currencies") or {}).items()
        ]
        idd = data.get("idd") or {}
        calling_code = f"{idd['root']}{(idd.get('suffixes') or [''])[0]}" if idd.get("root") else ""
        return CountryInfo(
            name=data["name"]["common"],
            official_name=data["name"].get("official", data["name"]["common"]),
            capital=data.get("capital") or [],
            region=data.get("region", ""),
            subregion=data.get("subregion", ""),
            population=data.get("population", 0),
            area=data.get("area", 0),
            languages=data.get("languages") or {},
            currencies=currencies,
            timezones=data.get("timezones") or [],
            flag=data.get("flag", ""),
            flag_png=(data.get("flags") or {}).get("png", ""),
            driving_side=(data.get("car") or {}).get("side", "right"),
            calling_code=calling_code,
            population_text=format_population(data.get("population", 0))
        )
