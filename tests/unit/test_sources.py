"""Source adapter and request handler tests"""

from unittest.mock import MagicMock

import diskcache
import pytest
import requests
from tenacity import wait_none

from travelstory.config import Config
from travelstory.errors import SourceUnavailableError
from travelstory.models import LIVE_DATA_FIELDS, Coordinates, SourceQuery
from travelstory.request_handler import RequestHandler, _make_cache_key
from travelstory.sources import (
    CountrySource,
    EncyclopediaSource,
    FoursquarePhotoSource,
    OpenTripMapSource,
    PhotoSource,
    WeatherSource,
    default_sources,
)
from travelstory.sources.country import format_population
from travelstory.sources.places import categorize


@pytest.fixture
def query():
    return SourceQuery(city_name="Kyoto", country="Japan", coordinates=Coordinates(35.01, 135.77))


@pytest.fixture
def keyed_cfg():
    return Config(UNSPLASH_ACCESS_KEY="u-key", OPENTRIPMAP_API_KEY="o-key", FOURSQUARE_API_KEY="f-key")


@pytest.fixture
def handler():
    return MagicMock(spec=RequestHandler)


def _response(payload, status=200):
    response = MagicMock()
    response.json.return_value = payload
    response.status_code = status
    if status >= 400:
        response.raise_for_status.side_effect = requests.exceptions.HTTPError(f"{status} error")
    return response


class TestRequestHandler:
    """Session, retry and cache"""

    def _handler(self, session, attempts=2):
        cfg = Config(SOURCE_RETRY_ATTEMPTS=attempts, CACHE_TTL=60, USE_PERSISTENT_CACHE=False)
        return RequestHandler(cfg, cache={}, session=session, wait=wait_none())

    def test_caches_json(self):
        session = MagicMock()
        session.get.return_value = _response({"ok": True})
        handler = self._handler(session)

        assert handler.get_json("https://example.org/a", params={"x": 1}) == {"ok": True}
        assert handler.get_json("https://example.org/a", params={"x": 1}) == {"ok": True}
        assert session.get.call_count == 1

    def test_zero_ttl_refetches(self):
        session = MagicMock()
        session.get.return_value = _response([1])
        handler = self._handler(session)

        handler.get_json("https://example.org/a", ttl=0)
        handler.get_json("https://example.org/a", ttl=0)
        assert session.get.call_count == 2

    def test_disk_cache_entries_expire(self, tmp_path):
        session = MagicMock()
        session.get.return_value = _response({"ok": True})
        cache = diskcache.Cache(str(tmp_path / "http"))
        handler = RequestHandler(Config(CACHE_TTL=60), cache=cache, session=session, wait=wait_none())

        handler.get_json("https://example.org/e", params={"q": 1}, ttl=120)
        value, expire_time = cache.get(_make_cache_key("https://example.org/e", {"q": 1}), expire_time=True)
        assert value["val"] == {"ok": True}
        assert expire_time is not None
        assert expire_time - value["ts"] == pytest.approx(120, abs=5)
        cache.close()

    def test_retries_timeouts(self):
        session = MagicMock()
        session.get.side_effect = [requests.exceptions.Timeout("slow"), _response({"ok": True})]
        handler = self._handler(session)

        assert handler.get_json("https://example.org/b") == {"ok": True}
        assert session.get.call_count == 2

    def test_gives_up_after_attempts(self):
        session = MagicMock()
        session.get.side_effect = requests.exceptions.ConnectionError("down")
        handler = self._handler(session, attempts=3)

        with pytest.raises(requests.exceptions.ConnectionError):
            handler.get_json("https://example.org/c")
        assert session.get.call_count == 3
        assert handler.get_performance_stats()["failure_counts"]["https://example.org/c"] == 3

    def test_http_errors_not_retried(self):
        session = MagicMock()
        session.get.return_value = _response({}, status=503)
        handler = self._handler(session)

        with pytest.raises(requests.exceptions.HTTPError):
            handler.get_json("https://example.org/d")
        assert session.get.call_count == 1


class TestWeatherSource:
    """Open-Meteo mapping"""

    def test_parses_current_and_daily(self, handler, query):
        handler.get_json.return_value = {
            "current": {"temperature_2m": 21.6, "apparent_temperature": 22.4, "relative_humidity_2m": 60,
                        "precipitation": 0.0, "weather_code": 2, "wind_speed_10m": 7.4, "is_day": 1},
            "daily": {"time": ["2024-05-01", "2024-05-02"], "temperature_2m_max": [24.2, 25.0],
                      "temperature_2m_min": [15.1, 16.0], "weather_code": [61, 0],
                      "precipitation_probability_max": [70, None]}
        }
        source = WeatherSource(handler=handler)
        fields = source.split(source.fetch(query))

        assert fields["weather"].temperature == 22
        assert fields["weather"].description == "Partly cloudy"
        assert fields["weather"].is_day
        assert [d.description for d in fields["forecast"]] == ["Light rain", "Clear sky"]
        assert fields["forecast"][1].precipitation_probability == 0

    def test_missing_current_raises(self, handler, query):
        handler.get_json.return_value = {}
        with pytest.raises(KeyError):
            WeatherSource(handler=handler).fetch(query)


class TestEncyclopediaSource:
    """Wikipedia summary"""

    def _page(self, exists=True, summary="", title="Kyoto"):
        page = MagicMock()
        page.exists.return_value = exists
        page.ns = 0
        page.summary = summary
        page.title = title
        page.fullurl = f"https://en.wikipedia.org/wiki/{title}"
        return page

    def test_cleans_summary(self, query):
        wiki = MagicMock()
        wiki.page.return_value = self._page(summary="Kyoto[1] is a  city\nin Japan.")
        result = EncyclopediaSource(wiki=wiki).fetch(query)

        assert result.extract == "Kyoto is a city in Japan."
        assert result.url.endswith("/Kyoto")

    def test_tries_alternative_titles(self, query):
        wiki = MagicMock()
        wiki.page.side_effect = [self._page(exists=False), self._page(summary="Found it.", title="Kyoto, Japan")]
        result = EncyclopediaSource(wiki=wiki).fetch(query)
        assert result.title == "Kyoto, Japan"
        wiki.page.assert_any_call("Kyoto, Japan")

    def test_no_article_raises(self, query):
        wiki = MagicMock()
        wiki.page.return_value = self._page(exists=False)
        with pytest.raises(SourceUnavailableError):
            EncyclopediaSource(wiki=wiki).fetch(query)


class TestCountrySource:
    """REST Countries mapping"""

    def test_prefers_exact_name(self, handler, query):
        handler.get_json.return_value = [
            {"name": {"common": "Japanese Islands"}},
            {"name": {"common": "Japan", "official": "Japan"}, "capital": ["Tokyo"], "region": "Asia",
             "population": 125_000_000, "currencies": {"JPY": {"name": "Japanese yen", "symbol": "¥"}},
             "idd": {"root": "+8", "suffixes": ["1"]}, "car": {"side": "left"}},
        ]
        info = CountrySource(handler=handler).fetch(query)

        assert info.name == "Japan"
        assert info.capital == ["Tokyo"]
        assert info.currencies[0].symbol == "¥"
        assert info.calling_code == "+81"
        assert info.driving_side == "left"
        assert info.population_text == "125.0 million"

    def test_format_population(self):
        assert format_population(1_400_000_000) == "1.4 billion"
        assert format_population(2_500) == "2 thousand"
        assert format_population(800) == "800"

    def test_no_country_raises(self, handler):
        query = SourceQuery("Atlantis", "", Coordinates(0, 0))
        with pytest.raises(SourceUnavailableError):
            CountrySource(handler=handler).fetch(query)
        handler.get_json.assert_not_called()


class TestPhotoSource:
    """Unsplash mapping"""

    def test_requires_key(self, handler, query):
        with pytest.raises(SourceUnavailableError):
            PhotoSource(handler=handler, cfg=Config(UNSPLASH_ACCESS_KEY="")).fetch(query)
        handler.get_json.assert_not_called()

    def test_parses_results(self, handler, query, keyed_cfg):
        handler.get_json.return_value = {"results": [
            {"id": "p1", "urls": {"regular": "r.jpg", "thumb": "t.jpg"}, "alt_description": "temple",
             "user": {"name": "Aiko", "links": {"html": "https://unsplash.com/@aiko"}}}
        ]}
        photos = PhotoSource(handler=handler, cfg=keyed_cfg).fetch(query)

        assert photos[0].url == "r.jpg"
        assert photos[0].photographer == "Aiko"
        _, kwargs = handler.get_json.call_args
        assert kwargs["headers"]["Authorization"] == "Client-ID u-key"


class TestPlaces:
    """OpenTripMap and Foursquare mapping"""

    def test_categorize(self):
        assert categorize("foods,restaurants") == "food"
        assert categorize("religion,temples") == "religious"
        assert categorize("") == "attraction"

    def test_opentripmap_requires_key(self, handler, query):
        source = OpenTripMapSource.attractions(handler=handler, cfg=Config(OPENTRIPMAP_API_KEY=""))
        with pytest.raises(SourceUnavailableError):
            source.fetch(query)

    def test_opentripmap_skips_nameless(self, handler, query, keyed_cfg):
        handler.get_json.return_value = [
            {"xid": "a", "name": "Kinkaku-ji", "kinds": "religion,buddhist_temples", "rate": "3h",
             "point": {"lat": 35.0394, "lon": 135.7292}},
            {"xid": "b", "name": "  ", "kinds": "historic", "point": {"lat": 35.0, "lon": 135.7}},
        ]
        source = OpenTripMapSource.attractions(handler=handler, cfg=keyed_cfg)
        places = source.fetch(query)

        assert [p.name for p in places] == ["Kinkaku-ji"]
        assert places[0].category == "religious"
        assert places[0].rating == 5.0
        assert 0 < places[0].distance_km < 10
        assert source.fields == ("attractions",)

    def test_foursquare_keeps_places_with_photos(self, handler, query, keyed_cfg):
        handler.get_json.side_effect = [
            {"results": [
                {"fsq_id": "f1", "name": "Nishiki Market", "categories": [{"name": "Food Market"}],
                 "geocodes": {"main": {"latitude": 35.005, "longitude": 135.765}}},
                {"fsq_id": "f2", "name": "No Photo Place", "categories": []},
            ]},
            [{"prefix": "https://fastly.4sqi.net/img/", "suffix": "/a.jpg"}],
            [],
        ]
        source = FoursquarePhotoSource.restaurants(handler=handler, cfg=keyed_cfg)
        places = source.fetch(query)

        assert [p.id for p in places] == ["f1"]
        assert places[0].photo_url == "https://fastly.4sqi.net/img/600x400/a.jpg"
        assert places[0].category == "food"
        assert source.fields == ("real_photo_restaurants",)


class TestDefaultSources:
    """Provider wiring"""

    def test_every_bundle_field_has_one_owner(self):
        sources = default_sources(Config(), handler=MagicMock(spec=RequestHandler))
        owned = [f for s in sources for f in s.fields]
        assert sorted(owned) == sorted(LIVE_DATA_FIELDS)
