import json
import time
import logging
from collections import defaultdict
from typing import Any, Dict

import diskcache
import requests
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from .config import Config, config

logger = logging.getLogger(__name__)


def make_cache(cfg: Config = None):
    """diskcache when persistence is enabled, otherwise a per-process dict"""
    cfg = cfg or config
    if cfg.USE_PERSISTENT_CACHE:
        try:
            return diskcache.Cache(cfg.CACHE_DIR)
        except Exception as e:
            logger.warning(f"Falling back to in-memory cache, could not open {cfg.CACHE_DIR}: {e}")
    return {}


def _make_cache_key(url: str, params: dict = None) -> str:
    p = json.dumps(params or {}, sort_keys=True, default=str)
    return f"GET {url} {p}"


# -------------------- REQUEST HANDLER --------------------
class RequestHandler:
    """Shared HTTP access for source adapters: session, retry and TTL cache.

    Retries cover timeouts and dropped connections only; HTTP error statuses
    are raised straight away. Successful JSON bodies are cached as
    ``{"ts", "val"}`` entries for ``CACHE_TTL`` seconds.
    """

    def __init__(self, cfg: Config = None, cache=None, session: requests.Session = None, wait=None):
        self.cfg = cfg or config
        self.cache = make_cache(self.cfg) if cache is None else cache
        self.session = session or requests.Session()
        self.session.headers.update({
            "User-Agent": self.cfg.USER_AGENT,
            "Accept": "application/json"
        })
        self.request_times = []
        self.failure_count = defaultdict(int)

        self.get_with_retry = retry(
            stop=stop_after_attempt(max(1, self.cfg.SOURCE_RETRY_ATTEMPTS)),
            wait=wait or wait_exponential(multiplier=1, min=2, max=10),
            retry=retry_if_exception_type((requests.exceptions.Timeout,
                                           requests.exceptions.ConnectionError)),
            reraise=True
        )(self._get)

    def _get(self, url: str, params: dict = None, headers: dict = None) -> requests.Response:
        start_time = time.time()
        try:
            response = self.session.get(url, params=params, headers=headers, timeout=self.cfg.REQUEST_TIMEOUT)

            duration = time.time() - start_time
            self.request_times.append(duration)
            if len(self.request_times) > 100:
                self.request_times.pop(0)
            if duration > 5:
                logger.warning(f"Slow request: {url} took {duration:.2f}s")

            response.raise_for_status()
            return response
        except requests.exceptions.RequestException as e:
            self.failure_count[url] += 1
            logger.error(f"Request failed for {url}: {e}")
            raise

    def get_json(self, url: str, params: dict = None, headers: dict = None, ttl: int = None) -> Any:
        ttl = self.cfg.CACHE_TTL if ttl is None else ttl
        key = _make_cache_key(url, params)
        now = time.time()
        try:
            cached = self.cache.get(key)
        except Exception as e:
            logger.debug(f"Cache read failed for {url}: {e}")
            cached = None
        if cached and now - cached.get("ts", 0) < ttl:
            logger.debug(f"Cache hit for {url}")
            return cached["val"]

        data = self.get_with_retry(url, params=params, headers=headers).json()
        try:
            if isinstance(self.cache, diskcache.Cache):
                self.cache.set(key, {"ts": now, "val": data}, expire=ttl)
            else:
                self.cache[key] = {"ts": now, "val": data}
        except Exception as e:
            logger.warning(f"Failed to cache response for {url}: {e}")
        return data

    def get_performance_stats(self) -> Dict[str, Any]:
        if not self.request_times:
            return {"total_requests": 0, "failure_counts": dict(self.failure_count)}
        return {
            "total_requests": len(self.request_times),
            "avg_time": sum(self.request_times) / len(self.request_times),
            "max_time": max(self.request_times),
            "failure_counts": dict(self.failure_count)
        }
