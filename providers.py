import asyncio
import json
import logging
import os
import sqlite3
import time
from abc import ABC, abstractmethod
from typing import Optional

import httpx

from logic import Journeys, SearchOptions

logger = logging.getLogger(__name__)

DB_REST_BASE_URL = "https://v6.db.transport.rest"
DEFAULT_TIMEOUT_SECONDS = 20.0
USER_AGENT = "rail-detour"

# --- Cache Configuration ---
CACHE_FILE = "journeys_cache.db"
CACHE_TTL = 15 * 60  # 15 minutes, fares move quickly


class ProviderError(Exception):
    """Raised when the journey provider answers with an unusable payload."""


class JourneyProvider(ABC):

    @abstractmethod
    async def journeys(self, origin: str, destination: str, options: SearchOptions) -> Journeys:
        ...

    async def aclose(self) -> None:
        return None

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()


class DbRestProvider(JourneyProvider):
    """
    Async client for the /journeys endpoint of a db-rest compatible API.

    Timeouts and rate limiting (HTTP 429) are retried with exponential backoff;
    every other HTTP or transport error is raised to the caller.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        retry_attempts: int = 2,
        backoff_base_seconds: float = 0.75,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or os.getenv("RAIL_DETOUR_API_URL", DB_REST_BASE_URL)).strip().rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.retry_attempts = retry_attempts
        self.backoff_base_seconds = backoff_base_seconds
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout_seconds,
                transport=self._transport,
                headers={"User-Agent": USER_AGENT},
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def journeys(self, origin: str, destination: str, options: SearchOptions) -> Journeys:
        params = {"from": origin, "to": destination, **options.to_query_params()}
        client = self._get_client()

        for attempt in range(self.retry_attempts + 1):
            try:
                resp = await client.get("/journeys", params=params)
                resp.raise_for_status()
                break
            except httpx.TimeoutException:
                if attempt < self.retry_attempts:
                    logger.debug("FETCH_RETRY %s->%s attempt=%d reason=timeout", origin, destination, attempt + 1)
                    await asyncio.sleep(self.backoff_base_seconds * (2 ** attempt))
                    continue
                raise
            except httpx.HTTPStatusError as e:
                if e.response.status_code == 429 and attempt < self.retry_attempts:
                    logger.debug("FETCH_RETRY %s->%s attempt=%d reason=429", origin, destination, attempt + 1)
                    await asyncio.sleep(self.backoff_base_seconds * (2 ** attempt))
                    continue
                raise

        try:
            payload = resp.json()
        except ValueError as e:
            raise ProviderError(f"Invalid JSON for {origin}->{destination}: {e}") from e
        if not isinstance(payload, dict):
            raise ProviderError(f"Unexpected payload for {origin}->{destination}: {type(payload).__name__}")

        result = Journeys.model_validate(payload)
        logger.debug(
            "FETCH_OK %s->%s via=%s journeys=%d", origin, destination, options.via, len(result.journeys)
        )
        return result


class CachedProvider(JourneyProvider):
    """Wraps another provider with a SQLite cache of recent search responses."""

    def __init__(self, provider: JourneyProvider, cache_file=CACHE_FILE, ttl_seconds: float = CACHE_TTL):
        self.provider = provider
        self.cache_file = str(cache_file)
        self.ttl_seconds = ttl_seconds
        self._init_cache()

    def _init_cache(self):
        """Creates the cache table and drops expired rows."""
        conn = sqlite3.connect(self.cache_file)
        try:
            c = conn.cursor()
            c.execute("CREATE TABLE IF NOT EXISTS journeys (key TEXT PRIMARY KEY, payload TEXT, timestamp REAL)")
            c.execute("DELETE FROM journeys WHERE timestamp < ?", (time.time() - self.ttl_seconds,))
            conn.commit()
        finally:
            conn.close()

    @staticmethod
    def build_cache_key(origin: str, destination: str, options: SearchOptions) -> str:
        return json.dumps({"from": origin, "to": destination, **options.to_query_params()}, sort_keys=True)

    def get_cached(self, key: str) -> Optional[Journeys]:
        try:
            conn = sqlite3.connect(self.cache_file)
            try:
                row = conn.execute("SELECT payload, timestamp FROM journeys WHERE key=?", (key,)).fetchone()
            finally:
                conn.close()
            if row:
                payload, timestamp = row
                if time.time() - timestamp < self.ttl_seconds:
                    return Journeys.model_validate_json(payload)
        except (sqlite3.Error, ValueError) as e:
            logger.warning("Cache read error: %s", e)
        return None

    def set_cached(self, key: str, result: Journeys) -> None:
        try:
            conn = sqlite3.connect(self.cache_file)
            try:
                conn.execute(
                    "INSERT OR REPLACE INTO journeys VALUES (?, ?, ?)",
                    (key, result.model_dump_json(by_alias=True), time.time()),
                )
                conn.commit()
            finally:
                conn.close()
        except sqlite3.Error as e:
            logger.warning("Cache write error: %s", e)

    async def journeys(self, origin: str, destination: str, options: SearchOptions) -> Journeys:
        key = self.build_cache_key(origin, destination, options)
        cached = await asyncio.to_thread(self.get_cached, key)
        if cached is not None:
            logger.debug("CACHE_HIT %s->%s via=%s", origin, destination, options.via)
            return cached

        result = await self.provider.journeys(origin, destination, options)
        await asyncio.to_thread(self.set_cached, key, result)
        return result

    async def aclose(self) -> None:
        await self.provider.aclose()
