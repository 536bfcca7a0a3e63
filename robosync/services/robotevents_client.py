"""RobotEvents API v2 async client with key rotation and pagination."""
from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

import httpx

from ..config import ROBOTEVENTS_API_BASE, get_api_keys
from ..errors import RateLimitExhausted
from .key_pool import KeyPool
from .pagination import collect_all

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 30.0   # seconds per request
PACING_DELAY = 0.5       # after every success, keeps the aggregate rate polite
MAX_WAITS = 10           # all-keys-cooling sleeps allowed within one call
MAX_ATTEMPTS = 100


class Outcome(Enum):
    SUCCESS = "success"
    ROTATE = "rotate"    # this key is unusable right now, try another
    WAIT = "wait"        # nothing eligible, sleep before retrying


class RobotEventsClient:
    """Thin async wrapper around the RobotEvents REST API.

    Every request borrows a key from the shared ``KeyPool``; 401 and 429
    responses are reported back to the pool and retried with another key.
    Any other failure is raised to the caller untouched.
    """

    def __init__(
        self,
        pool: KeyPool,
        base_url: str = ROBOTEVENTS_API_BASE,
        timeout: float = REQUEST_TIMEOUT,
        pacing: float = PACING_DELAY,
        max_waits: int = MAX_WAITS,
        max_attempts: int = MAX_ATTEMPTS,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.pool = pool
        self.base_url = base_url
        self.timeout = timeout
        self.pacing = pacing
        self.max_waits = max_waits
        self.max_attempts = max_attempts
        self._transport = transport
        self._sleep = sleep
        self._http: Optional[httpx.AsyncClient] = None

    def _client(self) -> httpx.AsyncClient:
        if self._http is None or self._http.is_closed:
            self._http = httpx.AsyncClient(
                base_url=self.base_url,
                headers={"Accept": "application/json"},
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._http

    async def aclose(self) -> None:
        if self._http is not None and not self._http.is_closed:
            await self._http.aclose()

    def _classify(self, key: str, resp: httpx.Response) -> Outcome:
        if resp.status_code == 401:
            self.pool.report_unauthorized(key)
            return Outcome.ROTATE
        if resp.status_code == 429:
            self.pool.report_rate_limited(key)
            return Outcome.ROTATE
        resp.raise_for_status()
        self.pool.report_success(key)
        return Outcome.SUCCESS

    async def get(self, endpoint: str, params: dict | None = None) -> Any:
        waits = 0
        for _ in range(self.max_attempts):
            key = self.pool.acquire_key()
            if key is None:
                outcome = Outcome.WAIT
            else:
                resp = await self._client().get(
                    endpoint,
                    params=params,
                    headers={"Authorization": f"Bearer {key}"},
                )
                outcome = self._classify(key, resp)

            if outcome is Outcome.SUCCESS:
                if self.pacing:
                    await self._sleep(self.pacing)
                return resp.json()
            if outcome is Outcome.WAIT:
                waits += 1
                if waits > self.max_waits:
                    raise RateLimitExhausted(
                        f"All API keys still cooling down after {self.max_waits} waits ({endpoint})"
                    )
                delay = self.pool.next_wait()
                logger.warning("All API keys are cooling down. Waiting %.0fs...", delay)
                await self._sleep(delay)

        raise RateLimitExhausted(f"Gave up on {endpoint} after {self.max_attempts} attempts")

    async def get_all(self, endpoint: str, params: dict | None = None) -> list:
        async def fetch_page(page_params: dict) -> Any:
            return await self.get(endpoint, page_params)

        return await collect_all(fetch_page, params)

    # ── Season / event endpoints ────────────────────────────
    async def get_season_events(self, season_id: int) -> list[dict]:
        return await self.get_all(f"/seasons/{season_id}/events")

    async def get_event(self, event_id: str) -> dict:
        """Event detail; embeds the division list."""
        return await self.get(f"/events/{event_id}")

    async def get_event_teams(self, event_id: str) -> list[dict]:
        return await self.get_all(f"/events/{event_id}/teams")

    async def get_event_skills(self, event_id: str) -> list[dict]:
        return await self.get_all(f"/events/{event_id}/skills")

    # ── Division endpoints ──────────────────────────────────
    async def get_division_matches(self, event_id: str, division_id: str) -> list[dict]:
        return await self.get_all(f"/events/{event_id}/divisions/{division_id}/matches")

    async def get_division_rankings(self, event_id: str, division_id: str) -> list[dict]:
        return await self.get_all(f"/events/{event_id}/divisions/{division_id}/rankings")

    async def get_division_finalist_rankings(self, event_id: str, division_id: str) -> list[dict]:
        return await self.get_all(
            f"/events/{event_id}/divisions/{division_id}/finalistRankings"
        )


def extract_divisions(event_detail: dict | None) -> list[dict]:
    """Return ``[{id, name, order}]`` from an event detail, ``[]`` if absent."""
    if not isinstance(event_detail, dict):
        return []
    divisions = event_detail.get("divisions")
    if not isinstance(divisions, list):
        return []
    return [
        {"id": d.get("id"), "name": d.get("name"), "order": d.get("order")}
        for d in divisions
        if isinstance(d, dict) and d.get("id") is not None
    ]


# ── Singleton ───────────────────────────────────────────────
_client: Optional[RobotEventsClient] = None


def get_robotevents_client() -> RobotEventsClient:
    global _client
    if _client is None:
        _client = RobotEventsClient(KeyPool(get_api_keys()))
    return _client
