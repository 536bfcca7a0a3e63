"""Tests for robosync.services.robotevents_client."""

import httpx
import pytest

from robosync.errors import AuthExhausted, RateLimitExhausted
from robosync.services.key_pool import KeyPool
from robosync.services.robotevents_client import RobotEventsClient, extract_divisions


class Recorder:
    """MockTransport handler replaying scripted responses per call."""

    def __init__(self, responses) -> None:
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        status, body = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        return httpx.Response(status, json=body)

    @property
    def keys_used(self) -> list[str]:
        return [r.headers["Authorization"].removeprefix("Bearer ") for r in self.requests]


class SleepRecorder:
    def __init__(self, clock=None) -> None:
        self.calls: list[float] = []
        self.clock = clock

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        if self.clock is not None:
            self.clock.advance(seconds)


def _client(pool, handler, sleep=None, **kwargs) -> RobotEventsClient:
    return RobotEventsClient(
        pool,
        base_url="https://api.test/v2",
        transport=httpx.MockTransport(handler),
        sleep=sleep or SleepRecorder(),
        **kwargs,
    )


class TestGet:
    @pytest.mark.asyncio
    async def test_success_sends_bearer_and_params(self, pool) -> None:
        handler = Recorder([(200, {"data": []})])
        sleep = SleepRecorder()
        client = _client(pool, handler, sleep)

        body = await client.get("/events/1/teams", {"page": 2})

        assert body == {"data": []}
        request = handler.requests[0]
        assert request.url.path == "/v2/events/1/teams"
        assert request.url.params["page"] == "2"
        assert request.headers["Authorization"] == "Bearer key-a"
        assert sleep.calls == [0.5]  # pacing delay after success

    @pytest.mark.asyncio
    async def test_401_blacklists_and_rotates(self, pool) -> None:
        handler = Recorder([(401, {}), (200, {"ok": True})])
        client = _client(pool, handler)

        assert await client.get("/events/1") == {"ok": True}
        assert handler.keys_used == ["key-a", "key-b"]
        assert pool.snapshot()["blacklisted"] == 1

    @pytest.mark.asyncio
    async def test_all_keys_401_is_fatal(self, pool) -> None:
        client = _client(pool, Recorder([(401, {})]))
        with pytest.raises(AuthExhausted):
            await client.get("/events/1")

    @pytest.mark.asyncio
    async def test_429_cools_key_and_rotates(self, pool) -> None:
        handler = Recorder([(429, {}), (200, {"ok": True})])
        client = _client(pool, handler)

        assert await client.get("/events/1") == {"ok": True}
        assert handler.keys_used == ["key-a", "key-b"]
        assert pool.snapshot()["cooling"] == 1

    @pytest.mark.asyncio
    async def test_waits_for_cooldown_when_all_keys_limited(self, clock) -> None:
        pool = KeyPool(["solo"], cooldown=60, clock=clock)
        handler = Recorder([(429, {}), (200, {"ok": True})])
        sleep = SleepRecorder(clock)
        client = _client(pool, handler, sleep, pacing=0)

        assert await client.get("/events/1") == {"ok": True}
        assert sleep.calls == [30, 30]  # clamped to the 30s ceiling twice
        assert handler.keys_used == ["solo", "solo"]

    @pytest.mark.asyncio
    async def test_wait_budget_exhaustion_is_fatal(self, clock) -> None:
        pool = KeyPool(["solo"], cooldown=60, clock=clock)
        client = _client(pool, Recorder([(429, {})]), SleepRecorder(clock), max_waits=3)
        with pytest.raises(RateLimitExhausted):
            await client.get("/events/1")

    @pytest.mark.asyncio
    async def test_other_status_propagates_without_retry(self, pool) -> None:
        handler = Recorder([(500, {"error": "boom"})])
        client = _client(pool, handler)
        with pytest.raises(httpx.HTTPStatusError):
            await client.get("/events/1")
        assert len(handler.requests) == 1

    @pytest.mark.asyncio
    async def test_timeout_propagates(self, pool) -> None:
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        client = _client(pool, handler)
        with pytest.raises(httpx.TimeoutException):
            await client.get("/events/1")


class TestScrapers:
    @pytest.mark.asyncio
    async def test_division_matches_paginates(self, pool) -> None:
        pages = {1: [{"id": i} for i in range(250)], 2: [{"id": 999}]}

        def handler(request):
            page = int(request.url.params["page"])
            return httpx.Response(200, json={"meta": {}, "data": pages.get(page, [])})

        client = _client(pool, handler, pacing=0)
        matches = await client.get_division_matches("51000", "1")
        assert len(matches) == 251

    @pytest.mark.asyncio
    async def test_resource_paths(self, pool) -> None:
        handler = Recorder([(200, {"data": []})])
        client = _client(pool, handler, pacing=0)

        await client.get_season_events(190)
        await client.get_event_teams("5")
        await client.get_event_skills("5")
        await client.get_division_rankings("5", "1")
        await client.get_division_finalist_rankings("5", "1")
        await client.get_event("5")

        assert [r.url.path for r in handler.requests] == [
            "/v2/seasons/190/events",
            "/v2/events/5/teams",
            "/v2/events/5/skills",
            "/v2/events/5/divisions/1/rankings",
            "/v2/events/5/divisions/1/finalistRankings",
            "/v2/events/5",
        ]


class TestExtractDivisions:
    def test_keeps_id_name_order(self) -> None:
        detail = {"divisions": [{"id": 1, "name": "Science", "order": 2, "extra": "x"}]}
        assert extract_divisions(detail) == [{"id": 1, "name": "Science", "order": 2}]

    def test_missing_or_malformed(self) -> None:
        assert extract_divisions(None) == []
        assert extract_divisions({}) == []
        assert extract_divisions({"divisions": None}) == []
