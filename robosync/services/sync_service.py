"""Season sync orchestrator: event → divisions → rankings / matches, teams, skills.

One ``SyncService.run()`` walks every event of a season strictly in
listing order, one request at a time, so the key pool alone governs the
request rate.  A failing event is logged and skipped; only credential or
rate-limit exhaustion aborts the run.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable

from ..errors import FATAL_ERRORS
from ..models import (
    Record,
    SyncMode,
    SyncSummary,
    division_identity,
    event_identity,
    match_identity,
    ranking_identity,
    skill_identity,
    team_identity,
)
from .firestore_writer import FirestoreWriter
from .robotevents_client import RobotEventsClient, extract_divisions
from .rtdb_publisher import LivePublisher

logger = logging.getLogger(__name__)

# Results keep trickling in for a day after an event ends
PAST_EVENT_GRACE = timedelta(hours=24)

IdentityFn = Callable[[dict], str]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_when(value) -> datetime | None:
    if not value or not isinstance(value, str):
        return None
    try:
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def is_event_today(event: dict, now: datetime) -> bool:
    """True when *now* falls on one of the event's days (inclusive).

    Each bound is compared in its own UTC offset, so "today" means the
    calendar day at the venue rather than in UTC.
    """
    start = _parse_when(event.get("start"))
    end = _parse_when(event.get("end")) or start
    if start is None or end is None:
        return False
    return (
        start.date() <= now.astimezone(start.tzinfo).date()
        and now.astimezone(end.tzinfo).date() <= end.date()
    )


def is_past_event(event: dict, now: datetime) -> bool:
    end = _parse_when(event.get("end"))
    return end is not None and now - end > PAST_EVENT_GRACE


def _looks_rank_keyed(doc_id: str) -> bool:
    # Pre-marker syncs keyed finalist rankings by bare rank number
    return doc_id.isdigit()


class SyncService:
    def __init__(
        self,
        client: RobotEventsClient,
        writer: FirestoreWriter,
        publisher: LivePublisher | None,
        season_id: int,
        mode: SyncMode,
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        if mode is SyncMode.LIVE and publisher is None:
            raise ValueError("live mode needs a LivePublisher")
        self.client = client
        self.writer = writer
        self.publisher = publisher
        self.season_id = season_id
        self.mode = mode
        self._now = now

    @property
    def live(self) -> bool:
        return self.mode is SyncMode.LIVE

    async def run(self) -> SyncSummary:
        logger.info("Fetching events for season %s (mode=%s)...", self.season_id, self.mode.value)
        events = await self.client.get_season_events(self.season_id)
        logger.info("Found %d events", len(events))

        if self.live:
            now = self._now()
            events = [e for e in events if isinstance(e, dict) and is_event_today(e, now)]
            logger.info("%d events running today", len(events))

        summary = SyncSummary(mode=self.mode, total_events=len(events))
        for index, event in enumerate(events, start=1):
            await self._run_one(index, event, summary)

        if self.live and summary.processed:
            try:
                await self._checkpoint(len(events), len(events), summary.last_event_id)
            except Exception as e:
                logger.warning("Could not store live progress checkpoint: %s", e)
        return summary

    async def _run_one(self, index: int, event: dict, summary: SyncSummary) -> None:
        total = summary.total_events
        try:
            event_id = event_identity(event)
        except (ValueError, AttributeError):
            logger.warning("[%d/%d] Event without id or sku, skipping", index, total)
            summary.failed += 1
            return

        try:
            if await self._should_skip(event_id, event):
                logger.info("[%d/%d] Skipping event %s (already synced)", index, total, event_id)
                summary.skipped += 1
                return

            logger.info("[%d/%d] Processing event %s: %s", index, total, event_id, event.get("name") or "Unknown")
            await self._process_event(event_id, event)
            if not self.live:
                await self._checkpoint(index, total, event_id)
        except FATAL_ERRORS:
            raise
        except Exception as e:
            logger.error("Error processing event %s: %s", event_id, e)
            summary.failed += 1
            summary.failed_events.append(event_id)
            return

        summary.processed += 1
        summary.last_event_id = event_id

    # ── Skip decision ───────────────────────────────────────
    async def _should_skip(self, event_id: str, event: dict) -> bool:
        match self.mode:
            case SyncMode.LIVE:
                return False
            case SyncMode.NEW:
                return await self.writer.get_document(f"events/{event_id}") is not None
            case SyncMode.FULL:
                stored = await self.writer.get_document(f"events/{event_id}")
                if stored is None or not is_past_event(event, self._now()):
                    return False
                status = stored.get("syncStatus")
                if isinstance(status, dict) and "complete" in status:
                    return bool(status["complete"])
                return not await self._legacy_incomplete(event_id)
        return False

    async def _legacy_incomplete(self, event_id: str) -> bool:
        """Spot-check events stored before the ``syncStatus`` marker existed."""
        divisions = await self.writer.sample_ids(f"events/{event_id}/divisions")
        if not divisions:
            return False
        sample = await self.writer.sample_ids(
            f"events/{event_id}/divisions/{divisions[0]}/finalistRankings"
        )
        incomplete = bool(sample) and _looks_rank_keyed(sample[0])
        if incomplete:
            logger.info("Event %s has rank-keyed finalist rankings, re-syncing", event_id)
        return incomplete

    # ── Pipeline ────────────────────────────────────────────
    async def _process_event(self, event_id: str, event: dict) -> None:
        if not self.live:
            await self.writer.write("events", [Record(event_id, event)])
            await self.writer.mark_event_started(event_id, self.mode.value)

        detail = await self.client.get_event(event_id)
        divisions = extract_divisions(detail)
        if divisions and not self.live:
            await self.writer.write(
                f"events/{event_id}/divisions",
                self._records(divisions, division_identity, "divisions"),
            )

        for division in divisions:
            await self._process_division(event_id, str(division["id"]))

        if self.live:
            return

        teams = await self.client.get_event_teams(event_id)
        await self._store(f"events/{event_id}/teams", teams, team_identity)

        skills = await self.client.get_event_skills(event_id)
        await self._store(f"events/{event_id}/skills", skills, skill_identity)

        await self.writer.mark_event_complete(event_id, self.mode.value)

    async def _process_division(self, event_id: str, division_id: str) -> None:
        base = f"events/{event_id}/divisions/{division_id}"
        live_base = f"live/{event_id}/{division_id}"

        rankings = await self.client.get_division_rankings(event_id, division_id)
        await self._store(f"{base}/rankings", rankings, ranking_identity, f"{live_base}/rankings")

        if not self.live:
            finalists = await self.client.get_division_finalist_rankings(event_id, division_id)
            await self._store(f"{base}/finalistRankings", finalists, ranking_identity)

        matches = await self.client.get_division_matches(event_id, division_id)
        await self._store(f"{base}/matches", matches, match_identity, f"{live_base}/matches")

    async def _store(
        self,
        durable_path: str,
        entities: list,
        identity: IdentityFn,
        live_path: str | None = None,
    ) -> None:
        records = self._records(entities, identity, durable_path)
        if not records:
            return
        if self.live and live_path is not None:
            await self.publisher.publish(live_path, records)
        await self.writer.write(durable_path, records)

    @staticmethod
    def _records(entities: list, identity: IdentityFn, where: str) -> list[Record]:
        records = []
        for entity in entities or []:
            if not isinstance(entity, dict):
                continue
            try:
                records.append(Record(identity(entity), entity))
            except ValueError:
                logger.warning("Dropping record without identity in %s", where)
        return records

    async def _checkpoint(self, index: int, total: int, event_id: str | None) -> None:
        await self.writer.update_progress({
            "mode": self.mode.value,
            "currentSeason": self.season_id,
            "eventsProcessed": index,
            "totalEvents": total,
            "lastProcessedEvent": event_id,
        })
