"""Firestore batch writes that skip documents whose content has not changed.

Every chunk is read back in one ``get_all`` before writing.  That costs
reads, but it keeps unchanged documents from being rewritten (and from
waking downstream listeners) on every poll.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any

from firebase_admin import firestore

from ..models import Record
from .compare import first_difference, payloads_equal

logger = logging.getLogger(__name__)

BATCH_SIZE = 500        # Firestore batch limit
COMMIT_TIMEOUT = 10.0   # seconds
PROGRESS_DOC = "sync/progress"


def _dedupe(records: list[Record]) -> list[Record]:
    """Keep the last record per identity, in first-seen order."""
    latest: dict[str, Record] = {}
    for record in records:
        latest[record.identity] = record
    return list(latest.values())


class FirestoreWriter:
    def __init__(
        self,
        client: Any,
        batch_size: int = BATCH_SIZE,
        commit_timeout: float = COMMIT_TIMEOUT,
    ) -> None:
        self.client = client
        self.batch_size = batch_size
        self.commit_timeout = commit_timeout
        self.totals = {"written": 0, "skipped": 0}

    async def _read_existing(self, refs: list) -> dict[str, dict]:
        existing: dict[str, dict] = {}
        async for snapshot in self.client.get_all(refs):
            if snapshot.exists:
                existing[snapshot.id] = snapshot.to_dict() or {}
        return existing

    async def write(self, collection_path: str, records: list[Record], merge: bool = True) -> int:
        """Write changed *records* under *collection_path*; return how many were written."""
        unique = _dedupe(records)
        if len(unique) != len(records):
            logger.warning(
                "%d duplicate identities in %s, keeping the last of each",
                len(records) - len(unique), collection_path,
            )

        logger.info("Processing %d docs for %r...", len(unique), collection_path)
        collection = self.client.collection(collection_path)
        written = skipped = 0

        for start in range(0, len(unique), self.batch_size):
            chunk = unique[start:start + self.batch_size]
            refs = [collection.document(r.identity) for r in chunk]

            try:
                existing = await self._read_existing(refs)
            except Exception as e:
                logger.warning(
                    "Failed to fetch existing docs for comparison: %s. Proceeding with writes.", e,
                )
                existing = {}

            batch = self.client.batch()
            staged = 0
            for record, ref in zip(chunk, refs):
                stored = existing.get(record.identity)
                if stored is not None and payloads_equal(stored, record.payload, merge=merge):
                    continue
                if stored is not None and logger.isEnabledFor(logging.DEBUG):
                    logger.debug(
                        "%s/%s changed at key %r",
                        collection_path, record.identity,
                        first_difference(stored, record.payload, merge=merge),
                    )
                batch.set(
                    ref,
                    {**record.payload, "lastUpdated": firestore.SERVER_TIMESTAMP},
                    merge=merge,
                )
                staged += 1

            if staged:
                try:
                    await asyncio.wait_for(batch.commit(), timeout=self.commit_timeout)
                except asyncio.TimeoutError:
                    logger.error(
                        "Batch commit for %r timed out after %.0fs", collection_path, self.commit_timeout,
                    )
                    raise
                except Exception as e:
                    logger.error("Batch commit for %r failed: %s", collection_path, e)
                    raise
            written += staged
            skipped += len(chunk) - staged

        self.totals["written"] += written
        self.totals["skipped"] += skipped
        if written or skipped:
            logger.info("Outcome: %d updated, %d unchanged.", written, skipped)
        return written

    # ── Lookups used by the skip logic ──────────────────────
    async def get_document(self, path: str) -> dict | None:
        snapshot = await self.client.document(path).get()
        return (snapshot.to_dict() or {}) if snapshot.exists else None

    async def sample_ids(self, collection_path: str, limit: int = 1) -> list[str]:
        query = self.client.collection(collection_path).limit(limit)
        return [snapshot.id async for snapshot in query.stream()]

    async def _set_sync_status(self, event_id: str, mode: str, complete: bool) -> None:
        await self.client.document(f"events/{event_id}").set({
            "syncStatus": {
                "complete": complete,
                "mode": mode,
                "syncedAt": firestore.SERVER_TIMESTAMP,
            },
        }, merge=True)

    async def mark_event_started(self, event_id: str, mode: str) -> None:
        """Flag the event incomplete until its whole subtree has been written."""
        await self._set_sync_status(event_id, mode, complete=False)

    async def mark_event_complete(self, event_id: str, mode: str) -> None:
        await self._set_sync_status(event_id, mode, complete=True)

    # ── Progress checkpoint ─────────────────────────────────
    async def update_progress(self, progress: dict) -> None:
        await self.client.document(PROGRESS_DOC).set(
            {**progress, "lastUpdated": firestore.SERVER_TIMESTAMP},
            merge=True,
        )

    async def get_progress(self) -> dict | None:
        return await self.get_document(PROGRESS_DOC)
