"""Realtime Database writes for sub-minute live updates.

Best effort: a failed publish is logged and the sync carries on, the
durable store still gets the data.
"""
from __future__ import annotations

import asyncio
import hashlib
import json
import logging
from datetime import datetime, timezone
from typing import Any

from ..models import Record
from .compare import first_difference, normalize, payloads_equal

logger = logging.getLogger(__name__)


def _digest(records: list[Record]) -> str:
    pairs = sorted(
        ([r.identity, normalize(r.payload, drop_empty=True)] for r in records),
        key=lambda p: p[0],
    )
    raw = json.dumps(pairs, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


class PublishCache:
    """Last published content per RTDB path, for one continuous process.

    Lets the live loop skip even the read-before-write when a poll returns
    exactly what the previous cycle published.  Never share it between
    separately scheduled runs.
    """

    def __init__(self) -> None:
        self._digests: dict[str, str] = {}

    def unchanged(self, path: str, records: list[Record]) -> bool:
        return self._digests.get(path) == _digest(records)

    def remember(self, path: str, records: list[Record]) -> None:
        self._digests[path] = _digest(records)

    def forget(self, path: str) -> None:
        self._digests.pop(path, None)

    def __len__(self) -> int:
        return len(self._digests)


def _as_mapping(value: Any) -> dict:
    # RTDB renders mostly-sequential integer keys as an array
    if isinstance(value, list):
        return {str(i): v for i, v in enumerate(value) if v is not None}
    if isinstance(value, dict):
        return value
    return {}


class LivePublisher:
    def __init__(
        self,
        root_ref: Any,
        change_aware: bool = True,
        cache: PublishCache | None = None,
    ) -> None:
        self.root_ref = root_ref
        self.change_aware = change_aware
        self.cache = cache

    async def publish(self, path: str, records: list[Record]) -> int:
        """Push *records* under *path*; return how many were written (0 on error)."""
        if not records:
            return 0
        if self.cache is not None and self.cache.unchanged(path, records):
            logger.debug("No changes since last cycle for %r", path)
            return 0
        try:
            written = await self._publish(path, records)
        except Exception as e:
            logger.error("RTDB publish to %r failed: %s", path, e)
            if self.cache is not None:
                self.cache.forget(path)
            return 0
        if self.cache is not None:
            self.cache.remember(path, records)
        return written

    async def _publish(self, path: str, records: list[Record]) -> int:
        existing: dict = {}
        if self.change_aware:
            raw = await asyncio.to_thread(self.root_ref.child(path).get)
            existing = _as_mapping(raw)

        stamp = datetime.now(timezone.utc).isoformat()
        updates: dict[str, dict] = {}
        logged_diff = False
        for record in records:
            stored = existing.get(record.identity)
            if stored is not None:
                if payloads_equal(stored, record.payload, drop_empty=True):
                    continue
                if not logged_diff:
                    logger.debug(
                        "Diff found for %s/%s at key %r",
                        path, record.identity,
                        first_difference(stored, record.payload, drop_empty=True),
                    )
                    logged_diff = True
            updates[f"{path}/{record.identity}"] = {**record.payload, "lastUpdated": stamp}

        if not updates:
            logger.info("No changes for %r", path)
            return 0
        await asyncio.to_thread(self.root_ref.update, updates)
        logger.info("Updated %d records at %r", len(updates), path)
        return len(updates)
