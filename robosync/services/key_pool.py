"""API key rotation, blacklist and per-key cooldowns.

One instance is shared by every request of a run.  The rotation cursor,
blacklist and cooldown map are the only mutable shared state; all access
goes through ``_lock`` so a worker-pool extension stays safe.
"""
from __future__ import annotations

import logging
import threading
import time
from typing import Callable

from ..errors import AuthExhausted, CredentialError

logger = logging.getLogger(__name__)

DEFAULT_COOLDOWN = 60.0      # seconds a 429'd key sits out
MAX_COOLDOWN = 600.0         # cap for exponential cooldowns
MIN_WAIT = 1.0               # bounds for the all-keys-cooling sleep
MAX_WAIT = 30.0
IDLE_WAIT = 5.0              # nothing cooling but nothing eligible either


def _mask(key: str) -> str:
    return f"…{key[-4:]}" if len(key) > 4 else "…"


class KeyPool:
    """Round-robin over the configured keys, skipping dead and cooling ones."""

    def __init__(
        self,
        keys: list[str],
        cooldown: float = DEFAULT_COOLDOWN,
        exponential: bool = False,
        max_cooldown: float = MAX_COOLDOWN,
        min_wait: float = MIN_WAIT,
        max_wait: float = MAX_WAIT,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.keys = list(dict.fromkeys(keys))
        self.cooldown = cooldown
        self.exponential = exponential
        self.max_cooldown = max_cooldown
        self.min_wait = min_wait
        self.max_wait = max_wait
        self._clock = clock
        self._cursor = 0
        self._blacklist: set[str] = set()
        self._cooldowns: dict[str, float] = {}   # key -> eligible-again instant
        self._strikes: dict[str, int] = {}       # consecutive 429s per key
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self.keys)

    def _eligible(self, key: str, now: float) -> bool:
        if key in self._blacklist:
            return False
        until = self._cooldowns.get(key)
        return until is None or now >= until

    def acquire_key(self) -> str | None:
        """Return the next eligible key, or ``None`` if every live key is cooling.

        Raises ``CredentialError`` when no keys are configured and
        ``AuthExhausted`` once every key has been blacklisted.
        """
        with self._lock:
            if not self.keys:
                raise CredentialError("No RobotEvents API keys configured")
            if len(self._blacklist) >= len(self.keys):
                raise AuthExhausted(
                    f"All {len(self.keys)} RobotEvents API keys are failing with 401 Unauthorized"
                )
            now = self._clock()
            n = len(self.keys)
            for offset in range(n):
                idx = (self._cursor + offset) % n
                key = self.keys[idx]
                if self._eligible(key, now):
                    self._cursor = (idx + 1) % n
                    return key
            return None

    def report_unauthorized(self, key: str) -> None:
        with self._lock:
            self._blacklist.add(key)
            self._cooldowns.pop(key, None)
            remaining = len(self.keys) - len(self._blacklist)
        logger.warning("API key %s failed (401), blacklisted; %d usable left", _mask(key), remaining)

    def report_rate_limited(self, key: str) -> float:
        """Put *key* on cooldown and return the cooldown length in seconds."""
        with self._lock:
            strikes = self._strikes.get(key, 0) + 1
            self._strikes[key] = strikes
            duration = self.cooldown
            if self.exponential:
                duration = min(self.cooldown * 2 ** (strikes - 1), self.max_cooldown)
            self._cooldowns[key] = self._clock() + duration
        logger.warning("API key %s rate limited (429), cooling down %.0fs", _mask(key), duration)
        return duration

    def report_success(self, key: str) -> None:
        with self._lock:
            self._strikes.pop(key, None)

    def next_wait(self) -> float:
        """Seconds until the soonest cooldown expires, clamped to the wait bounds."""
        with self._lock:
            now = self._clock()
            pending = [
                until for key, until in self._cooldowns.items()
                if until > now and key not in self._blacklist
            ]
            delay = (min(pending) - now) if pending else IDLE_WAIT
        return max(self.min_wait, min(delay, self.max_wait))

    def snapshot(self) -> dict:
        """Counts only; key material never leaves the pool."""
        with self._lock:
            now = self._clock()
            cooling = sum(
                1 for key, until in self._cooldowns.items()
                if until > now and key not in self._blacklist
            )
            return {
                "total": len(self.keys),
                "blacklisted": len(self._blacklist),
                "cooling": cooling,
                "eligible": sum(1 for k in self.keys if self._eligible(k, now)),
            }
