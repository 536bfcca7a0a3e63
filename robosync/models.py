"""Data models and stable identity derivation."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class SyncMode(str, Enum):
    FULL = "full"
    NEW = "new"  # incremental: only events not yet stored
    LIVE = "live"


@dataclass
class Record:
    identity: str
    payload: dict[str, Any]


@dataclass
class SyncSummary:
    mode: SyncMode
    total_events: int = 0
    processed: int = 0
    skipped: int = 0
    failed: int = 0
    last_event_id: str | None = None
    failed_events: list[str] = field(default_factory=list)


def _first(*candidates: Any) -> str:
    for value in candidates:
        if value is not None and value != "":
            return str(value)
    raise ValueError("record has no usable identity")


def _team_id(entity: dict) -> Any:
    team = entity.get("team")
    if isinstance(team, dict):
        return team.get("id")
    return None


# ── Identity chains ─────────────────────────────────────────
# Stored document ids must not drift between runs, or duplicates pile up.

def event_identity(event: dict) -> str:
    return _first(event.get("id"), event.get("sku"))


def division_identity(division: dict) -> str:
    return _first(division.get("id"))


def ranking_identity(ranking: dict) -> str:
    """Ranking / finalist ranking id, else ``team_<teamId>``.

    Alliance partners share a rank, so rank alone is never used while a
    team id is available.
    """
    team_id = _team_id(ranking)
    return _first(
        ranking.get("id"),
        f"team_{team_id}" if team_id is not None else None,
        ranking.get("rank"),
    )


def match_identity(match: dict) -> str:
    return _first(match.get("id"), match.get("matchnum"))


def team_identity(team: dict) -> str:
    return _first(team.get("id"), team.get("number"))


def skill_identity(skill: dict) -> str:
    team_id = _team_id(skill)
    composite = None
    if team_id is not None and skill.get("type"):
        composite = f"{team_id}_{skill['type']}"
    return _first(skill.get("id"), composite)
