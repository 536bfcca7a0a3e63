"""Canonical normalization and structural equality for stored records.

Stored copies come back from Firestore with timestamp wrappers and from
RTDB with nulls and empty containers removed, so raw ``==`` would report
spurious changes.  Both sides are normalized first, then compared.
"""
from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any

# Fields this system adds on write; never part of the payload comparison.
METADATA_FIELDS = ("lastUpdated", "syncStatus")

_EMPTY = object()


def strip_metadata(doc: dict | None) -> dict:
    if not doc:
        return {}
    return {k: v for k, v in doc.items() if k not in METADATA_FIELDS}


def _as_instant(value: Any) -> datetime | None:
    # google.api_core DatetimeWithNanoseconds is a datetime subclass;
    # protobuf-style Timestamps expose ToDatetime().
    if isinstance(value, datetime):
        dt = value
    elif hasattr(value, "ToDatetime"):
        dt = value.ToDatetime()
    elif isinstance(value, date):
        dt = datetime(value.year, value.month, value.day)
    else:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def normalize(value: Any, drop_empty: bool = False) -> Any:
    """Return a canonical copy of *value*.

    Dict entries holding ``None`` are dropped (absent and null are the same
    thing), keys are sorted, tuples become lists and timestamp-like values
    become UTC datetimes.  With *drop_empty*, empty dicts/lists are dropped
    as well, matching what RTDB actually stores.
    """
    result = _normalize(value, drop_empty)
    return None if result is _EMPTY else result


def _normalize(value: Any, drop_empty: bool) -> Any:
    instant = _as_instant(value)
    if instant is not None:
        return instant
    if isinstance(value, dict):
        out = {}
        for key in sorted(value, key=str):
            item = _normalize(value[key], drop_empty)
            if item is None or item is _EMPTY:
                continue
            out[str(key)] = item
        if drop_empty and not out:
            return _EMPTY
        return out
    if isinstance(value, (list, tuple)):
        out_list = []
        for item in value:
            item = _normalize(item, drop_empty)
            out_list.append(None if item is _EMPTY else item)
        if drop_empty and not out_list:
            return _EMPTY
        return out_list
    return value


def values_equal(a: Any, b: Any) -> bool:
    """Structural equality over already-normalized values."""
    if isinstance(a, bool) or isinstance(b, bool):
        return type(a) is type(b) and a == b
    if isinstance(a, datetime) and isinstance(b, datetime):
        return a == b
    if isinstance(a, dict) and isinstance(b, dict):
        if a.keys() != b.keys():
            return False
        return all(values_equal(a[k], b[k]) for k in a)
    if isinstance(a, list) and isinstance(b, list):
        if len(a) != len(b):
            return False
        return all(values_equal(x, y) for x, y in zip(a, b))
    if isinstance(a, (dict, list, datetime)) or isinstance(b, (dict, list, datetime)):
        return False
    return a == b


def merged_view(stored: dict | None, incoming: dict | None) -> dict:
    """The part of *stored* that a merge write of *incoming* would touch.

    Merge writes leave sibling fields alone, so keys the incoming record
    no longer carries stay in the stored document and must not count as a
    difference.  Nested maps merge field by field; lists are replaced whole.
    """
    if not stored:
        return {}
    incoming = incoming or {}
    view = {}
    for key, value in stored.items():
        if key not in incoming:
            continue
        if isinstance(value, dict) and isinstance(incoming[key], dict):
            value = merged_view(value, incoming[key])
        view[key] = value
    return view


def payloads_equal(
    stored: dict | None,
    incoming: dict | None,
    drop_empty: bool = False,
    merge: bool = False,
) -> bool:
    """True when *stored* (minus write metadata) carries the same content as *incoming*.

    With *merge*, only the fields a merge write of *incoming* would set are
    compared.
    """
    stored = strip_metadata(stored)
    if merge:
        stored = merged_view(stored, incoming)
    return values_equal(
        normalize(stored, drop_empty) or {},
        normalize(strip_metadata(incoming), drop_empty) or {},
    )


def first_difference(
    stored: dict | None,
    incoming: dict | None,
    drop_empty: bool = False,
    merge: bool = False,
) -> str | None:
    """Name of the first top-level key that differs, for debug logging."""
    stored = strip_metadata(stored)
    if merge:
        stored = merged_view(stored, incoming)
    a = normalize(stored, drop_empty) or {}
    b = normalize(strip_metadata(incoming), drop_empty) or {}
    for key in sorted(set(a) | set(b)):
        if key not in a or key not in b or not values_equal(a[key], b[key]):
            return key
    return None
