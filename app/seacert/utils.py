from __future__ import annotations

import re
from collections.abc import Iterable
from datetime import date, datetime, timezone


def utcnow() -> datetime:
    """Naive UTC timestamp, matching the DateTime(timezone=False) columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_datetime(s: str | None) -> datetime | None:
    """
    Parse an ISO-8601 date or datetime from a JSON payload.

    Accepts "2025-02-01", "2025-02-01T23:59:59" and a trailing "Z".
    Aware values are converted to naive UTC.
    """
    if not s:
        return None
    if not isinstance(s, str):
        raise ValueError(f"not an ISO-8601 string: {s!r}")
    s = s.strip()
    if not s:
        return None
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    try:
        value = datetime.fromisoformat(s)
    except ValueError:
        value = datetime.combine(date.fromisoformat(s), datetime.min.time())
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def isoformat(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.isoformat()


def parse_bool(value: object) -> bool | None:
    """Tri-state parse for query-string / JSON flags ("" and None mean unset)."""
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    raw = str(value).strip().lower()
    if not raw:
        return None
    return raw in ("1", "true", "yes", "on")


def sequence_number(code: str) -> int | None:
    """Trailing numeric sequence of a generated code ("MRN-2025-007" -> 7)."""
    m = re.search(r"(\d+)$", (code or "").strip())
    if not m:
        return None
    return int(m.group(1))


def next_sequential_code(existing: Iterable[str], *, prefix: str, width: int, year: int | None = None) -> str:
    """
    Next code in a global, strictly increasing sequence.

    The sequence is shared across years: "SEA-2025-000041" is followed by
    "SEA-2026-000042", never by "SEA-2026-000001".
    """
    highest = 0
    for code in existing:
        n = sequence_number(code)
        if n is not None and n > highest:
            highest = n
    if year is None:
        year = utcnow().year
    return f"{prefix}-{year}-{highest + 1:0{width}d}"
