from __future__ import annotations

import re
import time
from dataclasses import dataclass
from datetime import datetime, timezone

from .errors import TIME_FORMAT_HINT, InvalidTimeExpression

_RELATIVE_RE = re.compile(r"^(\d+)([smhd])$", re.IGNORECASE)
_RFC3339_RE = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}Z$")

_UNIT_SECONDS = {
    "s": 1,
    "m": 60,
    "h": 60 * 60,
    "d": 24 * 60 * 60,
}

# ~200 points per series keeps range tables readable
DEFAULT_POINTS = 200


@dataclass(frozen=True)
class ResolvedTime:
    timestamp: int
    was_relative: bool


def capture_now() -> int:
    """
    Read the clock once. Commands call this a single time and thread the
    value through every parse, so `--start 1h --end now` is consistent.
    """
    return int(time.time())


def parse_time_expression(text: str, reference_now: int) -> ResolvedTime:
    """
    Resolve a user time string against `reference_now` (Unix seconds).

    Accepted forms:
      now                     -> reference_now
      30s / 5m / 1h / 7d      -> reference_now minus the duration
      2024-01-01T00:00:00Z    -> absolute, UTC only
    """
    s = (text or "").strip()
    if not s:
        raise InvalidTimeExpression("Empty time expression", hint=TIME_FORMAT_HINT)

    if s.lower() == "now":
        return ResolvedTime(timestamp=reference_now, was_relative=True)

    m = _RELATIVE_RE.match(s)
    if m:
        n = int(m.group(1))
        if n <= 0:
            raise InvalidTimeExpression(
                f'Invalid time format: "{text}". Duration value must be positive',
                hint=TIME_FORMAT_HINT,
            )
        return ResolvedTime(
            timestamp=reference_now - n * _UNIT_SECONDS[m.group(2).lower()],
            was_relative=True,
        )

    if _RFC3339_RE.match(s):
        try:
            dt = datetime.strptime(s, "%Y-%m-%dT%H:%M:%SZ").replace(tzinfo=timezone.utc)
        except ValueError as e:
            raise InvalidTimeExpression(
                f'Invalid time format: "{text}". {e}', hint=TIME_FORMAT_HINT
            ) from e
        return ResolvedTime(timestamp=int(dt.timestamp()), was_relative=False)

    raise InvalidTimeExpression(f'Invalid time format: "{text}"', hint=TIME_FORMAT_HINT)


def default_step(start: int, end: int) -> int:
    return max(1, (end - start) // DEFAULT_POINTS)


def format_timestamp(ts: int) -> str:
    return datetime.fromtimestamp(ts, tz=timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
