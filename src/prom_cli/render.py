from __future__ import annotations

import json
import re
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from .normalize import PointCount, ResultRow, SingleValue, ValueRange

COLUMN_SEP = "  "
NO_DATA = "No data"


class RenderTarget(str, Enum):
    TABLE = "table"
    LIST = "list"
    JSON = "json"


@dataclass(frozen=True)
class Column:
    header: str
    cell: Callable[[Any], str]


# ---------- label sets ----------


def format_label_set(labels: Dict[str, str], sep: str = ", ", skip_name: bool = False) -> str:
    """{k1="v1", k2="v2"} in the order the labels were received."""
    pairs = [f'{k}="{v}"' for k, v in labels.items() if not (skip_name and k == "__name__")]
    return "{" + sep.join(pairs) + "}"


def _labels_cell(row: ResultRow) -> str:
    return format_label_set(row.labels or {}, sep=",", skip_name=True)


# ---------- table ----------


def _pad(text: str, width: int) -> str:
    return text + " " * (width - len(text))


def format_table(columns: Sequence[Column], records: Iterable[Any], empty: str = NO_DATA) -> str:
    """
    Fixed-width table. Each column is as wide as its widest cell or header;
    nothing is ever cut.
    """
    cells: List[List[str]] = [[str(col.cell(r)) for col in columns] for r in records]
    if not cells:
        return empty

    widths = [len(col.header) for col in columns]
    for line in cells:
        for i, text in enumerate(line):
            widths[i] = max(widths[i], len(text))

    lines = [COLUMN_SEP.join(_pad(col.header, widths[i]) for i, col in enumerate(columns))]
    for line in cells:
        lines.append(COLUMN_SEP.join(_pad(text, widths[i]) for i, text in enumerate(line)))
    return "\n".join(lines)


def format_key_values(pairs: Sequence[Tuple[str, str]]) -> str:
    if not pairs:
        return ""
    width = max(len(k) for k, _ in pairs) + 2
    return "\n".join(_pad(f"{k}:", width) + v for k, v in pairs)


# ---------- column specs ----------


def _summary_value(row: ResultRow) -> str:
    s = row.summary
    if isinstance(s, SingleValue):
        return s.value
    return ""


def _points(row: ResultRow) -> str:
    s = row.summary
    if isinstance(s, (ValueRange, PointCount)):
        return str(s.points)
    return ""


def _range(row: ResultRow) -> str:
    s = row.summary
    if isinstance(s, ValueRange):
        return f"{s.min} - {s.max}"
    return "N/A"


def vector_columns() -> List[Column]:
    return [
        Column("METRIC", lambda r: r.metric),
        Column("LABELS", _labels_cell),
        Column("VALUE", _summary_value),
    ]


def matrix_columns() -> List[Column]:
    return [
        Column("METRIC", lambda r: r.metric),
        Column("LABELS", _labels_cell),
        Column("POINTS", _points),
        Column("RANGE", _range),
    ]


_FRACTION_RE = re.compile(r"\.(\d+)")


def _parse_scrape_time(value: str) -> Optional[float]:
    if not value:
        return None
    # Go emits nanoseconds; fromisoformat wants at most microseconds
    text = _FRACTION_RE.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), value, count=1)
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(text)
    except ValueError:
        return None
    if dt.year <= 1:
        return None
    return dt.timestamp()


def format_relative_time(then: Optional[float], reference_now: float) -> str:
    if then is None:
        return "never"
    diff = max(0, int(reference_now - then))
    if diff < 60:
        return f"{diff}s ago"
    diff //= 60
    if diff < 60:
        return f"{diff}m ago"
    diff //= 60
    if diff < 24:
        return f"{diff}h ago"
    return f"{diff // 24}d ago"


def target_columns(reference_now: float) -> List[Column]:
    return [
        Column("JOB", lambda r: r.source.get("job", "")),
        Column("INSTANCE", lambda r: r.source.get("instance", "")),
        Column("STATE", _summary_value),
        Column(
            "LAST SCRAPE",
            lambda r: format_relative_time(
                _parse_scrape_time(str(r.source.get("lastScrape", ""))), reference_now
            ),
        ),
    ]


# ---------- list / json ----------


def _list_line(row: ResultRow) -> str:
    if row.labels is not None:
        return format_label_set(row.labels)
    return _summary_value(row)


def format_json(obj: Any) -> str:
    return json.dumps(obj, indent=2, ensure_ascii=False)


def render(
    rows: Sequence[ResultRow],
    target: RenderTarget,
    columns: Optional[Sequence[Column]] = None,
    summary: Optional[str] = None,
    empty: str = NO_DATA,
) -> str:
    """
    Turn normalized rows into printable text.

    table: aligned columns (needs `columns`).
    list:  one line per row, then `summary` ({count} -> row count) if given.
    json:  array of each row's source element; `[]` when empty, never a summary.
    """
    target = RenderTarget(target)

    if target is RenderTarget.JSON:
        return format_json([row.source for row in rows])

    if not rows:
        return empty

    if target is RenderTarget.TABLE:
        return format_table(columns or vector_columns(), rows, empty=empty)

    lines = [_list_line(row) for row in rows]
    if summary:
        lines.append("")
        lines.append(summary.replace("{count}", str(len(rows))))
    return "\n".join(lines)
