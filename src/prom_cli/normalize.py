from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Union

from .errors import UnsupportedResultType


class ResultKind(str, Enum):
    VECTOR = "vector"
    SCALAR = "scalar"
    STRING = "string"
    MATRIX = "matrix"
    LABEL_NAMES = "labelNameList"
    LABEL_VALUES = "labelValueList"
    SERIES = "seriesList"
    TARGETS = "targetList"


QUERY_KINDS = (ResultKind.VECTOR, ResultKind.SCALAR, ResultKind.STRING, ResultKind.MATRIX)


@dataclass(frozen=True)
class SingleValue:
    value: str


@dataclass(frozen=True)
class ValueRange:
    min: str
    max: str
    points: int


@dataclass(frozen=True)
class PointCount:
    points: int


Summary = Union[SingleValue, ValueRange, PointCount]


@dataclass(frozen=True)
class ResultRow:
    """
    One presentable unit: a series, a label name/value, or a target.
    `labels` is None for plain value rows and keeps the server's key order otherwise.
    `source` is the JSON-ready element the row came from.
    """

    labels: Optional[Dict[str, str]]
    metric: str = ""
    summary: Optional[Summary] = None
    source: Any = None


def _as_list(payload: Any, kind: ResultKind) -> list:
    if not isinstance(payload, list):
        raise UnsupportedResultType(f"{kind.value}: {type(payload).__name__}")
    return payload


def _records(payload: Any, kind: ResultKind) -> List[Dict[str, Any]]:
    items = _as_list(payload, kind)
    for item in items:
        if not isinstance(item, dict):
            raise UnsupportedResultType(f"{kind.value}: {type(item).__name__}")
    return items


def _label_set(raw: Any, kind: ResultKind) -> Dict[str, str]:
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise UnsupportedResultType(f"{kind.value}: labels {type(raw).__name__}")
    return dict(raw)


def _sample_value(sample: Any) -> str:
    # [ <unix_time>, "<value>" ]; keep the string as sent
    if isinstance(sample, list) and len(sample) >= 2:
        return str(sample[1])
    return str(sample)


def _to_decimal(text: str) -> Optional[Decimal]:
    try:
        d = Decimal(text)
    except (InvalidOperation, ValueError, TypeError):
        return None
    return None if d.is_nan() else d


def _value_range(values: List[Any]) -> Summary:
    lo = hi = None
    lo_d = hi_d = None
    for sample in values:
        raw = _sample_value(sample)
        d = _to_decimal(raw)
        if d is None:
            continue
        # strict comparisons: the first occurrence wins on ties
        if lo_d is None or d < lo_d:
            lo, lo_d = raw, d
        if hi_d is None or d > hi_d:
            hi, hi_d = raw, d
    if lo is None or hi is None:
        return PointCount(points=len(values))
    return ValueRange(min=lo, max=hi, points=len(values))


def _metric_name(labels: Dict[str, str]) -> str:
    return str(labels.get("__name__", ""))


def _vector(result: Any) -> List[ResultRow]:
    rows = []
    for item in _records(result, ResultKind.VECTOR):
        labels = _label_set(item.get("metric"), ResultKind.VECTOR)
        rows.append(
            ResultRow(
                labels=labels,
                metric=_metric_name(labels),
                summary=SingleValue(_sample_value(item.get("value", []))),
                source=item,
            )
        )
    return rows


def _literal(result: Any) -> List[ResultRow]:
    return [ResultRow(labels={}, summary=SingleValue(_sample_value(result)), source=result)]


def _matrix(result: Any) -> List[ResultRow]:
    rows = []
    for item in _records(result, ResultKind.MATRIX):
        labels = _label_set(item.get("metric"), ResultKind.MATRIX)
        rows.append(
            ResultRow(
                labels=labels,
                metric=_metric_name(labels),
                summary=_value_range(list(item.get("values") or [])),
                source=item,
            )
        )
    return rows


def _strings(kind: ResultKind) -> Callable[[Any], List[ResultRow]]:
    def build(payload: Any) -> List[ResultRow]:
        return [
            ResultRow(labels=None, summary=SingleValue(str(s)), source=s)
            for s in _as_list(payload, kind)
        ]

    return build


def _series(payload: Any) -> List[ResultRow]:
    rows = []
    for label_set in _records(payload, ResultKind.SERIES):
        labels = _label_set(label_set, ResultKind.SERIES)
        rows.append(ResultRow(labels=labels, metric=_metric_name(labels), source=label_set))
    return rows


def _targets(payload: Any) -> List[ResultRow]:
    if not isinstance(payload, dict):
        raise UnsupportedResultType(f"{ResultKind.TARGETS.value}: {type(payload).__name__}")
    rows = []
    for t in _records(payload.get("activeTargets") or [], ResultKind.TARGETS):
        labels = _label_set(t.get("labels"), ResultKind.TARGETS)
        health = str(t.get("health", "unknown"))
        view = {
            "job": labels.get("job", ""),
            "instance": labels.get("instance", ""),
            "health": health,
            "lastScrape": t.get("lastScrape", ""),
            "lastScrapeDuration": t.get("lastScrapeDuration", 0),
        }
        rows.append(
            ResultRow(
                labels=labels,
                metric=str(t.get("scrapePool", "")),
                summary=SingleValue(health),
                source=view,
            )
        )
    return rows


_QUERY_BUILDERS: Dict[ResultKind, Callable[[Any], List[ResultRow]]] = {
    ResultKind.VECTOR: _vector,
    ResultKind.SCALAR: _literal,
    ResultKind.STRING: _literal,
    ResultKind.MATRIX: _matrix,
}

_LIST_BUILDERS: Dict[ResultKind, Callable[[Any], List[ResultRow]]] = {
    ResultKind.LABEL_NAMES: _strings(ResultKind.LABEL_NAMES),
    ResultKind.LABEL_VALUES: _strings(ResultKind.LABEL_VALUES),
    ResultKind.SERIES: _series,
    ResultKind.TARGETS: _targets,
}


def query_kind(payload: Any) -> ResultKind:
    """Kind declared by a /query or /query_range `data` object."""
    rtype = payload.get("resultType") if isinstance(payload, dict) else None
    try:
        kind = ResultKind(rtype)
    except ValueError:
        raise UnsupportedResultType(rtype) from None
    if kind not in QUERY_KINDS:
        raise UnsupportedResultType(rtype)
    return kind


def normalize_result(payload: Any, kind: ResultKind) -> List[ResultRow]:
    """
    Map an API `data` payload to ResultRows.

    For query kinds the payload is `{"resultType": ..., "result": ...}` and the
    declared type must match `kind`; for list kinds it is the bare `data` value.
    """
    try:
        kind = ResultKind(kind)
    except ValueError:
        raise UnsupportedResultType(kind) from None
    if kind in _QUERY_BUILDERS:
        declared = query_kind(payload)
        if declared is not kind:
            raise UnsupportedResultType(payload.get("resultType"))
        return _QUERY_BUILDERS[kind](payload.get("result"))
    return _LIST_BUILDERS[kind](payload)


def normalize_query_result(payload: Any) -> List[ResultRow]:
    return normalize_result(payload, query_kind(payload))
