from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Union

from .errors import (
    TIME_FORMAT_HINT,
    InvalidQuery,
    InvalidRange,
    InvalidStep,
    InvalidTimeExpression,
)
from .timeexpr import capture_now, default_step, format_timestamp, parse_time_expression

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QueryRangeParams:
    query: str
    start: int
    end: int
    step: int


@dataclass(frozen=True)
class RangeCheck:
    """Validated range parameters plus an optional advisory (never an error)."""

    params: QueryRangeParams
    warning: Optional[str] = None


@dataclass(frozen=True)
class TimeWindow:
    start: Optional[int] = None
    end: Optional[int] = None

    def as_params(self) -> dict:
        params = {}
        if self.start is not None:
            params["start"] = self.start
        if self.end is not None:
            params["end"] = self.end
        return params


def _resolve(side: str, expr: str, now: int) -> int:
    try:
        return parse_time_expression(expr, now).timestamp
    except InvalidTimeExpression as e:
        raise InvalidTimeExpression(
            f"Invalid {side} time.", side=side, hint=f"Reason: {e.message}\n{TIME_FORMAT_HINT}"
        ) from e


def _ordered(start: int, end: int, start_expr: str, end_expr: str) -> None:
    if start >= end:
        raise InvalidRange(
            start,
            end,
            hint=(
                f"Start: {start_expr} ({format_timestamp(start)})\n"
                f"End:   {end_expr} ({format_timestamp(end)})"
            ),
        )


def _check_step(step: Union[int, str]) -> int:
    if isinstance(step, bool):
        raise InvalidStep(f"Invalid step: {step!r}. Step must be a positive integer (seconds).")
    if isinstance(step, str):
        s = step.strip()
        if not (s.isascii() and s.isdigit()):
            raise InvalidStep(f"Invalid step: {step!r}. Step must be a positive integer (seconds).")
        step = int(s)
    if not isinstance(step, int) or step <= 0:
        raise InvalidStep(f"Invalid step: {step!r}. Step must be a positive integer (seconds).")
    return step


def validate_range(
    query: str,
    start_expr: str,
    end_expr: str,
    step: Optional[Union[int, str]] = None,
    now: Optional[int] = None,
) -> RangeCheck:
    """
    Build QueryRangeParams from raw option strings.
    Checks run in order and stop at the first failure:
    query, start, end, ordering, step.
    """
    if not query or not query.strip():
        raise InvalidQuery("PromQL expression must not be empty.")
    if now is None:
        now = capture_now()

    start = _resolve("start", start_expr, now)
    end = _resolve("end", end_expr, now)
    _ordered(start, end, start_expr, end_expr)

    if step is None:
        step_s = default_step(start, end)
        logger.debug("no step given, using %ss for a %ss range", step_s, end - start)
    else:
        step_s = _check_step(step)

    warning = None
    span = end - start
    if step_s > span:
        warning = (
            f"Step ({step_s}s) is larger than time range ({span}s). "
            "Only 1 data point will be returned."
        )

    return RangeCheck(
        params=QueryRangeParams(query=query, start=start, end=end, step=step_s),
        warning=warning,
    )


def validate_window(
    start_expr: Optional[str] = None,
    end_expr: Optional[str] = None,
    now: Optional[int] = None,
) -> TimeWindow:
    """Optional start/end filter for labels and series; no step involved."""
    if now is None:
        now = capture_now()
    start = _resolve("start", start_expr, now) if start_expr else None
    end = _resolve("end", end_expr, now) if end_expr else None
    if start is not None and end is not None:
        _ordered(start, end, start_expr or "", end_expr or "")
    return TimeWindow(start=start, end=end)
