"""
Reporting-period filter for regulatory KPI drill-downs.

A reporting period is one of four selectors (quarterly, annual, monthly or an
explicit date range). Each selector is an immutable, hashable value so that
the engine can memoize on it, and each exposes a predicate over record
timestamps. Records whose timestamp is missing or unparseable never match any
selector.

The module also carries the helpers used by the KPI cards to narrow
pre-aggregated quarterly/annual series, and the quarter label codec
("Q4 2024").
"""

# --- Standard Library Imports ---
import logging
import re
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Any, ClassVar, List, Mapping, Optional, Sequence, Tuple, TypeVar, Union

# --- Third-party Imports ---
import pandas as pd

# --- Local Application Imports ---
from ..config import MONTH_NAMES, QUARTER_MONTH_LABELS, QUARTER_MONTHS, QUARTERS
from ..utils.records import CaseRecord, Timestampish, parse_timestamp, records_to_frame

# --- Setup Logging ---
logger = logging.getLogger(__name__)

_QUARTER_PATTERN = re.compile(r"Q([1-4])\s+(\d{4})")

P = TypeVar("P", bound=Mapping[str, Any])


class FilterMode(str, Enum):
    QUARTERLY = "quarterly"
    ANNUAL = "annual"
    MONTHLY = "monthly"
    DATE_RANGE = "date-range"


# ==============================================================================
# --- PERIOD SELECTORS ---
# ==============================================================================

@dataclass(frozen=True)
class Quarterly:
    quarter: str
    year: int
    mode: ClassVar[FilterMode] = FilterMode.QUARTERLY

    def __post_init__(self):
        if self.quarter not in QUARTER_MONTHS:
            raise ValueError(f"Quarter must be one of {QUARTERS}, got {self.quarter!r}.")

    @property
    def number(self) -> int:
        return int(self.quarter[1])

    def matches(self, ts: Optional[pd.Timestamp]) -> bool:
        if ts is None:
            return False
        return ts.year == self.year and (ts.month - 1) in QUARTER_MONTHS[self.quarter]


@dataclass(frozen=True)
class Annual:
    year: int
    mode: ClassVar[FilterMode] = FilterMode.ANNUAL

    def matches(self, ts: Optional[pd.Timestamp]) -> bool:
        return ts is not None and ts.year == self.year


@dataclass(frozen=True)
class Monthly:
    """Calendar month selector. ``month`` is 0-indexed (0 = January)."""
    month: int
    year: int
    mode: ClassVar[FilterMode] = FilterMode.MONTHLY

    def __post_init__(self):
        if not 0 <= self.month <= 11:
            raise ValueError(f"Month must be in [0, 11], got {self.month!r}.")

    def matches(self, ts: Optional[pd.Timestamp]) -> bool:
        return ts is not None and ts.year == self.year and ts.month - 1 == self.month


@dataclass(frozen=True)
class DateRange:
    """Inclusive date range. A missing bound is unbounded on that side."""
    start: Timestampish = None
    end: Timestampish = None
    mode: ClassVar[FilterMode] = FilterMode.DATE_RANGE

    def __post_init__(self):
        for name in ("start", "end"):
            value = getattr(self, name)
            if value is not None and value != "" and parse_timestamp(value) is None:
                raise ValueError(f"Unparseable {name} date for date range: {value!r}.")

    @property
    def bounds(self) -> Tuple[Optional[pd.Timestamp], Optional[pd.Timestamp]]:
        return parse_timestamp(self.start), parse_timestamp(self.end)

    def matches(self, ts: Optional[pd.Timestamp]) -> bool:
        if ts is None:
            return False
        start, end = self.bounds
        if start is not None and ts < start:
            return False
        if end is not None and ts > end:
            return False
        return True


PeriodFilter = Union[Quarterly, Annual, Monthly, DateRange]


# ==============================================================================
# --- QUARTER LABEL CODEC ---
# ==============================================================================

def parse_quarter(label: Any) -> Optional[Quarterly]:
    """
    Parses a quarter label such as ``"Q1 2024"``.

    Returns None for anything that is not exactly ``Q<1-4> <YYYY>``; it never
    raises on malformed input.
    """
    if not isinstance(label, str):
        return None
    match = _QUARTER_PATTERN.fullmatch(label.strip())
    if not match:
        return None
    return Quarterly(quarter=f"Q{match.group(1)}", year=int(match.group(2)))


def format_quarter(quarter: str, year: int) -> str:
    return f"{quarter} {year}"


def current_quarter(today: Optional[date] = None) -> str:
    today = today or date.today()
    return QUARTERS[(today.month - 1) // 3]


def quarter_start(quarter: str, year: int) -> pd.Timestamp:
    return pd.Timestamp(year=year, month=QUARTER_MONTHS[quarter][0] + 1, day=1)


def default_period_filter(today: Optional[date] = None) -> Quarterly:
    today = today or date.today()
    return Quarterly(quarter=current_quarter(today), year=today.year)


def describe_period(period_filter: PeriodFilter) -> str:
    """Human-readable label for a period selector, e.g. ``"Q4 2024 (OCT-DEC)"``."""
    if isinstance(period_filter, Quarterly):
        return f"{format_quarter(period_filter.quarter, period_filter.year)} ({QUARTER_MONTH_LABELS[period_filter.quarter]})"
    if isinstance(period_filter, Annual):
        return str(period_filter.year)
    if isinstance(period_filter, Monthly):
        return f"{MONTH_NAMES[period_filter.month]} {period_filter.year}"
    start, end = period_filter.bounds
    start_text = start.strftime("%Y-%m-%d") if start is not None else "…"
    end_text = end.strftime("%Y-%m-%d") if end is not None else "…"
    return f"{start_text} → {end_text}"


# ==============================================================================
# --- MODE SWITCHING ---
# ==============================================================================

def switch_mode(current: Optional[PeriodFilter], mode: Union[FilterMode, str], today: Optional[date] = None) -> PeriodFilter:
    """
    Returns the selector for ``mode`` derived from the current one.

    The year carries over (defaulting to today's year). Switching into the
    quarterly mode always yields a concrete quarter: the current selector's
    quarter if it has one, otherwise the current calendar quarter. Date-range
    bounds survive only while staying in the date-range mode.
    """
    mode = FilterMode(mode)
    today = today or date.today()
    year = getattr(current, "year", None) or today.year

    if mode is FilterMode.QUARTERLY:
        quarter = getattr(current, "quarter", None) or current_quarter(today)
        new_filter: PeriodFilter = Quarterly(quarter=quarter, year=year)
    elif mode is FilterMode.MONTHLY:
        month = current.month if isinstance(current, Monthly) else today.month - 1
        new_filter = Monthly(month=month, year=year)
    elif mode is FilterMode.ANNUAL:
        new_filter = Annual(year=year)
    elif isinstance(current, DateRange):
        new_filter = DateRange(start=current.start, end=current.end)
    else:
        new_filter = DateRange()

    logger.debug(f"Switched period filter from {current!r} to {new_filter!r}.")
    return new_filter


# ==============================================================================
# --- APPLYING TO RECORDS ---
# ==============================================================================

def period_mask(timestamps: pd.Series, period_filter: PeriodFilter) -> pd.Series:
    """Vectorized predicate over a datetime Series; NaT never matches."""
    ts = pd.to_datetime(timestamps, errors="coerce")
    valid = ts.notna()
    if isinstance(period_filter, Quarterly):
        months = ts.dt.month - 1
        return valid & months.isin(QUARTER_MONTHS[period_filter.quarter]) & (ts.dt.year == period_filter.year)
    if isinstance(period_filter, Annual):
        return valid & (ts.dt.year == period_filter.year)
    if isinstance(period_filter, Monthly):
        return valid & (ts.dt.month - 1 == period_filter.month) & (ts.dt.year == period_filter.year)
    if isinstance(period_filter, DateRange):
        start, end = period_filter.bounds
        mask = valid.copy()
        if start is not None:
            mask &= ts >= start
        if end is not None:
            mask &= ts <= end
        return mask
    raise TypeError(f"Unsupported period filter: {period_filter!r}")


def apply_period_filter(records: Sequence[CaseRecord], period_filter: PeriodFilter) -> Tuple[CaseRecord, ...]:
    """
    Returns the records whose timestamp falls in the reporting period.

    Args:
        records (Sequence[CaseRecord]): The materialized case collection.
        period_filter (PeriodFilter): The active reporting-period selector.

    Returns:
        Tuple[CaseRecord, ...]: Matching records, in input order.
    """
    records = tuple(records)
    if not records:
        return tuple()
    df = records_to_frame(records)
    mask = period_mask(df["timestamp"], period_filter)
    dropped = int(df["timestamp"].isna().sum())
    if dropped:
        logger.debug(f"{dropped} record(s) without a usable timestamp excluded from {period_filter!r}.")
    matched = tuple(records[i] for i in df.loc[mask, "_position"])
    logger.debug(f"Period filter {period_filter!r} matched {len(matched)} of {len(records)} records.")
    return matched


# ==============================================================================
# --- PRE-AGGREGATED KPI SERIES ---
# ==============================================================================

def _point_date(point: Mapping[str, Any]) -> Optional[pd.Timestamp]:
    for key in ("date", "period_start"):
        ts = parse_timestamp(point.get(key))
        if ts is not None:
            return ts
    parsed = parse_quarter(point.get("quarter"))
    if parsed is not None:
        return quarter_start(parsed.quarter, parsed.year)
    return None


def filter_quarterly_points(points: Sequence[P], period_filter: PeriodFilter) -> List[P]:
    """
    Narrows a quarterly KPI series (points carrying a ``"quarter"`` label).

    Points whose period cannot be determined are excluded.
    """
    if isinstance(period_filter, DateRange):
        return [p for p in points if period_filter.matches(_point_date(p))]

    matched: List[P] = []
    for point in points:
        parsed = parse_quarter(point.get("quarter"))
        if parsed is None:
            continue
        if parsed.year != period_filter.year:
            continue
        if isinstance(period_filter, Quarterly) and parsed.quarter != period_filter.quarter:
            continue
        if isinstance(period_filter, Monthly) and period_filter.month not in QUARTER_MONTHS[parsed.quarter]:
            continue
        matched.append(point)
    return matched


def _point_year(point: Mapping[str, Any]) -> Optional[int]:
    try:
        return int(point.get("year"))
    except (TypeError, ValueError):
        return None


def filter_annual_points(points: Sequence[P], period_filter: PeriodFilter) -> List[P]:
    """Narrows an annual KPI series; a date range keeps every year it overlaps."""
    matched: List[P] = []
    for point in points:
        year = _point_year(point)
        if year is None:
            continue
        if isinstance(period_filter, DateRange):
            start, end = period_filter.bounds
            if start is not None and pd.Timestamp(year=year, month=12, day=31) < start:
                continue
            if end is not None and pd.Timestamp(year=year, month=1, day=1) > end:
                continue
        elif year != period_filter.year:
            continue
        matched.append(point)
    return matched


def latest_point(points: Sequence[P], period_filter: PeriodFilter, annual: bool = False) -> Optional[P]:
    """Most recent series point in the period (series are ordered oldest first)."""
    matched = filter_annual_points(points, period_filter) if annual else filter_quarterly_points(points, period_filter)
    return matched[-1] if matched else None
