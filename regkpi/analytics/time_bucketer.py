"""
Time bucketing of case records into trend series.

Cases are grouped by calendar month, quarter or year of their timestamp.
Buckets are returned in chronological order and only exist for periods that
contain at least one case; no zero-filled calendar is synthesized.
"""

# --- Standard Library Imports ---
import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Sequence

# --- Third-party Imports ---
import pandas as pd

# --- Local Application Imports ---
from ..config import DEFAULT_TARGET_RATE, SHORT_MONTH_NAMES
from ..utils.records import CaseRecord, records_to_frame
from .period_filter import Annual, FilterMode, Monthly, PeriodFilter

# --- Setup Logging ---
logger = logging.getLogger(__name__)


class Granularity(str, Enum):
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    ANNUAL = "annual"


_PERIOD_FREQ = {
    Granularity.MONTHLY: "M",
    Granularity.QUARTERLY: "Q",
    Granularity.ANNUAL: "Y",
}


@dataclass(frozen=True)
class TimeBucket:
    key: str
    order: pd.Timestamp
    on_time_count: int
    volume: int
    total_duration: float

    @property
    def on_time_rate(self) -> float:
        return self.on_time_count / self.volume * 100 if self.volume else 0.0

    @property
    def gap(self) -> float:
        return max(0.0, 100 - self.on_time_rate) if self.volume else 0.0

    @property
    def average_duration(self) -> float:
        return self.total_duration / self.volume if self.volume else 0.0


@dataclass(frozen=True)
class TrendPoint:
    name: str
    value: float
    target: Optional[float] = None


def granularity_for(period_filter: Optional[PeriodFilter]) -> Granularity:
    """Monthly selectors trend by month, annual by year, everything else by quarter."""
    mode = getattr(period_filter, "mode", None)
    if mode is FilterMode.MONTHLY or isinstance(period_filter, Monthly):
        return Granularity.MONTHLY
    if mode is FilterMode.ANNUAL or isinstance(period_filter, Annual):
        return Granularity.ANNUAL
    return Granularity.QUARTERLY


def bucket_key(ts: pd.Timestamp, granularity: Granularity) -> str:
    if granularity is Granularity.MONTHLY:
        return f"{ts.year}-{SHORT_MONTH_NAMES[ts.month - 1]}"
    if granularity is Granularity.ANNUAL:
        return f"{ts.year}"
    return f"Q{(ts.month - 1) // 3 + 1} {ts.year}"


def bucket_records(records: Sequence[CaseRecord], granularity: Granularity = Granularity.QUARTERLY) -> List[TimeBucket]:
    """
    Groups records into chronologically ordered time buckets.

    Records without a usable timestamp are skipped. Missing processing
    durations contribute 0 days to the bucket total.

    Args:
        records (Sequence[CaseRecord]): Cases to bucket.
        granularity (Granularity): Month, quarter (default) or year.

    Returns:
        List[TimeBucket]: One bucket per non-empty period, oldest first.
    """
    granularity = Granularity(granularity)
    records = tuple(records)
    if not records:
        return []
    df = records_to_frame(records)
    df = df[df["timestamp"].notna()].copy()
    if df.empty:
        logger.info("No records with a usable timestamp to bucket.")
        return []

    df["order"] = df["timestamp"].dt.to_period(_PERIOD_FREQ[granularity]).dt.start_time
    df["processing_days"] = df["processing_days"].fillna(0)
    grouped = df.groupby("order", sort=True).agg(
        volume=("record_id", "size"),
        on_time_count=("on_time", "sum"),
        total_duration=("processing_days", "sum"),
    )

    buckets = [
        TimeBucket(
            key=bucket_key(order, granularity),
            order=order,
            on_time_count=int(row["on_time_count"]),
            volume=int(row["volume"]),
            total_duration=float(row["total_duration"]),
        )
        for order, row in grouped.iterrows()
    ]
    logger.debug(f"Bucketed {len(df)} records into {len(buckets)} {granularity.value} buckets.")
    return buckets


def to_trend_points(
    buckets: Sequence[TimeBucket],
    metric: str = "on_time_rate",
    target: Optional[float] = DEFAULT_TARGET_RATE,
) -> List[TrendPoint]:
    """Projects buckets onto the ``{name, value, target?}`` shape charts consume."""
    if metric not in {"on_time_rate", "gap", "volume", "average_duration"}:
        raise ValueError(f"Unknown trend metric: {metric!r}")
    return [TrendPoint(name=b.key, value=float(getattr(b, metric)), target=target) for b in buckets]
