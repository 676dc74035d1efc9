"""
Order statistics over case processing durations.

Provides the numbers behind the box-plot, histogram and median-turnaround
views: linear-interpolation percentiles, five-number summaries, fixed-edge
histograms and outlier ranking.

Percentile convention: for a sorted array ``v`` of length ``n`` and
``p`` in ``[0, 1]``, ``index = (n - 1) * p`` and the result interpolates
linearly between ``v[floor(index)]`` and ``v[ceil(index)]``. This is
numpy's ``method="linear"``, used here directly.
"""

# --- Standard Library Imports ---
import logging
import math
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union

# --- Third-party Imports ---
import numpy as np
from scipy import stats

# --- Local Application Imports ---
from ..config import DEFAULT_HISTOGRAM_EDGES, DEFAULT_PERCENTILES
from ..utils.records import CaseRecord

# --- Setup Logging ---
logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NoData:
    """Explicit empty result so the view layer can render a placeholder."""
    reason: str = "No data available for the selected filters."


@dataclass(frozen=True)
class OrderStatistics:
    count: int
    min: float
    max: float
    q1: float
    median: float
    q3: float
    mean: float
    std: float
    values: Tuple[float, ...]

    @property
    def iqr(self) -> float:
        return self.q3 - self.q1

    def percentile(self, p: float) -> float:
        """Percentile ``p`` in ``[0, 1]`` of the summarized values."""
        _check_fraction(p)
        return float(np.quantile(np.asarray(self.values), p, method="linear"))


@dataclass(frozen=True)
class HistogramBin:
    range: str
    lower: float
    upper: Optional[float]
    count: int
    percentage: float
    cumulative: int


@dataclass(frozen=True)
class RankedRecord:
    record: CaseRecord
    processing_days: float
    percentile_rank: float


Summary = Union[OrderStatistics, NoData]


# ==============================================================================
# --- HELPERS ---
# ==============================================================================

def _check_fraction(p: float) -> None:
    if p is None or not 0 <= p <= 1:
        raise ValueError(f"Percentile must be within [0, 1], got {p!r}.")


def clean_values(values: Iterable[Optional[float]]) -> np.ndarray:
    """Sorted float copy of the finite values; the input is left untouched."""
    finite = []
    for value in values:
        if value is None or isinstance(value, bool):
            continue
        try:
            number = float(value)
        except (TypeError, ValueError):
            continue
        if math.isfinite(number):
            finite.append(number)
    return np.sort(np.asarray(finite, dtype=float))


# ==============================================================================
# --- PERCENTILES & SUMMARY ---
# ==============================================================================

def percentile(values: Iterable[Optional[float]], p: float) -> Optional[float]:
    """
    Linear-interpolation percentile.

    Args:
        values: Numbers in any order; non-finite entries are ignored.
        p (float): Fraction in ``[0, 1]``.

    Returns:
        Optional[float]: The percentile, or None when there are no values.

    Raises:
        ValueError: If ``p`` is outside ``[0, 1]``.
    """
    _check_fraction(p)
    arr = clean_values(values)
    if arr.size == 0:
        return None
    return float(np.quantile(arr, p, method="linear"))


def summarize(values: Iterable[Optional[float]]) -> Summary:
    """Five-number summary plus mean and sample standard deviation, or NoData."""
    arr = clean_values(values)
    if arr.size == 0:
        logger.info("Summarizer received no finite values. Returning NoData.")
        return NoData()
    q1, median, q3 = (float(q) for q in np.quantile(arr, [0.25, 0.5, 0.75], method="linear"))
    return OrderStatistics(
        count=int(arr.size),
        min=float(arr[0]),
        max=float(arr[-1]),
        q1=q1,
        median=median,
        q3=q3,
        mean=float(arr.mean()),
        std=float(arr.std(ddof=1)) if arr.size > 1 else 0.0,
        values=tuple(float(v) for v in arr),
    )


def percentile_table(values: Iterable[Optional[float]], percentiles: Sequence[int] = DEFAULT_PERCENTILES) -> Dict[str, float]:
    """``{"p10": ..., "p25": ...}`` for whole-number percentiles; empty when there is no data."""
    arr = clean_values(values)
    if arr.size == 0:
        return {}
    for p in percentiles:
        _check_fraction(p / 100)
    quantiles = np.quantile(arr, [p / 100 for p in percentiles], method="linear")
    return {f"p{p}": float(q) for p, q in zip(percentiles, quantiles)}


def mode(values: Iterable[Optional[float]]) -> Optional[float]:
    """Most frequent value (smallest on ties), or None when there is no data."""
    arr = clean_values(values)
    if arr.size == 0:
        return None
    return float(stats.mode(arr, keepdims=False).mode)


# ==============================================================================
# --- HISTOGRAM ---
# ==============================================================================

def histogram(values: Iterable[Optional[float]], edges: Sequence[float] = DEFAULT_HISTOGRAM_EDGES) -> List[HistogramBin]:
    """
    Counts values into fixed-edge bins with an open-ended overflow bin.

    A value lands in the first bin with ``edges[i] <= value < edges[i+1]``;
    values at or above the last edge go to the ``"<last>+ days"`` bin.
    Values below the first edge are not binned.

    Raises:
        ValueError: If fewer than two edges are given or they are not strictly increasing.
    """
    edges = [float(e) for e in edges]
    if len(edges) < 2 or any(b <= a for a, b in zip(edges, edges[1:])):
        raise ValueError(f"Histogram edges must be at least two strictly increasing numbers, got {edges!r}.")

    arr = clean_values(values)
    below = int((arr < edges[0]).sum()) if arr.size else 0
    if below:
        logger.warning(f"{below} value(s) fall below the first histogram edge {edges[0]:g} and were not binned.")

    # digitize: 0 below the first edge, i for edges[i-1] <= v < edges[i], len(edges) at/after the last.
    positions = np.digitize(arr, edges) if arr.size else np.array([], dtype=int)
    counts = np.bincount(positions, minlength=len(edges) + 1)[1:]
    binned_total = int(counts.sum())

    bins: List[HistogramBin] = []
    cumulative = 0
    for i, count in enumerate(counts):
        lower = edges[i]
        upper = edges[i + 1] if i + 1 < len(edges) else None
        label = f"{lower:g}-{upper - 1:g} days" if upper is not None else f"{lower:g}+ days"
        cumulative += int(count)
        bins.append(HistogramBin(
            range=label,
            lower=lower,
            upper=upper,
            count=int(count),
            percentage=int(count) / binned_total * 100 if binned_total else 0.0,
            cumulative=cumulative,
        ))
    return bins


# ==============================================================================
# --- OUTLIERS ---
# ==============================================================================

def outliers(records: Sequence[CaseRecord], n: int = 5) -> Tuple[List[RankedRecord], List[RankedRecord]]:
    """
    Fastest and slowest cases by processing days, with their percentile rank.

    Returns:
        Tuple[List[RankedRecord], List[RankedRecord]]: (fastest first, slowest first).
    """
    timed = [r for r in records if r.processing_days is not None and math.isfinite(r.processing_days)]
    if not timed or n <= 0:
        return [], []
    population = np.asarray([r.processing_days for r in timed], dtype=float)
    ranked = sorted(timed, key=lambda r: r.processing_days)

    def _rank(record: CaseRecord) -> RankedRecord:
        rank = float(stats.percentileofscore(population, record.processing_days, kind="weak"))
        return RankedRecord(record=record, processing_days=float(record.processing_days), percentile_rank=rank)

    fastest = [_rank(r) for r in ranked[:n]]
    slowest = [_rank(r) for r in reversed(ranked[-n:])]
    return fastest, slowest
