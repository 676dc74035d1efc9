"""
Dimension aggregation for KPI drill-downs.

Splits a case collection by one categorical field (inspection mode, facility
type, status, ...) into ``DrillDownItem`` rows. Two aggregation modes exist:

- ratio: ``count`` is the number of on-time cases in each partition and
  ``total`` the partition size, so ``percentage`` is the partition's KPI
  performance;
- tally: ``count == total`` is the partition size and ``percentage`` is the
  partition's share of the whole collection.

A ``DimensionView`` declares where its numbers come from: ``Computed`` views
are aggregated live from records, ``Curated`` views carry a static reference
breakdown. The fallback is therefore a property of the view, never inferred
from missing data.
"""

# --- Standard Library Imports ---
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence, Tuple, Union

# --- Third-party Imports ---
import pandas as pd

# --- Local Application Imports ---
from ..utils.records import CaseRecord, records_to_frame

# --- Setup Logging ---
logger = logging.getLogger(__name__)


class AggregationMode(str, Enum):
    RATIO = "ratio"
    TALLY = "tally"


class Provenance(str, Enum):
    COMPUTED = "computed"
    CURATED = "curated"


# ==============================================================================
# --- TYPES ---
# ==============================================================================

@dataclass(frozen=True)
class DrillDownItem:
    category: str
    count: int
    total: int
    percentage: float

    def __post_init__(self):
        if not 0 <= self.count <= self.total:
            raise ValueError(f"DrillDownItem needs 0 <= count <= total, got {self.count}/{self.total} for {self.category!r}.")


def ratio_percentage(count: float, total: float) -> float:
    """``count / total * 100`` at full precision; 0 when there is no denominator."""
    return count / total * 100 if total > 0 else 0.0


def make_item(category: str, count: int, total: int) -> DrillDownItem:
    return DrillDownItem(category=category, count=count, total=total, percentage=ratio_percentage(count, total))


@dataclass(frozen=True)
class Computed:
    field: str
    mode: AggregationMode = AggregationMode.RATIO


@dataclass(frozen=True)
class Curated:
    items: Tuple[DrillDownItem, ...]


DimensionSource = Union[Computed, Curated]

# Hashable ``((field, value), ...)`` selection of categorical filters.
AttributeFilters = Tuple[Tuple[str, str], ...]


@dataclass(frozen=True)
class DimensionView:
    """
    A named lens over the case collection.

    Attributes:
        id: Stable identifier used by the dimension selector.
        label: Display label.
        source: ``Computed(field)`` or ``Curated(items)``.
        description: Optional helper text.
        drill_field: Field used to break a selected category down at level 2;
            views without one cannot be drilled into.
    """
    id: str
    label: str
    source: DimensionSource
    description: Optional[str] = None
    drill_field: Optional[str] = None

    @property
    def source_field(self) -> Optional[str]:
        return self.source.field if isinstance(self.source, Computed) else None

    @property
    def drillable(self) -> bool:
        return isinstance(self.source, Computed) and bool(self.drill_field)

    @property
    def is_tally(self) -> bool:
        return isinstance(self.source, Computed) and self.source.mode is AggregationMode.TALLY


@dataclass(frozen=True)
class DimensionBreakdown:
    dimension_id: str
    label: str
    items: Tuple[DrillDownItem, ...] = field(default_factory=tuple)
    provenance: Provenance = Provenance.COMPUTED

    @property
    def is_empty(self) -> bool:
        return not self.items


# ==============================================================================
# --- AGGREGATION ---
# ==============================================================================

def aggregate(
    records: Sequence[CaseRecord],
    source_field: str,
    mode: AggregationMode = AggregationMode.RATIO,
) -> List[DrillDownItem]:
    """
    Partitions records by ``source_field``.

    One item is produced per distinct value, in first-seen order. Records
    without a value for the field do not form a partition.

    Args:
        records (Sequence[CaseRecord]): Cases to aggregate.
        source_field (str): Name of the categorical attribute.
        mode (AggregationMode): Ratio (on-time share) or tally (share of whole).

    Returns:
        List[DrillDownItem]: Items in first-seen order; empty when no record
        carries the field.
    """
    records = tuple(records)
    if not records:
        return []
    df = records_to_frame(records)
    if source_field not in df.columns:
        logger.info(f"No record carries the field '{source_field}'. Returning no breakdown.")
        return []

    present = df[df[source_field].notna()].copy()
    if present.empty:
        return []
    # Category labels are the record values as text, as in partition().
    present[source_field] = [str(records[i].get(source_field)) for i in present["_position"]]

    grouped = present.groupby(source_field, sort=False).agg(
        total=("record_id", "size"),
        on_time=("on_time", "sum"),
    )
    collection_size = len(df)
    items: List[DrillDownItem] = []
    for category, row in grouped.iterrows():
        total = int(row["total"])
        if mode is AggregationMode.TALLY:
            items.append(DrillDownItem(category=str(category), count=total, total=total, percentage=ratio_percentage(total, collection_size)))
        else:
            items.append(make_item(str(category), int(row["on_time"]), total))
    logger.debug(f"Aggregated {len(present)} records into {len(items)} '{source_field}' partitions ({mode.value}).")
    return items


def canonical_order(items: Sequence[DrillDownItem]) -> List[DrillDownItem]:
    """Descending count; ties keep first-seen order (``sorted`` is stable)."""
    return sorted(items, key=lambda item: -item.count)


def resolve_dimension(records: Sequence[CaseRecord], view: DimensionView) -> DimensionBreakdown:
    """Produces the breakdown for a view, computed live or taken from its curated data."""
    if isinstance(view.source, Curated):
        logger.debug(f"Dimension '{view.id}' uses curated reference data ({len(view.source.items)} items).")
        return DimensionBreakdown(view.id, view.label, tuple(view.source.items), Provenance.CURATED)
    items = aggregate(records, view.source.field, view.source.mode)
    return DimensionBreakdown(view.id, view.label, tuple(items), Provenance.COMPUTED)


def pareto(items: Sequence[DrillDownItem]) -> List[Tuple[DrillDownItem, float]]:
    """Items in canonical order paired with their cumulative share of all counts."""
    ordered = canonical_order(items)
    grand_total = sum(item.count for item in ordered)
    running = 0
    result: List[Tuple[DrillDownItem, float]] = []
    for item in ordered:
        running += item.count
        result.append((item, ratio_percentage(running, grand_total)))
    return result


def overall_item(records: Sequence[CaseRecord], label: str = "All cases") -> DrillDownItem:
    """Single on-time ratio over the whole collection (the KPI headline)."""
    records = tuple(records)
    return make_item(label, sum(1 for r in records if r.is_on_time), len(records))


def partition(records: Sequence[CaseRecord], source_field: str, category: str) -> Tuple[CaseRecord, ...]:
    """Records whose ``source_field`` equals ``category`` (compared as text)."""
    return tuple(r for r in records if r.get(source_field) is not None and str(r.get(source_field)) == category)


def category_values(records: Sequence[CaseRecord], source_field: str) -> List[str]:
    """Distinct values of a field as text, in first-seen order."""
    seen: dict = {}
    for record in records:
        value = record.get(source_field)
        if value is not None:
            seen.setdefault(str(value), None)
    return list(seen)


def filter_by_attributes(records: Sequence[CaseRecord], attribute_filters: AttributeFilters) -> Tuple[CaseRecord, ...]:
    """
    Records matching every ``(field, value)`` pair, compared as text.

    An empty filter tuple returns the records unchanged. Callers pass only
    the fields whose selector is not "All".
    """
    selected = tuple(records)
    for field_name, value in attribute_filters:
        selected = partition(selected, field_name, value)
    return selected


def breakdown_frame(breakdown: DimensionBreakdown) -> pd.DataFrame:
    """Tabular form of a breakdown for display and CSV export."""
    return pd.DataFrame(
        [{"category": i.category, "count": i.count, "total": i.total, "percentage": i.percentage} for i in breakdown.items],
        columns=["category", "count", "total", "percentage"],
    )
