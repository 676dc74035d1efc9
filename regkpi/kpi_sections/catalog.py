"""
KPI catalogue: the drill-down KPIs the dashboard offers and their dimensions.
"""

# --- Standard Library Imports ---
import logging
from dataclasses import dataclass
from typing import Dict, Mapping, Optional, Sequence, Tuple

# --- Local Application Imports ---
from ..analytics.dimension_aggregator import AggregationMode, Computed, Curated, DimensionView, make_item
from ..config import (
    DEFAULT_HISTOGRAM_EDGES, DEFAULT_STAGE_TARGETS, DEFAULT_TARGET_RATE, GMP_ATTRIBUTE_FILTERS, GMP_DIMENSIONS,
    MA_ATTRIBUTE_FILTERS, MA_DIMENSIONS, MA_HISTOGRAM_EDGES, MA_STAGE_TARGETS
)

# --- Setup Logging ---
logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class KPIDefinition:
    id: str
    name: str
    description: str
    dimensions: Tuple[DimensionView, ...]
    histogram_edges: Tuple[float, ...] = DEFAULT_HISTOGRAM_EDGES
    stage_targets: Tuple[Tuple[str, float], ...] = tuple(DEFAULT_STAGE_TARGETS.items())
    target_rate: Optional[float] = DEFAULT_TARGET_RATE
    attribute_filters: Tuple[str, ...] = ()


def build_dimension_view(entry: Mapping) -> DimensionView:
    """
    Builds a ``DimensionView`` from a catalogue entry.

    Entries with ``items`` are curated; all others are computed from the
    ``field`` attribute in ``mode`` ("ratio" unless stated).

    Raises:
        ValueError: If the entry has neither ``items`` nor ``field``.
    """
    if "items" in entry:
        items = tuple(make_item(str(category), int(count), int(total)) for category, count, total in entry["items"])
        source = Curated(items=items)
    elif entry.get("field"):
        source = Computed(field=entry["field"], mode=AggregationMode(entry.get("mode", AggregationMode.RATIO.value)))
    else:
        raise ValueError(f"Dimension entry '{entry.get('id')}' needs either 'items' or 'field'.")
    return DimensionView(
        id=entry["id"],
        label=entry.get("label", entry["id"]),
        source=source,
        description=entry.get("description"),
        drill_field=entry.get("drill_field"),
    )


def build_dimension_views(entries: Sequence[Mapping]) -> Tuple[DimensionView, ...]:
    return tuple(build_dimension_view(entry) for entry in entries)


KPI_CATALOGUE: Dict[str, KPIDefinition] = {
    "gmp_inspections": KPIDefinition(
        id="gmp_inspections",
        name="GMP Inspections Completed On Time",
        description="Share of GMP inspections whose report was issued within the 90-day timeline.",
        dimensions=build_dimension_views(GMP_DIMENSIONS),
        attribute_filters=GMP_ATTRIBUTE_FILTERS,
    ),
    "ma_approvals": KPIDefinition(
        id="ma_approvals",
        name="Marketing Authorizations Decided On Time",
        description="Share of marketing authorization applications decided within the statutory timeline.",
        dimensions=build_dimension_views(MA_DIMENSIONS),
        histogram_edges=MA_HISTOGRAM_EDGES,
        stage_targets=tuple(MA_STAGE_TARGETS.items()),
        attribute_filters=MA_ATTRIBUTE_FILTERS,
    ),
}
