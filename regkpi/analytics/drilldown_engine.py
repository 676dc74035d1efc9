"""
Drill-down engine: the facade the KPI drill-down view talks to.

Ties the analytics steps together (period filter → attribute filters →
dimension aggregation / time bucketing / order statistics) and selects the
view that matches the current navigation level. All work is synchronous and
pure; the expensive steps are memoized on ``(records, period filter,
attribute filters, dimension)`` so repeated re-renders of the same selection
do not re-filter or re-sort.
"""

# --- Standard Library Imports ---
import logging
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Dict, List, Mapping, Optional, Sequence, Tuple, Union

# --- Local Application Imports ---
from ..config import DEFAULT_HISTOGRAM_EDGES, DEFAULT_STAGE_TARGETS, DEFAULT_TARGET_RATE
from ..utils.records import CaseRecord, KPIValue, Percentage, coerce_records
from .dimension_aggregator import (
    AggregationMode, AttributeFilters, DimensionBreakdown, DimensionView, Provenance, aggregate,
    filter_by_attributes, partition, resolve_dimension
)
from .drill_navigation import NavigationState, level_label
from .period_filter import PeriodFilter, apply_period_filter, describe_period
from .statistical_summarizer import (
    HistogramBin, NoData, Summary, clean_values, histogram, mode, percentile_table, summarize
)
from .time_bucketer import Granularity, TimeBucket, TrendPoint, bucket_records, granularity_for, to_trend_points

# --- Setup Logging ---
logger = logging.getLogger(__name__)

_CACHE_SIZE = 128


# ==============================================================================
# --- RESULT TYPES ---
# ==============================================================================

@dataclass(frozen=True)
class StageSummary:
    stage: str
    days: float
    target: Optional[float]
    on_time: bool
    cases: int


@dataclass(frozen=True)
class Headline:
    on_time_count: int
    volume: int
    on_time_rate: float
    average_days: Optional[float]
    median_days: Optional[float]

    def as_kpi_value(self) -> KPIValue:
        return Percentage(value=self.on_time_rate, numerator=self.on_time_count, denominator=self.volume)


@dataclass(frozen=True)
class DurationProfile:
    """Processing-day statistics of one drill-down selection, computed from a single sort."""
    summary: Summary
    bins: Tuple[HistogramBin, ...] = field(default_factory=tuple)
    percentiles: Tuple[Tuple[str, float], ...] = field(default_factory=tuple)
    mode: Optional[float] = None


@dataclass(frozen=True)
class LevelView:
    """What the presentation layer shows at the current navigation level."""
    level: int
    title: str
    drillable: bool
    breakdown: Optional[DimensionBreakdown] = None
    stages: Tuple[StageSummary, ...] = field(default_factory=tuple)
    records: Tuple[CaseRecord, ...] = field(default_factory=tuple)

    @property
    def is_empty(self) -> bool:
        if self.level in (1, 2):
            return self.breakdown is None or self.breakdown.is_empty
        if self.level == 3:
            return not self.stages
        return not self.records


# ==============================================================================
# --- MEMOIZED PIPELINE STEPS ---
# ==============================================================================
# Arguments are always passed positionally so equal selections share a cache key.

@lru_cache(maxsize=_CACHE_SIZE)
def _period_filtered(records: Tuple[CaseRecord, ...], period_filter: PeriodFilter) -> Tuple[CaseRecord, ...]:
    return apply_period_filter(records, period_filter)


@lru_cache(maxsize=_CACHE_SIZE)
def _filtered(records: Tuple[CaseRecord, ...], period_filter: PeriodFilter, attribute_filters: AttributeFilters) -> Tuple[CaseRecord, ...]:
    dated = _period_filtered(records, period_filter)
    if not attribute_filters:
        return dated
    selected = filter_by_attributes(dated, attribute_filters)
    if not selected and dated:
        logger.info(f"Attribute filters {attribute_filters!r} match no cases; using all {len(dated)} cases of the period.")
        return dated
    return selected


@lru_cache(maxsize=_CACHE_SIZE)
def _breakdown(records: Tuple[CaseRecord, ...], period_filter: PeriodFilter, attribute_filters: AttributeFilters,
               view: DimensionView) -> DimensionBreakdown:
    return resolve_dimension(_filtered(records, period_filter, attribute_filters), view)


@lru_cache(maxsize=_CACHE_SIZE)
def _summary(records: Tuple[CaseRecord, ...], period_filter: PeriodFilter, attribute_filters: AttributeFilters) -> Summary:
    return summarize(r.processing_days for r in _filtered(records, period_filter, attribute_filters))


@lru_cache(maxsize=_CACHE_SIZE)
def _histogram(records: Tuple[CaseRecord, ...], period_filter: PeriodFilter, attribute_filters: AttributeFilters,
               edges: Tuple[float, ...]) -> Tuple[HistogramBin, ...]:
    filtered = _filtered(records, period_filter, attribute_filters)
    if not filtered:
        return tuple()
    return tuple(histogram((r.processing_days for r in filtered), edges))


@lru_cache(maxsize=_CACHE_SIZE)
def _buckets(records: Tuple[CaseRecord, ...], period_filter: PeriodFilter, attribute_filters: AttributeFilters,
             granularity: Granularity) -> Tuple[TimeBucket, ...]:
    return tuple(bucket_records(_filtered(records, period_filter, attribute_filters), granularity))


@lru_cache(maxsize=_CACHE_SIZE)
def _narrowed(records: Tuple[CaseRecord, ...], period_filter: PeriodFilter, attribute_filters: AttributeFilters,
              view: Optional[DimensionView], categories: Tuple[str, ...]) -> Tuple[CaseRecord, ...]:
    selected = _filtered(records, period_filter, attribute_filters)
    if view is None:
        return selected if not categories else tuple()
    for category, field_name in zip(categories, (view.source_field, view.drill_field)):
        if not field_name:
            return tuple()
        selected = partition(selected, field_name, category)
    return selected


@lru_cache(maxsize=_CACHE_SIZE)
def _duration_profile(records: Tuple[CaseRecord, ...], period_filter: PeriodFilter, attribute_filters: AttributeFilters,
                      view: Optional[DimensionView], categories: Tuple[str, ...], edges: Tuple[float, ...]) -> DurationProfile:
    narrowed = _narrowed(records, period_filter, attribute_filters, view, categories)
    durations = clean_values(r.processing_days for r in narrowed)
    if durations.size == 0:
        return DurationProfile(summary=NoData())
    return DurationProfile(
        summary=summarize(durations),
        bins=tuple(histogram(durations, edges)),
        percentiles=tuple(percentile_table(durations).items()),
        mode=mode(durations),
    )


def clear_caches() -> None:
    for cached in (_period_filtered, _filtered, _breakdown, _summary, _histogram, _buckets, _narrowed, _duration_profile):
        cached.cache_clear()


# ==============================================================================
# --- STAGE BREAKDOWN ---
# ==============================================================================

def stage_summaries(records: Sequence[CaseRecord], stage_targets: Optional[Mapping[str, float]] = None) -> List[StageSummary]:
    """Average days per processing stage, in first-seen stage order, against stage targets."""
    stage_targets = stage_targets or {}
    totals: Dict[str, List[float]] = {}
    for record in records:
        for stage, days in record.stages:
            totals.setdefault(stage, []).append(days)

    summaries = []
    for stage, days_list in totals.items():
        avg = sum(days_list) / len(days_list)
        target = stage_targets.get(stage)
        summaries.append(StageSummary(
            stage=stage,
            days=avg,
            target=target,
            on_time=target is None or avg <= target,
            cases=len(days_list),
        ))
    return summaries


# ==============================================================================
# --- ENGINE ---
# ==============================================================================

class DrillDownEngine:
    """
    Drill-down analytics over one KPI's case collection.

    Every query takes the reporting period and, optionally, attribute filters
    as ``((field, value), ...)``. Attribute filters narrow the working set;
    when they match no case of the period the whole period is used instead.

    Args:
        records: The materialized cases (records or loose dicts).
        dimension_views: The explorable dimensions, first one is the default.
        kpi_name: Label of the breadcrumb root.
        histogram_edges: Bin edges for the processing-days histogram.
        target_rate: On-time target shown on trend charts.
        stage_targets: Target days per processing stage for level 3.
    """

    def __init__(
        self,
        records: Sequence[Union[CaseRecord, Mapping]],
        dimension_views: Sequence[DimensionView],
        kpi_name: str = "KPI",
        histogram_edges: Sequence[float] = DEFAULT_HISTOGRAM_EDGES,
        target_rate: Optional[float] = DEFAULT_TARGET_RATE,
        stage_targets: Optional[Mapping[str, float]] = None,
    ):
        self.records: Tuple[CaseRecord, ...] = coerce_records(records)
        self.dimension_views: Tuple[DimensionView, ...] = tuple(dimension_views)
        self.kpi_name = kpi_name
        self.histogram_edges = tuple(float(e) for e in histogram_edges)
        self.target_rate = target_rate
        self.stage_targets = dict(DEFAULT_STAGE_TARGETS if stage_targets is None else stage_targets)
        logger.info(f"Drill-down engine for '{kpi_name}' initialized with {len(self.records)} records and {len(self.dimension_views)} dimensions.")

    # --- Lookups ---
    def dimension(self, dimension_id: Optional[str]) -> Optional[DimensionView]:
        return next((v for v in self.dimension_views if v.id == dimension_id), None)

    def _label_for_field(self, field_name: str) -> str:
        view = next((v for v in self.dimension_views if v.source_field == field_name), None)
        return view.label if view else field_name.replace("_", " ").title()

    # --- Whole-period views ---
    def filtered(self, period_filter: PeriodFilter, attribute_filters: AttributeFilters = ()) -> Tuple[CaseRecord, ...]:
        return _filtered(self.records, period_filter, tuple(attribute_filters))

    def breakdown(self, period_filter: PeriodFilter, dimension_id: Optional[str],
                  attribute_filters: AttributeFilters = ()) -> DimensionBreakdown:
        """Breakdown for a dimension; an unknown id yields an empty breakdown."""
        view = self.dimension(dimension_id)
        if view is None:
            logger.warning(f"Unknown dimension '{dimension_id}' requested for '{self.kpi_name}'.")
            return DimensionBreakdown(dimension_id=str(dimension_id), label="", items=tuple())
        return _breakdown(self.records, period_filter, tuple(attribute_filters), view)

    def trend(self, period_filter: PeriodFilter, granularity: Optional[Granularity] = None,
              attribute_filters: AttributeFilters = ()) -> Tuple[TimeBucket, ...]:
        return _buckets(self.records, period_filter, tuple(attribute_filters), granularity or granularity_for(period_filter))

    def trend_points(self, period_filter: PeriodFilter, metric: str = "on_time_rate",
                     attribute_filters: AttributeFilters = ()) -> List[TrendPoint]:
        target = self.target_rate if metric == "on_time_rate" else None
        return to_trend_points(self.trend(period_filter, attribute_filters=attribute_filters), metric=metric, target=target)

    def summary(self, period_filter: PeriodFilter, attribute_filters: AttributeFilters = ()) -> Summary:
        return _summary(self.records, period_filter, tuple(attribute_filters))

    def histogram(self, period_filter: PeriodFilter, attribute_filters: AttributeFilters = ()) -> Tuple[HistogramBin, ...]:
        return _histogram(self.records, period_filter, tuple(attribute_filters), self.histogram_edges)

    def headline(self, period_filter: PeriodFilter, attribute_filters: AttributeFilters = ()) -> Union[Headline, NoData]:
        filtered = self.filtered(period_filter, attribute_filters)
        summary = self.summary(period_filter, attribute_filters)
        if not filtered:
            return NoData(f"No cases for {describe_period(period_filter)}.")
        on_time = sum(1 for r in filtered if r.is_on_time)
        return Headline(
            on_time_count=on_time,
            volume=len(filtered),
            on_time_rate=on_time / len(filtered) * 100,
            average_days=None if isinstance(summary, NoData) else summary.mean,
            median_days=None if isinstance(summary, NoData) else summary.median,
        )

    # --- Navigation-driven views ---
    def narrowed(self, state: NavigationState, period_filter: PeriodFilter,
                 attribute_filters: AttributeFilters = ()) -> Tuple[CaseRecord, ...]:
        """Filtered records restricted to the categories selected at levels 1 and 2."""
        return _narrowed(self.records, period_filter, tuple(attribute_filters),
                         self.dimension(state.dimension_id), state.selected_categories[:2])

    def duration_profile(self, state: NavigationState, period_filter: PeriodFilter,
                         attribute_filters: AttributeFilters = ()) -> DurationProfile:
        """Summary, histogram, percentiles and mode of the narrowed selection's processing days."""
        return _duration_profile(self.records, period_filter, tuple(attribute_filters),
                                 self.dimension(state.dimension_id), state.selected_categories[:2], self.histogram_edges)

    def level_view(self, state: NavigationState, period_filter: PeriodFilter,
                   attribute_filters: AttributeFilters = ()) -> LevelView:
        """The aggregation view exposed at the state's current level."""
        level = state.level
        title = level_label(level)
        view = self.dimension(state.dimension_id)

        if level == 1:
            breakdown = self.breakdown(period_filter, state.dimension_id, attribute_filters)
            return LevelView(level, title, state.is_drillable, breakdown=breakdown)

        narrowed = self.narrowed(state, period_filter, attribute_filters)
        if level == 2:
            if view is None or not view.drill_field:
                return LevelView(level, title, False, breakdown=DimensionBreakdown(str(state.dimension_id), "", tuple()))
            items = aggregate(narrowed, view.drill_field, AggregationMode.RATIO)
            breakdown = DimensionBreakdown(
                dimension_id=f"{view.id}:{view.drill_field}",
                label=self._label_for_field(view.drill_field),
                items=tuple(items),
                provenance=Provenance.COMPUTED,
            )
            return LevelView(level, title, state.is_drillable, breakdown=breakdown)

        if level == 3:
            stages = stage_summaries(narrowed, self.stage_targets)
            return LevelView(level, title, state.is_drillable, stages=tuple(stages))

        stage = state.path[-1].category
        ordered = sorted(
            narrowed,
            key=lambda r: (r.stage_days(stage) is None, -(r.stage_days(stage) or 0.0)),
        )
        return LevelView(level, title, False, records=tuple(ordered))
