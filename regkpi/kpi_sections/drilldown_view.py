"""
Renders the KPI drill-down panel of the dashboard.

The panel shows a KPI's headline for the active reporting period and, once
opened, a four-level drill-down: the active dimension's breakdown, the
breakdown of a selected category, processing-stage timings, and finally the
individual cases. Navigation state lives in the session state manager; every
click replaces it with the state returned by the matching transition.
"""

# --- Standard Library Imports ---
import logging
from typing import List, Mapping, Optional, Sequence, Tuple

# --- Third-party Imports ---
import pandas as pd
import streamlit as st

# --- Local Application Imports ---
from ..analytics.dimension_aggregator import (
    AttributeFilters, DimensionBreakdown, DimensionView, DrillDownItem, Provenance, breakdown_frame, category_values,
    filter_by_attributes, make_item
)
from ..analytics.drill_navigation import (
    NavigationState, back, drill_into, jump_to_breadcrumb, open_navigation, switch_dimension
)
from ..analytics.drilldown_engine import DrillDownEngine, LevelView
from ..analytics.period_filter import PeriodFilter, describe_period
from ..analytics.statistical_summarizer import NoData, outliers
from ..analytics.time_bucketer import Granularity, bucket_records, granularity_for, to_trend_points
from ..config import ALL_OPTION
from ..utils.plot_utils import (
    create_box_plot, create_dimension_chart, create_histogram_chart, create_pareto_chart,
    create_stage_chart, create_trend_chart, create_volume_chart, format_percentage
)
from ..utils.records import CaseRecord
from ..utils.session_state_manager import SessionStateManager
from .catalog import KPIDefinition

# --- Setup Logging ---
logger = logging.getLogger(__name__)

TREND_CHART_KINDS = ["line", "area", "column"]


# ==============================================================================
# --- TABLE HELPERS ---
# ==============================================================================

def breadcrumb_trail(state: NavigationState) -> str:
    """``"KPI › Level 2 Breakdown: Remote › ..."`` for captions."""
    parts = []
    for crumb in state.breadcrumbs:
        parts.append(crumb.label if crumb.category is None else f"{crumb.label}: {crumb.category}")
    return " › ".join(parts)


def records_table(records: Sequence[CaseRecord], stage: Optional[str] = None) -> pd.DataFrame:
    """Display table of individual cases; ``stage`` adds that stage's days as a column."""
    rows = []
    for record in records:
        row = {
            "Case": record.record_id,
            "Completed": record.timestamp.date() if record.timestamp is not None else None,
            "Processing Days": record.processing_days,
            "Target Days": record.target_days,
            "On Time": "Yes" if record.is_on_time else "No",
        }
        if stage:
            row[f"{stage.title()} Days"] = record.stage_days(stage)
        row.update({key.replace("_", " ").title(): value for key, value in record.attributes})
        rows.append(row)
    return pd.DataFrame(rows)


def stage_table(level_view: LevelView) -> pd.DataFrame:
    return pd.DataFrame([
        {"Stage": s.stage.title(), "Average Days": round(s.days, 1), "Target Days": s.target,
         "Status": "On Time" if s.on_time else "Delayed", "Cases": s.cases}
        for s in level_view.stages
    ])


def drill_options(level_view: LevelView) -> List[str]:
    """Categories that can be selected to go one level deeper."""
    if level_view.level in (1, 2) and level_view.breakdown is not None:
        return [item.category for item in level_view.breakdown.items]
    if level_view.level == 3:
        return [s.stage for s in level_view.stages]
    return []


def selected_attribute_filters(selection: Mapping[str, str]) -> AttributeFilters:
    """``{field: choice}`` from the filter selectors as engine filters; "All" selects nothing."""
    return tuple((field_name, value) for field_name, value in selection.items() if value != ALL_OPTION)


def late_case_items(breakdown: DimensionBreakdown, view: Optional[DimensionView]) -> List[DrillDownItem]:
    """Late cases (total minus on-time) per category; tally dimensions carry no late count."""
    if view is None or view.is_tally:
        return []
    return [make_item(item.category, item.total - item.count, item.total) for item in breakdown.items]


# ==============================================================================
# --- RENDER HELPERS ---
# ==============================================================================

def _rerun_with(ssm: SessionStateManager, kpi_id: str, state: NavigationState) -> None:
    ssm.set_navigation(kpi_id, state)
    st.rerun()


def render_headline(engine: DrillDownEngine, kpi: KPIDefinition, period_filter: PeriodFilter) -> None:
    headline = engine.headline(period_filter)
    st.subheader(kpi.name)
    st.caption(f"{kpi.description} Reporting period: **{describe_period(period_filter)}**")
    if isinstance(headline, NoData):
        st.info(headline.reason)
        return
    cols = st.columns(4)
    target = kpi.target_rate
    cols[0].metric(
        "On-Time Rate", headline.as_kpi_value().format(),
        delta=f"{headline.on_time_rate - target:+.1f} pts vs target" if target is not None else None,
    )
    cols[1].metric("Cases Completed", f"{headline.on_time_count} / {headline.volume}", help="On-time cases out of all cases in the period.")
    cols[2].metric("Average Processing", f"{headline.average_days:.1f} days" if headline.average_days is not None else "N/A")
    cols[3].metric("Median Processing", f"{headline.median_days:g} days" if headline.median_days is not None else "N/A")
    if target is not None:
        st.progress(min(max(headline.on_time_rate / 100, 0.0), 1.0))


def render_navigation_bar(ssm: SessionStateManager, kpi: KPIDefinition, state: NavigationState) -> None:
    """Dimension selector, breadcrumbs, back and close controls."""
    dim_col, close_col = st.columns([4, 1])
    with dim_col:
        labels = {view.id: view.label for view in kpi.dimensions}
        ids = list(labels)
        current = ids.index(state.dimension_id) if state.dimension_id in ids else 0
        chosen = st.selectbox("Explore by", ids, index=current, format_func=labels.get, key=f"{kpi.id}_dimension")
        if chosen != state.dimension_id:
            view = next(v for v in kpi.dimensions if v.id == chosen)
            _rerun_with(ssm, kpi.id, switch_dimension(state, view))
    with close_col:
        if st.button("Close", key=f"{kpi.id}_close"):
            ssm.close_drilldown(kpi.id)
            st.rerun()

    crumb_cols = st.columns(len(state.breadcrumbs) + 1)
    for col, crumb in zip(crumb_cols, state.breadcrumbs):
        label = crumb.label if crumb.category is None else f"{crumb.category}"
        is_current = crumb.level == state.level
        if col.button(label, key=f"{kpi.id}_crumb_{crumb.level}", disabled=is_current, help=crumb.label):
            _rerun_with(ssm, kpi.id, jump_to_breadcrumb(state, crumb.level))
    if state.level > 1 and crumb_cols[-1].button("⬅ Back", key=f"{kpi.id}_back"):
        _rerun_with(ssm, kpi.id, back(state))


def render_attribute_filters(kpi: KPIDefinition, engine: DrillDownEngine, period_filter: PeriodFilter) -> AttributeFilters:
    """One "All"-or-value selector per filterable field of the KPI."""
    if not kpi.attribute_filters:
        return tuple()
    dated = engine.filtered(period_filter)
    selection = {}
    for col, field_name in zip(st.columns(len(kpi.attribute_filters)), kpi.attribute_filters):
        options = [ALL_OPTION] + category_values(dated, field_name)
        selection[field_name] = col.selectbox(field_name.replace("_", " ").title(), options, key=f"{kpi.id}_filter_{field_name}")
    attribute_filters = selected_attribute_filters(selection)
    if attribute_filters and dated and not filter_by_attributes(dated, attribute_filters):
        st.caption("No cases match these filters; showing all cases of the period.")
    return attribute_filters


def render_level_view(ssm: SessionStateManager, kpi: KPIDefinition, engine: DrillDownEngine,
                      state: NavigationState, period_filter: PeriodFilter, attribute_filters: AttributeFilters = ()) -> None:
    level_view = engine.level_view(state, period_filter, attribute_filters)
    st.markdown(f"#### {level_view.title}")
    st.caption(breadcrumb_trail(state))

    if level_view.is_empty:
        st.info("No data available for the selected filters.")
        return

    if level_view.level in (1, 2):
        breakdown = level_view.breakdown
        if breakdown.provenance is Provenance.CURATED:
            st.info("Reference breakdown: these figures are curated, not computed from the case records.")
        kind = st.radio("Chart type", ["bar", "pie", "doughnut"], horizontal=True, key=f"{kpi.id}_chart_{level_view.level}")
        st.plotly_chart(create_dimension_chart(breakdown, kind=kind, target=kpi.target_rate))
        table = breakdown_frame(breakdown)
        table["percentage"] = table["percentage"].apply(format_percentage)
        st.dataframe(table, hide_index=True)
    elif level_view.level == 3:
        st.plotly_chart(create_stage_chart(level_view.stages))
        st.dataframe(stage_table(level_view), hide_index=True)
    else:
        stage = state.path[-1].category
        st.dataframe(records_table(level_view.records, stage=stage), hide_index=True)
        st.download_button(
            "Download cases (CSV)", records_table(level_view.records, stage=stage).to_csv(index=False),
            file_name=f"{kpi.id}_{stage}_cases.csv", mime="text/csv", key=f"{kpi.id}_download",
        )

    options = drill_options(level_view)
    if level_view.drillable and options:
        sel_col, btn_col = st.columns([4, 1])
        category = sel_col.selectbox("Select a category to drill into", options, key=f"{kpi.id}_drill_{level_view.level}")
        if btn_col.button("Drill down ➜", key=f"{kpi.id}_drill_btn_{level_view.level}"):
            _rerun_with(ssm, kpi.id, drill_into(state, level_view.level + 1, category))


def render_analytics_tabs(kpi: KPIDefinition, engine: DrillDownEngine, state: NavigationState,
                          period_filter: PeriodFilter, attribute_filters: AttributeFilters = ()) -> None:
    """Trend, distribution, Pareto and outlier analytics for the current selection."""
    records: Tuple[CaseRecord, ...] = engine.narrowed(state, period_filter, attribute_filters)
    trend_tab, dist_tab, pareto_tab, outlier_tab = st.tabs(["📈 Trend", "📊 Distribution", "🎯 Pareto", "⏱️ Outliers"])

    with trend_tab:
        default = list(Granularity).index(granularity_for(period_filter))
        gran_col, kind_col = st.columns(2)
        granularity = gran_col.selectbox("Bucket by", list(Granularity), index=default, format_func=lambda g: g.value.title(), key=f"{kpi.id}_granularity")
        kind = kind_col.radio("Chart type", TREND_CHART_KINDS, horizontal=True, format_func=str.title, key=f"{kpi.id}_trend_kind")
        buckets = bucket_records(records, granularity)
        st.plotly_chart(create_trend_chart(to_trend_points(buckets, target=kpi.target_rate), kind=kind))
        st.plotly_chart(create_volume_chart(buckets))

    with dist_tab:
        profile = engine.duration_profile(state, period_filter, attribute_filters)
        hist_col, box_col = st.columns(2)
        with hist_col:
            st.plotly_chart(create_histogram_chart(profile.bins))
        with box_col:
            st.plotly_chart(create_box_plot(profile.summary))
        if profile.percentiles:
            stats_row = dict(profile.percentiles)
            stats_row["mean"] = profile.summary.mean if not isinstance(profile.summary, NoData) else None
            stats_row["mode"] = profile.mode
            st.dataframe(pd.DataFrame([stats_row]).round(1), hide_index=True)

    with pareto_tab:
        breakdown = engine.breakdown(period_filter, state.dimension_id, attribute_filters)
        late_items = late_case_items(breakdown, engine.dimension(state.dimension_id))
        st.plotly_chart(create_pareto_chart(late_items, f"Late Cases by {breakdown.label or 'Category'}"))

    with outlier_tab:
        fastest, slowest = outliers(records)
        fast_col, slow_col = st.columns(2)
        for col, title, ranked in ((fast_col, "Fastest Cases", fastest), (slow_col, "Slowest Cases", slowest)):
            col.markdown(f"**{title}**")
            if not ranked:
                col.caption("No timed cases in this selection.")
                continue
            col.dataframe(pd.DataFrame([
                {"Case": r.record.record_id, "Days": r.processing_days, "Percentile": round(r.percentile_rank, 1)}
                for r in ranked
            ]), hide_index=True)


# ==============================================================================
# --- ENTRY POINT ---
# ==============================================================================

def render_drilldown(ssm: SessionStateManager, kpi: KPIDefinition, engine: DrillDownEngine) -> None:
    """
    Renders one KPI card with its drill-down panel.

    Args:
        ssm (SessionStateManager): The session state manager instance.
        kpi (KPIDefinition): The KPI being explored.
        engine (DrillDownEngine): Engine over the KPI's case records.
    """
    try:
        period_filter = ssm.get_period_filter()
        render_headline(engine, kpi, period_filter)

        state = ssm.get_navigation(kpi.id)
        if state is None:
            if st.button("🔍 Open drill-down", key=f"{kpi.id}_open"):
                _rerun_with(ssm, kpi.id, open_navigation(kpi.name, kpi.dimensions))
            return

        render_navigation_bar(ssm, kpi, state)
        attribute_filters = render_attribute_filters(kpi, engine, period_filter)
        render_level_view(ssm, kpi, engine, state, period_filter, attribute_filters)
        st.divider()
        render_analytics_tabs(kpi, engine, state, period_filter, attribute_filters)
    except Exception as e:
        st.error(f"An error occurred while rendering the {kpi.name} drill-down.")
        logger.error(f"Failed to render drill-down for '{kpi.id}': {e}", exc_info=True)
