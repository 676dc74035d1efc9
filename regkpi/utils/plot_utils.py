"""
Plotting utilities for the KPI drill-down views.

This module turns engine outputs (dimension breakdowns, trend buckets,
order statistics, histogram bins, stage summaries) into Plotly figures with
one consistent visual style. It is the presentation boundary: percentages are
rounded here for labels and nowhere else. Every builder returns a placeholder
figure instead of raising when its input is empty or malformed.
"""

# --- Standard Library Imports ---
import logging
from typing import Any, Dict, List, Optional, Sequence

# --- Third-party Imports ---
import pandas as pd
import plotly.express as px
import plotly.graph_objects as go
from plotly.subplots import make_subplots

# --- Local Application Imports ---
from ..config import DEFAULT_TARGET_RATE, PERCENT_DECIMALS

# --- Setup Logging ---
logger = logging.getLogger(__name__)


# ==============================================================================
# --- MODULE-LEVEL CONFIGURATION CONSTANTS ---
# ==============================================================================

_PLOT_LAYOUT_CONFIG: Dict[str, Any] = {
    "margin": dict(l=50, r=30, t=80, b=50),
    "title_x": 0.5,
    "font": {"family": "Arial, sans-serif", "size": 12},
    "template": "plotly_white"
}

_PALETTE: List[str] = ["#6366f1", "#22c55e", "#f97316", "#0ea5e9", "#ef4444", "#14b8a6"]

_ON_TIME_COLOR_MAP: Dict[bool, str] = {True: "#22c55e", False: "#ef4444"}


def format_percentage(value: Optional[float], decimals: int = PERCENT_DECIMALS) -> str:
    """Display form of a full-precision percentage."""
    if value is None:
        return "N/A"
    return f"{value:.{decimals}f}%"


def _create_placeholder_figure(text: str, title: str, icon: str = "ℹ️") -> go.Figure:
    """Creates a standardized, empty figure with an icon and text annotation."""
    fig = go.Figure()
    fig.update_layout(
        title_text=f"<b>{title}</b>",
        xaxis={'visible': False}, yaxis={'visible': False},
        annotations=[{'text': f"{icon}<br>{text}", 'xref': 'paper', 'yref': 'paper', 'showarrow': False, 'font': {'size': 16, 'color': '#7f7f7f'}}],
        height=300, **_PLOT_LAYOUT_CONFIG
    )
    return fig


# ==============================================================================
# --- CATEGORY CHARTS ---
# ==============================================================================

def create_dimension_chart(breakdown, kind: str = "bar", target: Optional[float] = DEFAULT_TARGET_RATE) -> go.Figure:
    """
    Bar, pie or doughnut chart of a dimension breakdown.

    Args:
        breakdown: A ``DimensionBreakdown`` from the engine.
        kind (str): ``"bar"``, ``"pie"`` or ``"doughnut"``.
        target (Optional[float]): Reference line for bar charts.
    """
    title = f"Performance by {breakdown.label or 'Category'}"
    try:
        if breakdown.is_empty:
            return _create_placeholder_figure("No data available for the selected filters.", title)
        df = pd.DataFrame([
            {"category": i.category, "percentage": i.percentage, "count": i.count, "total": i.total}
            for i in breakdown.items
        ])
        df["label"] = df["percentage"].apply(format_percentage)

        if kind in ("pie", "doughnut"):
            if (df["percentage"] <= 0).all():
                return _create_placeholder_figure("No data available for pie chart.", title)
            fig = go.Figure(go.Pie(
                labels=df["category"], values=df["percentage"], text=df["label"],
                hole=0.45 if kind == "doughnut" else 0, textinfo="label+text",
                marker=dict(colors=[_PALETTE[i % len(_PALETTE)] for i in range(len(df))]),
                customdata=df[["count", "total"]],
                hovertemplate="<b>%{label}</b><br>%{text}<br>%{customdata[0]} / %{customdata[1]}<extra></extra>",
            ))
            fig.update_layout(title_text=f"<b>{title}</b>", **_PLOT_LAYOUT_CONFIG)
            return fig

        fig = go.Figure(go.Bar(
            x=df["category"], y=df["percentage"], text=df["label"], textposition="outside",
            marker_color="#2563eb", customdata=df[["count", "total"]],
            hovertemplate="<b>%{x}</b><br>%{text}<br>%{customdata[0]} / %{customdata[1]}<extra></extra>",
            name="Performance %",
        ))
        if target is not None:
            fig.add_hline(y=target, line_dash="dash", line_color="#ef4444", annotation_text=f"Target {target:g}%")
        fig.update_layout(title_text=f"<b>{title}</b>", yaxis=dict(range=[0, 105], title="Performance (%)"), **_PLOT_LAYOUT_CONFIG)
        return fig
    except Exception as e:
        logger.error(f"Error creating dimension chart: {e}", exc_info=True)
        return _create_placeholder_figure("Dimension Chart Error", title, icon="⚠️")


def create_pareto_chart(items: Sequence, title: str) -> go.Figure:
    """Creates a Pareto chart (counts with cumulative share) from drill-down items."""
    try:
        from ..analytics.dimension_aggregator import pareto

        if not items:
            return _create_placeholder_figure("No data for Pareto analysis.", title)
        rows = pareto(items)
        pareto_df = pd.DataFrame({
            'Category': [item.category for item, _ in rows],
            'Count': [item.count for item, _ in rows],
            'Cumulative Percentage': [cumulative for _, cumulative in rows],
        })

        fig = make_subplots(specs=[[{"secondary_y": True}]])
        fig.add_trace(go.Bar(x=pareto_df['Category'], y=pareto_df['Count'], name='Count', marker_color='cornflowerblue'), secondary_y=False)
        fig.add_trace(go.Scatter(x=pareto_df['Category'], y=pareto_df['Cumulative Percentage'], name='Cumulative %', mode='lines+markers', line=dict(color='darkorange')), secondary_y=True)

        fig.update_layout(title_text=f"<b>{title}</b>", **_PLOT_LAYOUT_CONFIG)
        fig.update_yaxes(title_text="Count", secondary_y=False)
        fig.update_yaxes(title_text="Cumulative Percentage (%)", range=[0, 101], secondary_y=True)
        return fig
    except Exception as e:
        logger.error(f"Error creating Pareto chart: {e}", exc_info=True)
        return _create_placeholder_figure("Pareto Chart Error", title, icon="⚠️")


# ==============================================================================
# --- TREND & DISTRIBUTION CHARTS ---
# ==============================================================================

def create_trend_chart(points: Sequence, title: str = "On-Time Performance Trend", kind: str = "line") -> go.Figure:
    """Line, area or column chart of ``TrendPoint`` values with their target line."""
    try:
        if not points:
            return _create_placeholder_figure("No data available for the selected filters.", title)
        names = [p.name for p in points]
        values = [p.value for p in points]
        if kind == "column":
            fig = go.Figure(go.Bar(x=names, y=values, name="Performance %", marker_color="#2563eb"))
        else:
            fig = go.Figure(go.Scatter(
                x=names, y=values, mode="lines+markers", name="Performance %",
                line=dict(color="#2563eb", width=2),
                fill="tozeroy" if kind == "area" else None,
            ))
        target = next((p.target for p in points if p.target is not None), None)
        if target is not None:
            fig.add_hline(y=target, line_dash="dash", line_color="#ef4444", annotation_text=f"Target {target:g}%")
        fig.update_layout(title_text=f"<b>{title}</b>", xaxis_title="Period", yaxis_title="Value", **_PLOT_LAYOUT_CONFIG)
        return fig
    except Exception as e:
        logger.error(f"Error creating trend chart: {e}", exc_info=True)
        return _create_placeholder_figure("Trend Chart Error", title, icon="⚠️")


def create_volume_chart(buckets: Sequence, title: str = "Volume and Average Processing Days") -> go.Figure:
    """Dual-axis chart: case volume bars with average processing days."""
    try:
        if not buckets:
            return _create_placeholder_figure("No data available for the selected filters.", title)
        names = [b.key for b in buckets]
        fig = make_subplots(specs=[[{"secondary_y": True}]])
        fig.add_trace(go.Bar(x=names, y=[b.volume for b in buckets], name="Volume", marker_color="#0ea5e9"), secondary_y=False)
        fig.add_trace(go.Scatter(x=names, y=[b.average_duration for b in buckets], name="Average days", mode="lines+markers", line=dict(color="#f97316")), secondary_y=True)
        fig.update_layout(title_text=f"<b>{title}</b>", **_PLOT_LAYOUT_CONFIG)
        fig.update_yaxes(title_text="Cases", secondary_y=False)
        fig.update_yaxes(title_text="Average days", secondary_y=True)
        return fig
    except Exception as e:
        logger.error(f"Error creating volume chart: {e}", exc_info=True)
        return _create_placeholder_figure("Volume Chart Error", title, icon="⚠️")


def create_histogram_chart(bins: Sequence, title: str = "Processing Time Distribution") -> go.Figure:
    """Bar chart of ``HistogramBin`` counts."""
    try:
        if not bins or sum(b.count for b in bins) == 0:
            return _create_placeholder_figure("No data available for the selected filters.", title)
        fig = go.Figure(go.Bar(
            x=[b.range for b in bins], y=[b.count for b in bins],
            text=[b.count for b in bins], textposition="outside", marker_color="#6366f1",
            customdata=[format_percentage(b.percentage) for b in bins],
            hovertemplate="<b>%{x}</b><br>%{y} cases (%{customdata})<extra></extra>",
        ))
        fig.update_layout(title_text=f"<b>{title}</b>", xaxis_title="Processing days", yaxis_title="Cases", **_PLOT_LAYOUT_CONFIG)
        return fig
    except Exception as e:
        logger.error(f"Error creating histogram chart: {e}", exc_info=True)
        return _create_placeholder_figure("Histogram Error", title, icon="⚠️")


def create_box_plot(summary, title: str = "Processing Days Spread") -> go.Figure:
    """Box plot from precomputed ``OrderStatistics``; NoData renders a placeholder."""
    try:
        if not hasattr(summary, "median"):
            return _create_placeholder_figure(getattr(summary, "reason", "No data available."), title)
        fig = go.Figure(go.Box(
            name="Processing days",
            q1=[summary.q1], median=[summary.median], q3=[summary.q3],
            lowerfence=[summary.min], upperfence=[summary.max], mean=[summary.mean],
            marker_color="#14b8a6",
        ))
        fig.update_layout(title_text=f"<b>{title}</b>", yaxis_title="Days", **_PLOT_LAYOUT_CONFIG)
        return fig
    except Exception as e:
        logger.error(f"Error creating box plot: {e}", exc_info=True)
        return _create_placeholder_figure("Box Plot Error", title, icon="⚠️")


def create_stage_chart(stages: Sequence, title: str = "Average Days by Processing Stage") -> go.Figure:
    """Horizontal bars of stage averages coloured by on-time status, with target markers."""
    try:
        if not stages:
            return _create_placeholder_figure("No stage breakdown recorded for these cases.", title)
        df = pd.DataFrame([{"stage": s.stage.title(), "days": s.days, "target": s.target, "on_time": s.on_time} for s in stages])
        df["status"] = df["on_time"].map({True: "On Time", False: "Delayed"})
        fig = px.bar(df, x="days", y="stage", orientation="h", color="status",
                     color_discrete_map={"On Time": _ON_TIME_COLOR_MAP[True], "Delayed": _ON_TIME_COLOR_MAP[False]},
                     text=df["days"].round(1))
        targets = df.dropna(subset=["target"])
        if not targets.empty:
            fig.add_trace(go.Scatter(x=targets["target"], y=targets["stage"], mode="markers", name="Target",
                                     marker=dict(symbol="line-ns-open", size=18, color="black")))
        fig.update_layout(title_text=f"<b>{title}</b>", xaxis_title="Days", yaxis_title="Stage", legend_title_text="Status", **_PLOT_LAYOUT_CONFIG)
        return fig
    except Exception as e:
        logger.error(f"Error creating stage chart: {e}", exc_info=True)
        return _create_placeholder_figure("Stage Chart Error", title, icon="⚠️")
