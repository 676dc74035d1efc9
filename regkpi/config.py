"""
Module-level configuration for the RegKPI drill-down engine.

Centralizes the constants shared by the analytics engine, the chart builders
and the Streamlit drill-down view, so that labels, bin edges and targets are
declared once. A small number of values can be overridden through
environment variables for deployment.
"""

# --- Standard Library Imports ---
import logging
import os
from typing import Dict, Tuple

# --- Setup Logging ---
logger = logging.getLogger(__name__)


# ==============================================================================
# --- NAVIGATION ---
# ==============================================================================

MAX_LEVEL: int = 4

LEVEL_LABELS: Dict[int, str] = {
    1: "Overview",
    2: "Level 2 Breakdown",
    3: "Level 3 Breakdown",
    4: "Individual Items",
}

# ==============================================================================
# --- CALENDAR ---
# ==============================================================================

QUARTERS: Tuple[str, ...] = ("Q1", "Q2", "Q3", "Q4")

# 0-indexed calendar months per quarter.
QUARTER_MONTHS: Dict[str, Tuple[int, int, int]] = {
    "Q1": (0, 1, 2),
    "Q2": (3, 4, 5),
    "Q3": (6, 7, 8),
    "Q4": (9, 10, 11),
}

QUARTER_MONTH_LABELS: Dict[str, str] = {
    "Q1": "JAN-MAR",
    "Q2": "APR-JUN",
    "Q3": "JUL-SEP",
    "Q4": "OCT-DEC",
}

SHORT_MONTH_NAMES: Tuple[str, ...] = (
    "Jan", "Feb", "Mar", "Apr", "May", "Jun",
    "Jul", "Aug", "Sep", "Oct", "Nov", "Dec",
)

MONTH_NAMES: Tuple[str, ...] = (
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
)

# ==============================================================================
# --- KPI DEFAULTS ---
# ==============================================================================

DEFAULT_HISTOGRAM_EDGES: Tuple[int, ...] = (0, 30, 60, 90, 120, 150, 180)

# Market-authorization turnaround runs much longer than inspections.
MA_HISTOGRAM_EDGES: Tuple[int, ...] = (0, 90, 120, 150, 180, 210, 240, 270)

DEFAULT_PERCENTILES: Tuple[int, ...] = (10, 25, 50, 75, 90, 95, 99)

PERCENT_DECIMALS: int = 1

DEFAULT_STAGE_TARGETS: Dict[str, float] = {
    "screening": 10,
    "assignment": 14,
    "assessment": 40,
    "review": 12,
    "capa": 30,
    "decision": 14,
}


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"Ignoring non-numeric value for {name}: {raw!r}. Using default {default}.")
        return default


DEFAULT_TARGET_RATE: float = _env_float("REGKPI_TARGET_RATE", 90.0)

LOG_LEVEL: str = os.environ.get("REGKPI_LOG_LEVEL", "INFO").upper()

# ==============================================================================
# --- KPI CATALOGUE ---
# ==============================================================================

# Each entry becomes a DimensionView. ``mode`` defaults to "ratio"; entries
# with ``items`` are curated reference breakdowns (category, count, total).
GMP_DIMENSIONS: Tuple[Dict, ...] = (
    {"id": "inspection_mode", "label": "Inspection Mode", "field": "inspection_mode", "drill_field": "facility_type",
     "description": "On-site, remote and desk-based inspections."},
    {"id": "facility_type", "label": "Facility Type", "field": "facility_type", "drill_field": "risk_rating"},
    {"id": "risk_rating", "label": "Risk Rating", "field": "risk_rating", "drill_field": "inspection_mode"},
    {"id": "status", "label": "Case Status", "field": "status", "mode": "tally",
     "description": "Share of cases per workflow status."},
    {"id": "region", "label": "Region (reference)",
     "description": "Published regional breakdown; not computed from case records.",
     "items": (("Central", 41, 45), ("Northern", 28, 33), ("Southern", 22, 27), ("Eastern", 19, 24))},
)

MA_DIMENSIONS: Tuple[Dict, ...] = (
    {"id": "application_type", "label": "Application Type", "field": "application_type", "drill_field": "therapeutic_area"},
    {"id": "therapeutic_area", "label": "Therapeutic Area", "field": "therapeutic_area", "drill_field": "application_type"},
    {"id": "pathway", "label": "Review Pathway", "field": "pathway", "drill_field": "application_type"},
    {"id": "status", "label": "Case Status", "field": "status", "mode": "tally"},
)

MA_STAGE_TARGETS: Dict[str, float] = {
    "validation": 14,
    "assessment": 120,
    "clock_stop": 60,
    "decision": 30,
}

# Categorical fields offered as "All"-or-value filters on the analytics working set.
ALL_OPTION: str = "All"
GMP_ATTRIBUTE_FILTERS: Tuple[str, ...] = ("inspection_mode", "facility_type", "status")
MA_ATTRIBUTE_FILTERS: Tuple[str, ...] = ("application_type", "pathway", "status")

# ==============================================================================
# --- DATA SOURCE ---
# ==============================================================================

# Environment variable naming a case export (CSV) loaded when nothing is uploaded.
CASES_PATH_ENV: str = "REGKPI_CASES_CSV"
