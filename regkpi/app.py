#regkpi/app.py
"""
Main application entry point for the RegKPI Drill-Down Dashboard.

This Streamlit application lets regulatory performance teams explore their
timeliness KPIs (GMP inspections, marketing authorizations) for a chosen
reporting period. Each KPI card opens a four-level drill-down from the
overview breakdown down to the individual cases, with trend, distribution,
Pareto and outlier analytics for the current selection. Case data comes from
an uploaded CSV export, or from the export named by REGKPI_CASES_CSV.
"""

# --- Standard Library Imports ---
import io
import logging
import os
import sys
from datetime import date, datetime, time
from typing import Optional, Tuple

# --- Third-party Imports ---
import pandas as pd
import streamlit as st

# --- Robust Path Correction Block ---
try:
    current_dir = os.path.dirname(os.path.abspath(__file__))
    project_root = os.path.dirname(current_dir)
    if project_root not in sys.path:
        sys.path.insert(0, project_root)
except Exception as e:
    st.warning(f"Could not adjust system path. Module imports may fail. Error: {e}")

# --- Local Application Imports ---
try:
    from regkpi.analytics.drilldown_engine import DrillDownEngine
    from regkpi.analytics.period_filter import (
        Annual, DateRange, FilterMode, Monthly, PeriodFilter, Quarterly, switch_mode
    )
    from regkpi.config import CASES_PATH_ENV, LOG_LEVEL, MONTH_NAMES, QUARTER_MONTH_LABELS, QUARTERS
    from regkpi.kpi_sections.catalog import KPI_CATALOGUE, KPIDefinition
    from regkpi.kpi_sections.drilldown_view import render_drilldown
    from regkpi.utils.records import CaseRecord, load_records
    from regkpi.utils.session_state_manager import SessionStateManager
except ImportError as e:
    st.error(f"Fatal Error: A required local module could not be imported: {e}. "
             "Please ensure the application is run from the project's root directory and that the package is installed.")
    logging.critical(f"Fatal module import error: {e}", exc_info=True)
    st.stop()


# Call set_page_config() at the top level of the script
st.set_page_config(layout="wide", page_title="RegKPI Drill-Down Dashboard", page_icon="📊")

# --- Setup Logging ---
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    force=True
)
logger = logging.getLogger(__name__)

# --- Module-Level Constants ---
MODE_LABELS = {
    FilterMode.QUARTERLY: "Quarterly",
    FilterMode.ANNUAL: "Annual",
    FilterMode.MONTHLY: "Monthly",
    FilterMode.DATE_RANGE: "Date Range",
}
YEAR_WINDOW = 6

# ==============================================================================
# --- DATA LOADING & CACHING ---
# ==============================================================================

@st.cache_data
def read_uploaded_cases(content: bytes) -> pd.DataFrame:
    """Parses an uploaded CSV export into a DataFrame."""
    return pd.read_csv(io.BytesIO(content))


@st.cache_data
def read_cases_file(path: str) -> pd.DataFrame:
    """Reads the configured case export from disk."""
    return pd.read_csv(path)


def load_kpi_records(upload) -> Optional[Tuple[Tuple[CaseRecord, ...], str]]:
    """
    Records from the uploaded CSV, or from the export named by ``REGKPI_CASES_CSV``.

    Returns:
        Optional[Tuple[Tuple[CaseRecord, ...], str]]: The records and a
        description of their source, or None when no data is available.
    """
    if upload is not None:
        try:
            return load_records(read_uploaded_cases(upload.getvalue())), f"uploaded file **{upload.name}**"
        except Exception as e:
            st.error(f"Could not read '{upload.name}'. Please check that it is a valid CSV export.")
            logger.error(f"Failed to parse uploaded case file '{upload.name}': {e}", exc_info=True)
            return None

    path = os.environ.get(CASES_PATH_ENV, "").strip()
    if not path:
        return None
    try:
        return load_records(read_cases_file(path)), f"**{os.path.basename(path)}**"
    except Exception as e:
        st.error(f"Could not read the configured case export '{path}'.")
        logger.error(f"Failed to read case export from {CASES_PATH_ENV}='{path}': {e}", exc_info=True)
        return None


# ==============================================================================
# --- SIDEBAR CONTROLS ---
# ==============================================================================

def _end_of_day(day: date) -> pd.Timestamp:
    return pd.Timestamp(datetime.combine(day, time.max))


def render_period_selector(ssm: SessionStateManager) -> PeriodFilter:
    """Reporting-period controls; returns the (possibly updated) filter."""
    st.subheader("Reporting Period")
    current = ssm.get_period_filter()
    modes = list(MODE_LABELS)
    chosen_mode = st.radio("Period type", modes, index=modes.index(current.mode), format_func=MODE_LABELS.get, key="period_mode")
    if chosen_mode != current.mode:
        current = switch_mode(current, chosen_mode)

    this_year = date.today().year
    years = list(range(this_year, this_year - YEAR_WINDOW, -1))
    if isinstance(current, (Quarterly, Annual, Monthly)) and current.year not in years:
        years.append(current.year)

    if isinstance(current, Quarterly):
        quarter = st.selectbox("Quarter", QUARTERS, index=QUARTERS.index(current.quarter),
                               format_func=lambda q: f"{q} ({QUARTER_MONTH_LABELS[q]})", key="period_quarter")
        year = st.selectbox("Year", years, index=years.index(current.year), key="period_year")
        new_filter: PeriodFilter = Quarterly(quarter=quarter, year=year)
    elif isinstance(current, Annual):
        year = st.selectbox("Year", years, index=years.index(current.year), key="period_year")
        new_filter = Annual(year=year)
    elif isinstance(current, Monthly):
        month = st.selectbox("Month", list(range(12)), index=current.month, format_func=lambda m: MONTH_NAMES[m], key="period_month")
        year = st.selectbox("Year", years, index=years.index(current.year), key="period_year")
        new_filter = Monthly(month=month, year=year)
    else:
        start, end = current.bounds
        start_day = st.date_input("From", value=start.date() if start is not None else None, key="period_start")
        end_day = st.date_input("To (inclusive)", value=end.date() if end is not None else None, key="period_end")
        new_filter = DateRange(
            start=pd.Timestamp(start_day) if start_day else None,
            end=_end_of_day(end_day) if end_day else None,
        )

    ssm.set_period_filter(new_filter)
    return new_filter


def build_engine(kpi: KPIDefinition, records: Tuple[CaseRecord, ...]) -> DrillDownEngine:
    return DrillDownEngine(
        records,
        kpi.dimensions,
        kpi_name=kpi.name,
        histogram_edges=kpi.histogram_edges,
        target_rate=kpi.target_rate,
        stage_targets=dict(kpi.stage_targets),
    )


# ==============================================================================
# --- MAIN APPLICATION ---
# ==============================================================================

def main() -> None:
    """Main function to run the Streamlit application."""
    try:
        ssm = SessionStateManager()
        logger.info("Application initialized. Session State Manager loaded.")
    except Exception as e:
        st.error("Fatal Error: Could not initialize Session State."); logger.critical(f"Failed to instantiate SessionStateManager: {e}", exc_info=True); st.stop()

    with st.sidebar:
        st.header("📊 RegKPI")
        kpi_id = st.selectbox("KPI", list(KPI_CATALOGUE), format_func=lambda k: KPI_CATALOGUE[k].name, key="kpi_id")
        upload = st.file_uploader("Case export (CSV)", type=["csv"], key="case_upload",
                                  help="One row per case: record_id, completion_date, processing_days, target_days, "
                                       "categorical columns, and optional stage_<name> day columns.")
        st.divider()
        try:
            render_period_selector(ssm)
        except Exception as e:
            st.error("Invalid reporting period; keeping the previous selection.")
            logger.error(f"Error applying reporting period: {e}", exc_info=True)

    kpi = KPI_CATALOGUE[kpi_id]
    st.title("📊 Regulatory KPI Drill-Down")
    loaded = load_kpi_records(upload)
    if loaded is None:
        st.info("Upload a case export (CSV) in the sidebar to explore the KPI drill-down.")
        return
    records, source = loaded
    try:
        st.caption(f"{len(records)} cases loaded from {source}.")
        engine = build_engine(kpi, records)
    except Exception as e:
        st.error("Failed to prepare the case data for analysis."); logger.error(f"Error building drill-down engine: {e}", exc_info=True)
        return

    render_drilldown(ssm, kpi, engine)

# ==============================================================================
# --- SCRIPT EXECUTION ---
# ==============================================================================
if __name__ == "__main__":
    main()
