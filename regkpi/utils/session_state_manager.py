"""
Session state manager for the RegKPI dashboard.

Wraps Streamlit's ``st.session_state`` (or any mutable mapping, which is how
the tests drive it) behind a small API: a sectioned data store, the active
reporting-period filter, and one drill navigation state per open KPI
drill-down. Navigation states are immutable values; the manager only swaps
them in and out.
"""

# --- Standard Library Imports ---
import logging
from datetime import date
from typing import Any, Dict, MutableMapping, Optional

# --- Third-party Imports ---
import streamlit as st

# --- Local Application Imports ---
from ..analytics.drill_navigation import NavigationState, close_navigation
from ..analytics.period_filter import PeriodFilter, default_period_filter

# --- Setup Logging ---
logger = logging.getLogger(__name__)


class SessionStateManager:
    """Typed access to the per-session dashboard state."""

    _DATA_KEY = "regkpi_data"
    _NAVIGATION_KEY = "regkpi_navigation"
    _PERIOD_KEY = "regkpi_period_filter"

    def __init__(self, state: Optional[MutableMapping[str, Any]] = None, today: Optional[date] = None):
        self._state = st.session_state if state is None else state
        if self._DATA_KEY not in self._state:
            self._state[self._DATA_KEY] = {}
            logger.info("Session state initialized with an empty data store.")
        if self._NAVIGATION_KEY not in self._state:
            self._state[self._NAVIGATION_KEY] = {}
        if self._PERIOD_KEY not in self._state:
            self._state[self._PERIOD_KEY] = default_period_filter(today)

    # --- Sectioned data store ---
    def get_data(self, section: str, key: Optional[str] = None) -> Any:
        """
        Retrieves a value from the data store.

        Args:
            section (str): Top-level section name.
            key (Optional[str]): Entry within the section; the whole section when omitted.

        Returns:
            Any: The stored value, or None when absent.
        """
        section_data = self._state[self._DATA_KEY].get(section)
        if key is None or section_data is None:
            return section_data
        return section_data.get(key)

    def update_data(self, value: Any, section: str, key: Optional[str] = None) -> None:
        store: Dict[str, Any] = self._state[self._DATA_KEY]
        if key is None:
            store[section] = value
        else:
            store.setdefault(section, {})[key] = value
        logger.debug(f"Session data updated: {section}{'.' + key if key else ''}.")

    # --- Reporting period ---
    def get_period_filter(self) -> PeriodFilter:
        return self._state[self._PERIOD_KEY]

    def set_period_filter(self, period_filter: PeriodFilter) -> None:
        if period_filter != self._state[self._PERIOD_KEY]:
            logger.info(f"Reporting period changed to {period_filter!r}.")
        self._state[self._PERIOD_KEY] = period_filter

    # --- Drill-down navigation ---
    def get_navigation(self, kpi_id: str) -> Optional[NavigationState]:
        return self._state[self._NAVIGATION_KEY].get(kpi_id)

    def set_navigation(self, kpi_id: str, state: NavigationState) -> None:
        self._state[self._NAVIGATION_KEY][kpi_id] = state

    def close_drilldown(self, kpi_id: str) -> None:
        """Drops the navigation state of a drill-down; reopening starts at the overview."""
        close_navigation(self._state[self._NAVIGATION_KEY].pop(kpi_id, None))
