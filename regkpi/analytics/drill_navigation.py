"""
Drill navigation state machine for KPI drill-downs.

Levels:
    1. Overview (active dimension breakdown)
    2. Category breakdown of the selected level-1 category
    3. Processing-stage breakdown
    4. Individual records (terminal, never drillable)

``NavigationState`` is an immutable value; every transition is a pure
function returning a new state. The selection path is a stack of
``(dimension, category)`` steps, truncated by slicing and re-expanded into
breadcrumb labels for display, so that ``len(breadcrumbs) ==
len(selected_categories) + 1 == level`` holds after any transition.

Invalid transitions (skipping a level, drilling from a non-drillable level,
going back from the overview) leave the state unchanged and log a warning,
so a stray UI click is a no-op.
"""

# --- Standard Library Imports ---
import logging
from dataclasses import dataclass, field, replace
from typing import Optional, Sequence, Tuple

# --- Local Application Imports ---
from ..config import LEVEL_LABELS, MAX_LEVEL
from .dimension_aggregator import DimensionView

# --- Setup Logging ---
logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PathStep:
    dimension_id: str
    category: str


@dataclass(frozen=True)
class Breadcrumb:
    level: int
    label: str
    category: Optional[str] = None


def level_label(level: int) -> str:
    return LEVEL_LABELS.get(level, f"Level {level}")


@dataclass(frozen=True)
class NavigationState:
    root_label: str
    dimension_id: Optional[str]
    path: Tuple[PathStep, ...] = field(default_factory=tuple)
    drillable_levels: Tuple[int, ...] = (1, 2, 3)

    @property
    def level(self) -> int:
        return len(self.path) + 1

    @property
    def selected_categories(self) -> Tuple[str, ...]:
        return tuple(step.category for step in self.path)

    @property
    def breadcrumbs(self) -> Tuple[Breadcrumb, ...]:
        crumbs = [Breadcrumb(level=1, label=self.root_label)]
        for i, step in enumerate(self.path):
            crumbs.append(Breadcrumb(level=i + 2, label=level_label(i + 2), category=step.category))
        return tuple(crumbs)

    @property
    def is_drillable(self) -> bool:
        return self.level < MAX_LEVEL and self.level in self.drillable_levels

    @property
    def is_terminal(self) -> bool:
        return self.level == MAX_LEVEL


# ==============================================================================
# --- TRANSITIONS ---
# ==============================================================================

def open_navigation(
    root_label: str,
    dimension_views: Sequence[DimensionView] = (),
    drillable_levels: Tuple[int, ...] = (1, 2, 3),
) -> NavigationState:
    """Fresh navigation at the overview with the first available dimension active."""
    first = dimension_views[0].id if dimension_views else None
    levels = tuple(drillable_levels)
    if dimension_views and not dimension_views[0].drillable:
        levels = tuple(l for l in levels if l != 1)
    return NavigationState(root_label=root_label, dimension_id=first, drillable_levels=levels)


def drill_into(state: NavigationState, level: int, category: str) -> NavigationState:
    """
    Selects ``category`` and moves to ``level``.

    The path is truncated to ``level - 2`` steps before the category is
    appended, so re-entering a shallower level discards deeper selections.
    Valid for ``2 <= level <= state.level + 1``, where the level being left
    (``level - 1``) must be drillable.
    """
    if not category:
        logger.warning(f"Ignoring drill into level {level} without a category.")
        return state
    if not 2 <= level <= min(state.level + 1, MAX_LEVEL):
        logger.warning(f"Ignoring drill from level {state.level} into level {level}.")
        return state
    if level - 1 not in state.drillable_levels:
        logger.warning(f"Level {level - 1} is not drillable; staying at level {state.level}.")
        return state
    path = state.path[: level - 2] + (PathStep(dimension_id=state.dimension_id or "", category=category),)
    return replace(state, path=path)


def back(state: NavigationState) -> NavigationState:
    if state.level <= 1:
        logger.debug("Back requested at the overview; nothing to do.")
        return state
    new_level = state.level - 1
    return replace(state, path=state.path[: new_level - 1])


def reset(state: NavigationState) -> NavigationState:
    return replace(state, path=tuple())


def jump_to_breadcrumb(state: NavigationState, level: int) -> NavigationState:
    """Level 1 resets to the overview; deeper crumbs replay their drill step."""
    if level == 1:
        return reset(state)
    crumb = next((c for c in state.breadcrumbs if c.level == level), None)
    if crumb is None or crumb.category is None:
        logger.warning(f"No breadcrumb at level {level}; staying at level {state.level}.")
        return state
    return drill_into(state, level, crumb.category)


def switch_dimension(state: NavigationState, dimension_view: DimensionView) -> NavigationState:
    """Activates a sibling dimension; any drill context is discarded."""
    levels = tuple(l for l in state.drillable_levels if l != 1)
    if dimension_view.drillable:
        levels = (1,) + levels
    return NavigationState(
        root_label=state.root_label,
        dimension_id=dimension_view.id,
        drillable_levels=levels,
    )


def close_navigation(state: Optional[NavigationState]) -> None:
    """Closing discards the state; reopen with :func:`open_navigation`."""
    if state is not None:
        logger.debug(f"Closing drill-down '{state.root_label}' at level {state.level}.")
    return None
