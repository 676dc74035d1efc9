import pytest

from regkpi.analytics.drill_navigation import (
    NavigationState, back, close_navigation, drill_into, jump_to_breadcrumb, level_label,
    open_navigation, reset, switch_dimension
)


def _assert_consistent(state: NavigationState):
    assert len(state.breadcrumbs) == len(state.selected_categories) + 1 == state.level
    assert 1 <= state.level <= 4


@pytest.fixture
def opened(gmp_views):
    return open_navigation("GMP Inspections", gmp_views)


def test_open_starts_at_overview_with_first_dimension(opened):
    assert opened.level == 1
    assert opened.dimension_id == "inspection_mode"
    assert [c.label for c in opened.breadcrumbs] == ["GMP Inspections"]
    assert opened.is_drillable
    _assert_consistent(opened)


def test_drilling_down_to_individual_items(opened):
    s2 = drill_into(opened, 2, "Remote")
    s3 = drill_into(s2, 3, "Manufacturer")
    s4 = drill_into(s3, 4, "assessment")
    assert [s.level for s in (s2, s3, s4)] == [2, 3, 4]
    assert s4.selected_categories == ("Remote", "Manufacturer", "assessment")
    assert [c.label for c in s4.breadcrumbs] == [
        "GMP Inspections", "Level 2 Breakdown", "Level 3 Breakdown", "Individual Items",
    ]
    assert s4.is_terminal
    assert not s4.is_drillable
    for state in (s2, s3, s4):
        _assert_consistent(state)


def test_transitions_do_not_mutate_the_original(opened):
    drill_into(opened, 2, "Remote")
    assert opened.level == 1
    assert opened.path == ()


def test_terminal_level_cannot_be_drilled(opened):
    s4 = drill_into(drill_into(drill_into(opened, 2, "a"), 3, "b"), 4, "c")
    assert drill_into(s4, 5, "d") == s4


def test_skipping_a_level_is_a_no_op(opened):
    assert drill_into(opened, 3, "Remote") == opened
    assert drill_into(opened, 1, "Remote") == opened
    assert drill_into(opened, 2, "") == opened


def test_reselecting_a_shallower_level_discards_deeper_selections(opened):
    s3 = drill_into(drill_into(opened, 2, "Remote"), 3, "Manufacturer")
    again = drill_into(s3, 2, "On-site")
    assert again.level == 2
    assert again.selected_categories == ("On-site",)


def test_back(opened):
    s3 = drill_into(drill_into(opened, 2, "Remote"), 3, "Manufacturer")
    s2 = back(s3)
    assert s2.level == 2
    assert s2.selected_categories == ("Remote",)
    assert back(back(s2)) == opened
    assert back(opened) == opened


def test_breadcrumb_jumps(opened):
    s4 = drill_into(drill_into(drill_into(opened, 2, "Remote"), 3, "Manufacturer"), 4, "capa")
    to_two = jump_to_breadcrumb(s4, 2)
    assert to_two.level == 2
    assert to_two.selected_categories == ("Remote",)
    assert jump_to_breadcrumb(s4, 1) == reset(s4) == opened
    assert jump_to_breadcrumb(opened, 3) == opened


def test_switch_dimension_resets_navigation(opened, gmp_views):
    s3 = drill_into(drill_into(opened, 2, "Remote"), 3, "Manufacturer")
    switched = switch_dimension(s3, gmp_views[1])
    assert switched.level == 1
    assert switched.dimension_id == "status"
    assert not switched.is_drillable
    assert drill_into(switched, 2, "Closed") == switched
    back_again = switch_dimension(switched, gmp_views[0])
    assert back_again.is_drillable
    assert drill_into(back_again, 2, "Remote").level == 2


def test_non_drillable_first_dimension(gmp_views):
    state = open_navigation("KPI", (gmp_views[2],))
    assert not state.is_drillable
    assert open_navigation("KPI").dimension_id is None


def test_any_transition_sequence_keeps_breadcrumbs_consistent(opened, gmp_views):
    steps = [
        lambda s: drill_into(s, s.level + 1, "x"),
        lambda s: drill_into(s, s.level + 1, "y"),
        back,
        lambda s: drill_into(s, 2, "z"),
        lambda s: drill_into(s, s.level + 1, "w"),
        lambda s: drill_into(s, s.level + 1, "v"),
        lambda s: drill_into(s, s.level + 1, "u"),
        lambda s: jump_to_breadcrumb(s, 3),
        lambda s: switch_dimension(s, gmp_views[0]),
        lambda s: drill_into(s, 4, "skip"),
        back,
        reset,
    ]
    state = opened
    for step in steps:
        state = step(state)
        _assert_consistent(state)


def test_close_and_labels(opened):
    assert close_navigation(opened) is None
    assert close_navigation(None) is None
    assert level_label(1) == "Overview"
    assert level_label(4) == "Individual Items"
    assert level_label(7) == "Level 7"
