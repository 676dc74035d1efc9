from datetime import date

from regkpi.analytics.drill_navigation import drill_into, open_navigation
from regkpi.analytics.period_filter import Annual, Quarterly
from regkpi.utils.session_state_manager import SessionStateManager


def _manager(state=None):
    return SessionStateManager(state if state is not None else {}, today=date(2024, 11, 5))


def test_defaults_to_current_quarter():
    assert _manager().get_period_filter() == Quarterly("Q4", 2024)


def test_existing_state_is_preserved():
    state = {}
    first = _manager(state)
    first.set_period_filter(Annual(2023))
    first.update_data([1, 2], "uploads", "rows")
    second = _manager(state)
    assert second.get_period_filter() == Annual(2023)
    assert second.get_data("uploads", "rows") == [1, 2]


def test_sectioned_data_store():
    ssm = _manager()
    assert ssm.get_data("missing") is None
    assert ssm.get_data("missing", "key") is None
    ssm.update_data({"a": 1}, "settings")
    ssm.update_data(2, "settings", "b")
    assert ssm.get_data("settings") == {"a": 1, "b": 2}
    assert ssm.get_data("settings", "a") == 1


def test_navigation_is_tracked_per_kpi(gmp_views):
    ssm = _manager()
    assert ssm.get_navigation("gmp") is None
    state = drill_into(open_navigation("GMP", gmp_views), 2, "Remote")
    ssm.set_navigation("gmp", state)
    ssm.set_navigation("ma", open_navigation("MA", gmp_views))
    assert ssm.get_navigation("gmp").level == 2
    ssm.close_drilldown("gmp")
    assert ssm.get_navigation("gmp") is None
    assert ssm.get_navigation("ma").level == 1
    ssm.close_drilldown("never-opened")
