from regkpi.analytics.drill_navigation import drill_into, open_navigation
from regkpi.analytics.drilldown_engine import DrillDownEngine
from regkpi.analytics.period_filter import Quarterly
from regkpi.kpi_sections.drilldown_view import (
    breadcrumb_trail, drill_options, late_case_items, records_table, selected_attribute_filters, stage_table
)

Q4 = Quarterly("Q4", 2024)


def test_breadcrumb_trail(gmp_views):
    state = drill_into(open_navigation("GMP", gmp_views), 2, "Remote")
    assert breadcrumb_trail(state) == "GMP › Level 2 Breakdown: Remote"


def test_tables_and_options_per_level(gmp_records, gmp_views):
    engine = DrillDownEngine(gmp_records, gmp_views)
    overview = open_navigation("GMP", gmp_views)
    assert drill_options(engine.level_view(overview, Q4)) == ["On-site", "Remote"]

    level3 = drill_into(drill_into(overview, 2, "On-site"), 3, "Manufacturer")
    view3 = engine.level_view(level3, Q4)
    assert drill_options(view3) == ["screening", "assessment"]
    assert list(stage_table(view3)["Status"]) == ["On Time", "Delayed"]

    level4 = drill_into(level3, 4, "assessment")
    view4 = engine.level_view(level4, Q4)
    assert drill_options(view4) == []
    table = records_table(view4.records, stage="assessment")
    assert list(table["Case"]) == ["GMP-5", "GMP-1"]
    assert list(table["Assessment Days"]) == [83.0, 35.0]
    assert list(table["On Time"]) == ["No", "Yes"]
    assert "Inspection Mode" in table.columns


def test_selected_attribute_filters_skip_all():
    selection = {"inspection_mode": "All", "facility_type": "Manufacturer", "status": "Closed"}
    assert selected_attribute_filters(selection) == (("facility_type", "Manufacturer"), ("status", "Closed"))
    assert selected_attribute_filters({"status": "All"}) == ()


def test_late_case_items_count_late_cases_per_category(gmp_records, gmp_views):
    engine = DrillDownEngine(gmp_records, gmp_views)
    items = late_case_items(engine.breakdown(Q4, "inspection_mode"), gmp_views[0])
    assert [(i.category, i.count, i.total) for i in items] == [("On-site", 2, 3), ("Remote", 0, 1)]


def test_tally_dimensions_have_no_late_cases(case, gmp_views):
    records = (case("A", status="Closed", processing_days=40), case("B", status="Open", processing_days=120))
    engine = DrillDownEngine(records, gmp_views)
    breakdown = engine.breakdown(Q4, "status")
    assert not breakdown.is_empty
    assert late_case_items(breakdown, gmp_views[1]) == []
    assert late_case_items(breakdown, None) == []
