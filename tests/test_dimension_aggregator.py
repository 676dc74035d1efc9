import pytest

from regkpi.analytics.dimension_aggregator import (
    AggregationMode, Computed, Curated, DimensionView, DrillDownItem, Provenance, aggregate,
    breakdown_frame, canonical_order, category_values, filter_by_attributes, make_item, overall_item, pareto,
    partition, ratio_percentage,
    resolve_dimension
)


@pytest.fixture
def inspections(case):
    return (
        case("1", processing_days=40, inspection_mode="Remote"),
        case("2", processing_days=120, inspection_mode="On-site"),
        case("3", processing_days=60, inspection_mode="Remote"),
        case("4", processing_days=100, inspection_mode="Desk Review"),
        case("5", processing_days=20, inspection_mode="On-site"),
        case("6", processing_days=20),
    )


def test_ratio_items_follow_first_seen_order(inspections):
    items = aggregate(inspections, "inspection_mode")
    assert [i.category for i in items] == ["Remote", "On-site", "Desk Review"]
    remote = items[0]
    assert (remote.count, remote.total) == (2, 2)
    assert remote.percentage == pytest.approx(100.0)
    on_site = items[1]
    assert (on_site.count, on_site.total) == (1, 2)
    assert on_site.percentage == pytest.approx(50.0)


def test_partitions_cover_every_record_with_the_field(inspections):
    items = aggregate(inspections, "inspection_mode")
    with_field = [r for r in inspections if r.get("inspection_mode") is not None]
    assert sum(i.total for i in items) == len(with_field)
    for item in items:
        assert 0 <= item.count <= item.total
        assert len(partition(inspections, "inspection_mode", item.category)) == item.total


def test_tally_mode_reports_share_of_collection(case):
    records = [case(str(i), status=s) for i, s in enumerate(["Open", "Closed", "Closed", "Closed"])]
    items = aggregate(records, "status", AggregationMode.TALLY)
    assert [(i.category, i.count, i.total) for i in items] == [("Open", 1, 1), ("Closed", 3, 3)]
    assert [i.percentage for i in items] == pytest.approx([25.0, 75.0])


def test_missing_field_and_empty_input_give_no_items(inspections):
    assert aggregate(inspections, "facility_type") == []
    assert aggregate((), "inspection_mode") == []


def test_numeric_categories_are_compared_as_text(case):
    records = [case("a", risk=1), case("b", risk=1), case("c", risk=2), case("d")]
    items = aggregate(records, "risk")
    assert [i.category for i in items] == ["1", "2"]
    assert len(partition(records, "risk", "1")) == 2


def test_zero_total_gives_zero_percentage():
    assert ratio_percentage(0, 0) == 0.0
    assert make_item("Empty", 0, 0).percentage == 0.0


def test_item_rejects_count_above_total():
    with pytest.raises(ValueError):
        DrillDownItem(category="x", count=3, total=2, percentage=150.0)


def test_percentages_are_not_rounded():
    assert make_item("x", 1, 3).percentage == pytest.approx(33.333333, rel=1e-6)


def test_curated_view_ignores_records(inspections):
    curated = DimensionView("region", "Region", Curated((make_item("Central", 9, 10),)))
    breakdown = resolve_dimension(inspections, curated)
    assert breakdown.provenance is Provenance.CURATED
    assert [i.category for i in breakdown.items] == ["Central"]
    assert not curated.drillable
    assert curated.source_field is None


def test_computed_view_resolves_live(inspections):
    view = DimensionView("mode", "Mode", Computed("inspection_mode"), drill_field="facility_type")
    breakdown = resolve_dimension(inspections, view)
    assert breakdown.provenance is Provenance.COMPUTED
    assert breakdown.label == "Mode"
    assert view.drillable


def test_canonical_order_is_descending_and_stable():
    items = [make_item("a", 1, 5), make_item("b", 4, 5), make_item("c", 1, 2), make_item("d", 4, 4)]
    assert [i.category for i in canonical_order(items)] == ["b", "d", "a", "c"]


def test_pareto_accumulates_to_full_share():
    items = [make_item("a", 1, 1), make_item("b", 3, 3), make_item("c", 0, 1)]
    rows = pareto(items)
    assert [item.category for item, _ in rows] == ["b", "a", "c"]
    assert [cumulative for _, cumulative in rows] == pytest.approx([75.0, 100.0, 100.0])


def test_overall_item_and_frame(inspections):
    overall = overall_item(inspections)
    assert (overall.count, overall.total) == (4, 6)
    view = DimensionView("mode", "Mode", Computed("inspection_mode"))
    frame = breakdown_frame(resolve_dimension(inspections, view))
    assert list(frame.columns) == ["category", "count", "total", "percentage"]
    assert frame["total"].sum() == 5


def test_filter_by_attributes_requires_every_pair(case):
    records = (
        case("1", inspection_mode="Remote", status="Closed"),
        case("2", inspection_mode="Remote", status="Open"),
        case("3", inspection_mode="On-site", status="Closed"),
        case("4", inspection_mode=7),
    )
    assert filter_by_attributes(records, ()) == records
    assert [r.record_id for r in filter_by_attributes(records, (("inspection_mode", "Remote"),))] == ["1", "2"]
    both = filter_by_attributes(records, (("inspection_mode", "Remote"), ("status", "Closed")))
    assert [r.record_id for r in both] == ["1"]
    assert [r.record_id for r in filter_by_attributes(records, (("inspection_mode", "7"),))] == ["4"]
    assert filter_by_attributes(records, (("status", "Withdrawn"),)) == tuple()


def test_category_values_in_first_seen_order(inspections):
    assert category_values(inspections, "inspection_mode") == ["Remote", "On-site", "Desk Review"]
    assert category_values(inspections, "missing") == []


def test_only_computed_tally_views_are_tallies():
    assert DimensionView("status", "Status", Computed("status", AggregationMode.TALLY)).is_tally
    assert not DimensionView("mode", "Mode", Computed("inspection_mode")).is_tally
    assert not DimensionView("region", "Region", Curated((make_item("Central", 1, 2),))).is_tally
