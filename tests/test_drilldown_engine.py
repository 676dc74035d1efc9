import pytest

from regkpi.analytics.dimension_aggregator import Provenance
from regkpi.analytics.drill_navigation import drill_into, open_navigation, switch_dimension
from regkpi.analytics import statistical_summarizer
from regkpi.analytics.drilldown_engine import DrillDownEngine, DurationProfile, Headline, stage_summaries
from regkpi.analytics.period_filter import Annual, Quarterly
from regkpi.analytics.statistical_summarizer import NoData
from regkpi.analytics.time_bucketer import Granularity
from regkpi.utils.records import Percentage

Q4 = Quarterly("Q4", 2024)


@pytest.fixture
def engine(gmp_records, gmp_views):
    return DrillDownEngine(gmp_records, gmp_views, kpi_name="GMP Inspections", target_rate=90.0)


@pytest.fixture
def overview(gmp_views):
    return open_navigation("GMP Inspections", gmp_views)


class TestWholePeriodViews:
    def test_filtered_records(self, engine):
        assert [r.record_id for r in engine.filtered(Q4)] == ["GMP-1", "GMP-2", "GMP-3", "GMP-5"]

    def test_filtering_is_memoized(self, engine):
        assert engine.filtered(Q4) is engine.filtered(Q4)
        assert engine.breakdown(Q4, "inspection_mode") is engine.breakdown(Q4, "inspection_mode")

    def test_histogram_and_profile_are_memoized(self, engine, overview, monkeypatch):
        calls = []
        original = statistical_summarizer.clean_values

        def counting_clean_values(values):
            calls.append(1)
            return original(values)

        monkeypatch.setattr(statistical_summarizer, "clean_values", counting_clean_values)
        first = engine.histogram(Q4)
        assert engine.histogram(Q4) is first
        assert engine.histogram(Q4) is first
        assert len(calls) == 1

        state = drill_into(overview, 2, "On-site")
        profile = engine.duration_profile(state, Q4)
        after_first_profile = len(calls)
        assert engine.duration_profile(state, Q4) is profile
        assert engine.duration_profile(drill_into(overview, 2, "On-site"), Q4) is profile
        assert len(calls) == after_first_profile

    def test_breakdown(self, engine):
        breakdown = engine.breakdown(Q4, "inspection_mode")
        assert [(i.category, i.count, i.total) for i in breakdown.items] == [("On-site", 1, 3), ("Remote", 1, 1)]
        assert breakdown.items[0].percentage == pytest.approx(100 / 3)

    def test_unknown_dimension_gives_empty_breakdown(self, engine):
        breakdown = engine.breakdown(Q4, "nonexistent")
        assert breakdown.is_empty

    def test_curated_dimension(self, engine):
        breakdown = engine.breakdown(Q4, "region")
        assert breakdown.provenance is Provenance.CURATED
        assert [i.category for i in breakdown.items] == ["Central", "Northern"]

    def test_headline(self, engine):
        headline = engine.headline(Q4)
        assert isinstance(headline, Headline)
        assert (headline.on_time_count, headline.volume) == (2, 4)
        assert headline.on_time_rate == pytest.approx(50.0)
        assert headline.median_days == pytest.approx(77.5)
        assert headline.average_days == pytest.approx(78.75)
        assert isinstance(headline.as_kpi_value(), Percentage)
        assert headline.as_kpi_value().format() == "50.0%"

    def test_headline_without_cases(self, engine):
        assert isinstance(engine.headline(Quarterly("Q1", 2020)), NoData)
        assert isinstance(engine.summary(Quarterly("Q1", 2020)), NoData)
        assert engine.histogram(Quarterly("Q1", 2020)) == ()

    def test_histogram(self, engine):
        counts = {b.range: b.count for b in engine.histogram(Q4)}
        assert counts["30-59 days"] == 1
        assert counts["60-89 days"] == 1
        assert counts["90-119 days"] == 1
        assert counts["120-149 days"] == 1

    def test_trend(self, engine):
        annual = Annual(2024)
        assert [b.key for b in engine.trend(annual)] == ["2024"]
        quarterly = engine.trend(annual, Granularity.QUARTERLY)
        assert [(b.key, b.volume) for b in quarterly] == [("Q3 2024", 1), ("Q4 2024", 4)]
        points = engine.trend_points(annual)
        assert points[0].value == pytest.approx(60.0)
        assert points[0].target == 90.0
        assert engine.trend_points(annual, metric="volume")[0].target is None


class TestLevelViews:
    def test_overview(self, engine, overview):
        view = engine.level_view(overview, Q4)
        assert view.level == 1
        assert view.title == "Overview"
        assert view.drillable
        assert [i.category for i in view.breakdown.items] == ["On-site", "Remote"]

    def test_level_two_breaks_the_category_down(self, engine, overview):
        state = drill_into(overview, 2, "On-site")
        view = engine.level_view(state, Q4)
        assert view.title == "Level 2 Breakdown"
        assert [(i.category, i.count, i.total) for i in view.breakdown.items] == [
            ("Manufacturer", 1, 2), ("Importer", 0, 1),
        ]
        assert view.breakdown.label == "facility_type".replace("_", " ").title()

    def test_level_three_stage_summaries(self, engine, overview):
        state = drill_into(drill_into(overview, 2, "On-site"), 3, "Manufacturer")
        assert [r.record_id for r in engine.narrowed(state, Q4)] == ["GMP-1", "GMP-5"]
        view = engine.level_view(state, Q4)
        assert [(s.stage, s.days, s.on_time) for s in view.stages] == [
            ("screening", pytest.approx(8.5), True), ("assessment", pytest.approx(59.0), False),
        ]

    def test_level_four_lists_slowest_first(self, engine, overview):
        state = drill_into(drill_into(drill_into(overview, 2, "On-site"), 3, "Manufacturer"), 4, "assessment")
        view = engine.level_view(state, Q4)
        assert view.level == 4
        assert not view.drillable
        assert [r.record_id for r in view.records] == ["GMP-5", "GMP-1"]

    def test_non_drillable_dimension_view(self, engine, overview, gmp_views):
        state = switch_dimension(overview, gmp_views[1])
        view = engine.level_view(state, Q4)
        assert not view.drillable
        assert view.is_empty

    def test_empty_period(self, engine, overview):
        assert engine.level_view(overview, Quarterly("Q1", 2020)).is_empty


def test_stage_summaries_without_targets(gmp_records):
    summaries = stage_summaries(gmp_records, {})
    assert all(s.on_time for s in summaries)
    assert summaries[0].cases == 4


class TestAttributeFilters:
    MANUFACTURERS = (("facility_type", "Manufacturer"),)

    def test_filters_narrow_the_working_set(self, engine):
        assert [r.record_id for r in engine.filtered(Q4, self.MANUFACTURERS)] == ["GMP-1", "GMP-3", "GMP-5"]
        breakdown = engine.breakdown(Q4, "inspection_mode", self.MANUFACTURERS)
        assert [(i.category, i.count, i.total) for i in breakdown.items] == [("On-site", 1, 2), ("Remote", 1, 1)]
        assert engine.headline(Q4, self.MANUFACTURERS).volume == 3
        assert sum(b.count for b in engine.histogram(Q4, self.MANUFACTURERS)) == 3

    def test_filters_reach_the_level_views(self, engine, overview):
        state = drill_into(overview, 2, "On-site")
        view = engine.level_view(state, Q4, self.MANUFACTURERS)
        assert [(i.category, i.count, i.total) for i in view.breakdown.items] == [("Manufacturer", 1, 2)]

    def test_no_match_falls_back_to_the_period(self, engine):
        unmatched = (("facility_type", "Distributor"),)
        assert engine.filtered(Q4, unmatched) == engine.filtered(Q4)
        assert engine.headline(Q4, unmatched).volume == 4

    def test_empty_period_stays_empty(self, engine):
        assert engine.filtered(Quarterly("Q1", 2020), self.MANUFACTURERS) == tuple()


class TestDurationProfile:
    def test_overview_profile(self, engine, overview):
        profile = engine.duration_profile(overview, Q4)
        assert isinstance(profile, DurationProfile)
        assert profile.summary.median == pytest.approx(77.5)
        assert dict(profile.percentiles)["p50"] == pytest.approx(77.5)
        assert profile.mode == 40.0
        assert sum(b.count for b in profile.bins) == 4

    def test_profile_follows_the_drill_path_and_filters(self, engine, overview):
        state = drill_into(overview, 2, "On-site")
        assert engine.duration_profile(state, Q4).summary.median == pytest.approx(95.0)
        filtered = engine.duration_profile(state, Q4, (("facility_type", "Manufacturer"),))
        assert filtered.summary.median == pytest.approx(67.5)

    def test_empty_selection(self, engine, overview):
        profile = engine.duration_profile(overview, Quarterly("Q1", 2020))
        assert isinstance(profile.summary, NoData)
        assert profile.bins == ()
        assert profile.percentiles == ()
        assert profile.mode is None
