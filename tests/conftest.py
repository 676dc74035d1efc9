import pytest

from regkpi.analytics.dimension_aggregator import AggregationMode, Computed, Curated, DimensionView, make_item
from regkpi.analytics.drilldown_engine import clear_caches
from regkpi.utils.records import CaseRecord

GMP_CASES = [
    {"record_id": "GMP-1", "completion_date": "2024-10-05", "processing_days": 40, "target_days": 90,
     "inspection_mode": "On-site", "facility_type": "Manufacturer", "stage_screening": 5, "stage_assessment": 35},
    {"record_id": "GMP-2", "completion_date": "2024-11-12", "processing_days": 120, "target_days": 90,
     "inspection_mode": "On-site", "facility_type": "Importer", "stage_screening": 20, "stage_assessment": 100},
    {"record_id": "GMP-3", "completion_date": "2024-12-01", "processing_days": 60, "target_days": 90,
     "inspection_mode": "Remote", "facility_type": "Manufacturer", "stage_screening": 8, "stage_assessment": 52},
    {"record_id": "GMP-4", "completion_date": "2024-08-20", "processing_days": 30, "target_days": 90,
     "inspection_mode": "Remote", "facility_type": "Manufacturer"},
    {"record_id": "GMP-5", "completion_date": "2024-10-30", "processing_days": 95, "target_days": 90,
     "inspection_mode": "On-site", "facility_type": "Manufacturer", "stage_screening": 12, "stage_assessment": 83},
]


def make_case(record_id, completion_date="2024-10-15", processing_days=None, target_days=90, on_time=None, **attributes):
    return CaseRecord.from_mapping({
        "record_id": record_id,
        "completion_date": completion_date,
        "processing_days": processing_days,
        "target_days": target_days,
        "on_time": on_time,
        **attributes,
    })


@pytest.fixture(autouse=True)
def _fresh_caches():
    clear_caches()
    yield
    clear_caches()


@pytest.fixture
def gmp_records():
    return tuple(CaseRecord.from_mapping(case) for case in GMP_CASES)


@pytest.fixture
def gmp_views():
    return (
        DimensionView("inspection_mode", "Inspection Mode", Computed("inspection_mode"), drill_field="facility_type"),
        DimensionView("status", "Case Status", Computed("status", AggregationMode.TALLY)),
        DimensionView("region", "Region (reference)", Curated((make_item("Central", 9, 10), make_item("Northern", 3, 4)))),
    )


@pytest.fixture
def case():
    return make_case
