"""
Case record model for the drill-down engine.

A case record is one regulatory case (a GMP inspection, a marketing
authorization application, a complaint investigation). Records are immutable
and hashable, which lets the engine memoize its derived DataFrames and sorted
duration arrays on the record tuple itself.

This module also owns the bridge from loose inputs (dicts, uploaded CSV
files) to records, and from records to the pandas DataFrame the analytics
functions operate on.
"""

# --- Standard Library Imports ---
import logging
import math
from dataclasses import dataclass, field
from datetime import date, datetime
from functools import lru_cache
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

# --- Third-party Imports ---
import numpy as np
import pandas as pd

# --- Setup Logging ---
logger = logging.getLogger(__name__)

# --- Type Aliases for clarity ---
Timestampish = Union[str, date, datetime, pd.Timestamp, None]

_RESERVED_KEYS = {
    "record_id", "id", "completion_date", "start_date", "processing_days",
    "target_days", "on_time", "stages",
}
_STAGE_PREFIX = "stage_"
_TRUE_STRINGS = {"true", "yes", "y", "1", "on-time", "on time"}
_FALSE_STRINGS = {"false", "no", "n", "0", "late", "delayed"}


# ==============================================================================
# --- PARSING HELPERS ---
# ==============================================================================

def parse_timestamp(value: Timestampish) -> Optional[pd.Timestamp]:
    """
    Parses a record timestamp into a naive pandas Timestamp.

    Returns None for absent, blank or unparseable values. Timezone-aware
    values are converted to UTC and made naive so that every timestamp in a
    collection is comparable.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float, np.integer, np.floating)):
        return _parse_compact_date(value)
    if isinstance(value, str) and not value.strip():
        return None
    try:
        ts = pd.to_datetime(value, errors="coerce")
    except (TypeError, ValueError, OverflowError):
        return None
    if ts is None or pd.isna(ts) or not isinstance(ts, pd.Timestamp):
        return None
    if ts.tzinfo is not None:
        ts = ts.tz_convert(None)
    return ts


def _parse_compact_date(value: Union[int, float]) -> Optional[pd.Timestamp]:
    """
    Numbers are only accepted as ``YYYYMMDD`` dates, the shape pandas gives a
    compact date column read from CSV. Anything else (epoch offsets, durations,
    NaN) is treated as unparseable rather than as nanoseconds since 1970.
    """
    if isinstance(value, (float, np.floating)) and not (math.isfinite(value) and float(value).is_integer()):
        return None
    number = int(value)
    if not 10000101 <= number <= 99991231:
        return None
    ts = pd.to_datetime(str(number), format="%Y%m%d", errors="coerce")
    return None if pd.isna(ts) else ts


def _to_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _to_bool(value: Any) -> Optional[bool]:
    if value is None:
        return None
    if isinstance(value, (bool, np.bool_)):
        return bool(value)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        if isinstance(value, float) and math.isnan(value):
            return None
        return bool(value)
    text = str(value).strip().lower()
    if text in _TRUE_STRINGS:
        return True
    if text in _FALSE_STRINGS:
        return False
    return None


def _freeze(value: Any) -> Any:
    if isinstance(value, list):
        return tuple(_freeze(v) for v in value)
    if isinstance(value, dict):
        return tuple(sorted((str(k), _freeze(v)) for k, v in value.items()))
    if isinstance(value, float) and math.isnan(value):
        return None
    return value


# ==============================================================================
# --- RECORD MODEL ---
# ==============================================================================

@dataclass(frozen=True)
class CaseRecord:
    """
    An immutable regulatory case.

    Attributes:
        record_id: Case number (inspection number, MA number, ...).
        completion_date: When the case was decided or completed, if known.
        start_date: When the case was opened; used when there is no completion date.
        processing_days: Elapsed processing time in days.
        target_days: The timeline the case is measured against.
        on_time: Explicit on-time flag; derived from the timeline when absent.
        attributes: Categorical fields as sorted (name, value) pairs.
        stages: Per-stage durations in days as (stage, days) pairs.
    """
    record_id: str
    completion_date: Timestampish = None
    start_date: Timestampish = None
    processing_days: Optional[float] = None
    target_days: Optional[float] = None
    on_time: Optional[bool] = None
    attributes: Tuple[Tuple[str, Any], ...] = field(default_factory=tuple)
    stages: Tuple[Tuple[str, float], ...] = field(default_factory=tuple)

    @property
    def timestamp(self) -> Optional[pd.Timestamp]:
        """Completion date if parseable, otherwise the start date."""
        completed = parse_timestamp(self.completion_date)
        if completed is not None:
            return completed
        return parse_timestamp(self.start_date)

    @property
    def is_on_time(self) -> bool:
        if self.on_time is not None:
            return bool(self.on_time)
        if self.processing_days is not None and self.target_days is not None:
            return self.processing_days <= self.target_days
        return False

    def get(self, name: str, default: Any = None) -> Any:
        """Returns a categorical attribute by name."""
        for key, value in self.attributes:
            if key == name:
                return value
        return default

    def stage_days(self, stage: str) -> Optional[float]:
        for key, value in self.stages:
            if key == stage:
                return value
        return None

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> "CaseRecord":
        """Builds a record from a loose dict; unrecognised keys become attributes."""
        record_id = mapping.get("record_id", mapping.get("id"))
        if record_id is None or str(record_id).strip() == "":
            raise ValueError("A case record needs a 'record_id' (or 'id').")

        stages: Dict[str, float] = {}
        raw_stages = mapping.get("stages") or {}
        if isinstance(raw_stages, Mapping):
            for stage, days in raw_stages.items():
                days_f = _to_float(days)
                if days_f is not None:
                    stages[str(stage)] = days_f

        attributes: Dict[str, Any] = {}
        for key, value in mapping.items():
            if key in _RESERVED_KEYS:
                continue
            if key.startswith(_STAGE_PREFIX):
                days_f = _to_float(value)
                if days_f is not None:
                    stages[key[len(_STAGE_PREFIX):]] = days_f
                continue
            frozen = _freeze(value)
            if frozen is not None:
                attributes[str(key)] = frozen

        return cls(
            record_id=str(record_id),
            completion_date=mapping.get("completion_date"),
            start_date=mapping.get("start_date"),
            processing_days=_to_float(mapping.get("processing_days")),
            target_days=_to_float(mapping.get("target_days")),
            on_time=_to_bool(mapping.get("on_time")),
            attributes=tuple(sorted(attributes.items())),
            stages=tuple(stages.items()),
        )


# ==============================================================================
# --- KPI HEADLINE VALUE (tagged variant) ---
# ==============================================================================

@dataclass(frozen=True)
class KPIValue:
    """Base of the KPI headline variants; use one of the subclasses."""
    value: float
    numerator: Optional[float] = None
    denominator: Optional[float] = None

    @property
    def completion_ratio(self) -> Optional[float]:
        if self.numerator is None or not self.denominator:
            return None
        return self.numerator / self.denominator * 100

    def format(self, decimals: int = 1) -> str:
        return f"{self.value:g}"


@dataclass(frozen=True)
class Percentage(KPIValue):
    def format(self, decimals: int = 1) -> str:
        return f"{self.value:.{decimals}f}%"


@dataclass(frozen=True)
class Median(KPIValue):
    def format(self, decimals: int = 1) -> str:
        return f"{self.value:g} days"


@dataclass(frozen=True)
class Average(KPIValue):
    def format(self, decimals: int = 1) -> str:
        return f"{self.value:.{decimals}f} days"


@dataclass(frozen=True)
class Raw(KPIValue):
    pass


# ==============================================================================
# --- LOADING & DATAFRAME BRIDGE ---
# ==============================================================================

def load_records(frame: pd.DataFrame) -> Tuple[CaseRecord, ...]:
    """
    Converts a DataFrame (typically an uploaded CSV) into case records.

    Columns prefixed with ``stage_`` become stage durations. Rows that cannot
    be converted (e.g. no record id) are skipped and logged.

    Args:
        frame (pd.DataFrame): One row per case.

    Returns:
        Tuple[CaseRecord, ...]: The converted records in row order.
    """
    if not isinstance(frame, pd.DataFrame) or frame.empty:
        logger.info("No rows supplied to load_records. Returning no records.")
        return tuple()

    records: List[CaseRecord] = []
    skipped = 0
    clean = frame.astype(object).where(pd.notna(frame), None)
    for row in clean.to_dict("records"):
        try:
            records.append(CaseRecord.from_mapping(row))
        except ValueError as e:
            skipped += 1
            logger.warning(f"Skipping malformed case row: {e}")
    logger.info(f"Loaded {len(records)} case records ({skipped} skipped).")
    return tuple(records)


def coerce_records(records: Iterable[Union[CaseRecord, Mapping[str, Any]]]) -> Tuple[CaseRecord, ...]:
    """Normalizes a mixed iterable of records/dicts into a hashable record tuple."""
    if isinstance(records, tuple) and all(isinstance(r, CaseRecord) for r in records):
        return records
    return tuple(r if isinstance(r, CaseRecord) else CaseRecord.from_mapping(r) for r in records)


@lru_cache(maxsize=64)
def _frame_for(records: Tuple[CaseRecord, ...]) -> pd.DataFrame:
    rows = []
    for position, record in enumerate(records):
        row: Dict[str, Any] = dict(record.attributes)
        row.update({
            "_position": position,
            "record_id": record.record_id,
            "timestamp": record.timestamp,
            "processing_days": record.processing_days,
            "on_time": record.is_on_time,
        })
        rows.append(row)
    df = pd.DataFrame(rows, columns=None if rows else ["_position", "record_id", "timestamp", "processing_days", "on_time"])
    df["timestamp"] = pd.to_datetime(df["timestamp"], errors="coerce")
    df["processing_days"] = pd.to_numeric(df["processing_days"], errors="coerce")
    df["on_time"] = df["on_time"].astype(bool)
    logger.debug(f"Built working frame with {len(df)} rows and {len(df.columns)} columns.")
    return df


def records_to_frame(records: Sequence[CaseRecord]) -> pd.DataFrame:
    """
    Returns the engine's working DataFrame for a record collection.

    Columns: ``_position`` (index into the input), ``record_id``,
    ``timestamp`` (NaT when unparseable), ``processing_days``, ``on_time``
    and one column per categorical attribute. The frame is cached per record
    tuple; callers receive a copy and may modify it freely.
    """
    return _frame_for(coerce_records(records)).copy()
