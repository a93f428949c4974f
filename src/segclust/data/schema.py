"""Dataset schema definitions for segment ingestion."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Mapping, Sequence

import pandas as pd
from pandas._typing import DtypeArg

StringDtype = pd.StringDtype
Int64Dtype = pd.Int64Dtype


@dataclass(frozen=True)
class DatasetSchema:
    """Schema describing required columns and dtypes for a dataset."""

    name: str
    required_columns: Sequence[str]
    optional_columns: Sequence[str] = ()
    dtypes: Mapping[str, DtypeArg] = field(default_factory=dict)

    def missing_required(self, columns: Iterable[str]) -> list[str]:
        provided = {column for column in columns}
        return sorted(column for column in self.required_columns if column not in provided)

    @property
    def expected_columns(self) -> tuple[str, ...]:
        return tuple(self.required_columns) + tuple(self.optional_columns)

    def dtype_for_read(self) -> dict[str, DtypeArg]:
        """Return dtype mapping limited to expected columns."""
        return {column: dtype for column, dtype in self.dtypes.items() if column in self.expected_columns}

    def coerce_dtypes(self, frame: pd.DataFrame) -> pd.DataFrame:
        """Coerce columns that are present to their configured dtypes."""
        dtype_map = {column: dtype for column, dtype in self.dtype_for_read().items() if column in frame.columns}
        if dtype_map:
            frame = frame.astype(dtype_map, copy=False)
        return frame


STRING = StringDtype()
INT64 = Int64Dtype()
FLOAT64 = "float64"

SEGMENT_FEATURE_COLUMNS = ("StartDistance", "StartLogG", "EndDistance", "EndLogG")
"""Segment geometry (inter-electrode distance in nm, log10 conductance in G0)."""

SEGMENTS_SCHEMA = DatasetSchema(
    name="segments",
    required_columns=("TraceId",) + SEGMENT_FEATURE_COLUMNS,
    optional_columns=("SegmentId", "StartIndex", "EndIndex"),
    dtypes={
        "TraceId": "int64",
        "StartDistance": FLOAT64,
        "StartLogG": FLOAT64,
        "EndDistance": FLOAT64,
        "EndLogG": FLOAT64,
        "SegmentId": STRING,
        "StartIndex": INT64,
        "EndIndex": INT64,
    },
)

POINTS_SCHEMA = DatasetSchema(
    name="points",
    required_columns=("TraceId", "Distance", "LogG"),
    optional_columns=("PointIndex",),
    dtypes={
        "TraceId": "int64",
        "Distance": FLOAT64,
        "LogG": FLOAT64,
        "PointIndex": INT64,
    },
)

__all__ = [
    "DatasetSchema",
    "POINTS_SCHEMA",
    "SEGMENTS_SCHEMA",
    "SEGMENT_FEATURE_COLUMNS",
]
