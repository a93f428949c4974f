"""Pre-segmented trace data consumed by the clustering runner."""

from __future__ import annotations

from dataclasses import dataclass
import math
from typing import Literal, Sequence

import numpy as np
import pandas as pd

from .schema import SEGMENT_FEATURE_COLUMNS


ClusteringFormat = Literal["Segments", "Segments_LengthWeighting", "DataPoints"]

FORMAT_SEGMENTS: ClusteringFormat = "Segments"
FORMAT_LENGTH_WEIGHTED: ClusteringFormat = "Segments_LengthWeighting"
FORMAT_DATA_POINTS: ClusteringFormat = "DataPoints"
SUPPORTED_FORMATS = (FORMAT_SEGMENTS, FORMAT_LENGTH_WEIGHTED, FORMAT_DATA_POINTS)


@dataclass(frozen=True, slots=True, eq=False)
class SegmentSet:
    """Ordered, indexable collection of feature records with trace back-references.

    ``traces_used`` lists the traces that survived pre-segmentation (traces that
    were too short or noisy are absent). ``is_duplicate`` flags rows added by
    length weighting; they take part in clustering but not in cluster members.
    """

    frame: pd.DataFrame
    feature_columns: tuple[str, ...] = SEGMENT_FEATURE_COLUMNS
    format: ClusteringFormat = FORMAT_SEGMENTS
    traces_used: tuple[int, ...] | None = None
    is_duplicate: np.ndarray | None = None

    def __post_init__(self) -> None:
        if self.format not in SUPPORTED_FORMATS:
            raise ValueError(f"Unsupported clustering format '{self.format}'")
        feature_columns = tuple(self.feature_columns)
        if not feature_columns:
            raise ValueError("At least one feature column is required")
        required = ("TraceId",) + feature_columns
        missing = [column for column in required if column not in self.frame.columns]
        if missing:
            raise ValueError("Segment data is missing columns: " + ", ".join(missing))

        frame = self.frame.reset_index(drop=True).copy()
        object.__setattr__(self, "frame", frame)
        object.__setattr__(self, "feature_columns", feature_columns)

        if self.traces_used is None:
            traces = tuple(int(trace) for trace in sorted(pd.unique(frame["TraceId"])))
        else:
            traces = tuple(int(trace) for trace in self.traces_used)
        object.__setattr__(self, "traces_used", traces)

        if self.is_duplicate is None:
            duplicate = np.zeros(len(frame), dtype=bool)
        else:
            duplicate = np.asarray(self.is_duplicate, dtype=bool).copy()
            if duplicate.shape != (len(frame),):
                raise ValueError("is_duplicate must have one entry per segment")
        duplicate.flags.writeable = False
        object.__setattr__(self, "is_duplicate", duplicate)

    def __len__(self) -> int:
        return len(self.frame)

    def features(self) -> np.ndarray:
        """Feature matrix, one row per segment."""

        return self.frame.loc[:, list(self.feature_columns)].to_numpy(dtype=float, copy=True)

    def trace_ids(self) -> np.ndarray:
        return self.frame["TraceId"].to_numpy(dtype=np.int64, copy=True)

    def rows(self, indices: Sequence[int] | np.ndarray) -> pd.DataFrame:
        """Segment records for the given row indices, in the order given."""

        return self.frame.iloc[np.asarray(indices, dtype=np.int64)]


def weight_by_length(segments: SegmentSet, unit: float) -> SegmentSet:
    """Repeat each segment ``ceil(length / unit)`` times so long segments weigh more.

    Length is measured in the (distance, log conductance) plane. The first copy
    of each segment is the original; the rest are flagged as duplicates.
    """

    if unit <= 0:
        raise ValueError("Length unit must be positive")
    if segments.format != FORMAT_SEGMENTS:
        raise ValueError(f"Length weighting requires '{FORMAT_SEGMENTS}' data, got '{segments.format}'")

    frame = segments.frame
    lengths = np.hypot(
        frame["EndDistance"].to_numpy(dtype=float) - frame["StartDistance"].to_numpy(dtype=float),
        frame["EndLogG"].to_numpy(dtype=float) - frame["StartLogG"].to_numpy(dtype=float),
    )
    copies = np.array([max(1, math.ceil(length / unit)) for length in lengths], dtype=np.int64)

    repeated = np.repeat(np.arange(len(frame)), copies)
    is_duplicate = np.ones(repeated.size, dtype=bool)
    first_copy = np.concatenate(([0], np.cumsum(copies)[:-1])) if len(copies) else np.array([], dtype=np.int64)
    is_duplicate[first_copy] = False

    return SegmentSet(
        frame=frame.iloc[repeated].reset_index(drop=True),
        feature_columns=segments.feature_columns,
        format=FORMAT_LENGTH_WEIGHTED,
        traces_used=segments.traces_used,
        is_duplicate=is_duplicate,
    )


__all__ = [
    "ClusteringFormat",
    "FORMAT_DATA_POINTS",
    "FORMAT_LENGTH_WEIGHTED",
    "FORMAT_SEGMENTS",
    "SUPPORTED_FORMATS",
    "SegmentSet",
    "weight_by_length",
]
