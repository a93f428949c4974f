"""Data loading utilities for pre-segmented conductance traces."""

from .loaders import MissingColumnsError, load_points, load_segments
from .schema import (
    POINTS_SCHEMA,
    SEGMENT_FEATURE_COLUMNS,
    SEGMENTS_SCHEMA,
    DatasetSchema,
)
from .segments import (
    FORMAT_DATA_POINTS,
    FORMAT_LENGTH_WEIGHTED,
    FORMAT_SEGMENTS,
    ClusteringFormat,
    SegmentSet,
    weight_by_length,
)

__all__ = [
    "MissingColumnsError",
    "load_points",
    "load_segments",
    "POINTS_SCHEMA",
    "SEGMENT_FEATURE_COLUMNS",
    "SEGMENTS_SCHEMA",
    "DatasetSchema",
    "FORMAT_DATA_POINTS",
    "FORMAT_LENGTH_WEIGHTED",
    "FORMAT_SEGMENTS",
    "ClusteringFormat",
    "SegmentSet",
    "weight_by_length",
]
