"""Utilities for loading and validating pre-segmented trace datasets."""

from __future__ import annotations

from pathlib import Path
from typing import Sequence

import pandas as pd

from .schema import POINTS_SCHEMA, SEGMENTS_SCHEMA, DatasetSchema
from .segments import FORMAT_DATA_POINTS, FORMAT_SEGMENTS, SegmentSet

__all__ = [
    "MissingColumnsError",
    "load_points",
    "load_segments",
]


class MissingColumnsError(ValueError):
    """Raised when a dataset is missing required columns."""

    def __init__(self, schema: DatasetSchema, missing: list[str]):
        message = (
            f"{schema.name.title()} data is missing required columns: {', '.join(missing)}. "
            f"Expected columns include: {', '.join(schema.required_columns)}."
        )
        super().__init__(message)
        self.schema = schema
        self.missing = missing


def load_segments(
    path: str | Path,
    *,
    feature_columns: Sequence[str] | None = None,
) -> SegmentSet:
    """Load segment features from CSV or JSON and wrap them in a ``SegmentSet``."""

    frame = _load_and_validate(path, SEGMENTS_SCHEMA)
    columns = tuple(feature_columns) if feature_columns else SEGMENTS_SCHEMA.required_columns[1:]
    missing = [column for column in columns if column not in frame.columns]
    if missing:
        raise MissingColumnsError(SEGMENTS_SCHEMA, missing)
    return SegmentSet(frame=frame, feature_columns=columns, format=FORMAT_SEGMENTS)


def load_points(path: str | Path) -> SegmentSet:
    """Load raw (distance, log conductance) points for point-wise clustering."""

    frame = _load_and_validate(path, POINTS_SCHEMA)
    return SegmentSet(frame=frame, feature_columns=("Distance", "LogG"), format=FORMAT_DATA_POINTS)


def _load_and_validate(path_like: str | Path, schema: DatasetSchema) -> pd.DataFrame:
    path = Path(path_like)
    frame = _read_structured_file(path, schema)
    missing = schema.missing_required(frame.columns)
    if missing:
        raise MissingColumnsError(schema, missing)
    return schema.coerce_dtypes(frame)


def _read_structured_file(path: Path, schema: DatasetSchema) -> pd.DataFrame:
    suffix = path.suffix.lower()
    if suffix == ".csv":
        return pd.read_csv(path, dtype=schema.dtype_for_read())
    if suffix in {".json", ".jsonl", ".ndjson"}:
        return _read_json(path)
    raise ValueError(f"Unsupported file type '{suffix}' for {schema.name} data")


def _read_json(path: Path) -> pd.DataFrame:
    raw = path.read_text(encoding="utf-8").strip()
    if not raw:
        return pd.DataFrame()
    if raw[0] == "{":
        return pd.read_json(path, lines=True)
    return pd.read_json(path)
