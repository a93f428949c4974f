"""Check the cluster and sweep rows written by the CLI against ``schema/segclust``.

Rows are validated as the plain dicts the handlers build, before pandas sees
them, so numpy scalars and non-finite floats are the only values that need
converting to their JSON form.
"""

from __future__ import annotations

import json
import math
from functools import lru_cache
from pathlib import Path
from typing import Iterable, Mapping

import numpy as np
from jsonschema import Draft202012Validator
from jsonschema.exceptions import best_match


SCHEMA_VERSION = "v1"

TABLE_SCHEMAS: Mapping[str, str] = {
    "cluster": "cluster.schema.json",
    "sweep": "sweep.schema.json",
}
"""Schema file for each output table the CLI writes."""


class OutputSchemaError(RuntimeError):
    """Raised when a row of a CLI output table does not match its schema."""

    def __init__(self, table: str, row: int, message: str) -> None:
        super().__init__(f"{table} row {row}: {message}")
        self.table = table
        self.row = row
        self.message = message


def validate_rows(
    table: str,
    rows: Iterable[Mapping[str, object]],
    *,
    schema_version: str = SCHEMA_VERSION,
) -> int:
    """Validate every row of ``table`` and return how many were checked.

    The first failing row raises :class:`OutputSchemaError` naming the row's
    position and the most relevant schema violation.
    """

    validator = _validator(table, schema_version)
    checked = 0
    for row_number, row in enumerate(rows):
        error = best_match(validator.iter_errors(_jsonable(row)))
        if error is not None:
            location = "/".join(str(part) for part in error.absolute_path)
            message = f"{location}: {error.message}" if location else error.message
            raise OutputSchemaError(table, row_number, message)
        checked += 1
    return checked


def _jsonable(row: Mapping[str, object]) -> dict[str, object]:
    converted: dict[str, object] = {}
    for key, value in row.items():
        if isinstance(value, np.generic):
            value = value.item()
        # nan and inf are written as null
        if isinstance(value, float) and not math.isfinite(value):
            value = None
        converted[key] = value
    return converted


@lru_cache(maxsize=None)
def _validator(table: str, schema_version: str) -> Draft202012Validator:
    filename = TABLE_SCHEMAS.get(table)
    if filename is None:
        raise ValueError(f"Unknown output table '{table}'")

    schema_path = _schema_directory(schema_version) / filename
    with schema_path.open(encoding="utf-8") as handle:
        schema = json.load(handle)
    Draft202012Validator.check_schema(schema)
    return Draft202012Validator(schema)


@lru_cache(maxsize=None)
def _schema_directory(schema_version: str) -> Path:
    here = Path(__file__).resolve()
    for parent in here.parents:
        candidate = parent / "schema" / "segclust" / schema_version
        if candidate.is_dir():
            return candidate
    raise FileNotFoundError(f"No schema/segclust/{schema_version} directory above '{here}'")


__all__ = [
    "OutputSchemaError",
    "SCHEMA_VERSION",
    "TABLE_SCHEMAS",
    "validate_rows",
]
