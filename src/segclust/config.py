"""Run configuration for clustering sweeps and full-valley extraction."""

from __future__ import annotations

from dataclasses import dataclass, fields, replace
import json
import math
from pathlib import Path
from typing import Any, Mapping

from .clustering.ranking import DEFAULT_CUTOFF_FRAC
from .clustering.reachability import DensityClusteringParameters
from .clustering.valleys import InvalidParameterError
from .data.schema import SEGMENT_FEATURE_COLUMNS


DEFAULT_MIN_PTS_VALUES = (10, 20, 30, 40, 50, 60, 70, 80, 90, 100, 110, 120)
DEFAULT_REFERENCE_INDEX = 5


class ConfigError(ValueError):
    """Raised when a configuration file cannot be interpreted."""


@dataclass(slots=True)
class ExtractionConfig:
    """Options recognised by the sweep and extraction commands."""

    cutoff_frac: float = DEFAULT_CUTOFF_FRAC
    min_pts_values: tuple[int, ...] = DEFAULT_MIN_PTS_VALUES
    reference_index: int = DEFAULT_REFERENCE_INDEX
    feature_columns: tuple[str, ...] = SEGMENT_FEATURE_COLUMNS
    metric: str = "euclidean"
    max_eps: float = math.inf
    backend: str = "optics"
    length_unit: float | None = None
    n_jobs: int = 1

    def __post_init__(self) -> None:
        self.min_pts_values = tuple(self.min_pts_values)
        self.feature_columns = tuple(self.feature_columns)

    def validate(self, *, check_reference: bool = True) -> "ExtractionConfig":
        """Raise ``InvalidParameterError`` for out-of-range options.

        With ``check_reference=False`` the reference index is left for the
        caller to check against the sweep it actually loads.
        """

        if not 0.0 < self.cutoff_frac < 1.0:
            raise InvalidParameterError("cutoff_frac must lie strictly between 0 and 1")
        if not self.min_pts_values:
            raise InvalidParameterError("min_pts_values cannot be empty")
        if any(isinstance(value, bool) or not isinstance(value, int) or value < 1 for value in self.min_pts_values):
            raise InvalidParameterError("min_pts_values must be positive integers")
        if self.reference_index < 0:
            raise InvalidParameterError("reference_index must be non-negative")
        if check_reference and self.reference_index >= len(self.min_pts_values):
            raise InvalidParameterError(
                f"reference_index {self.reference_index} is out of range for "
                f"{len(self.min_pts_values)} minPts values"
            )
        if self.length_unit is not None and self.length_unit <= 0:
            raise InvalidParameterError("length_unit must be positive")
        return self

    def density_parameters(self) -> DensityClusteringParameters:
        """Template pass parameters; ``min_pts`` is set per sweep value."""

        return DensityClusteringParameters(
            min_pts=self.min_pts_values[0],
            max_eps=self.max_eps,
            metric=self.metric,  # type: ignore[arg-type]
            backend=self.backend,  # type: ignore[arg-type]
        )

    def merged(self, overrides: Mapping[str, Any]) -> "ExtractionConfig":
        """Return a copy with the non-``None`` values of ``overrides`` applied."""

        known = {item.name for item in fields(self)}
        updates = {key: value for key, value in overrides.items() if key in known and value is not None}
        return replace(self, **updates)


def load_config(path: str | Path) -> ExtractionConfig:
    """Read an ``ExtractionConfig`` from a JSON object."""

    path = Path(path)
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise ConfigError(f"Configuration file '{path}' was not found") from exc
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Failed to parse configuration JSON: {exc}") from exc

    if not isinstance(raw, dict):
        raise ConfigError("Configuration JSON must be an object")

    known = {item.name for item in fields(ExtractionConfig)}
    unknown = sorted(set(raw) - known)
    if unknown:
        raise ConfigError("Unknown configuration keys: " + ", ".join(unknown))

    if raw.get("max_eps") is None:
        raw.pop("max_eps", None)
    try:
        config = ExtractionConfig(**raw)
    except TypeError as exc:
        raise ConfigError(f"Invalid configuration: {exc}") from exc
    return config.validate()


__all__ = [
    "ConfigError",
    "DEFAULT_MIN_PTS_VALUES",
    "DEFAULT_REFERENCE_INDEX",
    "ExtractionConfig",
    "load_config",
]
