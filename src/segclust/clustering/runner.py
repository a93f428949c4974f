"""Multi-resolution clustering over a list of ``minPts`` values."""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
from types import MappingProxyType
from typing import Callable, Dict, Iterator, Literal, Mapping, Sequence

from joblib import Parallel, delayed
import numpy as np
import pandas as pd

from ..data.segments import FORMAT_LENGTH_WEIGHTED, ClusteringFormat, SegmentSet
from .fingerprint import hash_payload
from .ranking import DEFAULT_CUTOFF_FRAC, ExtractedCluster, FullValleyClusters, find_full_valley_clusters
from .reachability import DensityClusteringParameters, ReachabilityProfile, compute_reachability
from .valleys import InvalidParameterError


logger = logging.getLogger(__name__)

DensityPass = Callable[[np.ndarray, DensityClusteringParameters], ReachabilityProfile]


class ClusteringPassError(RuntimeError):
    """Raised when the density-clustering pass fails for one ``minPts`` value."""

    def __init__(self, min_pts: int, index: int, reason: str) -> None:
        super().__init__(
            f"Density clustering failed for minPts={min_pts} (parameter index {index}): {reason}"
        )
        self.min_pts = min_pts
        self.index = index
        self.reason = reason

    def __reduce__(self):
        return (type(self), (self.min_pts, self.index, self.reason))


class ClusteringCancelled(RuntimeError):
    """Raised when the caller aborts a batch between parameters."""

    def __init__(self, completed: int, total: int) -> None:
        super().__init__(f"Clustering cancelled after {completed} of {total} parameters")
        self.completed = completed
        self.total = total

    def __reduce__(self):
        return (type(self), (self.completed, self.total))


@dataclass(frozen=True, slots=True, eq=False)
class ClusteringOutput:
    """Result of one density-clustering pass, read-only once produced."""

    min_pts: int
    profile: ReachabilityProfile
    segments: SegmentSet
    metrics: Mapping[str, float | int | str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if len(self.profile) != len(self.segments):
            raise ValueError(
                "Profile length does not match the number of clustered units "
                f"({len(self.profile)} != {len(self.segments)})"
            )
        object.__setattr__(self, "metrics", MappingProxyType(dict(self.metrics)))

    @property
    def format(self) -> ClusteringFormat:
        return self.segments.format

    @property
    def ordering(self) -> np.ndarray:
        return self.profile.ordering

    def full_valley_clusters(self, cutoff_frac: float = DEFAULT_CUTOFF_FRAC) -> FullValleyClusters:
        return find_full_valley_clusters(self.profile, cutoff_frac)

    def cluster_members(self, cluster: ExtractedCluster) -> np.ndarray:
        """Original segment rows belonging to ``cluster``, in profile order.

        Length-weighted data drops the duplicate copies so each segment is
        reported once.
        """

        members = self.profile.ordering[cluster.positions()]
        if self.format == FORMAT_LENGTH_WEIGHTED:
            members = members[~self.segments.is_duplicate[members]]
        return members

    def cluster_segments(self, cluster: ExtractedCluster) -> pd.DataFrame:
        return self.segments.rows(self.cluster_members(cluster))

    def cluster_traces(self, cluster: ExtractedCluster) -> tuple[int, ...]:
        trace_ids = self.segments.trace_ids()[self.cluster_members(cluster)]
        return tuple(int(trace) for trace in np.unique(trace_ids))


@dataclass(frozen=True, slots=True, eq=False)
class MultiResolutionResult:
    """Clustering outputs keyed by parameter index."""

    outputs: Mapping[int, ClusteringOutput]
    min_pts_values: tuple[int, ...]
    traces_used: tuple[int, ...]
    fingerprint: str = ""

    def __post_init__(self) -> None:
        if sorted(self.outputs) != list(range(len(self.min_pts_values))):
            raise ValueError("Outputs must be keyed by every parameter index exactly once")
        object.__setattr__(self, "outputs", MappingProxyType(dict(self.outputs)))
        object.__setattr__(self, "min_pts_values", tuple(int(value) for value in self.min_pts_values))
        object.__setattr__(self, "traces_used", tuple(int(trace) for trace in self.traces_used))

    def __getitem__(self, index: int) -> ClusteringOutput:
        return self.outputs[index]

    def __iter__(self) -> Iterator[int]:
        return iter(range(len(self.min_pts_values)))

    def __len__(self) -> int:
        return len(self.min_pts_values)

    def reference(self, index: int) -> ClusteringOutput:
        """Output used for the representative display."""

        if not 0 <= index < len(self.min_pts_values):
            raise InvalidParameterError(
                f"Reference parameter index {index} is out of range for "
                f"{len(self.min_pts_values)} minPts values"
            )
        return self.outputs[index]

    def metric_records(self) -> list[dict[str, object]]:
        """One dict of pass metrics per parameter index."""

        return [
            {"index": index, "min_pts": self.outputs[index].min_pts, **dict(self.outputs[index].metrics)}
            for index in self
        ]

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame.from_records(self.metric_records())


def fingerprint_inputs(
    segments: SegmentSet,
    min_pts_values: Sequence[int],
    params: DensityClusteringParameters,
) -> str:
    """Hash everything that determines the clustering outputs."""

    template = params.to_dict()
    template.pop("min_pts")
    return hash_payload(
        {
            "features": segments.features(),
            "trace_ids": segments.trace_ids(),
            "is_duplicate": segments.is_duplicate,
            "feature_columns": segments.feature_columns,
            "format": segments.format,
            "traces_used": segments.traces_used,
            "min_pts_values": [int(value) for value in min_pts_values],
            "params": template,
        }
    )


def run_all(
    segments: SegmentSet,
    min_pts_values: Sequence[int],
    *,
    params: DensityClusteringParameters | None = None,
    density_pass: DensityPass | None = None,
    n_jobs: int = 1,
    prefer: Literal["processes", "threads"] = "processes",
    should_cancel: Callable[[], bool] | None = None,
) -> MultiResolutionResult:
    """Cluster ``segments`` once per ``minPts`` value.

    The batch fails fast: the first failing pass raises ``ClusteringPassError``
    and no further parameters are processed.
    """

    values = _validate_min_pts(min_pts_values)
    if len(segments) == 0:
        raise InvalidParameterError("Cannot cluster an empty segment set")

    template = params or DensityClusteringParameters()
    runner = density_pass or compute_reachability
    features = segments.features()
    total = len(values)

    logger.info(
        "Clustering %d %s units from %d traces at %d minPts values",
        len(segments),
        segments.format,
        len(segments.traces_used),
        total,
    )

    slots: list[ClusteringOutput | None] = [None] * total
    if n_jobs == 1:
        for index, min_pts in enumerate(values):
            if should_cancel is not None and should_cancel():
                logger.warning("Clustering cancelled before minPts=%d", min_pts)
                raise ClusteringCancelled(index, total)
            slots[index] = _cluster_once(
                runner, features, segments, template.with_min_pts(min_pts), index
            )
    else:
        if should_cancel is not None and should_cancel():
            raise ClusteringCancelled(0, total)
        outputs = Parallel(n_jobs=n_jobs, prefer=prefer)(
            delayed(_cluster_once)(runner, features, segments, template.with_min_pts(min_pts), index)
            for index, min_pts in enumerate(values)
        )
        for index, output in enumerate(outputs):
            slots[index] = output

    return MultiResolutionResult(
        outputs={index: output for index, output in enumerate(slots)},
        min_pts_values=values,
        traces_used=segments.traces_used,
        fingerprint=fingerprint_inputs(segments, values, template),
    )


def _cluster_once(
    runner: DensityPass,
    features: np.ndarray,
    segments: SegmentSet,
    params: DensityClusteringParameters,
    index: int,
) -> ClusteringOutput:
    logger.info("Running density pass for minPts=%d (index %d)", params.min_pts, index)
    try:
        profile = runner(features, params)
        output = ClusteringOutput(
            min_pts=params.min_pts,
            profile=profile,
            segments=segments,
            metrics=_pass_metrics(profile, params),
        )
    except Exception as exc:
        logger.error("Density pass failed for minPts=%d: %s", params.min_pts, exc)
        raise ClusteringPassError(params.min_pts, index, str(exc)) from exc
    return output


def _pass_metrics(
    profile: ReachabilityProfile,
    params: DensityClusteringParameters,
) -> Dict[str, float | int | str]:
    finite = profile.reachability[np.isfinite(profile.reachability)]
    return {
        "min_pts": params.min_pts,
        "metric": params.metric,
        "backend": params.backend,
        "total_points": len(profile),
        "undefined_points": profile.undefined_count,
        "max_reachability": float(finite.max()) if finite.size else float("nan"),
    }


def _validate_min_pts(min_pts_values: Sequence[int]) -> tuple[int, ...]:
    values = tuple(min_pts_values)
    if not values:
        raise InvalidParameterError("At least one minPts value is required")
    for value in values:
        if isinstance(value, bool) or not isinstance(value, (int, np.integer)) or value < 1:
            raise InvalidParameterError(f"minPts values must be positive integers, got {value!r}")
    return tuple(int(value) for value in values)


__all__ = [
    "ClusteringCancelled",
    "ClusteringOutput",
    "ClusteringPassError",
    "DensityPass",
    "MultiResolutionResult",
    "fingerprint_inputs",
    "run_all",
]
