"""Reachability profiles and the OPTICS density-clustering pass."""

from __future__ import annotations

from dataclasses import dataclass
import logging
import math
from typing import Dict, Literal

import numpy as np


logger = logging.getLogger(__name__)

BackendName = Literal["optics", "sklearn"]
DistanceMetric = Literal["euclidean", "manhattan"]


class DensityClusteringError(RuntimeError):
    """Raised when the density-clustering pass cannot be performed."""


@dataclass(frozen=True, slots=True, eq=False)
class ReachabilityProfile:
    """Reachability distances in cluster order.

    ``reachability[i]`` belongs to the point ``ordering[i]`` of the original
    dataset. Undefined distances (the first point of every density chain) are
    stored as ``inf``. The order is the traversal order of the density pass
    and must never be re-sorted.
    """

    reachability: np.ndarray
    ordering: np.ndarray

    def __post_init__(self) -> None:
        reachability = np.asarray(self.reachability, dtype=float).copy()
        ordering = np.asarray(self.ordering, dtype=np.int64).copy()
        if reachability.ndim != 1 or ordering.ndim != 1:
            raise ValueError("Reachability and ordering must be one-dimensional")
        if reachability.shape != ordering.shape:
            raise ValueError(
                "Reachability and ordering must have the same length "
                f"({reachability.size} != {ordering.size})"
            )
        if ordering.size and not np.array_equal(np.sort(ordering), np.arange(ordering.size)):
            raise ValueError("Ordering must be a permutation of 0..N-1")
        reachability[np.isnan(reachability)] = np.inf
        reachability.flags.writeable = False
        ordering.flags.writeable = False
        object.__setattr__(self, "reachability", reachability)
        object.__setattr__(self, "ordering", ordering)

    def __len__(self) -> int:
        return int(self.reachability.size)

    @classmethod
    def from_point_order(
        cls,
        reachability_by_point: np.ndarray,
        ordering: np.ndarray,
    ) -> "ReachabilityProfile":
        """Build a profile from distances indexed by original point (sklearn layout)."""

        ordering = np.asarray(ordering, dtype=np.int64)
        return cls(np.asarray(reachability_by_point, dtype=float)[ordering], ordering)

    @property
    def undefined_count(self) -> int:
        return int(np.count_nonzero(~np.isfinite(self.reachability)))


@dataclass(slots=True)
class DensityClusteringParameters:
    """Configuration for one OPTICS pass."""

    min_pts: int = 10
    max_eps: float = math.inf
    metric: DistanceMetric = "euclidean"
    backend: BackendName = "optics"

    def with_min_pts(self, min_pts: int) -> "DensityClusteringParameters":
        return DensityClusteringParameters(
            min_pts=min_pts,
            max_eps=self.max_eps,
            metric=self.metric,
            backend=self.backend,
        )

    def to_dict(self) -> Dict[str, float | int | str]:
        return {
            "min_pts": self.min_pts,
            "max_eps": self.max_eps,
            "metric": self.metric,
            "backend": self.backend,
        }


def compute_reachability(
    features: np.ndarray,
    params: DensityClusteringParameters | None = None,
) -> ReachabilityProfile:
    """Run OPTICS over ``features`` (one row per point) and return the profile."""

    params = params or DensityClusteringParameters()
    coords = np.asarray(features, dtype=float)
    if coords.ndim == 1:
        coords = coords.reshape(-1, 1)
    if coords.ndim != 2:
        raise DensityClusteringError("Features must be a two-dimensional array")
    if coords.shape[0] == 0:
        raise DensityClusteringError("Cannot cluster an empty feature set")
    if not np.isfinite(coords).all():
        raise DensityClusteringError("Features contain NaN or infinite values")

    min_pts = params.min_pts
    if isinstance(min_pts, bool) or not isinstance(min_pts, (int, np.integer)) or min_pts < 1:
        raise DensityClusteringError(f"min_pts must be a positive integer, got {min_pts!r}")
    if min_pts > coords.shape[0]:
        raise DensityClusteringError(
            f"min_pts ({min_pts}) cannot exceed the number of points ({coords.shape[0]})"
        )
    if params.max_eps <= 0:
        raise DensityClusteringError("max_eps must be positive")
    if params.metric not in {"euclidean", "manhattan"}:
        raise DensityClusteringError(f"Unsupported distance metric '{params.metric}'.")

    if params.backend == "optics":
        profile = _run_optics(coords, min_pts=int(min_pts), max_eps=params.max_eps, metric=params.metric)
    elif params.backend == "sklearn":
        profile = _run_sklearn_optics(
            coords, min_pts=int(min_pts), max_eps=params.max_eps, metric=params.metric
        )
    else:
        raise DensityClusteringError(f"Unsupported clustering backend '{params.backend}'.")

    logger.debug(
        "OPTICS pass (min_pts=%d, backend=%s) ordered %d points, %d undefined",
        min_pts,
        params.backend,
        len(profile),
        profile.undefined_count,
    )
    return profile


def _run_optics(
    coords: np.ndarray,
    *,
    min_pts: int,
    max_eps: float,
    metric: DistanceMetric,
) -> ReachabilityProfile:
    n_points = coords.shape[0]
    core_distances = _core_distances(coords, min_pts=min_pts, max_eps=max_eps, metric=metric)

    reachability = np.full(n_points, np.inf)
    processed = np.zeros(n_points, dtype=bool)
    ordering = np.empty(n_points, dtype=np.int64)

    for position in range(n_points):
        candidates = np.flatnonzero(~processed)
        point_index = int(candidates[np.argmin(reachability[candidates])])
        processed[point_index] = True
        ordering[position] = point_index

        core = core_distances[point_index]
        if not np.isfinite(core):
            continue

        distances = _distances_from(coords, point_index, metric=metric)
        update = ~processed & (distances <= max_eps)
        if not update.any():
            continue
        candidate_reach = np.maximum(distances[update], core)
        reachability[update] = np.minimum(reachability[update], candidate_reach)

    return ReachabilityProfile.from_point_order(reachability, ordering)


def _core_distances(
    coords: np.ndarray,
    *,
    min_pts: int,
    max_eps: float,
    metric: DistanceMetric,
) -> np.ndarray:
    n_points = coords.shape[0]
    core = np.empty(n_points)
    for point_index in range(n_points):
        distances = _distances_from(coords, point_index, metric=metric)
        # the point itself sits at distance zero and counts towards min_pts
        kth = float(np.partition(distances, min_pts - 1)[min_pts - 1])
        core[point_index] = kth if kth <= max_eps else np.inf
    return core


def _distances_from(coords: np.ndarray, point_index: int, *, metric: DistanceMetric) -> np.ndarray:
    if metric == "euclidean":
        return np.linalg.norm(coords - coords[point_index], axis=1)
    if metric == "manhattan":
        return np.abs(coords - coords[point_index]).sum(axis=1)
    raise DensityClusteringError(f"Unsupported distance metric '{metric}'.")  # pragma: no cover


def _run_sklearn_optics(
    coords: np.ndarray,
    *,
    min_pts: int,
    max_eps: float,
    metric: DistanceMetric,
) -> ReachabilityProfile:
    try:
        from sklearn.cluster import OPTICS  # type: ignore
    except ImportError as exc:  # pragma: no cover - optional dependency
        raise DensityClusteringError(
            "sklearn backend requested but 'scikit-learn' package is not installed."
        ) from exc

    model = OPTICS(min_samples=min_pts, max_eps=max_eps, metric=metric)
    model.fit(coords)
    return ReachabilityProfile.from_point_order(model.reachability_, model.ordering_)


__all__ = [
    "BackendName",
    "DensityClusteringError",
    "DensityClusteringParameters",
    "DistanceMetric",
    "ReachabilityProfile",
    "compute_reachability",
]
