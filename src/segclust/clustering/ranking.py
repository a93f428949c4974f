"""Solution and cluster numbering for extracted full valleys."""

from __future__ import annotations

from dataclasses import dataclass
from itertools import groupby
import warnings
from typing import Dict, Iterable, Iterator, Sequence

import numpy as np

from .reachability import ReachabilityProfile
from .valleys import Valley, extract_full_valleys, prepare_reachability


DEFAULT_CUTOFF_FRAC = 0.01

CLUSTER_COLUMNS = (
    "solution_number",
    "cluster_number",
    "start",
    "end",
    "size",
    "fraction",
    "threshold",
    "extraction_level",
)


class EmptyResultWarning(UserWarning):
    """Issued when no sub-division of the profile survives the size cutoff.

    The whole-profile cluster is still returned, so the result is never empty;
    the warning says that no finer structure was found at this cutoff.
    """


@dataclass(frozen=True, slots=True)
class ExtractedCluster:
    """A full valley tagged with its solution and cluster numbers."""

    start: int
    end: int
    threshold: float
    extraction_level: int
    n_points: int
    solution_number: int
    cluster_number: int

    @property
    def size(self) -> int:
        return self.end - self.start + 1

    @property
    def fraction(self) -> float:
        return self.size / self.n_points

    @property
    def label(self) -> str:
        """Human readable tag, e.g. ``Soln2_Clust1``."""

        return f"Soln{self.solution_number}_Clust{self.cluster_number}"

    def positions(self) -> slice:
        """Slice selecting this cluster's positions in profile order."""

        return slice(self.start, self.end + 1)

    def to_record(self) -> Dict[str, object]:
        return {
            "solution_number": self.solution_number,
            "cluster_number": self.cluster_number,
            "start": self.start,
            "end": self.end,
            "size": self.size,
            "fraction": self.fraction,
            "threshold": None if np.isinf(self.threshold) else float(self.threshold),
            "extraction_level": self.extraction_level,
        }


@dataclass(frozen=True, slots=True)
class FullValleyClusters:
    """Ranked full-valley clusters extracted from one profile."""

    clusters: tuple[ExtractedCluster, ...]
    n_points: int
    cutoff_frac: float

    def __iter__(self) -> Iterator[ExtractedCluster]:
        return iter(self.clusters)

    def __len__(self) -> int:
        return len(self.clusters)

    @property
    def solution_count(self) -> int:
        return len({cluster.solution_number for cluster in self.clusters})

    def solutions(self) -> Dict[int, tuple[ExtractedCluster, ...]]:
        """Clusters grouped by solution number, each group left to right."""

        grouped: Dict[int, tuple[ExtractedCluster, ...]] = {}
        for number, members in groupby(self.clusters, key=lambda cluster: cluster.solution_number):
            grouped[number] = tuple(members)
        return grouped

    def labels(self, solution_number: int) -> np.ndarray:
        return solution_labels(self.clusters, self.n_points, solution_number)

    def to_records(self) -> list[dict[str, object]]:
        return [cluster.to_record() for cluster in self.clusters]

    def to_frame(self):
        """Return the clusters as a pandas DataFrame for plotting layers."""

        import pandas as pd

        records = self.to_records()
        if not records:
            return pd.DataFrame(columns=list(CLUSTER_COLUMNS))
        return pd.DataFrame.from_records(records, columns=list(CLUSTER_COLUMNS))


def rank_valleys(valleys: Iterable[Valley | ExtractedCluster]) -> tuple[ExtractedCluster, ...]:
    """Assign solution numbers by ascending extraction level, clusters left to right."""

    ordered = sorted(
        valleys,
        key=lambda valley: (valley.extraction_level, valley.start, valley.end),
    )

    ranked: list[ExtractedCluster] = []
    for solution_number, (_, members) in enumerate(
        groupby(ordered, key=lambda valley: valley.extraction_level), start=1
    ):
        for cluster_number, valley in enumerate(members, start=1):
            ranked.append(
                ExtractedCluster(
                    start=valley.start,
                    end=valley.end,
                    threshold=valley.threshold,
                    extraction_level=valley.extraction_level,
                    n_points=valley.n_points,
                    solution_number=solution_number,
                    cluster_number=cluster_number,
                )
            )
    return tuple(ranked)


def solution_labels(
    clusters: Sequence[ExtractedCluster],
    n_points: int,
    solution_number: int,
) -> np.ndarray:
    """Cluster number per profile position for one solution, ``-1`` for noise."""

    labels = np.full(n_points, -1, dtype=int)
    for cluster in clusters:
        if cluster.solution_number == solution_number:
            labels[cluster.positions()] = cluster.cluster_number
    return labels


def find_full_valley_clusters(
    profile: ReachabilityProfile | Sequence[float | None] | np.ndarray,
    cutoff_frac: float = DEFAULT_CUTOFF_FRAC,
) -> FullValleyClusters:
    """Extract and rank the full valleys of ``profile`` in one call."""

    valleys = extract_full_valleys(profile, cutoff_frac)
    n_points = valleys[0].n_points if valleys else int(prepare_reachability(profile).size)
    # the whole profile always passes a valid cutoff
    if all(valley.size == n_points for valley in valleys):
        warnings.warn(
            f"No sub-division of the {n_points} points survived cutoff_frac={cutoff_frac:g}; "
            "only the whole-profile cluster remains",
            EmptyResultWarning,
            stacklevel=2,
        )
    return FullValleyClusters(
        clusters=rank_valleys(valleys),
        n_points=n_points,
        cutoff_frac=float(cutoff_frac),
    )


__all__ = [
    "CLUSTER_COLUMNS",
    "DEFAULT_CUTOFF_FRAC",
    "EmptyResultWarning",
    "ExtractedCluster",
    "FullValleyClusters",
    "find_full_valley_clusters",
    "rank_valleys",
    "solution_labels",
]
