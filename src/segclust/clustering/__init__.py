"""Reachability valley extraction and multi-resolution clustering."""

from .ranking import (
    DEFAULT_CUTOFF_FRAC,
    EmptyResultWarning,
    ExtractedCluster,
    FullValleyClusters,
    find_full_valley_clusters,
    rank_valleys,
    solution_labels,
)
from .reachability import (
    DensityClusteringError,
    DensityClusteringParameters,
    ReachabilityProfile,
    compute_reachability,
)
from .runner import (
    ClusteringCancelled,
    ClusteringOutput,
    ClusteringPassError,
    MultiResolutionResult,
    run_all,
)
from .valleys import (
    InvalidParameterError,
    SplitNode,
    Valley,
    extract_full_valleys,
    leaf_valleys,
    split_tree,
)

__all__ = [
    "DEFAULT_CUTOFF_FRAC",
    "EmptyResultWarning",
    "ExtractedCluster",
    "FullValleyClusters",
    "find_full_valley_clusters",
    "rank_valleys",
    "solution_labels",
    "DensityClusteringError",
    "DensityClusteringParameters",
    "ReachabilityProfile",
    "compute_reachability",
    "ClusteringCancelled",
    "ClusteringOutput",
    "ClusteringPassError",
    "MultiResolutionResult",
    "run_all",
    "InvalidParameterError",
    "SplitNode",
    "Valley",
    "extract_full_valleys",
    "leaf_valleys",
    "split_tree",
]
