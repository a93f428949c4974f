from __future__ import annotations

import numpy as np
import pytest

from segclust.clustering import (
    DensityClusteringError,
    DensityClusteringParameters,
    ReachabilityProfile,
    compute_reachability,
    find_full_valley_clusters,
)


def _two_blobs(seed: int = 0, size: int = 15) -> np.ndarray:
    rng = np.random.default_rng(seed)
    left = rng.normal(loc=(0.0, 0.0), scale=0.2, size=(size, 2))
    right = rng.normal(loc=(10.0, 10.0), scale=0.2, size=(size, 2))
    return np.vstack([left, right])


def test_two_blobs_are_separated_by_one_spike() -> None:
    features = _two_blobs()

    profile = compute_reachability(features, DensityClusteringParameters(min_pts=3))

    assert len(profile) == 30
    assert np.isinf(profile.reachability[0])
    assert sorted(profile.ordering.tolist()) == list(range(30))

    spikes = np.flatnonzero(profile.reachability[1:] > 5.0) + 1
    assert spikes.tolist() == [15]
    first_block = set(profile.ordering[:15].tolist())
    assert first_block in ({*range(15)}, {*range(15, 30)})


def test_two_blobs_become_two_full_valleys() -> None:
    profile = compute_reachability(_two_blobs(seed=4), DensityClusteringParameters(min_pts=4))

    result = find_full_valley_clusters(profile, 0.2)

    second = result.solutions()[2]
    assert [(cluster.start, cluster.end) for cluster in second] == [(0, 14), (15, 29)]


def test_traversal_starts_from_the_first_point() -> None:
    profile = compute_reachability(_two_blobs(seed=2), DensityClusteringParameters(min_pts=2))

    assert profile.ordering[0] == 0


def test_manhattan_metric_is_supported() -> None:
    features = np.array([[0.0, 0.0], [1.0, 1.0], [2.0, 2.0], [10.0, 10.0]])

    profile = compute_reachability(features, DensityClusteringParameters(min_pts=2, metric="manhattan"))

    assert profile.ordering.tolist() == [0, 1, 2, 3]
    assert profile.reachability[1:].tolist() == [2.0, 2.0, 16.0]


def test_max_eps_leaves_distant_points_undefined() -> None:
    features = np.array([[0.0], [0.5], [1.0], [50.0], [50.5]])

    profile = compute_reachability(features, DensityClusteringParameters(min_pts=2, max_eps=2.0))

    assert profile.undefined_count == 2
    assert profile.ordering.tolist() == [0, 1, 2, 3, 4]
    assert np.isinf(profile.reachability[3])


def test_min_pts_larger_than_dataset_is_rejected() -> None:
    with pytest.raises(DensityClusteringError):
        compute_reachability(np.zeros((3, 2)), DensityClusteringParameters(min_pts=4))


@pytest.mark.parametrize(
    "params",
    [
        DensityClusteringParameters(min_pts=0),
        DensityClusteringParameters(min_pts=2, metric="cosine"),
        DensityClusteringParameters(min_pts=2, backend="dbscan"),
        DensityClusteringParameters(min_pts=2, max_eps=0.0),
    ],
)
def test_invalid_parameters_are_rejected(params) -> None:
    with pytest.raises(DensityClusteringError):
        compute_reachability(_two_blobs(), params)


def test_non_finite_features_are_rejected() -> None:
    features = _two_blobs()
    features[3, 1] = np.nan

    with pytest.raises(DensityClusteringError):
        compute_reachability(features, DensityClusteringParameters(min_pts=3))


def test_profile_rejects_orderings_that_are_not_permutations() -> None:
    with pytest.raises(ValueError):
        ReachabilityProfile(np.array([np.inf, 1.0, 2.0]), np.array([0, 0, 2]))
    with pytest.raises(ValueError):
        ReachabilityProfile(np.array([np.inf, 1.0]), np.array([0, 1, 2]))


def test_profile_is_read_only_and_stores_undefined_as_inf() -> None:
    profile = ReachabilityProfile(np.array([np.nan, 1.0, 2.0]), np.array([2, 0, 1]))

    assert np.isinf(profile.reachability[0])
    with pytest.raises(ValueError):
        profile.reachability[1] = 5.0


def test_from_point_order_reorders_distances() -> None:
    profile = ReachabilityProfile.from_point_order(
        np.array([np.inf, 3.0, 1.0]),
        np.array([0, 2, 1]),
    )

    assert profile.reachability.tolist() == [np.inf, 1.0, 3.0]


def test_sklearn_backend_matches_the_builtin_pass() -> None:
    pytest.importorskip("sklearn")
    features = _two_blobs(seed=8)

    builtin = compute_reachability(features, DensityClusteringParameters(min_pts=5))
    reference = compute_reachability(
        features, DensityClusteringParameters(min_pts=5, backend="sklearn")
    )

    assert np.isinf(reference.reachability[0])
    builtin_split = find_full_valley_clusters(builtin, 0.2).solutions()[2]
    reference_split = find_full_valley_clusters(reference, 0.2).solutions()[2]
    assert [(c.start, c.end) for c in builtin_split] == [(c.start, c.end) for c in reference_split]
