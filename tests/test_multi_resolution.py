from __future__ import annotations

import numpy as np
import pandas as pd
import pytest

from segclust.clustering import (
    ClusteringCancelled,
    ClusteringOutput,
    ClusteringPassError,
    DensityClusteringParameters,
    EmptyResultWarning,
    InvalidParameterError,
    MultiResolutionResult,
    ReachabilityProfile,
    run_all,
)
from segclust.clustering.runner import fingerprint_inputs
from segclust.data import FORMAT_LENGTH_WEIGHTED, SegmentSet, weight_by_length


def _segments(trace_ids=(1, 1, 2, 2, 4, 4, 4, 7)) -> SegmentSet:
    count = len(trace_ids)
    frame = pd.DataFrame(
        {
            "TraceId": list(trace_ids),
            "StartDistance": np.linspace(0.0, 1.4, count),
            "StartLogG": np.linspace(-1.0, -5.0, count),
            "EndDistance": np.linspace(0.2, 1.6, count),
            "EndLogG": np.linspace(-1.5, -5.5, count),
        }
    )
    return SegmentSet(frame=frame)


def _ordered_pass(features, params):
    reachability = np.full(features.shape[0], float(params.min_pts))
    reachability[0] = np.inf
    return ReachabilityProfile(reachability, np.arange(features.shape[0]))


def test_run_all_keys_outputs_by_parameter_index() -> None:
    segments = _segments()

    result = run_all(segments, [5, 2, 3], density_pass=_ordered_pass)

    assert list(result) == [0, 1, 2]
    assert len(result) == 3
    assert result.min_pts_values == (5, 2, 3)
    assert [result[index].min_pts for index in result] == [5, 2, 3]
    assert result[1].profile.reachability[1] == 2.0
    assert result.traces_used == (1, 2, 4, 7)
    assert result.fingerprint


def test_metrics_are_recorded_per_pass() -> None:
    result = run_all(_segments(), [3], density_pass=_ordered_pass)

    metrics = result[0].metrics
    assert metrics["min_pts"] == 3
    assert metrics["total_points"] == 8
    assert metrics["undefined_points"] == 1
    assert metrics["max_reachability"] == 3.0
    with pytest.raises(TypeError):
        metrics["min_pts"] = 4

    frame = result.to_frame()
    assert frame["index"].tolist() == [0]
    assert frame["backend"].tolist() == ["optics"]


def test_first_failure_stops_the_batch() -> None:
    calls = []

    def failing_pass(features, params):
        calls.append(params.min_pts)
        if params.min_pts == 4:
            raise RuntimeError("degenerate neighbourhood")
        return _ordered_pass(features, params)

    with pytest.raises(ClusteringPassError) as excinfo:
        run_all(_segments(), [2, 4, 6], density_pass=failing_pass)

    assert excinfo.value.min_pts == 4
    assert excinfo.value.index == 1
    assert "degenerate neighbourhood" in str(excinfo.value)
    assert calls == [2, 4]


def test_builtin_pass_failure_reports_the_parameter() -> None:
    with pytest.raises(ClusteringPassError) as excinfo:
        run_all(_segments(), [2, 50])

    assert excinfo.value.min_pts == 50
    assert excinfo.value.index == 1


def test_parallel_run_matches_serial_run() -> None:
    segments = _segments()
    values = [2, 3, 4]

    serial = run_all(segments, values)
    parallel = run_all(segments, values, n_jobs=2, prefer="threads")

    assert parallel.fingerprint == serial.fingerprint
    for index in serial:
        np.testing.assert_array_equal(parallel[index].profile.ordering, serial[index].profile.ordering)
        np.testing.assert_allclose(
            parallel[index].profile.reachability, serial[index].profile.reachability
        )


def test_cancellation_is_checked_between_parameters() -> None:
    calls = []

    def counting_pass(features, params):
        calls.append(params.min_pts)
        return _ordered_pass(features, params)

    with pytest.raises(ClusteringCancelled) as excinfo:
        run_all(
            _segments(),
            [2, 3, 4],
            density_pass=counting_pass,
            should_cancel=lambda: len(calls) >= 2,
        )

    assert calls == [2, 3]
    assert excinfo.value.completed == 2
    assert excinfo.value.total == 3


@pytest.mark.parametrize("values", [[], [0], [3, -1], [2.5], [True]])
def test_invalid_min_pts_values_are_rejected(values) -> None:
    with pytest.raises(InvalidParameterError):
        run_all(_segments(), values, density_pass=_ordered_pass)


def test_reference_index_must_exist() -> None:
    result = run_all(_segments(), [2, 3], density_pass=_ordered_pass)

    assert result.reference(1).min_pts == 3
    with pytest.raises(InvalidParameterError):
        result.reference(2)


def test_result_requires_every_index() -> None:
    output = run_all(_segments(), [2], density_pass=_ordered_pass)[0]

    with pytest.raises(ValueError):
        MultiResolutionResult(outputs={1: output}, min_pts_values=(2, 3), traces_used=(1,))


def test_output_rejects_profiles_of_the_wrong_length() -> None:
    profile = ReachabilityProfile(np.array([np.inf, 1.0]), np.array([0, 1]))

    with pytest.raises(ValueError):
        ClusteringOutput(min_pts=2, profile=profile, segments=_segments())


def test_cluster_members_map_positions_back_to_segments() -> None:
    segments = _segments()
    ordering = np.array([7, 6, 5, 4, 3, 2, 1, 0])
    reachability = np.array([np.inf, 1.0, 1.0, 1.0, 9.0, 1.0, 1.0, 1.0])
    output = ClusteringOutput(
        min_pts=2,
        profile=ReachabilityProfile(reachability, ordering),
        segments=segments,
    )

    clusters = output.full_valley_clusters(0.1)
    left, right = clusters.solutions()[2]

    assert output.cluster_members(left).tolist() == [7, 6, 5, 4]
    assert output.cluster_traces(left) == (4, 7)
    assert output.cluster_traces(right) == (1, 2)
    assert output.cluster_segments(right)["TraceId"].tolist() == [2, 2, 1, 1]


def test_length_weighted_members_report_each_segment_once() -> None:
    weighted = weight_by_length(_segments(trace_ids=(1, 2, 3)), 0.1)
    assert weighted.format == FORMAT_LENGTH_WEIGHTED
    assert len(weighted) > 3

    result = run_all(weighted, [2], density_pass=_ordered_pass)
    output = result[0]
    with pytest.warns(EmptyResultWarning):
        whole = output.full_valley_clusters(0.5).solutions()[1][0]

    # each segment is about 0.54 long, so it appears six times
    assert output.cluster_members(whole).tolist() == [0, 6, 12]
    assert output.cluster_segments(whole)["TraceId"].tolist() == [1, 2, 3]
    assert output.cluster_traces(whole) == (1, 2, 3)


def test_fingerprint_tracks_inputs_that_change_outputs() -> None:
    segments = _segments()
    params = DensityClusteringParameters()

    base = fingerprint_inputs(segments, [2, 3], params)

    assert fingerprint_inputs(_segments(), [2, 3], params) == base
    assert fingerprint_inputs(segments, [2, 4], params) != base
    assert fingerprint_inputs(segments, [2, 3], DensityClusteringParameters(metric="manhattan")) != base
    assert fingerprint_inputs(_segments(trace_ids=(1, 1, 2, 2, 4, 4, 4, 8)), [2, 3], params) != base
