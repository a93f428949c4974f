from __future__ import annotations

import numpy as np
import pandas as pd
import pytest

from segclust.cli.output_schemas import OutputSchemaError, TABLE_SCHEMAS, validate_rows
from segclust.clustering import ReachabilityProfile, find_full_valley_clusters, run_all
from segclust.data import SegmentSet


def _cluster_rows() -> list[dict[str, object]]:
    clusters = find_full_valley_clusters([np.inf, 1.0, 1.0, 5.0, 1.0, 1.0], 0.1)
    return [
        {"min_pts": 4, "label": cluster.label, "member_count": cluster.size, **cluster.to_record()}
        for cluster in clusters
    ]


def test_cluster_rows_from_the_ranking_validate() -> None:
    rows = _cluster_rows()

    assert validate_rows("cluster", rows) == 3
    assert rows[0]["threshold"] is None


def test_bad_label_names_the_failing_row() -> None:
    rows = _cluster_rows()
    rows[2]["label"] = "Solution2-Cluster2"

    with pytest.raises(OutputSchemaError) as excinfo:
        validate_rows("cluster", rows)

    assert excinfo.value.table == "cluster"
    assert excinfo.value.row == 2
    assert "label" in str(excinfo.value)


def test_unexpected_cluster_column_is_rejected() -> None:
    rows = _cluster_rows()
    rows[0]["colour"] = "red"

    with pytest.raises(OutputSchemaError) as excinfo:
        validate_rows("cluster", rows)
    assert excinfo.value.row == 0


def test_numpy_scalars_are_checked_as_plain_numbers() -> None:
    row = _cluster_rows()[1]
    row.update(min_pts=np.int64(4), start=np.int32(0), fraction=np.float64(0.5))

    assert validate_rows("cluster", [row]) == 1


def test_sweep_rows_accept_undefined_max_reachability() -> None:
    frame = pd.DataFrame({"TraceId": [1, 1, 2], "Distance": [0.0, 0.1, 0.2], "LogG": [-1.0, -1.1, -1.2]})
    points = SegmentSet(frame=frame, feature_columns=("Distance", "LogG"), format="DataPoints")

    def undefined_pass(features, params):
        size = features.shape[0]
        return ReachabilityProfile(np.full(size, np.inf), np.arange(size))

    rows = run_all(points, [2], density_pass=undefined_pass).metric_records()

    assert np.isnan(rows[0]["max_reachability"])
    assert validate_rows("sweep", rows) == 1


def test_sweep_rows_need_point_counts() -> None:
    with pytest.raises(OutputSchemaError) as excinfo:
        validate_rows("sweep", [{"index": 0, "min_pts": 3, "undefined_points": 1}])
    assert "total_points" in str(excinfo.value)


def test_unknown_table_is_rejected() -> None:
    assert set(TABLE_SCHEMAS) == {"cluster", "sweep"}
    with pytest.raises(ValueError):
        validate_rows("members", [])
