from __future__ import annotations

import json
import math
from pathlib import Path

import pytest

from segclust.clustering import InvalidParameterError
from segclust.config import (
    DEFAULT_MIN_PTS_VALUES,
    DEFAULT_REFERENCE_INDEX,
    ConfigError,
    ExtractionConfig,
    load_config,
)


def test_defaults_describe_the_standard_sweep() -> None:
    config = ExtractionConfig().validate()

    assert config.cutoff_frac == 0.01
    assert config.min_pts_values == DEFAULT_MIN_PTS_VALUES
    assert len(DEFAULT_MIN_PTS_VALUES) == 12
    assert config.min_pts_values[DEFAULT_REFERENCE_INDEX] == 60
    assert config.feature_columns == ("StartDistance", "StartLogG", "EndDistance", "EndLogG")

    params = config.density_parameters()
    assert params.metric == "euclidean"
    assert math.isinf(params.max_eps)


def test_merged_ignores_missing_overrides() -> None:
    config = ExtractionConfig(cutoff_frac=0.05)

    merged = config.merged({"cutoff_frac": None, "metric": "manhattan", "unknown": 3})

    assert merged.cutoff_frac == 0.05
    assert merged.metric == "manhattan"
    assert config.metric == "euclidean"


@pytest.mark.parametrize(
    "overrides",
    [
        {"cutoff_frac": 0.0},
        {"cutoff_frac": 1.0},
        {"min_pts_values": ()},
        {"min_pts_values": (10, 0)},
        {"reference_index": 12},
        {"min_pts_values": (5, 10), "reference_index": 2},
        {"length_unit": -0.5},
    ],
)
def test_validate_rejects_out_of_range_values(overrides) -> None:
    with pytest.raises(InvalidParameterError):
        ExtractionConfig().merged(overrides).validate()


def test_reference_index_can_be_left_to_the_loaded_sweep() -> None:
    config = ExtractionConfig().merged({"min_pts_values": (3, 5)})

    with pytest.raises(InvalidParameterError):
        config.validate()
    assert config.validate(check_reference=False).reference_index == 5
    with pytest.raises(InvalidParameterError):
        config.merged({"reference_index": -1}).validate(check_reference=False)


def test_load_config_reads_json(tmp_path: Path) -> None:
    config_path = tmp_path / "segclust.json"
    config_path.write_text(
        json.dumps(
            {
                "cutoff_frac": 0.02,
                "min_pts_values": [5, 15, 25],
                "reference_index": 1,
                "max_eps": None,
                "length_unit": 0.25,
            }
        ),
        encoding="utf-8",
    )

    config = load_config(config_path)

    assert config.cutoff_frac == 0.02
    assert config.min_pts_values == (5, 15, 25)
    assert config.reference_index == 1
    assert math.isinf(config.max_eps)
    assert config.length_unit == 0.25


def test_load_config_rejects_unknown_keys(tmp_path: Path) -> None:
    config_path = tmp_path / "segclust.json"
    config_path.write_text(json.dumps({"cutoff": 0.02}), encoding="utf-8")

    with pytest.raises(ConfigError) as excinfo:
        load_config(config_path)

    assert "cutoff" in str(excinfo.value)


def test_load_config_reports_unreadable_files(tmp_path: Path) -> None:
    broken = tmp_path / "broken.json"
    broken.write_text("{not json", encoding="utf-8")

    with pytest.raises(ConfigError):
        load_config(broken)
    with pytest.raises(ConfigError):
        load_config(tmp_path / "absent.json")

    listing = tmp_path / "list.json"
    listing.write_text("[1, 2]", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_config(listing)
