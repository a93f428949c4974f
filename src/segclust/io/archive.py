"""Archive persistence for multi-resolution clustering outputs."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Mapping, Sequence, Union
import zipfile

import numpy as np
import pandas as pd

from ..clustering.reachability import DensityClusteringParameters, ReachabilityProfile
from ..clustering.runner import (
    ClusteringOutput,
    MultiResolutionResult,
    fingerprint_inputs,
    run_all,
)
from ..data.segments import SegmentSet


logger = logging.getLogger(__name__)

PathLike = Union[str, Path]
"""Supported path-like inputs accepted by archive helpers."""

ARCHIVE_VERSION = "v1"
"""Version tag embedded in archive filenames and manifests."""

ARCHIVE_SUFFIX = f"_clustout-{ARCHIVE_VERSION}.npz"

_MANIFEST_KEYS = ("feature_columns", "format", "traces_used", "min_pts_values", "metrics")


class ArchiveError(RuntimeError):
    """Raised when an archive cannot be read or has an unexpected layout."""


def archive_path(directory: PathLike, name: str) -> Path:
    """Versioned archive location for dataset ``name`` inside ``directory``."""

    if not name or Path(name).name != name:
        raise ValueError(f"Dataset name must be a plain file stem, got {name!r}")
    return Path(directory) / f"{name}{ARCHIVE_SUFFIX}"


def write_archive(result: MultiResolutionResult, directory: PathLike, name: str) -> Path:
    """Persist every parameter's output in a single compressed archive."""

    path = archive_path(directory, name)
    path.parent.mkdir(parents=True, exist_ok=True)

    segments = result[0].segments
    manifest: dict[str, Any] = {
        "version": ARCHIVE_VERSION,
        "name": name,
        "min_pts_values": list(result.min_pts_values),
        "traces_used": list(result.traces_used),
        "fingerprint": result.fingerprint,
        "format": segments.format,
        "feature_columns": list(segments.feature_columns),
        "metrics": [dict(result[index].metrics) for index in result],
    }

    arrays: dict[str, np.ndarray] = {
        "manifest": np.array(json.dumps(manifest, sort_keys=True)),
        "features": segments.features(),
        "trace_ids": segments.trace_ids(),
        "is_duplicate": np.asarray(segments.is_duplicate),
    }
    for index in result:
        profile = result[index].profile
        arrays[f"reachability_{index}"] = np.asarray(profile.reachability)
        arrays[f"ordering_{index}"] = np.asarray(profile.ordering)

    with path.open("wb") as handle:
        np.savez_compressed(handle, **arrays)
    logger.info("Wrote %d clustering outputs to %s", len(result), path)
    return path


def read_archive(path: PathLike) -> MultiResolutionResult:
    """Load an archive written by :func:`write_archive`.

    Any damage to the file, its manifest, or the arrays the manifest points at
    surfaces as :class:`ArchiveError`.
    """

    path = Path(path)
    try:
        with np.load(path, allow_pickle=False) as payload:
            arrays = {key: payload[key] for key in payload.files}
    except (OSError, ValueError, zipfile.BadZipFile) as exc:
        raise ArchiveError(f"Failed to read clustering archive '{path}': {exc}") from exc

    manifest = _read_manifest(path, arrays)
    try:
        return _restore_result(manifest, arrays)
    except KeyError as exc:
        raise ArchiveError(f"Archive '{path}' is missing entry {exc}") from exc
    except (IndexError, TypeError, ValueError) as exc:
        raise ArchiveError(f"Archive '{path}' has an inconsistent layout: {exc}") from exc


def _read_manifest(path: Path, arrays: Mapping[str, np.ndarray]) -> dict[str, Any]:
    if "manifest" not in arrays:
        raise ArchiveError(f"Archive '{path}' has no manifest")
    try:
        manifest = json.loads(str(arrays["manifest"]))
    except json.JSONDecodeError as exc:
        raise ArchiveError(f"Archive '{path}' manifest is not valid JSON: {exc}") from exc
    if not isinstance(manifest, dict):
        raise ArchiveError(f"Archive '{path}' manifest must be a JSON object")
    if manifest.get("version") != ARCHIVE_VERSION:
        raise ArchiveError(
            f"Archive '{path}' has version {manifest.get('version')!r}, expected {ARCHIVE_VERSION!r}"
        )
    missing = [key for key in _MANIFEST_KEYS if key not in manifest]
    if missing:
        raise ArchiveError(f"Archive '{path}' manifest is missing {', '.join(missing)}")
    return manifest


def _restore_result(
    manifest: Mapping[str, Any], arrays: Mapping[str, np.ndarray]
) -> MultiResolutionResult:
    feature_columns = tuple(manifest["feature_columns"])
    frame = pd.DataFrame(arrays["features"], columns=list(feature_columns))
    frame.insert(0, "TraceId", arrays["trace_ids"].astype(np.int64))
    segments = SegmentSet(
        frame=frame,
        feature_columns=feature_columns,
        format=manifest["format"],
        traces_used=tuple(manifest["traces_used"]),
        is_duplicate=arrays["is_duplicate"],
    )

    outputs: dict[int, ClusteringOutput] = {}
    for index, min_pts in enumerate(manifest["min_pts_values"]):
        profile = ReachabilityProfile(arrays[f"reachability_{index}"], arrays[f"ordering_{index}"])
        outputs[index] = ClusteringOutput(
            min_pts=int(min_pts),
            profile=profile,
            segments=segments,
            metrics=manifest["metrics"][index],
        )

    return MultiResolutionResult(
        outputs=outputs,
        min_pts_values=tuple(manifest["min_pts_values"]),
        traces_used=tuple(manifest["traces_used"]),
        fingerprint=manifest.get("fingerprint", ""),
    )


def load_or_run(
    segments: SegmentSet,
    min_pts_values: Sequence[int],
    directory: PathLike,
    name: str,
    *,
    params: DensityClusteringParameters | None = None,
    reuse: bool = True,
    **run_options: Any,
) -> tuple[MultiResolutionResult, Path]:
    """Reuse a matching archive for ``name`` or run the batch and write one."""

    path = archive_path(directory, name)
    params = params or DensityClusteringParameters()

    if reuse and path.exists():
        expected = fingerprint_inputs(segments, min_pts_values, params)
        try:
            cached = read_archive(path)
        except ArchiveError as exc:
            logger.warning("Ignoring unreadable archive %s: %s", path, exc)
        else:
            if cached.fingerprint == expected:
                logger.info("Reusing clustering archive %s", path)
                return cached, path
            logger.info("Archive %s was built from different inputs; recomputing", path)

    result = run_all(segments, min_pts_values, params=params, **run_options)
    return result, write_archive(result, directory, name)


__all__ = [
    "ARCHIVE_SUFFIX",
    "ARCHIVE_VERSION",
    "ArchiveError",
    "PathLike",
    "archive_path",
    "load_or_run",
    "read_archive",
    "write_archive",
]
