"""Command-line entry point for segment clustering and full-valley extraction."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from importlib import metadata
from pathlib import Path
from typing import Any, Sequence

import numpy as np
import pandas as pd

from segclust.cli.output_schemas import OutputSchemaError, validate_rows
from segclust.clustering import (
    ClusteringPassError,
    InvalidParameterError,
)
from segclust.config import ConfigError, ExtractionConfig, load_config
from segclust.data import SegmentSet, load_points, load_segments, weight_by_length
from segclust.io import ArchiveError, load_or_run, read_archive


logger = logging.getLogger("segclust.cli")


class SegclustCliError(RuntimeError):
    """Raised when CLI arguments cannot be satisfied."""


def _get_package_version() -> str:
    try:
        return metadata.version("segclust-python")
    except metadata.PackageNotFoundError:
        return "0.0.0"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="segclust",
        description="Cluster conductance-trace segments and extract full-valley clusters",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    version = _get_package_version()
    parser.add_argument(
        "--version",
        action="store_true",
        help=f"Show the installed segclust-python version ({version})",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="WARNING",
        help="Logging verbosity",
    )

    subparsers = parser.add_subparsers(dest="command", metavar="command")

    cluster = subparsers.add_parser(
        "cluster",
        help="Run the OPTICS pass at every minPts value and archive the outputs",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    source = cluster.add_mutually_exclusive_group(required=True)
    source.add_argument(
        "--segments",
        help="Path to the pre-segmented trace dataset (CSV or JSON)",
    )
    source.add_argument(
        "--points",
        help="Path to raw (TraceId, Distance, LogG) points to cluster point-wise (CSV or JSON)",
    )
    cluster.add_argument(
        "--name",
        required=True,
        help="Dataset name used for the archive filename",
    )
    cluster.add_argument(
        "--output-dir",
        default=".",
        help="Directory where the clustering archive is written",
    )
    cluster.add_argument(
        "--config",
        help="Optional JSON configuration file; command-line options override it",
    )
    cluster.add_argument(
        "--min-pts",
        dest="min_pts_values",
        type=int,
        nargs="+",
        help="minPts values to sweep (defaults to the configured list)",
    )
    cluster.add_argument(
        "--feature-columns",
        nargs="+",
        help="Segment columns used as clustering features",
    )
    cluster.add_argument(
        "--metric",
        choices=["euclidean", "manhattan"],
        help="Distance metric for the OPTICS pass",
    )
    cluster.add_argument(
        "--max-eps",
        type=float,
        help="Largest neighbourhood radius considered by OPTICS",
    )
    cluster.add_argument(
        "--backend",
        choices=["optics", "sklearn"],
        help="OPTICS implementation to use",
    )
    cluster.add_argument(
        "--n-jobs",
        type=int,
        help="Number of minPts values clustered concurrently",
    )
    cluster.add_argument(
        "--length-unit",
        type=float,
        help="Weight segments by length, one copy per unit of length",
    )
    cluster.add_argument(
        "--metrics",
        help="Optional path to persist per-minPts pass metrics (CSV or JSON lines)",
    )
    cluster.add_argument(
        "--reuse",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Reuse an existing archive built from identical inputs",
    )
    cluster.set_defaults(handler=_handle_cluster)

    valleys = subparsers.add_parser(
        "valleys",
        help="Extract and rank full-valley clusters from an archived output",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    valleys.add_argument(
        "--archive",
        required=True,
        help="Clustering archive written by the cluster command",
    )
    valleys.add_argument(
        "--output",
        required=True,
        help="Destination for the ranked cluster table (CSV or JSON lines)",
    )
    valleys.add_argument(
        "--config",
        help="Optional JSON configuration file; command-line options override it",
    )
    valleys.add_argument(
        "--reference-index",
        type=int,
        help="Which minPts output to extract from (zero-based)",
    )
    valleys.add_argument(
        "--cutoff-frac",
        type=float,
        help="Minimum valley size as a fraction of all clustered units",
    )
    valleys.add_argument(
        "--members",
        help="Optional path for the segment rows of every cluster (CSV or JSON lines)",
    )
    valleys.add_argument(
        "--summary",
        help="Optional path to persist an extraction summary (JSON)",
    )
    valleys.set_defaults(handler=_handle_valleys)

    return parser


def main(argv: Sequence[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    if getattr(args, "version", False):
        print(f"segclust-python {_get_package_version()}")
        raise SystemExit(0)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logging.captureWarnings(True)

    handler = getattr(args, "handler", None)
    if handler is None:
        parser.print_help()
        return

    try:
        handler(args)
    except SegclustCliError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        raise SystemExit(f"Error: {exc}") from exc


def _handle_cluster(args: argparse.Namespace) -> None:
    config = _resolve_config(
        args,
        min_pts_values=tuple(args.min_pts_values) if args.min_pts_values else None,
        feature_columns=tuple(args.feature_columns) if args.feature_columns else None,
        metric=args.metric,
        max_eps=args.max_eps,
        backend=args.backend,
        n_jobs=args.n_jobs,
        length_unit=args.length_unit,
    )

    segments = _load_dataset(args, config.feature_columns)
    logger.info(
        "Loaded %d %s rows from %d traces",
        len(segments),
        segments.format,
        len(segments.traces_used),
    )
    if config.length_unit is not None:
        try:
            segments = weight_by_length(segments, config.length_unit)
        except ValueError as exc:
            raise SegclustCliError(str(exc)) from exc
        logger.info("Length weighting expanded the dataset to %d rows", len(segments))

    try:
        result, path = load_or_run(
            segments,
            config.min_pts_values,
            args.output_dir,
            args.name,
            params=config.density_parameters(),
            reuse=args.reuse,
            n_jobs=config.n_jobs,
        )
    except (ClusteringPassError, ValueError) as exc:
        raise SegclustCliError(str(exc)) from exc

    if args.metrics:
        _validate_output("sweep", result.metric_records())
        _write_table(result.to_frame(), Path(args.metrics))

    print(f"Wrote clustering archive to {path}")


def _handle_valleys(args: argparse.Namespace) -> None:
    config = _resolve_config(
        args,
        reference_index=args.reference_index,
        cutoff_frac=args.cutoff_frac,
    )

    try:
        result = read_archive(args.archive)
    except ArchiveError as exc:
        raise SegclustCliError(str(exc)) from exc

    try:
        output = result.reference(config.reference_index)
        clusters = output.full_valley_clusters(config.cutoff_frac)
    except InvalidParameterError as exc:
        raise SegclustCliError(str(exc)) from exc

    records: list[dict[str, Any]] = []
    member_rows: list[pd.DataFrame] = []
    for cluster in clusters:
        members = output.cluster_members(cluster)
        record = {"min_pts": output.min_pts, "label": cluster.label, **cluster.to_record()}
        record["member_count"] = int(members.size)
        record["trace_count"] = len(output.cluster_traces(cluster))
        records.append(record)
        if args.members:
            rows = output.segments.rows(members).copy()
            rows.insert(0, "segment_row", members)
            rows.insert(0, "label", cluster.label)
            member_rows.append(rows)

    _validate_output("cluster", records)
    _write_table(pd.DataFrame.from_records(records), Path(args.output))

    if args.members:
        members_frame = pd.concat(member_rows, ignore_index=True) if member_rows else pd.DataFrame()
        _write_table(members_frame, Path(args.members))

    if args.summary:
        solutions = clusters.solutions()
        _write_json(
            {
                "archive": str(Path(args.archive)),
                "min_pts": output.min_pts,
                "reference_index": config.reference_index,
                "cutoff_frac": config.cutoff_frac,
                "format": output.format,
                "total_points": clusters.n_points,
                "traces_used": len(result.traces_used),
                "cluster_count": len(clusters),
                "solution_count": clusters.solution_count,
                "clusters_per_solution": {
                    str(number): len(members) for number, members in solutions.items()
                },
                "noise_fraction_per_solution": {
                    str(number): float(np.mean(clusters.labels(number) == -1))
                    for number in solutions
                },
            },
            Path(args.summary),
        )

    print(f"Extracted {len(clusters)} clusters in {clusters.solution_count} solutions")


def _resolve_config(args: argparse.Namespace, **overrides: Any) -> ExtractionConfig:
    try:
        base = load_config(args.config) if args.config else ExtractionConfig()
        # archives carry their own sweep, which bounds the reference index
        return base.merged(overrides).validate(check_reference=False)
    except (ConfigError, InvalidParameterError) as exc:
        raise SegclustCliError(str(exc)) from exc


def _load_dataset(args: argparse.Namespace, feature_columns: Sequence[str]) -> SegmentSet:
    if args.points is not None and args.feature_columns:
        raise SegclustCliError("--feature-columns applies to --segments input only")

    try:
        if args.points is not None:
            return load_points(args.points)
        return load_segments(args.segments, feature_columns=feature_columns)
    except FileNotFoundError as exc:
        location = args.points or args.segments
        raise SegclustCliError(f"Input file '{location}' was not found") from exc
    except ValueError as exc:
        raise SegclustCliError(str(exc)) from exc


def _validate_output(table: str, rows: Sequence[dict[str, Any]]) -> None:
    try:
        validate_rows(table, rows)
    except OutputSchemaError as exc:
        raise SegclustCliError(f"{table.title()} output failed schema validation: {exc}") from exc


def _write_table(frame: pd.DataFrame, path: Path) -> None:
    path = path.expanduser().resolve()
    path.parent.mkdir(parents=True, exist_ok=True)
    try:
        if path.suffix.lower() in {".json", ".jsonl", ".ndjson"}:
            frame.to_json(path, orient="records", lines=True)
        else:
            frame.to_csv(path, index=False)
    except OSError as exc:  # pragma: no cover - unlikely in tests
        raise SegclustCliError(f"Failed to write output to '{path}': {exc}") from exc


def _write_json(data: dict[str, object], path: Path) -> None:
    path = path.expanduser().resolve()
    path.parent.mkdir(parents=True, exist_ok=True)
    try:
        path.write_text(json.dumps(data, indent=2, sort_keys=True) + "\n", encoding="utf-8")
    except OSError as exc:  # pragma: no cover - unlikely in tests
        raise SegclustCliError(f"Failed to write JSON output to '{path}': {exc}") from exc


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    main()
