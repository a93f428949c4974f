"""Full-valley extraction from an ordered reachability profile."""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
import math
from typing import Iterable, Iterator, Sequence

import numpy as np

from .reachability import ReachabilityProfile


logger = logging.getLogger(__name__)

UNDEFINED_CEILING_SCALE = 1.05
"""Undefined reachability is mapped to this multiple of the largest finite value."""


class InvalidParameterError(ValueError):
    """Raised when extraction inputs are malformed (caller error, never retried)."""


@dataclass(frozen=True, slots=True)
class Valley:
    """A contiguous run of profile positions that is a maximal block at some cut.

    ``start`` and ``end`` are inclusive, zero-based positions in the profile.
    ``threshold`` is the reachability of the smallest spike enclosing the run
    (``inf`` for the whole profile) and ``extraction_level`` ranks thresholds
    from the top down, so nested valleys always carry a higher level.
    """

    start: int
    end: int
    threshold: float
    extraction_level: int
    n_points: int

    def __post_init__(self) -> None:
        if self.start < 0 or self.end < self.start:
            raise ValueError(f"Invalid valley bounds ({self.start}, {self.end})")
        if self.end >= self.n_points:
            raise ValueError("Valley bounds exceed the profile length")

    @property
    def size(self) -> int:
        return self.end - self.start + 1

    @property
    def fraction(self) -> float:
        return self.size / self.n_points

    def contains(self, other: "Valley") -> bool:
        """Return ``True`` when ``other`` lies strictly inside this valley."""

        inside = self.start <= other.start and other.end <= self.end
        return inside and (self.start, self.end) != (other.start, other.end)


@dataclass(slots=True)
class SplitNode:
    """Node of the unfiltered peak-splitting decomposition."""

    start: int
    end: int
    threshold: float
    peak: int | None = None
    recorded: bool = True
    children: list["SplitNode"] = field(default_factory=list)

    @property
    def is_leaf(self) -> bool:
        return not self.children

    def iter_leaves(self) -> Iterator["SplitNode"]:
        stack = [self]
        while stack:
            node = stack.pop()
            if node.is_leaf:
                yield node
            else:
                stack.extend(reversed(node.children))


def extract_full_valleys(
    profile: ReachabilityProfile | Sequence[float | None] | np.ndarray,
    cutoff_frac: float,
) -> tuple[Valley, ...]:
    """Return every full valley holding at least ``cutoff_frac`` of the points.

    Valleys are ordered by ``(extraction_level, start)``. The whole profile is
    always the first entry since it passes any cutoff below one.
    """

    _validate_cutoff(cutoff_frac)
    reachability = prepare_reachability(profile)
    n_points = reachability.size
    min_size = cutoff_frac * n_points

    spans: list[tuple[int, int, float]] = []
    for node in _walk(reachability, min_size=min_size):
        if node.recorded:
            spans.append((node.start, node.end, node.threshold))

    levels = _dense_levels(threshold for _, _, threshold in spans)
    valleys = [
        Valley(
            start=start,
            end=end,
            threshold=threshold,
            extraction_level=levels[threshold],
            n_points=n_points,
        )
        for start, end, threshold in spans
    ]
    valleys.sort(key=lambda valley: (valley.extraction_level, valley.start))

    logger.debug(
        "Extracted %d full valleys from %d points (cutoff_frac=%s)",
        len(valleys),
        n_points,
        cutoff_frac,
    )
    return tuple(valleys)


def split_tree(
    profile: ReachabilityProfile | Sequence[float | None] | np.ndarray,
) -> SplitNode:
    """Return the complete peak-splitting decomposition with no size cutoff."""

    reachability = prepare_reachability(profile)
    nodes = list(_walk(reachability, min_size=0.0))
    by_bounds = {(node.start, node.end): node for node in nodes}
    for node in nodes:
        if node.peak is None:
            continue
        node.children = [
            by_bounds[(node.start, node.peak - 1)],
            by_bounds[(node.peak, node.end)],
        ]
    return nodes[0]


def leaf_valleys(
    profile: ReachabilityProfile | Sequence[float | None] | np.ndarray,
) -> list[tuple[int, int]]:
    """Bounds of the finest partition, left to right."""

    root = split_tree(profile)
    return [(leaf.start, leaf.end) for leaf in root.iter_leaves()]


def prepare_reachability(
    profile: ReachabilityProfile | Sequence[float | None] | np.ndarray,
) -> np.ndarray:
    """Return a finite float copy of the profile's reachability values."""

    if isinstance(profile, ReachabilityProfile):
        raw = profile.reachability
    elif isinstance(profile, np.ndarray):
        raw = profile
    else:
        raw = [np.nan if value is None else value for value in profile]

    values = np.array(raw, dtype=float)
    if values.ndim != 1:
        raise InvalidParameterError("Reachability profile must be one-dimensional")
    if values.size == 0:
        raise InvalidParameterError("Reachability profile is empty")

    undefined = ~np.isfinite(values)
    if undefined.any():
        finite = values[~undefined]
        ceiling = float(finite.max()) * UNDEFINED_CEILING_SCALE if finite.size else 1.0
        if ceiling <= 0:
            ceiling = 1.0
        values[undefined] = ceiling
    if (values < 0).any():
        raise InvalidParameterError("Reachability distances must be non-negative")
    return values


def _walk(reachability: np.ndarray, *, min_size: float) -> Iterator[SplitNode]:
    """Yield decomposition nodes depth-first, left before right.

    Intervals smaller than ``min_size`` are dropped along with everything
    beneath them.
    """

    stack: list[tuple[int, int, float]] = [(0, reachability.size - 1, math.inf)]
    while stack:
        lo, hi, threshold = stack.pop()
        if hi - lo + 1 < min_size:
            continue

        peak = _interior_peak(reachability, lo, hi)
        node = SplitNode(start=lo, end=hi, threshold=threshold, peak=peak)
        if peak is None:
            yield node
            continue

        peak_value = float(reachability[peak])
        # A spike tied with the one that carved this interval splits it at the
        # same cut, so the interval itself is never a maximal block.
        node.recorded = peak_value != threshold
        yield node

        stack.append((peak, hi, peak_value))
        stack.append((lo, peak - 1, peak_value))


def _interior_peak(reachability: np.ndarray, lo: int, hi: int) -> int | None:
    if hi - lo < 2:
        return None
    interior = reachability[lo + 1 : hi]
    # the floor includes the right boundary, which closes the valley
    if interior.max() <= reachability[lo + 1 : hi + 1].min():
        return None
    # argmax returns the first occurrence, which is the leftmost tied spike
    return lo + 1 + int(np.argmax(interior))


def _dense_levels(thresholds: Iterable[float]) -> dict[float, int]:
    distinct = sorted(set(thresholds), reverse=True)
    return {threshold: level for level, threshold in enumerate(distinct)}


def _validate_cutoff(cutoff_frac: float) -> None:
    try:
        value = float(cutoff_frac)
    except (TypeError, ValueError) as exc:
        raise InvalidParameterError(f"cutoff_frac must be a number, got {cutoff_frac!r}") from exc
    if not math.isfinite(value) or not 0.0 < value < 1.0:
        raise InvalidParameterError(
            f"cutoff_frac must lie strictly between 0 and 1, got {cutoff_frac!r}"
        )


__all__ = [
    "InvalidParameterError",
    "SplitNode",
    "UNDEFINED_CEILING_SCALE",
    "Valley",
    "extract_full_valleys",
    "leaf_valleys",
    "prepare_reachability",
    "split_tree",
]
