"""Stable hashing of clustering inputs for archive reuse."""

from __future__ import annotations

import hashlib
import json
from typing import Any, Mapping


def _normalise_for_hash(value: Any) -> Any:
    """Return a JSON-serialisable representation of ``value``."""

    if isinstance(value, Mapping):
        return {str(key): _normalise_for_hash(sub_value) for key, sub_value in sorted(value.items())}

    if isinstance(value, (list, tuple)):
        return [_normalise_for_hash(item) for item in value]

    if isinstance(value, set):
        return sorted(_normalise_for_hash(item) for item in value)

    if hasattr(value, "tolist") and callable(getattr(value, "tolist")):
        return _normalise_for_hash(value.tolist())

    if isinstance(value, float) and value != value:
        return "nan"

    if isinstance(value, float) and value in (float("inf"), float("-inf")):
        return repr(value)

    if isinstance(value, (str, int, float, bool)) or value is None:
        return value

    return repr(value)


def hash_payload(payload: Any) -> str:
    """Return a stable SHA-256 hash for ``payload``.

    The payload is normalised into a JSON structure first so numpy arrays,
    tuples and mappings hash the same regardless of container type or key order.
    """

    normalised = _normalise_for_hash(payload)
    encoded = json.dumps(normalised, sort_keys=True, ensure_ascii=False)
    return hashlib.sha256(encoded.encode("utf-8")).hexdigest()


__all__ = ["hash_payload"]
