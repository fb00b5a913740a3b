"""Short, stable hashes of display settings for cache keys."""

from __future__ import annotations

import hashlib
import json
import math
from enum import Enum
from typing import Any


class SettingsHashError(TypeError):
    """Raised when a settings value has no stable JSON form."""


def _normalize(value: Any, path: str = "$") -> Any:
    if isinstance(value, Enum):
        value = value.value
    if isinstance(value, dict):
        normalized = {}
        for key, item in value.items():
            if not isinstance(key, str):
                raise SettingsHashError(f"settings key at {path} must be a string, got {type(key).__name__}")
            normalized[key] = _normalize(item, f"{path}.{key}")
        return normalized
    if isinstance(value, (list, tuple)):
        return [_normalize(item, f"{path}[{idx}]") for idx, item in enumerate(value)]
    if isinstance(value, float) and not math.isfinite(value):
        raise ValueError(f"non-finite number at {path}: {value!r}")
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    raise SettingsHashError(f"unsupported settings value at {path}: {type(value).__name__}")


def canonical_dumps(settings: Any) -> str:
    """Serialize ``settings`` so that equal values give equal strings.

    Keys are sorted at every level, sequences keep their order and non-ASCII
    text is kept as is. Tuples serialize like lists and enums by their value.
    """
    return json.dumps(
        _normalize(settings),
        sort_keys=True,
        ensure_ascii=False,
        separators=(",", ":"),
        allow_nan=False,
    )


def settings_hash(settings: Any, length: int = 8) -> str:
    """Return the first ``length`` hex chars of the sha256 of ``settings``."""
    data = canonical_dumps(settings).encode("utf-8")
    return hashlib.sha256(data).hexdigest()[:length]
