"""Canonical JSON serialization for signed documents.

The manifest bytes are what gets signed, so they must not depend on
dict insertion order or platform defaults.

Design decisions:
- JSON: sorted keys, no whitespace, ASCII-only, UTF-8 bytes, no trailing newline
- Keys must be strings; anything else is rejected rather than coerced
- Floats: finite values only; NaN/Inf raise errors to prevent silent corruption
"""

from __future__ import annotations

import json
import math
from typing import Any


class CanonicalJSONEncoder(json.JSONEncoder):
    """JSON encoder that produces canonical, deterministic output.

    Guarantees:
    - Sorted keys at all levels
    - No whitespace
    - ASCII-only output
    - Rejects NaN/Inf and non-string keys
    """

    def __init__(self, **kwargs: Any) -> None:
        kwargs["sort_keys"] = True
        kwargs["separators"] = (",", ":")
        kwargs["ensure_ascii"] = True
        kwargs["allow_nan"] = False
        super().__init__(**kwargs)

    def default(self, o: Any) -> Any:
        """Handle non-serializable types."""
        if hasattr(o, "to_dict"):
            return o.to_dict()
        return super().default(o)

    def encode(self, o: Any) -> str:
        """Encode with canonical formatting."""
        return super().encode(self._normalize(o))

    def _normalize(self, obj: Any) -> Any:
        """Recursively normalize values for canonical representation."""
        if isinstance(obj, float):
            if math.isnan(obj) or math.isinf(obj):
                raise ValueError(f"Cannot canonicalize non-finite float: {obj}")
            # Normalize -0.0 to 0.0
            if obj == 0.0:
                return 0.0
            return obj
        if isinstance(obj, dict):
            for key in obj:
                if not isinstance(key, str):
                    raise TypeError(f"Canonical JSON keys must be strings, got {type(key).__name__}")
            return {k: self._normalize(v) for k, v in sorted(obj.items())}
        if isinstance(obj, (list, tuple)):
            return [self._normalize(item) for item in obj]
        return obj


# Singleton encoder instance
_encoder = CanonicalJSONEncoder()


def canonical_json(data: Any) -> str:
    """Produce canonical JSON string from data.

    Raises:
        ValueError: If data contains NaN or Infinity floats
        TypeError: If a mapping has non-string keys
    """
    return _encoder.encode(data)


def canonical_bytes(data: Any) -> bytes:
    """Canonical JSON encoded as UTF-8 bytes."""
    return canonical_json(data).encode("utf-8")
