"""Locals serialization for adapters that cross a process or cache boundary.

Only JSON-representable data survives: mappings with string keys (written
as JSON objects), lists, tuples, strings, ints, finite floats, booleans and
None. Anything else (functions, open files, arbitrary objects, cycles,
nesting deeper than the interpreter can recurse) raises SerializationError.
"""

from __future__ import annotations

import json
import math
from collections.abc import Mapping
from typing import Any

from fastapi_request_middleware.exceptions import SerializationError

_SCALARS = (str, int, bool, type(None))


def try_serialize_locals(value: Mapping[str, Any]) -> str:
    """Return ``value`` as a JSON string, or raise SerializationError.

    ``value`` is never modified.
    """
    if not isinstance(value, Mapping):
        raise SerializationError(
            f"locals must be a mapping, got {type(value).__name__}", path="locals"
        )
    try:
        _check(value, "locals", set())
        return json.dumps(
            value, allow_nan=False, ensure_ascii=False, default=_encode_mapping
        )
    except RecursionError as exc:
        raise SerializationError(
            "locals is nested too deeply to serialize", path="locals"
        ) from exc
    except (TypeError, ValueError) as exc:
        raise SerializationError(str(exc), path="locals") from exc


def deserialize_locals(text: str | bytes) -> dict[str, Any]:
    """Parse text produced by :func:`try_serialize_locals`."""
    try:
        data = json.loads(text)
    except ValueError as exc:
        raise SerializationError(f"Malformed locals payload: {exc}") from exc
    if not isinstance(data, dict):
        raise SerializationError(
            f"Locals payload must be an object, got {type(data).__name__}"
        )
    return data


def _encode_mapping(value: Any) -> dict[str, Any]:
    # json only encodes dict itself; other mappings were validated by _check
    if isinstance(value, Mapping):
        return dict(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _check(value: Any, path: str, ancestors: set[int]) -> None:
    if isinstance(value, _SCALARS):
        return
    if isinstance(value, float):
        if not math.isfinite(value):
            raise SerializationError(
                f"{path} is {value!r}, which has no JSON form", path=path
            )
        return

    if isinstance(value, (Mapping, list, tuple)):
        marker = id(value)
        if marker in ancestors:
            raise SerializationError(f"{path} is a cyclic reference", path=path)
        ancestors.add(marker)
        try:
            if isinstance(value, Mapping):
                for key, item in value.items():
                    if not isinstance(key, str):
                        raise SerializationError(
                            f"{path} has non-string key {key!r}", path=path
                        )
                    _check(item, f"{path}.{key}", ancestors)
            else:
                for index, item in enumerate(value):
                    _check(item, f"{path}[{index}]", ancestors)
        finally:
            ancestors.discard(marker)
        return

    if callable(value):
        kind = "a callable"
    else:
        kind = f"a {type(value).__name__}"
    raise SerializationError(f"{path} is {kind} and cannot be serialized", path=path)
