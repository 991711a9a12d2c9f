"""
JSON utilities for execution payloads and assertion diffs.
"""

import json
from datetime import datetime
from typing import Any, List, Optional


def parse_output(raw: Optional[str]) -> Any:
    """
    Parse a Step Functions output document.

    Missing or empty output is treated as an empty object, matching what the
    console shows for a state machine whose last state returns nothing.
    """
    if raw is None or raw == "":
        return {}
    return json.loads(raw)


def dumps_input(payload: Any) -> Optional[str]:
    """Serialize an execution input; ``None`` means "send no input"."""
    if payload is None:
        return None
    if isinstance(payload, str):
        return payload
    return json.dumps(payload)


def dumps_pretty(obj: Any) -> str:
    """Stable, human-readable rendering used for diffs."""
    if isinstance(obj, str):
        return obj
    return json.dumps(obj, indent=2, sort_keys=True, default=str)


def find_json_differences(actual: Any, expected: Any, path: str = "$") -> List[str]:
    """
    Structural JSON comparison.

    Objects compare by key set (order irrelevant), arrays element-wise in
    order, scalars by type and value. ``True`` never equals ``1``.

    Returns:
        one entry per difference, each prefixed with a JSONPath-like location
    """
    if isinstance(expected, dict):
        if not isinstance(actual, dict):
            return [f"{path}: expected object, got {_type_name(actual)}"]
        differences = []
        missing = sorted(set(expected) - set(actual))
        extra = sorted(set(actual) - set(expected))
        for key in missing:
            differences.append(f"{path}.{key}: missing")
        for key in extra:
            differences.append(f"{path}.{key}: unexpected")
        for key in sorted(set(expected) & set(actual)):
            differences.extend(find_json_differences(actual[key], expected[key], f"{path}.{key}"))
        return differences

    if isinstance(expected, list):
        if not isinstance(actual, list):
            return [f"{path}: expected array, got {_type_name(actual)}"]
        if len(actual) != len(expected):
            return [f"{path}: expected {len(expected)} items, got {len(actual)}"]
        differences = []
        for index, (a, e) in enumerate(zip(actual, expected)):
            differences.extend(find_json_differences(a, e, f"{path}[{index}]"))
        return differences

    if isinstance(expected, bool) or isinstance(actual, bool):
        if type(actual) is not type(expected) or actual != expected:
            return [f"{path}: expected {expected!r}, got {actual!r}"]
        return []

    if isinstance(expected, (int, float)) and isinstance(actual, (int, float)):
        return [] if actual == expected else [f"{path}: expected {expected!r}, got {actual!r}"]

    if type(actual) is not type(expected) or actual != expected:
        return [f"{path}: expected {expected!r}, got {actual!r}"]
    return []


def json_equals(actual: Any, expected: Any) -> bool:
    return not find_json_differences(actual, expected)


def _type_name(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, dict):
        return "object"
    if isinstance(value, list):
        return "array"
    if isinstance(value, str):
        return "string"
    if isinstance(value, (int, float)):
        return "number"
    return type(value).__name__


def get_ms_timestamp(value: Any) -> int:
    """
    Convert a datetime or epoch value to epoch milliseconds.

    Epoch values below 10^10 are taken as seconds.
    """
    if value is None:
        return 0
    if isinstance(value, datetime):
        return int(value.timestamp() * 1000)
    if isinstance(value, (int, float)):
        ts = int(value)
        if ts < 10_000_000_000:
            ts *= 1000
        return ts
    return 0
