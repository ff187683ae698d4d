"""
Helpers for walking loosely-structured vendor JSON.
"""

from datetime import datetime, timezone
from typing import Any, Iterator, Optional, Sequence

from dateutil import parser as date_parser


def iter_objects(node: Any) -> Iterator[dict]:
    """Yield every dict in the tree, depth-first, parents before children."""
    if isinstance(node, dict):
        yield node
        for value in node.values():
            yield from iter_objects(value)
    elif isinstance(node, list):
        for item in node:
            yield from iter_objects(item)


def first_string(
    obj: Any,
    *keys: str,
    nested: Sequence[str] = (),
    numbers: bool = False,
) -> Optional[str]:
    """
    Value of the first key holding a string.

    Dict values are searched again with the `nested` keys (e.g. name/value),
    and numbers are stringified when `numbers` is set.
    """
    if not isinstance(obj, dict):
        return None

    for key in keys:
        if key not in obj:
            continue
        value = obj[key]
        if isinstance(value, str):
            return value
        if numbers and isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        if isinstance(value, dict) and nested:
            inner = first_string(value, *nested, nested=nested, numbers=numbers)
            if inner and inner.strip():
                return inner
    return None


def parse_date(raw: Optional[str]) -> Optional[datetime]:
    """Lenient date parse; naive values are taken as UTC."""
    if not raw or not raw.strip():
        return None
    try:
        parsed = date_parser.parse(raw.strip())
    except (ValueError, OverflowError, TypeError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def first_date(obj: Any, *keys: str) -> Optional[datetime]:
    if not isinstance(obj, dict):
        return None
    for key in keys:
        value = obj.get(key)
        if not isinstance(value, str):
            continue
        parsed = parse_date(value)
        if parsed is not None:
            return parsed
    return None


def find_property(node: Any, name: str) -> Any:
    """First value stored under `name` anywhere in the tree, or None."""
    if isinstance(node, dict):
        if name in node:
            return node[name]
        for value in node.values():
            found = find_property(value, name)
            if found is not None:
                return found
    elif isinstance(node, list):
        for item in node:
            found = find_property(item, name)
            if found is not None:
                return found
    return None
