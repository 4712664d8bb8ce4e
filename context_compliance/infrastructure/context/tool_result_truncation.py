"""Structure-preserving truncation of a single tool result payload.

The consumer should still see a well-formed value: strings keep a note of
how much was cut, arrays keep their maximal fitting prefix wrapped with
counts, objects keep their leading fields plus an omitted-field marker.
"""

from __future__ import annotations

import logging
from typing import Any

from context_compliance.infrastructure.context.token_estimator import (
    serialize_value,
    serialized_length,
)

logger = logging.getLogger(__name__)

# String fields of an object longer than this are cut individually
LONG_FIELD_CHARS = 500

# Minimum space worth spending on a partially kept object field
MIN_NESTED_BUDGET_CHARS = 100

TRUNCATED_KEY = "_truncated"
METADATA_KEY = "_metadata"


def truncation_note(dropped_chars: int) -> str:
    return f"\n\n[... truncated {dropped_chars} characters]"


def truncate_text(text: str, max_chars: int) -> str:
    """Hard-cut ``text`` so that text plus note fits ``max_chars`` where possible."""
    if len(text) <= max_chars:
        return text
    # Reserve room for the note; the note length depends on the dropped count
    keep = max(0, max_chars - len(truncation_note(len(text))))
    return text[:keep] + truncation_note(len(text) - keep)


def _array_wrapper(items: list[Any], original_count: int) -> dict[str, Any]:
    return {
        "data": items,
        METADATA_KEY: {
            "truncated": True,
            "originalCount": original_count,
            "returnedCount": len(items),
        },
    }


def truncate_array(items: list[Any], max_chars: int) -> dict[str, Any]:
    """Keep the longest prefix of ``items`` whose wrapped form fits ``max_chars``."""
    original_count = len(items)
    low, high = 0, original_count
    # Serialized size grows monotonically with the prefix length
    while low < high:
        mid = (low + high + 1) // 2
        if serialized_length(_array_wrapper(items[:mid], original_count)) <= max_chars:
            low = mid
        else:
            high = mid - 1
    logger.debug(f"Array truncated to {low}/{original_count} items")
    return _array_wrapper(items[:low], original_count)


def _entry_length(key: str, value: Any) -> int:
    # "key":value plus separator
    return serialized_length({key: value}) - 1


def truncate_object(obj: dict[str, Any], max_chars: int) -> dict[str, Any]:
    """Rebuild ``obj`` field by field until ``max_chars`` is spent."""
    result: dict[str, Any] = {}
    used = 2  # braces
    keys = list(obj.keys())

    for position, key in enumerate(keys):
        value = obj[key]
        if isinstance(value, str) and len(value) > LONG_FIELD_CHARS:
            value = truncate_text(value, LONG_FIELD_CHARS)

        entry = _entry_length(str(key), value)
        if used + entry <= max_chars:
            result[key] = value
            used += entry
            continue

        remaining_keys = keys[position:]
        marker_value = f"{len(remaining_keys)} more fields omitted"
        reserve = _entry_length(TRUNCATED_KEY, marker_value)
        available = max_chars - used - reserve - len(str(key)) - 4

        if available >= MIN_NESTED_BUDGET_CHARS and isinstance(value, (str, list, dict)):
            result[key] = truncate_tool_result(value, available)
            remaining_keys = keys[position + 1 :]

        if remaining_keys:
            result[TRUNCATED_KEY] = f"{len(remaining_keys)} more fields omitted"
        break

    return result


def truncate_tool_result(result: Any, max_chars: int) -> Any:
    """
    Truncate a tool result payload to roughly ``max_chars`` serialized characters.

    Args:
        result: Tool result payload (string, scalar, list or dict)
        max_chars: Character budget for the serialized payload

    Returns:
        The original payload when it already fits, otherwise a truncated copy
    """
    max_chars = max(0, int(max_chars))
    if serialized_length(result) <= max_chars:
        return result

    if isinstance(result, str):
        return truncate_text(result, max_chars)
    if isinstance(result, (list, tuple)):
        return truncate_array(list(result), max_chars)
    if isinstance(result, dict):
        return truncate_object(result, max_chars)

    try:
        text = serialize_value(result)
    except (TypeError, ValueError, RecursionError):
        text = str(result)
    return truncate_text(text, max_chars)
