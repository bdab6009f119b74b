"""Query sanitization for seeding newly created documents."""

from collections.abc import Mapping
from typing import Any

OPERATOR_PREFIX = "$"


def is_plain_mapping(value: Any) -> bool:
    """Check whether a value is a key/value mapping (dict, SON, ...).

    Datetimes, ObjectIds, lists and pydantic models are not.
    """
    return isinstance(value, Mapping)


def sanitize_query(query: Any) -> Any:
    """Strip operator keys and empty sub-documents from a query.

    Anything that is not a mapping (datetimes, None, scalars, lists,
    ObjectIds) is a leaf match value and is returned as-is.

    For a mapping a new dict is built. Keys starting with ``$`` are
    dropped, and so are keys whose value sanitizes down to an empty mapping.
    Kept keys carry their original value: sanitizing only decides what is
    kept, it never rewrites nested values.

    Example:
        >>> sanitize_query({"name": "a", "$or": [], "nested": {"$gt": 5}})
        {'name': 'a'}
    """
    if not is_plain_mapping(query):
        return query

    clean_query: dict[Any, Any] = {}

    for key, value in query.items():
        if isinstance(key, str) and key.startswith(OPERATOR_PREFIX):
            continue

        clean_value = sanitize_query(value)

        if is_plain_mapping(clean_value) and not clean_value:
            continue

        clean_query[key] = value

    return clean_query
