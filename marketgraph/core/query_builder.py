"""Serializes structured request parameters into canonical query pairs.

Identical logical queries always produce the same ordered list of
`(key, value)` string pairs (keys sorted, as are the paths of `include` and
the names of `fields.*`), so requests can be cached or de-duplicated by
anything built on top of the client.

Recognized parameter families:

- `page` / `perPage`: pagination, validated (never clamped).
- `fields.<type>`: sparse attribute sets.
- `limit.<relationship>`: caps for to-many relationships.
- `include`: dot-separated relationship paths.
- `pub_*`, `priv_*`, `prot_*`, `meta_*`: extended data filters, passed verbatim.
- anything else: resource specific filters, value-coerced only.
"""

import logging
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional
from uuid import UUID

from marketgraph.domain.errors import ValidationError
from marketgraph.domain.models.common import (
    DEFAULT_PAGE,
    DEFAULT_PER_PAGE,
    EXTENDED_DATA_PREFIXES,
    MAX_PER_PAGE,
    MIN_PER_PAGE,
    IncludePath,
    QueryPairs,
)

logger = logging.getLogger(__name__)

FIELDS_PREFIX = "fields."
LIMIT_PREFIX = "limit."


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def format_value(value: Any) -> str:
    """Coerces a single parameter value into its wire string."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
            return value.isoformat(timespec="milliseconds") + "Z"
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, Mapping):
        return object_query_string(value)
    if isinstance(value, (list, tuple, set, frozenset)):
        items = sorted(value, key=str) if isinstance(value, (set, frozenset)) else value
        return ",".join(format_value(item) for item in items)
    return str(value)


def object_query_string(obj: Mapping[str, Any]) -> str:
    """Serializes a mapping as `key1:value1;key2:value2` with sorted keys.

    `None` values are skipped.
    """
    parts = []
    for key in sorted(obj):
        value = obj[key]
        if value is None:
            continue
        parts.append(f"{key}:{format_value(value)}")
    return ";".join(parts)


def parse_include(include: Any) -> List[IncludePath]:
    """Validates include paths.

    Accepts a sequence of paths or a single comma-separated string.
    """
    if include is None:
        return []
    if isinstance(include, str):
        raw_paths: Iterable[Any] = include.split(",")
    elif isinstance(include, (list, tuple)):
        raw_paths = include
    else:
        raise ValidationError(
            f"'include' must be a list of relationship paths, got {type(include).__name__}",
            parameter="include",
        )
    paths: List[IncludePath] = []
    for raw in raw_paths:
        if not isinstance(raw, str):
            raise ValidationError(f"Include path must be a string, got {raw!r}", parameter="include")
        path = raw.strip()
        if not path or any(not segment for segment in path.split(".")):
            raise ValidationError(f"Malformed include path: {raw!r}", parameter="include")
        if path not in paths:
            paths.append(IncludePath(path))
    return paths


def _validate_page(value: Any) -> int:
    if not _is_int(value) or value < 1:
        raise ValidationError(f"'page' must be a positive integer, got {value!r}", parameter="page")
    return value


def _validate_per_page(value: Any) -> int:
    if not _is_int(value) or not MIN_PER_PAGE <= value <= MAX_PER_PAGE:
        raise ValidationError(
            f"'perPage' must be an integer between {MIN_PER_PAGE} and {MAX_PER_PAGE}, got {value!r}",
            parameter="perPage",
        )
    return value


def _validate_fields(key: str, value: Any) -> str:
    if len(key) <= len(FIELDS_PREFIX):
        raise ValidationError(f"Sparse fieldset parameter needs a resource type: {key!r}", parameter=key)
    if isinstance(value, str):
        names = [name.strip() for name in value.split(",")]
    elif isinstance(value, (list, tuple)):
        names = [str(name).strip() for name in value]
    else:
        raise ValidationError(f"'{key}' must be a list of attribute names", parameter=key)
    if any(not name for name in names):
        raise ValidationError(f"'{key}' contains an empty attribute name", parameter=key)
    return ",".join(sorted(set(names)))


def _validate_limit(key: str, value: Any) -> str:
    if len(key) <= len(LIMIT_PREFIX):
        raise ValidationError(f"Relationship limit parameter needs a relationship name: {key!r}", parameter=key)
    if not _is_int(value) or value < 1:
        raise ValidationError(f"'{key}' must be a positive integer, got {value!r}", parameter=key)
    return str(value)


def build_query(params: Optional[Mapping[str, Any]], paginated: bool = False) -> QueryPairs:
    """Builds canonical query pairs from structured parameters.

    Args:
        params: Structured parameters (wire-style keys, e.g. 'perPage', 'fields.listing').
        paginated: Whether the target operation returns a page. When True,
            `page` and `perPage` are always emitted, defaulting to 1 and 100.

    Returns:
        `(key, value)` pairs sorted by key.

    Raises:
        ValidationError: If a parameter is malformed or out of range.
    """
    params = dict(params or {})
    pairs: Dict[str, str] = {}

    if paginated:
        params.setdefault("page", DEFAULT_PAGE)
        params.setdefault("perPage", DEFAULT_PER_PAGE)

    for key, value in params.items():
        if not isinstance(key, str) or not key:
            raise ValidationError(f"Parameter names must be non-empty strings, got {key!r}")
        if value is None:
            continue
        if key == "page":
            pairs[key] = str(_validate_page(value))
        elif key == "perPage":
            pairs[key] = str(_validate_per_page(value))
        elif key == "include":
            paths = parse_include(value)
            if paths:
                pairs[key] = ",".join(sorted(paths))
        elif key.startswith(FIELDS_PREFIX):
            pairs[key] = _validate_fields(key, value)
        elif key.startswith(LIMIT_PREFIX):
            pairs[key] = _validate_limit(key, value)
        elif key.startswith(EXTENDED_DATA_PREFIXES):
            if key in EXTENDED_DATA_PREFIXES:
                raise ValidationError(f"Extended data filter needs an attribute name: {key!r}", parameter=key)
            pairs[key] = format_value(value)
        else:
            pairs[key] = format_value(value)

    query = QueryPairs(sorted(pairs.items()))
    logger.debug(f"Built query: {query}")
    return query


def encode_body(value: Any) -> Any:
    """Prepares a command body for JSON encoding.

    Datetimes, UUIDs and decimals become strings; containers are copied.
    """
    if isinstance(value, Mapping):
        return {str(k): encode_body(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [encode_body(v) for v in value]
    if isinstance(value, (datetime, date, UUID, Decimal)):
        return format_value(value)
    return value

