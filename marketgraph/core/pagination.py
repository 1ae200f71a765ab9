"""Page metadata computation and parsing."""

import logging
import math
from typing import Any, Mapping, Optional

from marketgraph.domain.models.envelope import PaginationMeta

logger = logging.getLogger(__name__)

_KNOWN_META_KEYS = frozenset(
    ["page", "perPage", "totalItems", "totalPages", "paginationLimit", "paginationUnsupported"]
)


def compute_total_pages(total_items: Optional[int], per_page: Optional[int]) -> Optional[int]:
    """Returns ceil(total_items / per_page), or None when either input is unknown."""
    if total_items is None or per_page is None:
        return None
    if per_page <= 0:
        raise ValueError(f"per_page must be positive, got {per_page}")
    return math.ceil(total_items / per_page)


def _optional_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        logger.warning(f"Ignoring non-integer pagination value: {value!r}")
        return None


def parse_meta(raw: Optional[Mapping[str, Any]]) -> Optional[PaginationMeta]:
    """Builds PaginationMeta from a wire `meta` object.

    Absent totals stay None. When `totalItems` and `perPage` are both known
    the page count is derived from them; otherwise it is None, even if the
    server sent a value.
    """
    if raw is None:
        return None
    page = _optional_int(raw.get("page"))
    per_page = _optional_int(raw.get("perPage"))
    total_items = _optional_int(raw.get("totalItems"))
    total_pages = compute_total_pages(total_items, per_page) if per_page else None

    reported = _optional_int(raw.get("totalPages"))
    if reported is not None and total_pages is not None and reported != total_pages:
        logger.debug(f"Server reported totalPages={reported}, derived {total_pages} from totalItems/perPage.")

    return PaginationMeta(
        page=page,
        per_page=per_page,
        total_items=total_items,
        total_pages=total_pages,
        pagination_limit=_optional_int(raw.get("paginationLimit")),
        pagination_unsupported=bool(raw.get("paginationUnsupported", False)),
        extra={k: v for k, v in raw.items() if k not in _KNOWN_META_KEYS},
    )
