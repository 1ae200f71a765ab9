"""Converts response documents into a normalized entity store.

Relationships are left as references at this stage; resolving them is the
job of the denormalization engine.
"""

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from marketgraph.core.pagination import parse_meta
from marketgraph.domain.models.envelope import PaginationMeta, Primary
from marketgraph.domain.models.resources import Entity
from marketgraph.domain.models.store import NormalizedStore

logger = logging.getLogger(__name__)


@dataclass
class NormalizedDocument:
    store: NormalizedStore
    primary: Primary
    meta: Optional[PaginationMeta] = None


def normalize(document: Optional[Mapping[str, Any]]) -> NormalizedDocument:
    """Normalizes a `{data, included?, meta?}` document.

    Every entity of `included` is inserted first, then the primary data, so
    on a key collision the primary representation wins. Duplicate keys
    collapse to one entry.

    Args:
        document: The decoded response body.

    Returns:
        The store, the primary identity (or ordered identities), and the
        parsed pagination meta (None when absent).

    Raises:
        ValueError: If a resource object is malformed.
    """
    store = NormalizedStore()
    if not document:
        return NormalizedDocument(store=store, primary=None)

    included = document.get("included") or []
    for raw in included:
        store.put(Entity.from_resource_object(raw))

    data = document.get("data")
    primary: Primary
    if data is None:
        primary = None
    elif isinstance(data, list):
        primary = []
        for raw in data:
            entity = Entity.from_resource_object(raw)
            store.put(entity)
            primary.append(entity.key)
    else:
        entity = Entity.from_resource_object(data)
        store.put(entity)
        primary = entity.key

    meta = parse_meta(document.get("meta"))
    logger.debug(
        f"Normalized document: {len(store)} entities "
        f"({len(included)} included, primary={'list' if isinstance(primary, list) else 'single'})"
    )
    return NormalizedDocument(store=store, primary=primary, meta=meta)
