"""Normalized entity store.

One store is built per response and owned by the call that produced it.
Keys are `(type, id)`; a later `put` with the same key replaces the prior
entity entirely.
"""

from typing import Dict, Iterator, Optional

from marketgraph.domain.models.resources import Entity, ResourceKey


class NormalizedStore:
    """Deduplicated map of all entities seen in one response."""

    def __init__(self) -> None:
        self._entities: Dict[ResourceKey, Entity] = {}

    def put(self, entity: Entity) -> None:
        self._entities[entity.key] = entity

    def get(self, key: ResourceKey) -> Optional[Entity]:
        return self._entities.get(key)

    def __contains__(self, key: object) -> bool:
        return key in self._entities

    def __len__(self) -> int:
        return len(self._entities)

    def __iter__(self) -> Iterator[ResourceKey]:
        return iter(self._entities)

    def entities(self) -> Iterator[Entity]:
        return iter(self._entities.values())

    def __repr__(self) -> str:
        return f"NormalizedStore({len(self._entities)} entities)"
