"""Reconstructs nested resource trees from a normalized store.

Each relationship named by an include path is replaced by the resolved
entity (or list of entities) as long as it lies within the depth budget.
Relationships off the include paths keep their bare references.

A reference that cannot be found in the store becomes an `Unresolved`
marker: responses may legitimately be partial and this never raises.

Cycles (e.g. transaction -> booking -> transaction) are cut with a visited
set keyed by the node together with the path of nodes that reached it: a
node that already appears on its own path is left as a bare reference.
The same node may still be embedded several times when reached through
different paths.
"""

import copy
import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from marketgraph.domain.errors import ValidationError
from marketgraph.domain.models.envelope import (
    DenormalizedResult,
    NormalizedResponse,
    PaginationMeta,
    Primary,
    ResultKind,
)
from marketgraph.domain.models.resources import (
    DenormalizedEntity,
    Entity,
    Reference,
    RelationshipValue,
    ResourceKey,
    Unresolved,
)
from marketgraph.domain.models.store import NormalizedStore

logger = logging.getLogger(__name__)

DEFAULT_DEPTH = 1

IncludeTree = Dict[str, "IncludeTree"]
Trail = Tuple[ResourceKey, ...]


def build_include_tree(paths: Iterable[str]) -> IncludeTree:
    """Turns ['listing.author', 'listing.images'] into {'listing': {'author': {}, 'images': {}}}."""
    tree: IncludeTree = {}
    for path in paths:
        node = tree
        for segment in path.split("."):
            if not segment:
                raise ValidationError(f"Malformed include path: {path!r}", parameter="include")
            node = node.setdefault(segment, {})
    return tree


class _GraphWalker:
    """Depth-first walk over one store. One instance per denormalization."""

    def __init__(self, store: NormalizedStore, tree: IncludeTree, max_depth: int):
        self.store = store
        self.tree = tree
        self.max_depth = max_depth

    def root(self, key: ResourceKey) -> Union[DenormalizedEntity, Unresolved]:
        entity = self.store.get(key)
        if entity is None:
            logger.debug(f"Primary resource {key} is missing from the store.")
            return Unresolved(Reference(id=key.id, type=key.type))
        return self._expand(entity, self.tree, depth=0, trail=(key,))

    def _expand(self, entity: Entity, tree: IncludeTree, depth: int, trail: Trail) -> DenormalizedEntity:
        relationships: Dict[str, Any] = {}
        for name, value in entity.relationships.items():
            subtree = tree.get(name)
            if subtree is None or depth >= self.max_depth:
                relationships[name] = _bare(value)
            elif isinstance(value, list):
                relationships[name] = [self._resolve(ref, subtree, depth + 1, trail) for ref in value]
            elif value is None:
                relationships[name] = None
            else:
                relationships[name] = self._resolve(value, subtree, depth + 1, trail)
        return DenormalizedEntity(
            id=entity.id,
            type=entity.type,
            attributes=copy.deepcopy(entity.attributes),
            relationships=relationships,
        )

    def _resolve(self, ref: Reference, tree: IncludeTree, depth: int, trail: Trail) -> Any:
        key = ref.key
        if key in trail:
            logger.debug(f"Cycle detected at {key} via {trail}; leaving reference unresolved.")
            return ref
        target = self.store.get(key)
        if target is None:
            return Unresolved(ref)
        return self._expand(target, tree, depth, trail + (key,))


def _bare(value: RelationshipValue) -> RelationshipValue:
    if isinstance(value, list):
        return list(value)
    return value


def denormalize(
    store: NormalizedStore,
    roots: Primary,
    include: Optional[Iterable[str]] = None,
    depth: Optional[int] = None,
    meta: Optional[PaginationMeta] = None,
) -> DenormalizedResult:
    """Builds the embedded-graph view of a response.

    Args:
        store: The normalized store of the response.
        roots: The primary identity, or ordered identities for list results.
        include: Relationship paths to embed, e.g. ['author', 'author.profileImage'].
        depth: Maximum number of relationship hops to embed (default 1).
            0 returns the primary resources with bare references.
        meta: Pagination meta; when given for a list, the result is 'paginated'.

    Returns:
        A DenormalizedResult tagged 'single', 'list' or 'paginated'.
    """
    max_depth = DEFAULT_DEPTH if depth is None else depth
    if not isinstance(max_depth, int) or isinstance(max_depth, bool) or max_depth < 0:
        raise ValidationError(f"depth must be a non-negative integer, got {depth!r}", parameter="depth")

    walker = _GraphWalker(store, build_include_tree(include or []), max_depth)

    if isinstance(roots, list):
        data: Any = [walker.root(key) for key in roots]
        kind = ResultKind.PAGINATED if meta is not None else ResultKind.LIST
        return DenormalizedResult(kind=kind, data=data, meta=meta)
    if roots is None:
        return DenormalizedResult(kind=ResultKind.SINGLE, data=None, meta=meta)
    return DenormalizedResult(kind=ResultKind.SINGLE, data=walker.root(roots), meta=meta)


def denormalize_response(
    response: NormalizedResponse,
    include: Optional[List[str]] = None,
    depth: Optional[int] = None,
) -> DenormalizedResult:
    """Denormalizes a client response; include defaults to the paths the request asked for."""
    paths = response.include if include is None else include
    return denormalize(response.store, response.primary, include=paths, depth=depth, meta=response.meta)
