"""Resource graph entities.

An `Entity` is a flat record as received on the wire: attributes plus
relationships that only hold `Reference`s (foreign keys). Denormalized
views are built from these by the denormalization engine and use
`DenormalizedEntity` / `Unresolved` instead.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, NamedTuple, Union

from marketgraph.domain.models.common import ResourceId

logger = logging.getLogger(__name__)


class ResourceKind(str, Enum):
    """Closed set of resource kinds served by the marketplace API."""

    MARKETPLACE = "marketplace"
    USER = "user"
    STRIPE_ACCOUNT = "stripeAccount"
    LISTING = "listing"
    IMAGE = "image"
    TRANSACTION = "transaction"
    BOOKING = "booking"
    STOCK = "stock"
    STOCK_ADJUSTMENT = "stockAdjustment"
    STOCK_RESERVATION = "stockReservation"
    AVAILABILITY_EXCEPTION = "availabilityException"
    REVIEW = "review"
    MESSAGE = "message"
    EVENT = "event"

    @classmethod
    def is_known(cls, value: str) -> bool:
        return value in _KIND_VALUES


_KIND_VALUES = frozenset(kind.value for kind in ResourceKind)


class ResourceKey(NamedTuple):
    """Identity of an entity inside a normalized store."""
    type: str
    id: ResourceId


@dataclass(frozen=True)
class Reference:
    """A foreign key to another resource."""
    id: ResourceId
    type: str

    @property
    def key(self) -> ResourceKey:
        return ResourceKey(self.type, self.id)

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "type": self.type}


@dataclass(frozen=True)
class Unresolved:
    """Marks a reference on an include path whose target was not in the response."""
    reference: Reference

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.reference.id, "type": self.reference.type, "unresolved": True}


# A relationship value: to-one, to-many, or explicitly empty to-one.
RelationshipValue = Union[Reference, List[Reference], None]


def _parse_id(raw: Any) -> ResourceId:
    # Typed ids may arrive as {"uuid": "..."} when a transit-like encoding is used.
    if isinstance(raw, Mapping) and "uuid" in raw:
        raw = raw["uuid"]
    if raw is None:
        raise ValueError("Resource object is missing an id.")
    return ResourceId(str(raw))


def parse_reference(raw: Mapping[str, Any]) -> Reference:
    """Builds a Reference from a `{id, type}` resource identifier object."""
    ref_type = raw.get("type")
    if not ref_type:
        raise ValueError(f"Resource identifier without type: {raw!r}")
    if not ResourceKind.is_known(ref_type):
        logger.debug(f"Reference to resource type outside the known kinds: {ref_type}")
    return Reference(id=_parse_id(raw.get("id")), type=str(ref_type))


def parse_relationship(raw: Any) -> RelationshipValue:
    """Parses a wire relationship value `{data: ...}` into references."""
    data = raw.get("data") if isinstance(raw, Mapping) else None
    if data is None:
        return None
    if isinstance(data, list):
        return [parse_reference(item) for item in data]
    return parse_reference(data)


@dataclass
class Entity:
    """A resource object as stored in the normalized store."""
    id: ResourceId
    type: str
    attributes: Dict[str, Any] = field(default_factory=dict)
    relationships: Dict[str, RelationshipValue] = field(default_factory=dict)

    @property
    def key(self) -> ResourceKey:
        return ResourceKey(self.type, self.id)

    @classmethod
    def from_resource_object(cls, raw: Mapping[str, Any]) -> "Entity":
        """Parses a JSON:API resource object."""
        if not isinstance(raw, Mapping):
            raise ValueError(f"Resource object must be a mapping, got {type(raw).__name__}")
        res_type = raw.get("type")
        if not res_type:
            raise ValueError(f"Resource object without type: {raw!r}")
        if not ResourceKind.is_known(res_type):
            logger.warning(f"Received resource of unknown type '{res_type}'. Keeping it as-is.")
        relationships = {
            name: parse_relationship(value)
            for name, value in (raw.get("relationships") or {}).items()
        }
        return cls(
            id=_parse_id(raw.get("id")),
            type=str(res_type),
            attributes=dict(raw.get("attributes") or {}),
            relationships=relationships,
        )


@dataclass
class DenormalizedEntity:
    """An entity whose included relationships are embedded.

    Relationship values are one of: `DenormalizedEntity` (resolved),
    `Reference` (not on an include path, beyond the depth budget, or a cycle),
    `Unresolved` (on an include path but missing from the response),
    `None`, or a list of the above.
    """
    id: ResourceId
    type: str
    attributes: Dict[str, Any] = field(default_factory=dict)
    relationships: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Converts the tree into plain JSON-compatible data."""
        return {
            "id": self.id,
            "type": self.type,
            "attributes": self.attributes,
            "relationships": {
                name: _value_to_dict(value) for name, value in self.relationships.items()
            },
        }


def _value_to_dict(value: Any) -> Any:
    if isinstance(value, list):
        return [_value_to_dict(item) for item in value]
    if value is None:
        return None
    return value.to_dict()
