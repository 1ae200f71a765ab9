"""Endpoint table of the marketplace integration API.

Every operation of every resource API is described here as data; a single
generic `ResourceApi` implements show/query/command for all of them.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Tuple

from marketgraph.domain.models.envelope import Channel


class OperationKind(str, Enum):
    SHOW = "show"        # GET, single resource
    QUERY = "query"      # GET, paginated list
    COMMAND = "command"  # POST, JSON body
    UPLOAD = "upload"    # POST, multipart body


@dataclass(frozen=True)
class EndpointSpec:
    """One operation of a resource API."""
    api: str
    operation: str
    kind: OperationKind
    # Parameters that must be present. For SHOW, at least one of them.
    required: Tuple[str, ...] = ()

    @property
    def channel(self) -> Channel:
        return Channel.QUERY if self.kind in (OperationKind.SHOW, OperationKind.QUERY) else Channel.COMMAND

    @property
    def method(self) -> str:
        return "GET" if self.channel == Channel.QUERY else "POST"

    @property
    def name(self) -> str:
        return f"{self.api}.{self.operation}"

    def path(self, version: str) -> str:
        return f"/{version}/integration_api/{self.api}/{self.operation}"


_S, _Q, _C, _U = OperationKind.SHOW, OperationKind.QUERY, OperationKind.COMMAND, OperationKind.UPLOAD

ENDPOINTS: Tuple[EndpointSpec, ...] = (
    EndpointSpec("marketplace", "show", _S),

    EndpointSpec("users", "show", _S, ("id", "email")),
    EndpointSpec("users", "query", _Q),
    EndpointSpec("users", "update_profile", _C, ("id",)),
    EndpointSpec("users", "approve", _C, ("id",)),
    EndpointSpec("users", "update_permissions", _C, ("id",)),

    EndpointSpec("listings", "show", _S, ("id",)),
    EndpointSpec("listings", "query", _Q),
    EndpointSpec("listings", "create", _C, ("title", "authorId", "state")),
    EndpointSpec("listings", "update", _C, ("id",)),
    EndpointSpec("listings", "approve", _C, ("id",)),
    EndpointSpec("listings", "open", _C, ("id",)),
    EndpointSpec("listings", "close", _C, ("id",)),

    EndpointSpec("transactions", "show", _S, ("id",)),
    EndpointSpec("transactions", "query", _Q),
    EndpointSpec("transactions", "transition", _C, ("id", "transition")),
    EndpointSpec("transactions", "transition_speculative", _C, ("id", "transition")),
    EndpointSpec("transactions", "update_metadata", _C, ("id",)),

    EndpointSpec("images", "upload", _U, ("image",)),

    EndpointSpec("availability_exceptions", "query", _Q, ("listingId", "start", "end")),
    EndpointSpec("availability_exceptions", "create", _C, ("listingId", "seats", "start", "end")),
    EndpointSpec("availability_exceptions", "delete", _C, ("id",)),

    EndpointSpec("events", "query", _Q),

    EndpointSpec("stock_adjustments", "query", _Q, ("listingId", "start", "end")),
    EndpointSpec("stock_adjustments", "create", _C, ("listingId", "quantity")),

    EndpointSpec("stock", "compare_and_set", _C, ("listingId", "oldTotal", "newTotal")),

    EndpointSpec("stock_reservations", "show", _S, ("id",)),
)


def endpoints_by_api() -> Dict[str, Dict[str, EndpointSpec]]:
    """Groups ENDPOINTS as {api: {operation: spec}}."""
    grouped: Dict[str, Dict[str, EndpointSpec]] = {}
    for spec in ENDPOINTS:
        grouped.setdefault(spec.api, {})[spec.operation] = spec
    return grouped
