"""Request/response value objects exchanged across the client layers."""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from marketgraph.domain.models.common import IncludePath
from marketgraph.domain.models.resources import ResourceKey
from marketgraph.domain.models.store import NormalizedStore


class Channel(str, Enum):
    """Rate limiting channel of an operation."""
    QUERY = "query"
    COMMAND = "command"


# === Transport ===

@dataclass
class ApiRequest:
    """A single HTTP request, independent of the HTTP library in use."""
    method: str
    path: str
    params: List[Tuple[str, str]] = field(default_factory=list)
    json: Optional[Dict[str, Any]] = None
    form: Optional[Dict[str, str]] = None
    files: Optional[Dict[str, Tuple[str, bytes]]] = None
    headers: Dict[str, str] = field(default_factory=dict)

    def with_headers(self, **extra: str) -> "ApiRequest":
        """Returns a copy with additional headers (the original is untouched)."""
        headers = dict(self.headers)
        headers.update(extra)
        return ApiRequest(
            method=self.method,
            path=self.path,
            params=list(self.params),
            json=self.json,
            form=self.form,
            files=self.files,
            headers=headers,
        )


@dataclass
class RawResponse:
    """Status, headers and decoded JSON body of an HTTP response."""
    status: int
    status_text: str = ""
    headers: Dict[str, str] = field(default_factory=dict)
    body: Any = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


# === Authentication ===

@dataclass
class Credential:
    """Bearer credential obtained through the token exchange.

    `issued_at` is a unix timestamp recorded when the token response was
    received; `expires_at` is derived from it.
    """
    access_token: str
    refresh_token: Optional[str] = None
    token_type: Optional[str] = None
    expires_in: Optional[int] = None
    scope: Optional[str] = None
    issued_at: float = field(default_factory=time.time)
    grant_type: Optional[str] = None

    @property
    def expires_at(self) -> Optional[float]:
        if self.expires_in is None:
            return None
        return self.issued_at + self.expires_in

    def is_expired(self, now: Optional[float] = None, leeway: float = 0.0) -> bool:
        expires_at = self.expires_at
        if expires_at is None:
            return False
        return (now if now is not None else time.time()) + leeway >= expires_at

    def authorization_header(self) -> str:
        token_type = self.token_type or "bearer"
        return f"{token_type.capitalize()} {self.access_token}"

    @classmethod
    def from_token_response(
        cls,
        payload: Mapping[str, Any],
        issued_at: Optional[float] = None,
        grant_type: Optional[str] = None,
    ) -> "Credential":
        access_token = payload.get("access_token")
        if not access_token:
            raise ValueError("Token response did not contain an access_token.")
        expires_in = payload.get("expires_in")
        return cls(
            access_token=str(access_token),
            refresh_token=payload.get("refresh_token"),
            token_type=payload.get("token_type"),
            expires_in=int(expires_in) if expires_in is not None else None,
            scope=payload.get("scope"),
            issued_at=issued_at if issued_at is not None else time.time(),
            grant_type=grant_type,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "token_type": self.token_type,
            "expires_in": self.expires_in,
            "scope": self.scope,
            "issued_at": self.issued_at,
            "grant_type": self.grant_type,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Credential":
        return cls(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token"),
            token_type=data.get("token_type"),
            expires_in=data.get("expires_in"),
            scope=data.get("scope"),
            issued_at=data.get("issued_at", 0.0),
            grant_type=data.get("grant_type"),
        )


# === Responses ===

@dataclass
class PaginationMeta:
    """Page metadata of a query response.

    `total_items` and `total_pages` stay None when the server does not
    report them (pagination unsupported for the query).
    """
    page: Optional[int] = None
    per_page: Optional[int] = None
    total_items: Optional[int] = None
    total_pages: Optional[int] = None
    pagination_limit: Optional[int] = None
    pagination_unsupported: bool = False
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "page": self.page,
            "perPage": self.per_page,
            "totalItems": self.total_items,
            "totalPages": self.total_pages,
        }
        if self.pagination_limit is not None:
            data["paginationLimit"] = self.pagination_limit
        if self.pagination_unsupported:
            data["paginationUnsupported"] = True
        data.update(self.extra)
        return data


Primary = Union[ResourceKey, List[ResourceKey], None]


@dataclass
class NormalizedResponse:
    """Result of a resource operation: the normalized store plus the
    identities of the primary data."""
    status: int
    status_text: str
    store: NormalizedStore
    primary: Primary
    meta: Optional[PaginationMeta] = None
    include: List[IncludePath] = field(default_factory=list)

    @property
    def is_list(self) -> bool:
        return isinstance(self.primary, list)

    def resources(self) -> List[Any]:
        """Returns the primary entities (without relationship resolution)."""
        keys = self.primary if isinstance(self.primary, list) else [self.primary]
        return [self.store.get(key) for key in keys if key is not None]


class ResultKind(str, Enum):
    SINGLE = "single"
    LIST = "list"
    PAGINATED = "paginated"


@dataclass
class DenormalizedResult:
    """Tagged result of a denormalization: callers branch on `kind`."""
    kind: ResultKind
    data: Any
    meta: Optional[PaginationMeta] = None

    def to_dict(self) -> Dict[str, Any]:
        if isinstance(self.data, list):
            data: Any = [item.to_dict() for item in self.data]
        else:
            data = self.data.to_dict() if self.data is not None else None
        out: Dict[str, Any] = {"data": data}
        if self.meta is not None:
            out["meta"] = self.meta.to_dict()
        return out
