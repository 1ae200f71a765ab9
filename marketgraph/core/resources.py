"""Generic resource API driven by the endpoint table.

`client.listings.show({...})`, `client.transactions.transition({...})` and
every other operation resolve to the same `ResourceApi.call`, which:

1. checks the operation's required parameters (before any network call);
2. serializes the parameters (query string for reads, JSON body for
   commands, multipart for uploads);
3. runs the request through the `RequestPipeline`;
4. normalizes the response body.
"""

import logging
import os
from functools import partial
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional

import aiofiles

from marketgraph.core.endpoints import EndpointSpec, OperationKind
from marketgraph.core.normalizer import normalize
from marketgraph.core.query_builder import build_query, encode_body, parse_include
from marketgraph.domain.errors import ValidationError
from marketgraph.domain.models.envelope import ApiRequest, Channel, NormalizedResponse
from marketgraph.infrastructure.resilience.request_pipeline import RequestPipeline

logger = logging.getLogger(__name__)


def check_required(spec: EndpointSpec, params: Mapping[str, Any]) -> None:
    """Raises ValidationError if `params` lacks what `spec` requires.

    Show operations need at least one of their identifying parameters
    (e.g. `id` or `email` for users.show). Queries and uploads need all of
    them with a value. Commands need all of them present, but `None` is sent
    as JSON null (stock.compare_and_set takes `oldTotal: null` for a listing
    without stock).
    """
    if not spec.required:
        return
    if spec.kind == OperationKind.SHOW:
        if all(params.get(name) is None for name in spec.required):
            raise ValidationError(
                f"{spec.name} requires one of: {', '.join(spec.required)}",
                parameter=spec.required[0],
            )
        return
    for name in spec.required:
        missing = name not in params if spec.kind == OperationKind.COMMAND else params.get(name) is None
        if missing:
            raise ValidationError(f"{spec.name} requires '{name}'", parameter=name)


async def _read_upload(path: Any) -> Any:
    """Returns a (filename, bytes) tuple for a file path; other values pass through."""
    if isinstance(path, (str, os.PathLike)):
        filename = os.path.basename(os.fspath(path))
        try:
            async with aiofiles.open(path, mode='rb') as f:
                content = await f.read()
        except OSError as e:
            raise ValidationError(f"Cannot read image file {path!r}: {e}", parameter="image") from e
        return filename, content
    return path


async def build_request(
    spec: EndpointSpec,
    version: str,
    params: Optional[Mapping[str, Any]] = None,
    options: Optional[Mapping[str, Any]] = None,
) -> ApiRequest:
    """Builds the unauthenticated request of one operation.

    Args:
        spec: The endpoint being called.
        version: API version path segment.
        params: Query parameters for reads, body parameters for commands.
        options: Query-string options of commands (`expand`, `include`,
            `fields.*`, `limit.*`). Ignored for reads, whose params already
            travel in the query string.

    Raises:
        ValidationError: If a parameter is missing or malformed.
    """
    params = dict(params or {})
    check_required(spec, params)
    path = spec.path(version)

    if spec.kind in (OperationKind.SHOW, OperationKind.QUERY):
        query = build_query(params, paginated=spec.kind == OperationKind.QUERY)
        return ApiRequest(method=spec.method, path=path, params=list(query))

    query = build_query(options)
    if spec.kind == OperationKind.UPLOAD:
        image = await _read_upload(params.pop("image"))
        form = {key: str(value) for key, value in params.items() if value is not None}
        return ApiRequest(
            method=spec.method,
            path=path,
            params=list(query),
            form=form or None,
            files={"image": image},
        )
    return ApiRequest(method=spec.method, path=path, params=list(query), json=encode_body(params))


class ResourceApi:
    """All operations of one API (e.g. `listings`), exposed as coroutine methods.

    Each method takes `(params=None, options=None, *, timeout=None)` and
    returns a NormalizedResponse.
    """

    def __init__(
        self,
        name: str,
        operations: Dict[str, EndpointSpec],
        pipeline: RequestPipeline,
        version: str = "v1",
        default_timeout: Optional[float] = None,
    ):
        self.name = name
        self.operations = operations
        self.pipeline = pipeline
        self.version = version
        self.default_timeout = default_timeout

    def __getattr__(self, operation: str) -> Callable[..., Awaitable[NormalizedResponse]]:
        # Only reached for names that are not regular attributes.
        operations = self.__dict__.get("operations") or {}
        if operation not in operations:
            raise AttributeError(f"API '{self.__dict__.get('name')}' has no operation '{operation}'")
        return partial(self.call, operation)

    def __dir__(self):
        return list(super().__dir__()) + list(self.operations)

    def __repr__(self) -> str:
        return f"ResourceApi({self.name!r}, operations={sorted(self.operations)})"

    async def call(
        self,
        operation: str,
        params: Optional[Mapping[str, Any]] = None,
        options: Optional[Mapping[str, Any]] = None,
        *,
        timeout: Optional[float] = None,
    ) -> NormalizedResponse:
        """Performs one operation of this API.

        Args:
            operation: Operation name, e.g. 'show' or 'update_profile'.
            params: Operation parameters.
            options: Query-string options for commands.
            timeout: Deadline in seconds for the whole call, including
                rate limiter waits and retries.

        Returns:
            The normalized response, carrying the include paths that were
            requested so that denormalization can default to them.

        Raises:
            ValidationError: Before any network call, for bad parameters.
            MarketplaceError: Any error surfaced by the request pipeline.
        """
        spec = self.operations.get(operation)
        if spec is None:
            raise AttributeError(f"API '{self.name}' has no operation '{operation}'")

        request = await build_request(spec, self.version, params, options)
        source = params if spec.channel == Channel.QUERY else options
        include = parse_include((source or {}).get("include"))

        response = await self.pipeline.execute(
            request,
            spec.channel,
            endpoint_name=spec.name,
            timeout=timeout if timeout is not None else self.default_timeout,
        )
        try:
            document = normalize(response.body if isinstance(response.body, Mapping) else None)
        except ValueError as e:
            logger.error(f"Malformed response document from {spec.name}: {e}")
            raise
        return NormalizedResponse(
            status=response.status,
            status_text=response.status_text,
            store=document.store,
            primary=document.primary,
            meta=document.meta,
            include=include,
        )
