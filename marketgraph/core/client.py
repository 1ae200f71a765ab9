"""Client facade: one object per marketplace integration.

Wires the transport, token store, token manager, rate limiter and request
pipeline together and exposes one `ResourceApi` attribute per API:

    async with MarketplaceClient(client_id="...", client_secret="...") as client:
        response = await client.listings.show({"id": listing_id, "include": ["author"]})
        result = client.denormalize(response)

Each client owns its own limiter and token store unless they are injected,
so two clients never share buckets or credentials by accident.
"""

import logging
from typing import Callable, Dict, Iterable, Optional

from marketgraph.core.denormalizer import denormalize_response
from marketgraph.core.endpoints import endpoints_by_api
from marketgraph.core.resources import ResourceApi
from marketgraph.domain.events.api_events import DomainEvent
from marketgraph.domain.interfaces.token_store import TokenStore
from marketgraph.domain.interfaces.transport import Transport
from marketgraph.domain.models.common import AuthInfo, BackoffPolicy, RateLimiterConfig
from marketgraph.domain.models.envelope import DenormalizedResult, NormalizedResponse
from marketgraph.infrastructure.auth.token_manager import TokenManager
from marketgraph.infrastructure.auth.token_store import MemoryTokenStore
from marketgraph.infrastructure.http.transport import DEFAULT_TIMEOUT_S, HttpxTransport
from marketgraph.infrastructure.resilience.rate_limiter import (
    DEV_COMMAND_LIMITER_CONFIG,
    DEV_QUERY_LIMITER_CONFIG,
    RateLimiter,
)
from marketgraph.infrastructure.resilience.request_pipeline import RequestPipeline

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://flex-integ-api.sharetribe.com"
DEFAULT_API_VERSION = "v1"


class MarketplaceClient:
    """Async client of the marketplace integration API."""

    # Populated per instance in __init__; listed for readers and type checkers.
    marketplace: ResourceApi
    users: ResourceApi
    listings: ResourceApi
    transactions: ResourceApi
    images: ResourceApi
    availability_exceptions: ResourceApi
    events: ResourceApi
    stock_adjustments: ResourceApi
    stock: ResourceApi
    stock_reservations: ResourceApi

    def __init__(
        self,
        client_id: str,
        client_secret: Optional[str] = None,
        transport: Optional[Transport] = None,
        token_store: Optional[TokenStore] = None,
        query_limiter: Optional[RateLimiterConfig] = None,
        command_limiter: Optional[RateLimiterConfig] = None,
        rate_limiter: Optional[RateLimiter] = None,
        backoff_policy: Optional[BackoffPolicy] = None,
        base_url: str = DEFAULT_BASE_URL,
        version: str = DEFAULT_API_VERSION,
        event_listener: Optional[Callable[[DomainEvent], None]] = None,
        http_timeout: float = DEFAULT_TIMEOUT_S,
        call_timeout: Optional[float] = None,
    ):
        """Initializes the client.

        Args:
            client_id: Integration API client ID.
            client_secret: Integration API client secret.
            transport: Custom transport; defaults to an `HttpxTransport` on `base_url`.
            token_store: Where the credential is kept; defaults to memory.
            query_limiter: Bucket configuration for reads.
            command_limiter: Bucket configuration for writes.
            rate_limiter: A ready limiter; takes precedence over the two configs.
            backoff_policy: Retry settings for transient failures.
            base_url: API root URL.
            version: API version path segment.
            event_listener: Optional callback receiving pipeline events.
            http_timeout: Network timeout of a single HTTP request.
            call_timeout: Default deadline of a whole call (None for no deadline).

        Raises:
            ValueError: If client_id is missing or a limiter config is invalid.
        """
        if not client_id:
            raise ValueError("client_id is required.")
        self.base_url = base_url
        self.version = version
        self._owns_transport = transport is None
        self.transport = transport or HttpxTransport(base_url, timeout_seconds=http_timeout)
        self.token_store = token_store or MemoryTokenStore()
        self.rate_limiter = rate_limiter or RateLimiter(
            query_limiter or DEV_QUERY_LIMITER_CONFIG,
            command_limiter or DEV_COMMAND_LIMITER_CONFIG,
        )
        self.token_manager = TokenManager(
            transport=self.transport,
            token_store=self.token_store,
            client_id=client_id,
            client_secret=client_secret,
            version=version,
            event_listener=event_listener,
        )
        self.pipeline = RequestPipeline(
            transport=self.transport,
            token_manager=self.token_manager,
            rate_limiter=self.rate_limiter,
            backoff_policy=backoff_policy,
            event_listener=event_listener,
        )

        self.apis: Dict[str, ResourceApi] = {}
        for api_name, operations in endpoints_by_api().items():
            api = ResourceApi(api_name, operations, self.pipeline, version=version, default_timeout=call_timeout)
            self.apis[api_name] = api
            setattr(self, api_name, api)

        logger.info(f"MarketplaceClient initialized for {base_url} ({version}) with {len(self.apis)} APIs.")

    def api(self, name: str) -> ResourceApi:
        """Looks an API up by name (e.g. from a CLI argument)."""
        try:
            return self.apis[name]
        except KeyError:
            raise ValueError(f"Unknown API '{name}'. Available: {', '.join(sorted(self.apis))}")

    def denormalize(
        self,
        response: NormalizedResponse,
        include: Optional[Iterable[str]] = None,
        depth: Optional[int] = None,
    ) -> DenormalizedResult:
        """Embeds related resources into the primary data of `response`.

        Args:
            response: A response returned by any operation of this client.
            include: Paths to embed; defaults to the paths the request included.
            depth: Maximum relationship hops to embed (default 1).
        """
        return denormalize_response(response, include=list(include) if include is not None else None, depth=depth)

    async def auth_info(self) -> AuthInfo:
        return await self.token_manager.auth_info()

    async def revoke(self) -> None:
        await self.token_manager.revoke()

    async def aclose(self) -> None:
        """Stops the limiter refill tasks and closes the transport if this client built it."""
        await self.rate_limiter.close()
        if self._owns_transport:
            await self.transport.aclose()

    async def __aenter__(self) -> "MarketplaceClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()
