"""Service for executing API calls with rate limiting, authentication and retries.

Per call:
1. take a token from the channel's bucket (waits when empty);
2. attach a valid credential (single-flight refresh if absent or expired);
3. send the request;
4. on 401, refresh the credential and retry exactly once;
5. on 429, empty the bucket and retry once a refill allows it;
6. on transient failures (5xx in the retryable set, network errors), retry
   with exponential backoff;
7. surface the last error once retries are exhausted.

An optional per-call deadline abandons the call with `RequestTimeoutError`.
Tokens already taken from a bucket are not refunded.
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, FrozenSet, Iterable, Optional

from marketgraph.domain.errors import (
    ApiError,
    AuthenticationError,
    NetworkError,
    RateLimitExceeded,
    RequestTimeoutError,
    TransientServerError,
    error_from_response,
)
from marketgraph.domain.events.api_events import (
    CallDeferred,
    CallFailed,
    CallInitiated,
    CallSucceeded,
    DomainEvent,
    RateLimitHit,
    RetryScheduled,
)
from marketgraph.domain.interfaces.transport import Transport
from marketgraph.domain.models.common import BackoffPolicy
from marketgraph.domain.models.envelope import ApiRequest, Channel, RawResponse
from marketgraph.infrastructure.auth.token_manager import TokenManager
from marketgraph.infrastructure.resilience.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

DEFAULT_BACKOFF_POLICY: BackoffPolicy = {
    "max_retries": 3,
    "initial_delay": 0.5,
    "factor": 2.0,
    "max_delay": 8.0,
}
DEFAULT_RETRYABLE_STATUSES: FrozenSet[int] = frozenset({500, 502, 503, 504})
DEFAULT_MAX_RATE_LIMIT_RETRIES = 5


class RequestPipeline:
    """Runs one logical call through rate limiting, authentication and retries."""

    def __init__(
        self,
        transport: Transport,
        token_manager: TokenManager,
        rate_limiter: RateLimiter,
        backoff_policy: Optional[BackoffPolicy] = None,
        retryable_statuses: Iterable[int] = DEFAULT_RETRYABLE_STATUSES,
        max_rate_limit_retries: int = DEFAULT_MAX_RATE_LIMIT_RETRIES,
        event_listener: Optional[Callable[[DomainEvent], None]] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """Initializes the RequestPipeline.

        Args:
            transport: Sends the requests.
            token_manager: Provides and refreshes the credential.
            rate_limiter: Query/command token buckets.
            backoff_policy: Retry settings for transient failures.
            retryable_statuses: HTTP statuses treated as transient.
            max_rate_limit_retries: How many 429 answers are absorbed per call.
            event_listener: Optional callback receiving domain events.
            sleep: Awaitable used for backoff delays.
        """
        self.transport = transport
        self.token_manager = token_manager
        self.rate_limiter = rate_limiter
        policy = dict(DEFAULT_BACKOFF_POLICY)
        policy.update(backoff_policy or {})
        self.max_retries = int(policy["max_retries"])
        self.initial_backoff_s = float(policy["initial_delay"])
        self.backoff_factor = float(policy["factor"])
        self.max_backoff_s = float(policy["max_delay"])
        self.retryable_statuses = frozenset(retryable_statuses)
        self.max_rate_limit_retries = max_rate_limit_retries
        self.event_listener = event_listener
        self._sleep = sleep

        logger.info(
            f"RequestPipeline initialized: max_retries={self.max_retries}, "
            f"initial_backoff={self.initial_backoff_s}s, factor={self.backoff_factor}, "
            f"max_backoff={self.max_backoff_s}s, retryable={sorted(self.retryable_statuses)}"
        )

    def _dispatch_event(self, event: DomainEvent) -> None:
        logger.debug(f"EVENT: {event}")
        if self.event_listener is not None:
            self.event_listener(event)

    def backoff_delay(self, retry_number: int) -> float:
        """Delay before the given retry (1-based), capped at max_delay."""
        delay = self.initial_backoff_s * (self.backoff_factor ** (retry_number - 1))
        return min(delay, self.max_backoff_s)

    async def execute(
        self,
        request: ApiRequest,
        channel: Channel,
        endpoint_name: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> RawResponse:
        """Executes a request and returns its successful response.

        Args:
            request: The request, without credentials.
            channel: Which rate limiter bucket to use.
            endpoint_name: Name for logging/events (e.g. 'listings.show').
            timeout: Optional deadline in seconds for the whole call, waits included.

        Returns:
            The 2xx response.

        Raises:
            RequestTimeoutError: If the deadline expired.
            ApiError: Any non-recoverable error response, or the last
                recoverable one after retries are exhausted.
            NetworkError: If the transport kept failing.
        """
        name = endpoint_name or f"{request.method} {request.path}"
        if timeout is None:
            return await self._execute(request, channel, name)
        try:
            return await asyncio.wait_for(self._execute(request, channel, name), timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Deadline of {timeout}s expired for {name}. Call abandoned.")
            self._dispatch_event(CallFailed(endpoint=name, error_type="RequestTimeoutError",
                                            error_message=f"deadline {timeout}s"))
            raise RequestTimeoutError(timeout)

    async def _execute(self, request: ApiRequest, channel: Channel, name: str) -> RawResponse:
        bucket = self.rate_limiter.bucket_for(channel)
        transient_retries = 0
        rate_limit_retries = 0
        auth_retried = False
        attempt = 0

        while True:
            attempt += 1
            # 1. Wait for rate limit permission
            if bucket.current < 1:
                self._dispatch_event(CallDeferred(endpoint=name, channel=channel.value))
            await bucket.acquire()

            # 2. Credential
            credential = await self.token_manager.get_valid_credential()
            authed = request.with_headers(Authorization=credential.authorization_header())

            # 3. Send
            self._dispatch_event(CallInitiated(endpoint=name, channel=channel.value, attempt_number=attempt))
            start_time = time.perf_counter()
            try:
                response = await self.transport.send(authed)
            except NetworkError as e:
                error: Exception = e
                retryable = True
            else:
                latency_ms = (time.perf_counter() - start_time) * 1000
                if response.ok:
                    self._dispatch_event(CallSucceeded(endpoint=name, status=response.status, latency_ms=latency_ms))
                    return response
                error = error_from_response(response.status, response.status_text, response.body)
                retryable = isinstance(error, TransientServerError) and response.status in self.retryable_statuses

            # 4. Authentication failure: refresh once, retry once
            if isinstance(error, AuthenticationError):
                if auth_retried:
                    logger.error(f"Authentication failed again for {name} after a credential refresh.")
                    self._fail(name, error, attempt)
                    raise error
                auth_retried = True
                logger.info(f"401 received for {name}. Refreshing credential and retrying once.")
                await self.token_manager.refresh(stale=credential)
                continue

            # 5. Rate limited by the server: empty the bucket, wait for refill
            if isinstance(error, RateLimitExceeded):
                self._dispatch_event(RateLimitHit(endpoint=name, channel=channel.value))
                await bucket.force_empty()
                if rate_limit_retries >= self.max_rate_limit_retries:
                    logger.error(f"Rate limit retries ({self.max_rate_limit_retries}) exhausted for {name}.")
                    self._fail(name, error, attempt)
                    raise error
                rate_limit_retries += 1
                self._dispatch_event(RetryScheduled(endpoint=name, attempt_number=attempt,
                                                    delay_seconds=bucket.refill_interval, reason="rate_limited"))
                continue

            # 6. Transient failure: exponential backoff
            if retryable:
                if transient_retries >= self.max_retries:
                    logger.error(f"Max retries ({self.max_retries}) reached for {name}. Last error: {error}")
                    self._fail(name, error, attempt)
                    raise error
                transient_retries += 1
                delay = self.backoff_delay(transient_retries)
                logger.warning(
                    f"Retryable error calling {name} on attempt {attempt}: {type(error).__name__}. "
                    f"Waiting {delay:.2f}s..."
                )
                self._dispatch_event(RetryScheduled(endpoint=name, attempt_number=attempt,
                                                    delay_seconds=delay, reason=type(error).__name__))
                await self._sleep(delay)
                continue

            # 7. Anything else surfaces as-is
            logger.info(f"Non-retryable error calling {name}: {error}")
            self._fail(name, error, attempt)
            raise error

    def _fail(self, name: str, error: Exception, attempts: int) -> None:
        if isinstance(error, ApiError):
            error.attempts = attempts
        self._dispatch_event(CallFailed(
            endpoint=name,
            error_type=type(error).__name__,
            error_message=str(error),
            status=getattr(error, "status", None),
        ))
