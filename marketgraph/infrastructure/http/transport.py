"""Transport adapter backed by `httpx`.

Standardizes base URL, timeouts and headers for every call, and translates
httpx failures into the client's `NetworkError`. Status handling is left to
the request pipeline: any response, whatever its status, is returned.
"""

import logging
from typing import Any, Dict, Optional

import httpx

from marketgraph import __version__
from marketgraph.domain.errors import NetworkError
from marketgraph.domain.interfaces.transport import Transport
from marketgraph.domain.models.envelope import ApiRequest, RawResponse

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_S = 30.0
DEFAULT_USER_AGENT = f"marketgraph/{__version__}"


def build_async_client(
    base_url: str,
    timeout_seconds: float = DEFAULT_TIMEOUT_S,
    *,
    user_agent: str = DEFAULT_USER_AGENT,
    extra_headers: Optional[Dict[str, str]] = None,
) -> httpx.AsyncClient:
    """Creates an `httpx.AsyncClient` with the client's default headers and timeout."""
    headers: Dict[str, str] = {
        "User-Agent": user_agent,
        "Accept": "application/json",
    }
    if extra_headers:
        headers.update(extra_headers)
    return httpx.AsyncClient(
        base_url=base_url,
        timeout=httpx.Timeout(timeout_seconds),
        headers=headers,
    )


def _decode_body(response: httpx.Response) -> Any:
    if not response.content:
        return None
    content_type = response.headers.get("content-type", "")
    if "json" not in content_type:
        logger.debug(f"Non-JSON response body ({content_type or 'no content-type'}) ignored.")
        return None
    try:
        return response.json()
    except ValueError:
        logger.warning(f"Response declared {content_type} but the body is not valid JSON.")
        return None


class HttpxTransport(Transport):
    """Sends ApiRequests with an `httpx.AsyncClient`."""

    def __init__(
        self,
        base_url: str,
        timeout_seconds: float = DEFAULT_TIMEOUT_S,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """Initializes the transport.

        Args:
            base_url: API root, e.g. 'https://flex-integ-api.sharetribe.com'.
            timeout_seconds: Per-request network timeout.
            client: Optional pre-built client (e.g. with a mock transport in tests).
        """
        self.base_url = base_url
        self._client = client or build_async_client(base_url, timeout_seconds)
        logger.info(f"HttpxTransport initialized for {base_url}")

    async def send(self, request: ApiRequest) -> RawResponse:
        kwargs: Dict[str, Any] = {"params": request.params, "headers": request.headers}
        if request.json is not None:
            kwargs["json"] = request.json
        if request.form is not None:
            kwargs["data"] = request.form
        if request.files is not None:
            kwargs["files"] = request.files

        logger.debug(f"{request.method} {request.path} params={request.params}")
        try:
            response = await self._client.request(request.method, request.path, **kwargs)
        except httpx.TransportError as e:
            logger.warning(f"Transport failure for {request.method} {request.path}: {type(e).__name__}: {e}")
            raise NetworkError(f"{type(e).__name__}: {e}", original_exception=e) from e

        return RawResponse(
            status=response.status_code,
            status_text=response.reason_phrase,
            headers=dict(response.headers),
            body=_decode_body(response),
        )

    async def aclose(self) -> None:
        await self._client.aclose()
