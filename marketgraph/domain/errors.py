"""Error taxonomy of the marketplace client.

Server errors keep their original status, status text and error objects so
callers can branch on them. Failures the request pipeline can recover from
(credential refresh, rate limiting, transient server errors) only surface
once its retries are exhausted.
"""

from typing import Any, Dict, List, Mapping, Optional, Type


class MarketplaceError(Exception):
    """Base class for every error raised by the client."""


class ValidationError(MarketplaceError, ValueError):
    """Malformed or out-of-range request parameters. Raised before any network call."""

    def __init__(self, message: str, parameter: Optional[str] = None):
        self.parameter = parameter
        super().__init__(message)


class NetworkError(MarketplaceError):
    """The transport failed before a response was received."""

    def __init__(self, message: str, original_exception: Optional[BaseException] = None):
        self.original_exception = original_exception
        super().__init__(message)


class RequestTimeoutError(MarketplaceError):
    """The caller's deadline expired while the call was in flight."""

    def __init__(self, timeout: float):
        self.timeout = timeout
        super().__init__(f"Call abandoned after {timeout:.2f}s deadline.")


class ApiError(MarketplaceError):
    """An error response returned by the API."""

    def __init__(
        self,
        status: int,
        status_text: str = "",
        errors: Optional[List[Dict[str, Any]]] = None,
        message: Optional[str] = None,
    ):
        self.status = status
        self.status_text = status_text
        self.errors: List[Dict[str, Any]] = list(errors or [])
        # Set by the request pipeline when retries were involved
        self.attempts: int = 1
        super().__init__(message or self._default_message())

    @property
    def code(self) -> Optional[str]:
        """Code of the first error object, if any."""
        for error in self.errors:
            if error.get("code"):
                return error["code"]
        return None

    def _default_message(self) -> str:
        titles = ", ".join(e.get("title", "") for e in self.errors if e.get("title"))
        base = f"{self.status} {self.status_text}".strip()
        return f"{base}: {titles}" if titles else base


class BadRequestError(ApiError):
    """400: the server rejected the request parameters."""


class AuthenticationError(ApiError):
    """401: the credential is invalid even after a refresh-and-retry."""


class ForbiddenError(ApiError):
    """403"""


class NotFoundError(ApiError):
    """404"""


class ConflictError(ApiError):
    """409: e.g. a failed stock compare-and-set."""


class RateLimitExceeded(ApiError):
    """429: only surfaced once rate-limit retries are exhausted."""


class TransientServerError(ApiError):
    """5xx"""


_STATUS_ERRORS: Mapping[int, Type[ApiError]] = {
    400: BadRequestError,
    401: AuthenticationError,
    403: ForbiddenError,
    404: NotFoundError,
    409: ConflictError,
    429: RateLimitExceeded,
}


def error_from_response(status: int, status_text: str = "", body: Any = None) -> ApiError:
    """Maps an error response onto the taxonomy.

    Args:
        status: HTTP status code.
        status_text: HTTP reason phrase.
        body: Decoded JSON body; `{errors: [...]}` is used when present.

    Returns:
        The matching ApiError subclass instance (not raised).
    """
    errors: List[Dict[str, Any]] = []
    if isinstance(body, Mapping) and isinstance(body.get("errors"), list):
        errors = [e for e in body["errors"] if isinstance(e, Mapping)]
        errors = [dict(e) for e in errors]
    if status >= 500:
        error_cls: Type[ApiError] = TransientServerError
    else:
        error_cls = _STATUS_ERRORS.get(status, ApiError)
    return error_cls(status=status, status_text=status_text, errors=errors)
