"""Interface for the HTTP transport.

The client never talks to an HTTP library directly; it hands `ApiRequest`s
to a Transport and receives `RawResponse`s.
"""

import abc

from ..models.envelope import ApiRequest, RawResponse

class Transport(abc.ABC):
    """Abstract Base Class for sending requests to the marketplace API."""

    @abc.abstractmethod
    async def send(self, request: ApiRequest) -> RawResponse:
        """Sends a request and returns the response, whatever its status.

        Args:
            request: The request to send. `path` is relative to the base URL.

        Returns:
            The raw response with its decoded JSON body.

        Raises:
            NetworkError: If no response could be obtained.
        """
        pass

    async def aclose(self) -> None:
        """Releases network resources held by the transport."""
        return None
