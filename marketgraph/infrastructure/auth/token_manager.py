"""Credential lifecycle: token exchange, refresh, revocation.

Refreshes are single-flight: however many calls discover an expired or
rejected credential at the same moment, exactly one token request is
issued and every caller awaits its result.
"""

import asyncio
import logging
import time
from typing import Callable, Dict, Optional

from marketgraph.domain.errors import AuthenticationError, BadRequestError, error_from_response
from marketgraph.domain.events.api_events import CredentialRefreshed, DomainEvent
from marketgraph.domain.interfaces.token_store import TokenStore
from marketgraph.domain.interfaces.transport import Transport
from marketgraph.domain.models.common import AuthInfo
from marketgraph.domain.models.envelope import ApiRequest, Credential

logger = logging.getLogger(__name__)

DEFAULT_SCOPE = "integ"
# Refresh slightly before the server-side expiry to avoid racing it.
DEFAULT_EXPIRY_LEEWAY_S = 5.0


class TokenManager:
    """Obtains and refreshes the bearer credential kept in a TokenStore."""

    def __init__(
        self,
        transport: Transport,
        token_store: TokenStore,
        client_id: str,
        client_secret: Optional[str] = None,
        version: str = "v1",
        scope: str = DEFAULT_SCOPE,
        expiry_leeway: float = DEFAULT_EXPIRY_LEEWAY_S,
        event_listener: Optional[Callable[[DomainEvent], None]] = None,
    ):
        if not client_id:
            raise ValueError("client_id is required.")
        self.transport = transport
        self.token_store = token_store
        self.client_id = client_id
        self.client_secret = client_secret
        self.version = version
        self.scope = scope
        self.expiry_leeway = expiry_leeway
        self.event_listener = event_listener
        self._refresh_task: Optional[asyncio.Future] = None

    @property
    def token_path(self) -> str:
        return f"/{self.version}/auth/token"

    @property
    def revoke_path(self) -> str:
        return f"/{self.version}/auth/revoke"

    def _usable(self, credential: Optional[Credential]) -> bool:
        return credential is not None and not credential.is_expired(leeway=self.expiry_leeway)

    async def get_valid_credential(self) -> Credential:
        """Returns the stored credential, refreshing it first if absent or expired."""
        credential = await self.token_store.get()
        if self._usable(credential):
            return credential
        return await self.refresh(stale=credential)

    async def refresh(self, stale: Optional[Credential] = None) -> Credential:
        """Replaces `stale` with a fresh credential, sharing any refresh in flight.

        Args:
            stale: The credential the caller found expired or rejected. If the
                store already holds a different, usable credential it is
                returned without a network call.

        Returns:
            A usable credential.

        Raises:
            AuthenticationError: If the token exchange is rejected.
        """
        if self._refresh_task is None or self._refresh_task.done():
            self._refresh_task = asyncio.ensure_future(self._refresh_if_needed(stale))
        else:
            logger.debug("Credential refresh already in flight. Awaiting its result.")
        return await asyncio.shield(self._refresh_task)

    async def _refresh_if_needed(self, stale: Optional[Credential]) -> Credential:
        current = await self.token_store.get()
        if self._usable(current) and (stale is None or current.access_token != stale.access_token):
            return current

        refresh_token = current.refresh_token if current is not None else None
        if current is not None:
            # The rejected credential must not be handed out again.
            await self.token_store.remove()

        credential: Optional[Credential] = None
        if refresh_token:
            try:
                credential = await self._exchange({"grant_type": "refresh_token", "refresh_token": refresh_token})
            except AuthenticationError as e:
                logger.info(f"Refresh token rejected ({e}). Falling back to client credentials.")
        if credential is None:
            credential = await self._exchange({"grant_type": "client_credentials", "scope": self.scope})

        await self.token_store.set(credential)
        self._emit(CredentialRefreshed(grant_type=credential.grant_type or "", expires_in=credential.expires_in))
        return credential

    async def _exchange(self, grant: Dict[str, str]) -> Credential:
        form = {"client_id": self.client_id, **grant}
        if self.client_secret:
            form["client_secret"] = self.client_secret
        request = ApiRequest(
            method="POST",
            path=self.token_path,
            form=form,
            headers={"Accept": "application/json"},
        )
        logger.info(f"Requesting access token (grant_type={grant['grant_type']}).")
        response = await self.transport.send(request)
        if not response.ok:
            error = error_from_response(response.status, response.status_text, response.body)
            if isinstance(error, (BadRequestError, AuthenticationError)):
                raise AuthenticationError(
                    status=error.status, status_text=error.status_text, errors=error.errors
                )
            raise error
        if not isinstance(response.body, dict):
            raise AuthenticationError(
                status=response.status,
                status_text=response.status_text,
                message="Token endpoint returned a non-JSON body.",
            )
        try:
            return Credential.from_token_response(
                response.body, issued_at=time.time(), grant_type=grant["grant_type"]
            )
        except ValueError as e:
            raise AuthenticationError(status=response.status, status_text=response.status_text, message=str(e)) from e

    async def revoke(self) -> None:
        """Revokes the stored credential on the server and forgets it locally."""
        credential = await self.token_store.get()
        if credential is None:
            logger.debug("No credential to revoke.")
            return
        request = ApiRequest(
            method="POST",
            path=self.revoke_path,
            form={"token": credential.refresh_token or credential.access_token},
            headers={"Accept": "application/json", "Authorization": credential.authorization_header()},
        )
        try:
            response = await self.transport.send(request)
            # 401 means the token was already invalid: nothing left to revoke.
            if not response.ok and response.status != 401:
                raise error_from_response(response.status, response.status_text, response.body)
        finally:
            await self.token_store.remove()
        logger.info("Credential revoked.")

    async def auth_info(self) -> AuthInfo:
        """Describes the stored credential without contacting the server."""
        credential = await self.token_store.get()
        if credential is None:
            return AuthInfo(grant_type=None, is_anonymous=True, scopes=[])
        scopes = credential.scope.split() if credential.scope else []
        return AuthInfo(grant_type=credential.grant_type, is_anonymous=False, scopes=scopes)

    def _emit(self, event: DomainEvent) -> None:
        logger.debug(f"EVENT: {event}")
        if self.event_listener is not None:
            self.event_listener(event)
