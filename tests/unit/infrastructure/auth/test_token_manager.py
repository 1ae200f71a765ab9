import asyncio
import time

import pytest

from conftest import FakeTransport, error_body, json_response
from marketgraph.domain.errors import AuthenticationError, TransientServerError
from marketgraph.domain.events.api_events import CredentialRefreshed
from marketgraph.domain.models.envelope import Credential
from marketgraph.infrastructure.auth.token_manager import TokenManager
from marketgraph.infrastructure.auth.token_store import MemoryTokenStore


def make_manager(transport, store=None, **kwargs):
    return TokenManager(transport=transport, token_store=store or MemoryTokenStore(),
                        client_id="cid", client_secret="secret", **kwargs)


@pytest.mark.asyncio
async def test_first_call_exchanges_client_credentials():
    transport = FakeTransport()
    manager = make_manager(transport)
    credential = await manager.get_valid_credential()
    assert credential.access_token == "token-1"
    request = transport.token_requests[0]
    assert request.path == "/v1/auth/token"
    assert request.form == {"client_id": "cid", "client_secret": "secret",
                            "grant_type": "client_credentials", "scope": "integ"}


@pytest.mark.asyncio
async def test_concurrent_callers_share_one_refresh():
    transport = FakeTransport(token_delay=0.05)
    manager = make_manager(transport)
    credentials = await asyncio.gather(*(manager.get_valid_credential() for _ in range(10)))
    assert len(transport.token_requests) == 1
    assert {c.access_token for c in credentials} == {"token-1"}


@pytest.mark.asyncio
async def test_concurrent_refresh_of_same_stale_credential_is_single_flight():
    transport = FakeTransport(token_delay=0.05)
    manager = make_manager(transport)
    stale = await manager.get_valid_credential()
    refreshed = await asyncio.gather(*(manager.refresh(stale=stale) for _ in range(10)))
    assert len(transport.token_requests) == 2
    assert {c.access_token for c in refreshed} == {"token-2"}
    # Refresh used the refresh token grant
    assert transport.token_requests[1].form["grant_type"] == "refresh_token"
    assert transport.token_requests[1].form["refresh_token"] == "refresh-1"


@pytest.mark.asyncio
async def test_late_refresh_with_already_replaced_credential_skips_network():
    transport = FakeTransport()
    manager = make_manager(transport)
    stale = await manager.get_valid_credential()
    await manager.refresh(stale=stale)
    again = await manager.refresh(stale=stale)
    assert again.access_token == "token-2"
    assert len(transport.token_requests) == 2


@pytest.mark.asyncio
async def test_expired_credential_is_refreshed():
    transport = FakeTransport()
    store = MemoryTokenStore(Credential(access_token="old", refresh_token="r-old", expires_in=10,
                                        issued_at=time.time() - 3600))
    manager = make_manager(transport, store)
    credential = await manager.get_valid_credential()
    assert credential.access_token == "token-1"
    assert transport.token_requests[0].form["refresh_token"] == "r-old"


@pytest.mark.asyncio
async def test_rejected_refresh_token_falls_back_to_client_credentials():
    class RejectingRefresh(FakeTransport):
        async def send(self, request):
            if request.form and request.form.get("grant_type") == "refresh_token":
                self.requests.append(request)
                return json_response(400, error_body(400, "Invalid grant", code="invalid-grant"))
            return await super().send(request)

    transport = RejectingRefresh()
    store = MemoryTokenStore(Credential(access_token="old", refresh_token="r-old", expires_in=10,
                                        issued_at=time.time() - 3600))
    credential = await make_manager(transport, store).get_valid_credential()
    assert credential.grant_type == "client_credentials"


@pytest.mark.asyncio
async def test_rejected_client_credentials_raise_authentication_error():
    class Rejecting(FakeTransport):
        async def send(self, request):
            self.requests.append(request)
            return json_response(401, error_body(401, "Invalid client", code="invalid-client"))

    with pytest.raises(AuthenticationError) as excinfo:
        await make_manager(Rejecting()).get_valid_credential()
    assert excinfo.value.code == "invalid-client"


@pytest.mark.asyncio
async def test_token_endpoint_server_error_surfaces():
    class Failing(FakeTransport):
        async def send(self, request):
            return json_response(503, None)

    with pytest.raises(TransientServerError):
        await make_manager(Failing()).get_valid_credential()


@pytest.mark.asyncio
async def test_refresh_emits_event():
    events = []
    manager = make_manager(FakeTransport(), event_listener=events.append)
    await manager.get_valid_credential()
    assert [type(e) for e in events] == [CredentialRefreshed]
    assert events[0].grant_type == "client_credentials"


@pytest.mark.asyncio
async def test_revoke_clears_store_even_on_already_invalid_token():
    class Revoked(FakeTransport):
        async def send(self, request):
            if request.path.endswith("/auth/revoke"):
                self.requests.append(request)
                return json_response(401, error_body(401, "Unauthorized"))
            return await super().send(request)

    transport = Revoked()
    manager = make_manager(transport)
    await manager.get_valid_credential()
    await manager.revoke()
    assert await manager.token_store.get() is None
    revoke_request = transport.requests[-1]
    assert revoke_request.form == {"token": "refresh-1"}
    assert revoke_request.headers["Authorization"] == "Bearer token-1"


def test_client_id_required():
    with pytest.raises(ValueError):
        TokenManager(transport=FakeTransport(), token_store=MemoryTokenStore(), client_id="")
