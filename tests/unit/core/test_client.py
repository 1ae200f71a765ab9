import asyncio

import pytest

from conftest import FakeTransport, json_response, resource
from marketgraph.core.client import MarketplaceClient
from marketgraph.core.endpoints import ENDPOINTS, OperationKind
from marketgraph.domain.errors import ValidationError
from marketgraph.domain.models.envelope import Channel, ResultKind
from marketgraph.domain.models.resources import DenormalizedEntity, ResourceKey


def test_every_endpoint_is_exposed(make_client):
    client = make_client()
    for spec in ENDPOINTS:
        api = getattr(client, spec.api)
        assert callable(getattr(api, spec.operation))


def test_endpoint_channels():
    by_name = {spec.name: spec for spec in ENDPOINTS}
    assert by_name["listings.show"].channel == Channel.QUERY
    assert by_name["listings.show"].method == "GET"
    assert by_name["transactions.transition"].channel == Channel.COMMAND
    assert by_name["transactions.transition"].method == "POST"
    assert by_name["images.upload"].kind == OperationKind.UPLOAD
    assert by_name["stock.compare_and_set"].path("v1") == "/v1/integration_api/stock/compare_and_set"


def test_unknown_operation_and_api(make_client):
    client = make_client()
    with pytest.raises(AttributeError):
        client.listings.destroy
    with pytest.raises(ValueError):
        client.api("widgets")
    assert client.api("stock_adjustments") is client.stock_adjustments


def test_client_id_is_required(fake_transport):
    with pytest.raises(ValueError):
        MarketplaceClient(client_id="", transport=fake_transport)


@pytest.mark.asyncio
async def test_show_with_include_then_denormalize(make_client, fake_transport):
    fake_transport.queue(json_response(200, {
        "data": resource("listing", "l1", {"title": "Boat"}, author=("user", "u1")),
        "included": [resource("user", "u1", {"profile": {"displayName": "Ann"}})],
    }))
    async with make_client() as client:
        response = await client.listings.show({"id": "l1", "include": ["author"]})

    assert response.status == 200
    assert response.primary == ResourceKey("listing", "l1")
    assert response.include == ["author"]

    request = fake_transport.api_requests[0]
    assert request.method == "GET"
    assert request.path == "/v1/integration_api/listings/show"
    assert request.params == [("id", "l1"), ("include", "author")]
    assert request.headers["Authorization"] == "Bearer token-1"

    result = client.denormalize(response)
    assert result.kind == ResultKind.SINGLE
    assert isinstance(result.data.relationships["author"], DenormalizedEntity)


@pytest.mark.asyncio
async def test_query_is_paginated(make_client, fake_transport):
    fake_transport.queue(json_response(200, {
        "data": [resource("listing", "l1"), resource("listing", "l2")],
        "meta": {"page": 1, "perPage": 2, "totalItems": 5},
    }))
    async with make_client() as client:
        response = await client.listings.query({"perPage": 2, "pub_category": "boats"})

    assert dict(fake_transport.api_requests[0].params) == {"page": "1", "perPage": "2", "pub_category": "boats"}
    assert response.is_list
    assert response.meta.total_pages == 3
    result = client.denormalize(response)
    assert result.kind == ResultKind.PAGINATED


@pytest.mark.asyncio
async def test_missing_required_param_fails_before_network(make_client, fake_transport):
    async with make_client() as client:
        with pytest.raises(ValidationError) as excinfo:
            await client.listings.show({})
        assert excinfo.value.parameter == "id"
        with pytest.raises(ValidationError):
            await client.availability_exceptions.query({"listingId": "l1", "start": "2024-01-01"})
        with pytest.raises(ValidationError):
            await client.listings.query({"perPage": 101})
    assert fake_transport.requests == []


@pytest.mark.asyncio
async def test_users_show_accepts_email_or_id(make_client, fake_transport):
    fake_transport.queue(json_response(200, {"data": resource("user", "u1")}))
    async with make_client() as client:
        await client.users.show({"email": "ann@example.com"})
    assert fake_transport.api_requests[0].params == [("email", "ann@example.com")]


@pytest.mark.asyncio
async def test_marketplace_show_needs_no_params(make_client, fake_transport):
    fake_transport.queue(json_response(200, {"data": resource("marketplace", "m1", {"name": "Boats"})}))
    async with make_client() as client:
        response = await client.marketplace.show()
    assert response.resources()[0].attributes == {"name": "Boats"}


@pytest.mark.asyncio
async def test_command_sends_json_body_and_options(make_client, fake_transport):
    fake_transport.queue(json_response(200, {"data": resource("transaction", "t1", {"lastTransition": "accept"})}))
    async with make_client() as client:
        response = await client.transactions.transition(
            {"id": "t1", "transition": "transition/accept", "params": {}},
            {"expand": True, "include": ["booking"]},
        )
    request = fake_transport.api_requests[0]
    assert request.method == "POST"
    assert request.path == "/v1/integration_api/transactions/transition"
    assert request.json == {"id": "t1", "transition": "transition/accept", "params": {}}
    assert request.params == [("expand", "true"), ("include", "booking")]
    assert response.include == ["booking"]


@pytest.mark.asyncio
async def test_compare_and_set_sends_null_old_total(make_client, fake_transport):
    fake_transport.queue(json_response(200, {"data": resource("stock", "s1", {"quantity": 5})}))
    async with make_client() as client:
        await client.stock.compare_and_set({"listingId": "l1", "oldTotal": None, "newTotal": 5})
        with pytest.raises(ValidationError) as excinfo:
            await client.stock.compare_and_set({"listingId": "l1", "newTotal": 5})
        assert excinfo.value.parameter == "oldTotal"
    assert len(fake_transport.api_requests) == 1
    assert fake_transport.api_requests[0].json == {"listingId": "l1", "oldTotal": None, "newTotal": 5}


@pytest.mark.asyncio
async def test_image_upload_reads_file(make_client, fake_transport, tmp_path):
    image_path = tmp_path / "photo.jpg"
    image_path.write_bytes(b"\xff\xd8jpeg")
    fake_transport.queue(json_response(200, {"data": resource("image", "i1")}))
    async with make_client() as client:
        await client.images.upload({"image": str(image_path)}, {"expand": True})
    request = fake_transport.api_requests[0]
    assert request.files == {"image": ("photo.jpg", b"\xff\xd8jpeg")}
    assert request.json is None


@pytest.mark.asyncio
async def test_image_upload_missing_file(make_client, fake_transport, tmp_path):
    async with make_client() as client:
        with pytest.raises(ValidationError):
            await client.images.upload({"image": str(tmp_path / "missing.jpg")})
    assert fake_transport.api_requests == []


@pytest.mark.asyncio
async def test_clients_do_not_share_limiters_or_credentials():
    a_transport, b_transport = FakeTransport(), FakeTransport()
    a = MarketplaceClient(client_id="a", transport=a_transport)
    b = MarketplaceClient(client_id="b", transport=b_transport)
    assert a.rate_limiter is not b.rate_limiter
    assert a.token_store is not b.token_store
    async with a, b:
        await a.marketplace.show()
        await b.marketplace.show()
    assert len(a_transport.token_requests) == 1
    assert len(b_transport.token_requests) == 1


@pytest.mark.asyncio
async def test_auth_info_and_revoke(make_client, fake_transport):
    async with make_client() as client:
        info = await client.auth_info()
        assert info["is_anonymous"] is True
        await client.marketplace.show()
        info = await client.auth_info()
        assert info == {"grant_type": "client_credentials", "is_anonymous": False, "scopes": ["integ"]}
        await client.revoke()
        assert await client.token_store.get() is None
    assert fake_transport.requests[-1].path == "/v1/auth/revoke"
    assert fake_transport.closed is False


def test_client_built_before_event_loop(make_client, fake_transport):
    client = make_client()

    async def use():
        async with client:
            await asyncio.gather(*(client.marketplace.show() for _ in range(3)))

    asyncio.run(use())
    assert len(fake_transport.token_requests) == 1
    assert len(fake_transport.api_requests) == 3
