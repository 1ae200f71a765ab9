import pytest

from conftest import resource
from marketgraph.core.normalizer import normalize
from marketgraph.domain.models.resources import Reference, ResourceKey


def test_single_resource_with_included():
    doc = {
        "data": resource("listing", "l1", {"title": "Boat"}, author=("user", "u1")),
        "included": [resource("user", "u1", {"profile": {"displayName": "Ann"}})],
    }
    normalized = normalize(doc)
    assert normalized.primary == ResourceKey("listing", "l1")
    assert len(normalized.store) == 2
    listing = normalized.store.get(ResourceKey("listing", "l1"))
    assert listing.attributes == {"title": "Boat"}
    assert listing.relationships["author"] == Reference(id="u1", type="user")
    assert normalized.meta is None


def test_list_keeps_primary_order_and_dedups_store():
    doc = {
        "data": [
            resource("listing", "l2", author=("user", "u1")),
            resource("listing", "l1", author=("user", "u1")),
        ],
        "included": [resource("user", "u1"), resource("user", "u1")],
        "meta": {"page": 1, "perPage": 2, "totalItems": 3},
    }
    normalized = normalize(doc)
    assert normalized.primary == [ResourceKey("listing", "l2"), ResourceKey("listing", "l1")]
    assert len(normalized.store) == 3
    assert len(set(normalized.store)) == len(normalized.store)
    assert normalized.meta.total_pages == 2


def test_primary_wins_over_included_duplicate():
    doc = {
        "data": resource("listing", "l1", {"title": "full"}),
        "included": [resource("listing", "l1", {"title": "partial"})],
    }
    normalized = normalize(doc)
    assert normalized.store.get(ResourceKey("listing", "l1")).attributes["title"] == "full"


def test_null_data_and_empty_document():
    assert normalize({"data": None}).primary is None
    empty = normalize(None)
    assert empty.primary is None
    assert len(empty.store) == 0


def test_to_many_and_null_relationships():
    doc = {"data": resource("listing", "l1", images=[("image", "i1"), ("image", "i2")], currentStock=None)}
    listing = normalize(doc).store.get(ResourceKey("listing", "l1"))
    assert listing.relationships["images"] == [Reference("i1", "image"), Reference("i2", "image")]
    assert listing.relationships["currentStock"] is None


def test_malformed_resource_object_raises():
    with pytest.raises(ValueError):
        normalize({"data": {"id": {"uuid": "x"}}})
