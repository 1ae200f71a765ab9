import pytest

from marketgraph.core.pagination import compute_total_pages, parse_meta


@pytest.mark.parametrize("total_items,per_page,expected", [
    (0, 100, 0),
    (1, 100, 1),
    (100, 100, 1),
    (101, 100, 2),
    (250, 10, 25),
])
def test_total_pages_is_ceiling_of_items_over_page_size(total_items, per_page, expected):
    assert compute_total_pages(total_items, per_page) == expected


def test_total_pages_unknown_when_inputs_unknown():
    assert compute_total_pages(None, 100) is None
    assert compute_total_pages(10, None) is None


def test_parse_meta_derives_total_pages():
    meta = parse_meta({"page": 2, "perPage": 10, "totalItems": 95, "totalPages": 99})
    assert meta.page == 2
    assert meta.total_pages == 10


def test_parse_meta_without_totals():
    meta = parse_meta({"page": 1, "perPage": 100, "paginationUnsupported": True, "nextCursor": "c1"})
    assert meta.total_items is None
    assert meta.total_pages is None
    assert meta.pagination_unsupported is True
    assert meta.extra == {"nextCursor": "c1"}
    assert meta.to_dict()["paginationUnsupported"] is True
    assert meta.to_dict()["nextCursor"] == "c1"


def test_parse_meta_absent():
    assert parse_meta(None) is None
