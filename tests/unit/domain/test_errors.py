import pytest

from marketgraph.domain.errors import (
    ApiError,
    AuthenticationError,
    BadRequestError,
    ConflictError,
    ForbiddenError,
    MarketplaceError,
    NotFoundError,
    RateLimitExceeded,
    TransientServerError,
    ValidationError,
    error_from_response,
)


@pytest.mark.parametrize("status,error_cls", [
    (400, BadRequestError),
    (401, AuthenticationError),
    (403, ForbiddenError),
    (404, NotFoundError),
    (409, ConflictError),
    (429, RateLimitExceeded),
    (500, TransientServerError),
    (503, TransientServerError),
    (418, ApiError),
])
def test_status_mapping(status, error_cls):
    error = error_from_response(status, "text", None)
    assert type(error) is error_cls
    assert isinstance(error, MarketplaceError)
    assert error.status == status


def test_error_objects_are_kept_intact():
    body = {"errors": [{"status": 409, "code": "transaction-invalid-transition", "title": "Invalid transition"}]}
    error = error_from_response(409, "Conflict", body)
    assert error.code == "transaction-invalid-transition"
    assert error.errors == body["errors"]
    assert str(error) == "409 Conflict: Invalid transition"


def test_validation_error_is_value_error():
    error = ValidationError("bad perPage", parameter="perPage")
    assert isinstance(error, ValueError)
    assert error.parameter == "perPage"
