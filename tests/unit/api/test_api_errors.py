"""Tests for API error responses and domain error mapping."""

import pytest

from summadoc.api.errors import (
    ApiError,
    BadGateway,
    Conflict,
    Message,
    MessageType,
    NotFound,
    Result,
    ServiceUnavailable,
    Unauthorized,
    to_api_error,
)
from summadoc.core.errors import (
    CompletionError,
    ConflictError,
    DocumentNotFoundError,
    StoreUnavailableError,
    SummadocError,
    UserAlreadyExistsError,
    UserNotFoundError,
)


class TestMessage:
    """Test Message model."""

    def test_basic_message(self) -> None:
        msg = Message(code="NotFound", message_type=MessageType.ERROR, text="Resource not found")
        assert msg.code == "NotFound"
        assert msg.message_type == MessageType.ERROR

    def test_serializes_camel_case(self) -> None:
        msg = Message(code="E", message_type=MessageType.ERROR, text="t")
        assert msg.model_dump(by_alias=True) == {
            "code": "E",
            "messageType": MessageType.ERROR,
            "text": "t",
            "timestamp": None,
        }


class TestApiErrors:
    def test_not_found(self) -> None:
        error = NotFound("Document with identifier 'x' not found")
        assert error.status_code == 404
        assert error.code == "NotFound"

    def test_unauthorized_asks_for_bearer(self) -> None:
        error = Unauthorized("Missing bearer token")
        assert error.status_code == 401
        assert error.headers == {"WWW-Authenticate": "Bearer"}

    def test_service_unavailable_is_retryable(self) -> None:
        error = ServiceUnavailable()
        assert error.status_code == 503
        assert "Retry-After" in error.headers

    def test_to_result(self) -> None:
        result = Conflict("busy").to_result()
        assert isinstance(result, Result)
        assert len(result.messages) == 1
        assert result.messages[0].code == "Conflict"
        assert result.messages[0].timestamp is not None


class TestDomainMapping:
    """Domain exceptions map to fixed HTTP statuses."""

    @pytest.mark.parametrize(
        ("exc", "expected"),
        [
            (UserNotFoundError("u1"), NotFound),
            (DocumentNotFoundError("d1", user_id="u1"), NotFound),
            (ConflictError("u1", 3), Conflict),
            (UserAlreadyExistsError("u1"), Conflict),
            (StoreUnavailableError("down"), ServiceUnavailable),
            (CompletionError("bad gateway"), BadGateway),
        ],
    )
    def test_mapping(self, exc: SummadocError, expected: type[ApiError]) -> None:
        assert isinstance(to_api_error(exc), expected)

    def test_not_found_keeps_message(self) -> None:
        error = to_api_error(DocumentNotFoundError("d1"))
        assert error.text == "Document with identifier 'd1' not found"

    def test_store_outage_hides_driver_details(self) -> None:
        error = to_api_error(StoreUnavailableError("password=secret host=db"))
        assert "secret" not in error.text

    def test_unknown_domain_error_is_500(self) -> None:
        error = to_api_error(SummadocError("unexpected"))
        assert error.status_code == 500
        assert error.message_type == MessageType.EXCEPTION
