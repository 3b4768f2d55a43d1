import pytest

from app.destinations.directory.connector import aggregate_errors, error_for_result, is_caller_error
from app.services.errors import PublishError
from app.services.http_client import HttpResult


def _failed(status: int | None, detail: dict | None = None, error_code: str | None = None, **kw) -> HttpResult:
    return HttpResult(
        ok=False,
        status_code=status,
        detail=detail or {},
        error_code=error_code or (f"HTTP_{status}" if status else None),
        error_message="boom",
        **kw,
    )


def test_jsonapi_errors_are_joined():
    detail = {"errors": [
        {"title": "Unprocessable Entity", "detail": "title: required", "source": {"pointer": "/data/attributes/title"}},
        {"title": "Bad Request"},
    ]}
    assert aggregate_errors(detail) == "Unprocessable Entity: title: required (/data/attributes/title); Bad Request"


@pytest.mark.parametrize("result,code", [
    (_failed(None, error_code="TIMEOUT"), "TIMEOUT"),
    (_failed(None, error_code="REQUEST_ERROR"), "NETWORK_ERROR"),
    (_failed(401), "OAUTH_ERROR"),
    (_failed(403), "OAUTH_ERROR"),
    (_failed(422), "VALIDATION_ERROR"),
    (_failed(408), "NETWORK_ERROR"),
    (_failed(429, retry_after="30"), "RATE_LIMITED"),
    (_failed(503), "NETWORK_ERROR"),
])
def test_error_mapping(result, code):
    assert error_for_result(result, context="create").code == code


def test_rate_limit_message_mentions_retry_after():
    err = error_for_result(_failed(429, retry_after="30"), context="create")
    assert "retry after 30s" in err.message


def test_token_endpoint_client_errors_are_oauth_errors():
    assert error_for_result(_failed(400), context="token", client_error_code="OAUTH_ERROR").code == "OAUTH_ERROR"


def test_caller_errors_are_recognised():
    assert is_caller_error(PublishError("VALIDATION_ERROR", "x"))
    assert is_caller_error(PublishError("OAUTH_ERROR", "x"))
    assert not is_caller_error(PublishError("NETWORK_ERROR", "x"))
    assert not is_caller_error(ValueError("x"))
