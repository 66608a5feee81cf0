import pytest

from linkcard.core.exceptions import (
    FetchFailed,
    InvalidURL,
    NoURLFound,
    ParseFailed,
    PreviewError,
)


@pytest.mark.parametrize(
    "error, code, status",
    [
        (NoURLFound("hello"), 1, 422),
        (InvalidURL("http://example.com:99999/"), 2, 422),
        (FetchFailed("https://a.com", "timed out"), 3, 502),
        (ParseFailed("https://a.com"), 4, 502),
    ],
)
def test_error_codes_and_statuses(error, code, status):
    assert isinstance(error, PreviewError)
    assert error.code == code
    assert error.status_code == status


def test_fetch_failed_payload():
    error = FetchFailed("https://a.com", "timed out")

    assert error.to_dict() == {
        "code": 3,
        "error_code": "fetch_failed",
        "message": "Could not open https://a.com: timed out",
        "details": {"url": "https://a.com", "detail": "timed out"},
    }
    assert str(error) == error.message


def test_fetch_failed_without_detail():
    assert FetchFailed("https://a.com").message == "Could not open https://a.com"
