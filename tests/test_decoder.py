import pytest

from batchstream.decoder import SUPPRESSED, decode_result
from batchstream.models import DecodeErrorResult, ParsedSubResponse


def _parsed(*, status_code: int | None = 200, body: str = '{"a":1}') -> ParsedSubResponse:
    return ParsedSubResponse(content_id=0, status_code=status_code, body=body)


def test_success_is_decoded_json():
    assert decode_result(_parsed(), filter_errors=False) == {"a": 1}


@pytest.mark.parametrize("status_code", [404, 500, None])
def test_non_200_is_suppressed_when_filtering(status_code):
    assert decode_result(_parsed(status_code=status_code), filter_errors=True) is SUPPRESSED


def test_non_200_json_body_is_kept_without_filtering():
    result = decode_result(_parsed(status_code=404, body='{"error": "nope"}'), filter_errors=False)

    assert result == {"error": "nope"}


def test_invalid_json_is_reported_inline():
    result = decode_result(_parsed(body="not-json"), filter_errors=False)

    assert isinstance(result, DecodeErrorResult)
    assert result.body == "not-json"
    assert result.error


def test_invalid_json_is_suppressed_when_filtering():
    assert decode_result(_parsed(body="not-json"), filter_errors=True) is SUPPRESSED


@pytest.mark.parametrize("filter_errors", [True, False])
def test_empty_body_is_suppressed(filter_errors):
    assert decode_result(_parsed(body=""), filter_errors=filter_errors) is SUPPRESSED


def test_suppressed_marker_is_falsy_singleton():
    assert not SUPPRESSED
    assert repr(SUPPRESSED) == "SUPPRESSED"
    assert type(SUPPRESSED)() is SUPPRESSED
