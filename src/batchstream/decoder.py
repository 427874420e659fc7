from __future__ import annotations

import json
import typing as t

import structlog

from batchstream.models import DecodeErrorResult, ParsedSubResponse

log = structlog.get_logger(__name__)


class _Suppressed:
    """Marker for a result omitted from the output stream by filtering."""

    _instance: "_Suppressed | None" = None

    def __new__(cls) -> "_Suppressed":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "SUPPRESSED"

    def __bool__(self) -> bool:
        return False


SUPPRESSED = _Suppressed()


def decode_result(
    parsed: ParsedSubResponse, filter_errors: bool = False
) -> t.Any | DecodeErrorResult | _Suppressed:
    """
    Turn a parsed sub-response into the value emitted for its call.

    Parameters
    ----------
    parsed : ParsedSubResponse
        Sub-response to decode.
    filter_errors : bool
        Suppress non-200 responses and undecodable bodies instead of reporting them.

    Returns
    -------
    typing.Any | DecodeErrorResult | _Suppressed
        Decoded JSON body, an error-carrying result, or ``SUPPRESSED``.
    """
    if filter_errors and parsed.status_code != 200:
        log.debug(
            event="Suppressed non-200 sub-response",
            content_id=parsed.content_id,
            status_code=parsed.status_code,
        )
        return SUPPRESSED
    if not parsed.body:
        return SUPPRESSED
    try:
        return json.loads(s=parsed.body)
    except json.JSONDecodeError as error:
        if filter_errors:
            return SUPPRESSED
        log.warning(
            event="Sub-response body is not valid JSON",
            content_id=parsed.content_id,
            status_code=parsed.status_code,
            error=str(object=error),
        )
        return DecodeErrorResult(body=parsed.body, error=str(object=error))
