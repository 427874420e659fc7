"""
Parsing of one multipart block into a structured HTTP response.

A block looks like::

    Content-Type: application/http
    Content-ID: <response-item-0>

    HTTP/1.1 200 OK
    Content-Type: application/json; charset=UTF-8
    Content-Length: 13

    {"id": "abc"}
"""

from __future__ import annotations

import re

import structlog

from batchstream.exceptions import FramingError
from batchstream.models import ParsedSubResponse

log = structlog.get_logger(__name__)

CONTENT_ID_PATTERN = re.compile(r"Content-ID: <response-item-(\d+)>")
STRAY_BOUNDARY_MARKER = "--batch"
MIN_BLOCK_LINES = 3


def parse_http_response(text: str) -> ParsedSubResponse:
    """
    Parse a literal HTTP/1.1 response into status line, headers and body.

    Parameters
    ----------
    text : str
        Response text with CRLF line endings.

    Returns
    -------
    ParsedSubResponse
        Parsed response without correlation id.
    """
    lines = text.split("\r\n")
    status_line = lines[0].strip() if lines else ""
    status_code: int | None = None
    status_message = ""
    parts = status_line.split(" ", 2)
    if len(parts) >= 2 and parts[0].startswith("HTTP/") and parts[1].isdigit():
        status_code = int(parts[1])
        status_message = parts[2] if len(parts) == 3 else ""

    headers: dict[str, str] = {}
    index = 1
    while index < len(lines) and lines[index]:
        name, separator, value = lines[index].partition(":")
        if separator:
            headers[name.strip()] = value.strip()
        index += 1
    body = "\r\n".join(lines[index + 1 :])
    return ParsedSubResponse(
        status_code=status_code,
        status_message=status_message,
        headers=headers,
        body=body,
    )


def parse_sub_response(block: str) -> ParsedSubResponse | None:
    """
    Parse a sub-response block and extract its correlation id.

    Parameters
    ----------
    block : str
        Block emitted by the multipart splitter.

    Returns
    -------
    ParsedSubResponse | None
        Parsed response, or ``None`` when the block has fewer than three lines.

    Raises
    ------
    FramingError
        If the body contains a batch boundary, which means the upstream
        framing is corrupted.

    Notes
    -----
    Short blocks are dropped without being reported. This keeps trailing
    fragments of the stream from failing a batch, at the cost of silently
    losing a truncated sub-response.

    The corruption check looks for the literal ``--batch`` marker rather than
    the boundary learned from the stream. A legitimate body containing that
    text fails the whole batch, and a leaked boundary with another name is not
    detected.
    """
    # the line break before a boundary belongs to the boundary
    if block.endswith("\r\n"):
        block = block[:-2]
    lines = block.split("\r\n")
    if len(lines) < MIN_BLOCK_LINES:
        log.debug(event="Skipped short sub-response block", line_count=len(lines))
        return None

    parsed = parse_http_response("\r\n".join(lines[3:]))
    match = CONTENT_ID_PATTERN.search(lines[1])
    if match:
        parsed.content_id = int(match.group(1))

    if parsed.body and parsed.body.find(STRAY_BOUNDARY_MARKER) > 0:
        log.error(
            event="Sub-response body contains a batch boundary",
            content_id=parsed.content_id,
            status_code=parsed.status_code,
        )
        raise FramingError(f"invalid HTTP response for content id {parsed.content_id}")
    return parsed
