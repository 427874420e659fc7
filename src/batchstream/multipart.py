"""
Streaming splitter of a multipart batch response into sub-response blocks.

The boundary is not configured up front: it is learned from the first line of
the response body, since the server picks it. Chunks may be cut anywhere,
including in the middle of a boundary marker or of a multi-byte character, so
the splitter keeps an accumulation buffer and only emits a block once the
boundary that closes it has been fully received.
"""

from __future__ import annotations

import codecs
import typing as t
from enum import StrEnum

import structlog

from batchstream.exceptions import FramingError

log = structlog.get_logger(__name__)

CLOSING_MARKER = "--"


class SplitterState(StrEnum):
    SEEKING_BOUNDARY = "seeking_boundary"
    ACCUMULATING = "accumulating"
    END = "end"


class MultipartSplitter:
    """
    Push-based state machine turning raw response chunks into text blocks.

    Examples
    --------
    >>> splitter = MultipartSplitter()
    >>> blocks = splitter.feed("--b\\r\\npart one\\r\\n--b\\r\\npart two\\r\\n--b--")
    >>> blocks += splitter.close()
    >>> blocks
    ['part one\\r\\n', 'part two\\r\\n']
    """

    def __init__(self, encoding: str = "utf-8"):
        self._state = SplitterState.SEEKING_BOUNDARY
        self._buffer = ""
        self._boundary: str | None = None
        # offset before which the buffer is known not to start a boundary
        self._scan_from = 0
        self._strip_leading = False
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")

    @property
    def state(self) -> SplitterState:
        return self._state

    @property
    def boundary(self) -> str | None:
        return self._boundary

    def feed(self, chunk: str | bytes) -> list[str]:
        """
        Consume one chunk and return the blocks it completes.

        Parameters
        ----------
        chunk : str | bytes
            Next fragment of the response body.

        Returns
        -------
        list[str]
            Complete sub-response blocks, possibly empty.
        """
        if self._state is SplitterState.END:
            raise FramingError("cannot feed a multipart splitter after close()")
        text = self._decoder.decode(chunk) if isinstance(chunk, bytes) else chunk
        if not text:
            return []
        self._append(text=text)
        if self._state is SplitterState.SEEKING_BOUNDARY and not self._learn_boundary():
            return []
        return self._drain_blocks()

    def close(self) -> list[str]:
        """
        Signal end of stream and return the residual block, if any.

        Returns
        -------
        list[str]
            The last block, unless the residual is empty or only the closing marker.
        """
        if self._state is SplitterState.END:
            return []
        self._append(text=self._decoder.decode(b"", final=True))
        blocks = []
        if self._state is SplitterState.ACCUMULATING:
            blocks = self._drain_blocks()
        self._state = SplitterState.END

        residual = self._buffer
        self._buffer = ""
        if self._boundary and self._boundary in residual:
            lines = residual.rstrip().split("\r\n")
            if self._boundary in lines[-1]:
                lines.pop()
            residual = "\r\n".join(lines)
        residual_emitted = bool(residual) and residual.strip() != CLOSING_MARKER
        if residual_emitted:
            blocks.append(residual)
        log.debug(
            event="Multipart stream closed",
            residual_emitted=residual_emitted,
            boundary=self._boundary,
        )
        return blocks

    def _append(self, *, text: str) -> None:
        self._buffer += text
        if self._strip_leading:
            self._buffer = self._buffer.lstrip()
            self._strip_leading = not self._buffer

    def _learn_boundary(self) -> bool:
        while "\n" in self._buffer:
            first_line, _, rest = self._buffer.partition("\n")
            self._buffer = rest
            if not first_line.strip():
                continue
            self._boundary = first_line.strip()
            self._state = SplitterState.ACCUMULATING
            self._strip_leading = True
            self._append(text="")
            log.debug(event="Learned multipart boundary", boundary=self._boundary)
            return True
        return False

    def _drain_blocks(self) -> list[str]:
        boundary = t.cast(str, self._boundary)
        blocks: list[str] = []
        index = self._buffer.find(boundary, self._scan_from)
        while index > -1:
            blocks.append(self._buffer[:index])
            self._buffer = self._buffer[index + len(boundary) :]
            self._strip_leading = True
            self._append(text="")
            index = self._buffer.find(boundary)
        self._scan_from = max(0, len(self._buffer) - len(boundary) + 1)
        return blocks


async def split_stream(
    chunks: t.AsyncIterable[str | bytes], encoding: str = "utf-8"
) -> t.AsyncIterator[str]:
    """
    Split an async stream of response chunks into sub-response blocks.

    Parameters
    ----------
    chunks : typing.AsyncIterable[str | bytes]
        Response body fragments. Text chunks, such as those of
        ``httpx.Response.aiter_text()``, are used as they are.
    encoding : str, optional
        Encoding used for raw ``bytes`` chunks only.

    Yields
    ------
    str
        Sub-response blocks in stream order.
    """
    splitter = MultipartSplitter(encoding=encoding)
    async for chunk in chunks:
        for block in splitter.feed(chunk):
            yield block
    for block in splitter.close():
        yield block
