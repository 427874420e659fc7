"""
Encoding of a batch of call descriptors into one multipart HTTP request.
"""

from __future__ import annotations

import json
import typing as t
import uuid
from dataclasses import dataclass, field
from urllib.parse import urlencode

import structlog

from batchstream.config import BATCH_URL
from batchstream.exceptions import EncodingError
from batchstream.models import CallDescriptor

log = structlog.get_logger(__name__)

CRLF = "\r\n"


@dataclass(frozen=True)
class MimePart:
    """
    One encoded call inside a batch envelope.

    Parameters
    ----------
    content_id : str
        Positional correlation id, ``item-<index>``.
    body : str
        Literal HTTP request for the call.
    content_type : str
        Part content type.
    """

    content_id: str
    body: str
    content_type: str = "application/http"

    def render(self) -> str:
        return (
            f"Content-Type: {self.content_type}{CRLF}"
            f"Content-ID: <{self.content_id}>{CRLF}"
            f"{CRLF}"
            f"{self.body}"
        )


@dataclass(frozen=True)
class BatchEnvelope:
    """
    Outbound multipart batch request.

    Parameters
    ----------
    url : str
        Batch endpoint.
    headers : dict[str, str]
        Envelope headers, authorization included.
    parts : tuple[MimePart, ...]
        One part per call descriptor, in batch order.
    method : str
        HTTP method of the envelope.
    """

    url: str
    headers: dict[str, str]
    parts: tuple[MimePart, ...] = field(default_factory=tuple)
    method: str = "POST"

    def render(self, *, boundary: str | None = None) -> tuple[dict[str, str], bytes]:
        """
        Produce the envelope headers and multipart body for the wire.

        Parameters
        ----------
        boundary : str | None, optional
            Multipart boundary. A random one is generated when omitted.

        Returns
        -------
        tuple[dict[str, str], bytes]
            Headers carrying the boundary parameter, and the encoded body.
        """
        boundary = boundary or uuid.uuid4().hex
        chunks = [f"--{boundary}{CRLF}{part.render()}{CRLF}" for part in self.parts]
        content = "".join(chunks) + f"--{boundary}--{CRLF}"
        headers = {
            **self.headers,
            "Content-Type": f"{self.headers['Content-Type']}; boundary={boundary}",
        }
        return headers, content.encode(encoding="utf-8")


def build_request_line(*, descriptor: CallDescriptor) -> str:
    """
    Build the literal HTTP request carried by one part.

    Parameters
    ----------
    descriptor : CallDescriptor
        Call to encode.

    Returns
    -------
    str
        ``<METHOD> <URL>[?query]`` followed by a JSON body for non-GET calls.
    """
    url = descriptor.url
    if descriptor.query_params:
        url = f"{url}?{urlencode(query=sorted(descriptor.query_params.items()))}"
    body = f"{descriptor.method} {url}\n"
    if descriptor.method != "GET":
        payload = ""
        if descriptor.json_body is not None:
            try:
                payload = json.dumps(obj=descriptor.json_body, indent=2)
            except (TypeError, ValueError) as error:
                raise EncodingError(
                    f"cannot serialize body of {descriptor.method} {descriptor.url}: {error}"
                ) from error
        body += f"Content-Type: application/json\n\n{payload}"
    return body


def encode_batch(
    batch: t.Sequence[CallDescriptor],
    token: str,
    url: str = BATCH_URL,
) -> BatchEnvelope:
    """
    Encode a batch into a multipart envelope.

    Parameters
    ----------
    batch : typing.Sequence[CallDescriptor]
        Calls to send together.
    token : str
        Bearer token applied to every call of the envelope.
    url : str, optional
        Batch endpoint.

    Returns
    -------
    BatchEnvelope
        Envelope with one part per call, tagged ``item-<index>``.
    """
    parts = tuple(
        MimePart(content_id=f"item-{index}", body=build_request_line(descriptor=descriptor))
        for index, descriptor in enumerate(batch)
    )
    log.debug(event="Encoded batch envelope", url=url, part_count=len(parts))
    return BatchEnvelope(
        url=url,
        headers={
            "Content-Type": "multipart/mixed",
            "Authorization": f"Bearer {token}",
        },
        parts=parts,
    )
