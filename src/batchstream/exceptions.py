"""
Batchstream-specific runtime exceptions.
"""

from __future__ import annotations


class BatchStreamError(RuntimeError):
    """
    Base class for every error raised by the batch pipeline.
    """


class ConfigurationError(BatchStreamError, ValueError):
    """
    Invalid quota, batch or pipeline settings.

    Notes
    -----
    Raised synchronously while setting up a pipeline, before any network I/O.
    """


class AuthenticationError(BatchStreamError):
    """
    The authentication collaborator did not provide an access token.
    """


class EncodingError(BatchStreamError):
    """
    A call descriptor could not be encoded into a multipart part.
    """


class TransportError(BatchStreamError):
    """
    The batch HTTP call itself failed.

    Parameters
    ----------
    message : str
        Human readable failure description.
    status_code : int | None
        Envelope status code when the server answered, ``None`` on network errors.
    """

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class FramingError(BatchStreamError):
    """
    A multipart response stream is malformed beyond recovery.
    """
