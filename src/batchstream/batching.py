"""
Grouping of a call descriptor stream into bounded batches.
"""

from __future__ import annotations

import typing as t
from collections.abc import AsyncIterable

import structlog

from batchstream.exceptions import ConfigurationError

log = structlog.get_logger(__name__)

T = t.TypeVar("T")

DescriptorSource = t.Iterable[T] | t.AsyncIterable[T]


async def aiter_source(source: DescriptorSource[T]) -> t.AsyncIterator[T]:
    """
    Iterate a sync or async iterable asynchronously.

    Parameters
    ----------
    source : DescriptorSource
        Items to iterate.

    Yields
    ------
    T
        Items of ``source`` in order.
    """
    if isinstance(source, AsyncIterable):
        async for item in source:
            yield item
    else:
        for item in source:
            yield item


async def iter_batches(source: DescriptorSource[T], batch_size: int) -> t.AsyncIterator[list[T]]:
    """
    Buffer consecutive items into lists of ``batch_size``.

    Parameters
    ----------
    source : DescriptorSource
        Upstream items, consumed lazily one at a time.
    batch_size : int
        Size of every batch except possibly the last one.

    Yields
    ------
    list[T]
        Sealed batches, in input order.
    """
    if batch_size < 1:
        raise ConfigurationError(f"batch_size must be at least 1, got {batch_size}")
    batch: list[T] = []
    async for item in aiter_source(source):
        batch.append(item)
        if len(batch) >= batch_size:
            yield batch
            batch = []
    if batch:
        log.debug(event="Sealed final short batch", item_count=len(batch), batch_size=batch_size)
        yield batch
