"""
Bounded-concurrency batch pipeline.

A dispatcher task pulls call descriptors in batches, admits each batch through
the rate limiter and starts one task per batch, never running more than
``parallel_requests`` batch calls at once. Batch tasks stream their multipart
response through the splitter, parser and decoder and push results into one
shared queue, which the caller drains as an async iterator. Results arrive in
completion order, not submission order.
"""

from __future__ import annotations

import asyncio
import typing as t
import uuid
from dataclasses import dataclass, field

import httpx
import structlog

from batchstream.batching import DescriptorSource, iter_batches
from batchstream.config import Settings
from batchstream.decoder import SUPPRESSED, decode_result
from batchstream.encoder import encode_batch
from batchstream.exceptions import AuthenticationError, TransportError
from batchstream.http_parser import parse_sub_response
from batchstream.models import CallDescriptor, Result
from batchstream.multipart import split_stream
from batchstream.rate_limiter import RateLimiter

log = structlog.get_logger(__name__)

Transform = t.Callable[[DescriptorSource[CallDescriptor]], t.AsyncIterator[Result]]


class AccessTokenProvider(t.Protocol):
    """
    Authentication collaborator supplying the bearer token.
    """

    async def get_access_token(self) -> str | None: ...


class _Done:
    """End-of-run marker pushed by the dispatcher."""


_DONE = _Done()


@dataclass
class _Run:
    """State shared by the dispatcher and batch tasks of one pipeline run."""

    run_id: str
    settings: Settings
    queue: asyncio.Queue[t.Any]
    tasks: set[asyncio.Task[None]] = field(default_factory=set)
    failures: list[Exception] = field(default_factory=list)


class BatchPipeline:
    """
    Turn a stream of call descriptors into a stream of decoded results.

    Parameters
    ----------
    token : str
        Bearer token attached once per batch envelope.
    settings : Settings | None, optional
        Quota, concurrency and batching settings.
    client_factory : typing.Callable[[], httpx.AsyncClient] | None, optional
        Factory of the HTTP client used for each batch call.
    """

    def __init__(
        self,
        token: str,
        settings: Settings | None = None,
        client_factory: t.Callable[[], httpx.AsyncClient] | None = None,
    ):
        self._token = token
        self._settings = settings or Settings()
        self._limiter = RateLimiter(
            capacity=self._settings.user_quota,
            time_frame=self._settings.user_quota_time_seconds,
        )
        timeout = self._settings.request_timeout_seconds
        self._client_factory: t.Callable[[], httpx.AsyncClient] = (
            client_factory or (lambda: httpx.AsyncClient(timeout=timeout))
        )

        log.debug(
            event="Initialized BatchPipeline",
            user_quota=self._settings.user_quota,
            user_quota_time_ms=self._settings.user_quota_time_ms,
            parallel_requests=self._settings.parallel_requests,
            batch_url=self._settings.batch_url,
        )

    @classmethod
    async def from_auth_client(
        cls,
        auth_client: AccessTokenProvider,
        settings: Settings | None = None,
        client_factory: t.Callable[[], httpx.AsyncClient] | None = None,
    ) -> "BatchPipeline":
        """
        Build a pipeline with a token obtained from an authentication client.

        Parameters
        ----------
        auth_client : AccessTokenProvider
            Collaborator providing ``get_access_token``. Its errors propagate.
        settings : Settings | None, optional
            Pipeline settings.
        client_factory : typing.Callable[[], httpx.AsyncClient] | None, optional
            Factory of the HTTP client used for each batch call.

        Returns
        -------
        BatchPipeline
            Pipeline bound to the obtained token.
        """
        token = await auth_client.get_access_token()
        if not token:
            raise AuthenticationError("can't get token from auth client")
        log.info(event="Obtained access token from auth client")
        return cls(token=token, settings=settings, client_factory=client_factory)

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def rate_limiter(self) -> RateLimiter:
        return self._limiter

    def pipeline(
        self,
        batch_size: int | None = None,
        quota_cost_per_item: int | None = None,
        filter_errors: bool | None = None,
    ) -> Transform:
        """
        Build the descriptor-to-result transform.

        Parameters
        ----------
        batch_size : int | None, optional
            Calls per batch, defaults to the configured batch size.
        quota_cost_per_item : int | None, optional
            Quota units charged per call, defaults to the configured cost.
        filter_errors : bool | None, optional
            Drop failed and undecodable sub-responses, defaults to the configured flag.

        Returns
        -------
        Transform
            Callable mapping an iterable of ``CallDescriptor`` to an async
            iterator of results.

        Raises
        ------
        ConfigurationError
            If a full batch costs more than the user quota.
        """
        settings = self._settings.with_overrides(
            batch_size=batch_size,
            quota_cost_per_item=quota_cost_per_item,
            filter_errors=filter_errors,
        )

        def transform(source: DescriptorSource[CallDescriptor]) -> t.AsyncIterator[Result]:
            return self._stream_results(source=source, settings=settings)

        return transform

    async def _stream_results(
        self,
        *,
        source: DescriptorSource[CallDescriptor],
        settings: Settings,
    ) -> t.AsyncIterator[Result]:
        run = _Run(
            run_id=uuid.uuid4().hex[:12],
            settings=settings,
            queue=asyncio.Queue(maxsize=settings.batch_size * settings.parallel_requests),
        )
        log.info(
            event="Starting pipeline run",
            run_id=run.run_id,
            batch_size=settings.batch_size,
            quota_cost_per_item=settings.quota_cost_per_item,
            filter_errors=settings.filter_errors,
        )
        dispatcher = asyncio.create_task(
            self._dispatch(run=run, source=source),
            name=f"batch_dispatcher_{run.run_id}",
        )
        try:
            while True:
                item = await run.queue.get()
                if item is _DONE:
                    break
                yield item
        finally:
            if not dispatcher.done():
                log.debug(event="Result stream closed early", run_id=run.run_id)
                pending = [dispatcher, *run.tasks]
                for task in pending:
                    task.cancel()
                await asyncio.gather(*pending, return_exceptions=True)

        if run.failures:
            log.error(
                event="Pipeline run failed",
                run_id=run.run_id,
                failure_count=len(run.failures),
                error=str(object=run.failures[0]),
            )
            raise run.failures[0]
        log.info(event="Pipeline run completed", run_id=run.run_id)

    async def _dispatch(
        self,
        *,
        run: _Run,
        source: DescriptorSource[CallDescriptor],
    ) -> None:
        """
        Admit and start batches while execution slots are free.

        Parameters
        ----------
        run : _Run
            Run state.
        source : DescriptorSource[CallDescriptor]
            Upstream call descriptors.
        """
        settings = run.settings
        slots = asyncio.Semaphore(settings.parallel_requests)
        batch_cost = settings.quota_cost_per_item * settings.batch_size
        batches = iter_batches(source, settings.batch_size)
        batch_index = 0
        try:
            while True:
                # upstream is only read once a slot is free
                await slots.acquire()
                if run.failures:
                    slots.release()
                    break
                batch = await anext(batches, None)
                if batch is None:
                    slots.release()
                    break
                await self._limiter.admit(cost=batch_cost)
                task = asyncio.create_task(
                    self._run_batch(run=run, batch=batch, batch_index=batch_index),
                    name=f"batch_{run.run_id}_{batch_index}",
                )
                run.tasks.add(task)
                task.add_done_callback(run.tasks.discard)
                task.add_done_callback(lambda _: slots.release())
                log.debug(
                    event="Dispatched batch",
                    run_id=run.run_id,
                    batch_index=batch_index,
                    item_count=len(batch),
                    in_flight=len(run.tasks),
                )
                batch_index += 1
        except Exception as error:
            log.error(event="Batch dispatch failed", run_id=run.run_id, error=str(object=error))
            run.failures.append(error)
        finally:
            await batches.aclose()

        if run.tasks:
            await asyncio.gather(*run.tasks)
        await run.queue.put(_DONE)

    async def _run_batch(
        self,
        *,
        run: _Run,
        batch: list[CallDescriptor],
        batch_index: int,
    ) -> None:
        """
        Send one batch and push its decoded results to the run queue.

        Parameters
        ----------
        run : _Run
            Run state.
        batch : list[CallDescriptor]
            Calls of the batch.
        batch_index : int
            Position of the batch in the run, for logs.
        """
        settings = run.settings
        emitted = 0
        suppressed = 0
        try:
            envelope = encode_batch(batch, token=self._token, url=settings.batch_url)
            headers, content = envelope.render()
            async with self._client_factory() as client:
                async with client.stream(
                    method=envelope.method,
                    url=envelope.url,
                    headers=headers,
                    content=content,
                ) as response:
                    if not response.is_success:
                        await response.aread()
                        raise TransportError(
                            f"batch call returned HTTP {response.status_code}",
                            status_code=response.status_code,
                        )
                    async for block in split_stream(response.aiter_text()):
                        parsed = parse_sub_response(block)
                        if parsed is None:
                            continue
                        result = decode_result(parsed, filter_errors=settings.filter_errors)
                        if result is SUPPRESSED:
                            suppressed += 1
                            continue
                        await run.queue.put(result)
                        emitted += 1
        except httpx.HTTPError as error:
            log.error(
                event="Batch call failed",
                run_id=run.run_id,
                batch_index=batch_index,
                error=str(object=error),
            )
            failure = TransportError(f"batch call failed: {error}")
            failure.__cause__ = error
            run.failures.append(failure)
            return
        except Exception as error:
            log.error(
                event="Batch processing failed",
                run_id=run.run_id,
                batch_index=batch_index,
                error=str(object=error),
            )
            run.failures.append(error)
            return

        log.debug(
            event="Batch completed",
            run_id=run.run_id,
            batch_index=batch_index,
            item_count=len(batch),
            emitted=emitted,
            suppressed=suppressed,
        )
