"""Streaming subscription session with one task per partition."""

from __future__ import annotations

import asyncio
import math
from collections.abc import AsyncIterator, Awaitable, Callable
from enum import Enum, auto
from typing import Any

import httpx
import structlog

from .config import ClientConfig
from .exceptions import NakadiClientError, NakadiClientErrorCodes
from .listener import ListenParameters, Listener
from .models import BusinessEvent, Cursor, Event, EventStreamBatch, Partition
from .retry import RetryBudget

logger = structlog.get_logger(__name__)

CURSORS_HEADER = "X-Nakadi-Cursors"
STREAM_CONTENT_TYPE = "application/x-json-stream"

# status reported when no HTTP response was received
NO_RESPONSE_STATUS = 0

PartitionResolver = Callable[[str], Awaitable[list[Partition]]]


class StreamState(Enum):
    """Partition stream state."""

    IDLE = auto()
    CONNECTING = auto()
    STREAMING = auto()
    CLOSED = auto()
    FAILED = auto()


class _StreamFailure(Exception):
    def __init__(self, status: int, message: str, transient: bool) -> None:
        super().__init__(message)
        self.status = status
        self.message = message
        self.transient = transient


def _is_transient(status: int) -> bool:
    return status == 429 or status >= 500


class PartitionStream:
    """Reads one partition of a topic and feeds its listener in arrival order."""

    def __init__(
        self,
        topic: str,
        partition: Partition,
        parameters: ListenParameters,
        listener: Listener,
        config: ClientConfig,
        stopping: asyncio.Event,
        semaphore: asyncio.Semaphore,
        auto_reconnect: bool = True,
        event_class: type[Event] = BusinessEvent,
    ) -> None:
        self.topic = topic
        self.partition = partition.partition
        self._start_offset = (
            parameters.start_offset
            if parameters.start_offset is not None
            else partition.newest_available_offset
        )
        self._parameters = parameters
        self._listener = listener
        self._config = config
        self._settings = config.settings
        self._stopping = stopping
        self._semaphore = semaphore
        self._auto_reconnect = auto_reconnect
        self._event_class = event_class
        self._budget = RetryBudget(
            max_retries=self._settings.supervisor_max_retries,
            window_seconds=self._settings.supervisor_retry_window_seconds,
        )
        self._state = StreamState.IDLE
        self._last_cursor: Cursor | None = None
        self._log = logger.bind(topic=topic, partition=self.partition)

    @property
    def state(self) -> StreamState:
        return self._state

    @property
    def last_cursor(self) -> Cursor | None:
        return self._last_cursor

    @property
    def budget(self) -> RetryBudget:
        return self._budget

    def _query_params(self) -> dict[str, Any]:
        p = self._parameters
        s = self._settings
        params: dict[str, Any] = {
            "batch_limit": p.batch_limit if p.batch_limit is not None else s.batch_limit,
            "stream_limit": p.stream_limit if p.stream_limit is not None else s.stream_limit,
            "batch_flush_timeout": math.ceil(
                p.batch_flush_timeout
                if p.batch_flush_timeout is not None
                else s.batch_flush_timeout_seconds
            ),
        }
        if p.stream_timeout is not None:
            params["stream_timeout"] = math.ceil(p.stream_timeout)
        if p.stream_keep_alive_limit is not None:
            params["stream_keep_alive_limit"] = p.stream_keep_alive_limit
        return params

    def _cursor_header(self) -> str:
        offset = self._last_cursor.offset if self._last_cursor is not None else self._start_offset
        cursor = Cursor(partition=self.partition, offset=offset)
        return self._config.serializer.encode([cursor]).decode()

    async def run(self) -> None:
        """Streams until closed, stopped or terminally failed."""
        try:
            while True:
                try:
                    async with self._semaphore:
                        await self._stream_once()
                except _StreamFailure as failure:
                    if not await self._handle_failure(failure):
                        return
                    if await self._wait_reconnect_delay():
                        break
                    continue
                break
        except asyncio.CancelledError:
            await self._close()
            raise
        except Exception as e:
            self._state = StreamState.FAILED
            self._log.exception("partition stream aborted")
            await self._report_abort(e)
            return
        await self._close()

    async def _close(self) -> None:
        if self._state is StreamState.CLOSED:
            return
        self._state = StreamState.CLOSED
        self._log.info("partition stream closed", last_cursor=self._last_cursor)
        await self._listener.on_connection_closed(self.topic, self.partition, self._last_cursor)

    async def _report_abort(self, error: Exception) -> None:
        message = f"{type(error).__name__}: {error}"
        try:
            await self._listener.on_connection_failed(self.topic, self.partition, NO_RESPONSE_STATUS, message)
        except Exception:
            self._log.exception("listener failed while reporting aborted stream")

    async def _wait_reconnect_delay(self) -> bool:
        """Returns True when the session was stopped during the delay."""
        delay = self._settings.reconnect_delay_seconds
        try:
            await asyncio.wait_for(self._stopping.wait(), timeout=delay)
        except TimeoutError:
            return False
        return True

    async def _handle_failure(self, failure: _StreamFailure) -> bool:
        """Reports the failure; returns True when a reconnect should follow."""
        self._state = StreamState.FAILED
        retryable = (
            self._auto_reconnect and failure.transient and not self._stopping.is_set()
        )
        if retryable and self._budget.record_failure():
            self._log.warning(
                "partition stream failed, reconnecting",
                status=failure.status,
                error=failure.message,
                delay=self._settings.reconnect_delay_seconds,
                failures=self._budget.failures_in_window,
            )
            await self._listener.on_connection_failed(
                self.topic, self.partition, failure.status, failure.message
            )
            return True

        message = failure.message
        if retryable and self._budget.exhausted:
            message = (
                f"{NakadiClientErrorCodes.RETRY_BUDGET_EXHAUSTED}: "
                f"{self._budget.max_retries} failures within "
                f"{self._budget.window_seconds}s; last error: {failure.message}"
            )
        self._log.error("partition stream failed", status=failure.status, error=message)
        await self._listener.on_connection_failed(self.topic, self.partition, failure.status, message)
        return False

    async def _stream_once(self) -> None:
        self._state = StreamState.CONNECTING
        headers = {
            **self._config.auth_headers(),
            "Accept": STREAM_CONTENT_TYPE,
            CURSORS_HEADER: self._cursor_header(),
        }
        timeout = httpx.Timeout(self._settings.request_timeout_seconds, read=None)
        async with httpx.AsyncClient(base_url=self._config.base_url, timeout=timeout) as client:
            request = client.build_request(
                "GET",
                f"/event-types/{self.topic}/events",
                headers=headers,
                params=self._query_params(),
            )
            resolve_timeout = self._settings.resolve_timeout_seconds
            try:
                response = await asyncio.wait_for(client.send(request, stream=True), resolve_timeout)
            except TimeoutError as e:
                raise _StreamFailure(
                    NO_RESPONSE_STATUS,
                    f"stream not established within {resolve_timeout}s",
                    transient=True,
                ) from e
            except httpx.HTTPError as e:
                raise _StreamFailure(NO_RESPONSE_STATUS, f"connection failed: {e}", transient=True) from e

            try:
                if response.status_code >= 400:
                    body = (await response.aread()).decode(errors="replace")
                    raise _StreamFailure(
                        response.status_code,
                        body or response.reason_phrase,
                        transient=_is_transient(response.status_code),
                    )
                self._state = StreamState.STREAMING
                self._log.info("partition stream opened")
                await self._listener.on_connection_opened(self.topic, self.partition)
                async for line in self._iter_lines(response):
                    await self._deliver(self._decode_batch(line))
                    if self._stopping.is_set():
                        break
            except httpx.HTTPError as e:
                raise _StreamFailure(NO_RESPONSE_STATUS, f"stream interrupted: {e}", transient=True) from e
            finally:
                await response.aclose()

    async def _iter_lines(self, response: httpx.Response) -> AsyncIterator[bytes]:
        buffer = b""
        async for chunk in response.aiter_bytes(self._settings.receive_buffer_size):
            buffer += chunk
            *lines, buffer = buffer.split(b"\n")
            for line in lines:
                if line.strip():
                    yield line
        if buffer.strip():
            yield buffer

    def _decode_batch(self, line: bytes) -> EventStreamBatch[Any]:
        try:
            return self._config.serializer.decode(line, EventStreamBatch[self._event_class])
        except NakadiClientError as e:
            raise _StreamFailure(NO_RESPONSE_STATUS, f"undecodable batch: {e}", transient=True) from e

    async def _deliver(self, batch: EventStreamBatch[Any]) -> None:
        self._last_cursor = batch.cursor
        if batch.is_keep_alive:
            self._log.debug("keep-alive received", cursor=batch.cursor)
            return
        for event in batch.events:
            await self._listener.on_receive(self.topic, self.partition, batch.cursor, event)


class SubscriptionSession:
    """Subscription of one listener to one topic."""

    def __init__(
        self,
        topic: str,
        parameters: ListenParameters,
        listener: Listener,
        config: ClientConfig,
        resolve_partitions: PartitionResolver,
        auto_reconnect: bool = True,
        event_class: type[Event] = BusinessEvent,
    ) -> None:
        self.topic = topic
        self.parameters = parameters
        self.listener = listener
        self._config = config
        self._resolve_partitions = resolve_partitions
        self._auto_reconnect = auto_reconnect
        self._event_class = event_class
        self._stopping = asyncio.Event()
        self._semaphore = asyncio.Semaphore(config.settings.poll_parallelism)
        self._streams: dict[str, PartitionStream] = {}
        self._tasks: list[asyncio.Task[None]] = []
        self._main: asyncio.Task[None] | None = None
        self._log = logger.bind(topic=topic, listener=listener.id)

    @property
    def streams(self) -> dict[str, PartitionStream]:
        return dict(self._streams)

    @property
    def states(self) -> dict[str, StreamState]:
        return {p: s.state for p, s in self._streams.items()}

    @property
    def done(self) -> bool:
        return self._main is not None and self._main.done()

    def start(self) -> None:
        """Starts partition resolution and streaming in the background."""
        if self._main is None:
            self._main = asyncio.create_task(self._run(), name=f"nakadi-subscription-{self.topic}")

    async def _run(self) -> None:
        try:
            partitions = await self._resolve_partitions(self.topic)
        except NakadiClientError as e:
            self._log.error("partition resolution failed", error=str(e))
            await self.listener.on_connection_failed(
                self.topic, "", e.status if e.status is not None else NO_RESPONSE_STATUS, str(e)
            )
            return
        if self._stopping.is_set():
            return

        for partition in partitions:
            self._streams[partition.partition] = PartitionStream(
                topic=self.topic,
                partition=partition,
                parameters=self.parameters,
                listener=self.listener,
                config=self._config,
                stopping=self._stopping,
                semaphore=self._semaphore,
                auto_reconnect=self._auto_reconnect,
                event_class=self._event_class,
            )
        self._log.info("subscription started", partitions=list(self._streams))
        self._tasks = [
            asyncio.create_task(stream.run(), name=f"nakadi-{self.topic}-{p}")
            for p, stream in self._streams.items()
        ]
        await asyncio.gather(*self._tasks)

    async def wait(self) -> None:
        """Waits until every partition stream has ended."""
        if self._main is not None:
            await asyncio.shield(self._main)

    async def close(self, grace_seconds: float | None = None) -> None:
        """Stops all partition streams.

        In-flight reads get grace_seconds to finish before the tasks are cancelled.
        """
        self._stopping.set()
        if self._main is None or self._main.done():
            return
        if grace_seconds is None:
            settings = self._config.settings
            grace_seconds = settings.batch_flush_timeout_seconds + settings.resolve_timeout_seconds
        _, pending = await asyncio.wait({self._main}, timeout=grace_seconds)
        if pending:
            for task in [self._main, *self._tasks]:
                task.cancel()
            await asyncio.gather(self._main, *self._tasks, return_exceptions=True)
        self._log.info("subscription closed")
