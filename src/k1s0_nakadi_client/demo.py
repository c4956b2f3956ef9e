"""Demo: subscribe to a topic and log every callback until interrupted."""

from __future__ import annotations

import asyncio

import structlog

from .builder import ClientBuilder
from .listener import ListenParameters, Listener
from .logger import configure_logging
from .models import Cursor, Event
from .settings import load_settings


class LoggingListener(Listener):
    """Listener that logs every callback."""

    def __init__(self, logger: structlog.stdlib.BoundLogger) -> None:
        self._logger = logger

    @property
    def id(self) -> str:
        return "test"

    async def on_receive(self, topic: str, partition: str, cursor: Cursor, event: Event) -> None:
        self._logger.info("event received", topic=topic, partition=partition, offset=cursor.offset, payload=repr(event))

    async def on_connection_opened(self, topic: str, partition: str) -> None:
        self._logger.info("connection opened", topic=topic, partition=partition)

    async def on_connection_closed(self, topic: str, partition: str, last_cursor: Cursor | None) -> None:
        self._logger.info("connection closed", topic=topic, partition=partition, last_cursor=repr(last_cursor))

    async def on_connection_failed(self, topic: str, partition: str, status: int, error: str) -> None:
        self._logger.error("connection failed", topic=topic, partition=partition, status=status, error=error)


async def run(topic: str = "test") -> None:
    settings = load_settings()
    logger = configure_logging(settings.log)
    client = (
        ClientBuilder()
        .with_endpoint("localhost")
        .with_port(8080)
        .with_secured_connection(False)
        .with_token_provider(lambda: "<my token>")
        .with_settings(settings)
        .build()
    )
    await client.subscribe(topic, ListenParameters(start_offset="0"), LoggingListener(logger), True)
    try:
        await asyncio.Event().wait()
    finally:
        await client.stop()


def main() -> None:
    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
