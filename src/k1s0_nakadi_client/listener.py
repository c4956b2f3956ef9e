"""Subscription listener and listen parameters."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

from .models import Cursor, Event


class Listener(ABC):
    """Callbacks invoked by a subscription session.

    Callbacks for one partition are awaited strictly in arrival order.
    Callbacks for different partitions may run concurrently.
    """

    @property
    def id(self) -> str:
        return f"{type(self).__name__}-{id(self):x}"

    @abstractmethod
    async def on_receive(self, topic: str, partition: str, cursor: Cursor, event: Event) -> None:
        ...

    @abstractmethod
    async def on_connection_opened(self, topic: str, partition: str) -> None:
        ...

    @abstractmethod
    async def on_connection_closed(self, topic: str, partition: str, last_cursor: Cursor | None) -> None:
        ...

    @abstractmethod
    async def on_connection_failed(self, topic: str, partition: str, status: int, error: str) -> None:
        ...


@dataclass(frozen=True)
class ListenParameters:
    """Streaming parameters. Unset values fall back to ClientSettings."""

    start_offset: str | None = None
    batch_limit: int | None = None
    stream_limit: int | None = None
    batch_flush_timeout: float | None = None
    stream_timeout: float | None = None
    stream_keep_alive_limit: int | None = None
