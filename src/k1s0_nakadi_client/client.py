"""NakadiClient 抽象基底クラス"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import TYPE_CHECKING

from .listener import ListenParameters, Listener
from .models import (
    BatchItemResponse,
    BusinessEvent,
    Event,
    EventEnrichmentStrategy,
    EventType,
    EventValidationStrategy,
    Metrics,
    Partition,
    PartitionStrategy,
)

if TYPE_CHECKING:
    from .session import SubscriptionSession


class NakadiClient(ABC):
    """Nakadi クライアント抽象基底クラス。"""

    @abstractmethod
    async def get_metrics(self) -> Metrics:
        """サービスのメトリクスを取得する。"""
        ...

    @abstractmethod
    async def get_event_types(self) -> list[EventType]:
        """登録済みの EventType 一覧を取得する。"""
        ...

    @abstractmethod
    async def create_event_type(self, event_type: EventType) -> None:
        """EventType を作成する。"""
        ...

    @abstractmethod
    async def get_event_type(self, name: str) -> EventType:
        """EventType を取得する。"""
        ...

    @abstractmethod
    async def update_event_type(self, name: str, event_type: EventType) -> None:
        """EventType を更新する。"""
        ...

    @abstractmethod
    async def delete_event_type(self, name: str) -> None:
        """EventType を削除する。"""
        ...

    @abstractmethod
    async def publish_events(self, name: str, events: Sequence[Event]) -> list[BatchItemResponse]:
        """イベントをバッチ発行し、イベントごとの結果を返す。全件成功時は空リスト。"""
        ...

    @abstractmethod
    async def get_partitions(self, name: str) -> list[Partition]:
        """EventType のパーティション一覧を取得する。"""
        ...

    @abstractmethod
    async def get_partition(self, name: str, partition: str) -> Partition:
        """パーティション情報を取得する。"""
        ...

    @abstractmethod
    async def get_validation_strategies(self) -> list[EventValidationStrategy]:
        ...

    @abstractmethod
    async def get_enrichment_strategies(self) -> list[EventEnrichmentStrategy]:
        ...

    @abstractmethod
    async def get_partition_strategies(self) -> list[PartitionStrategy]:
        ...

    @abstractmethod
    async def subscribe(
        self,
        topic: str,
        parameters: ListenParameters,
        listener: Listener,
        auto_reconnect: bool = True,
        event_class: type[Event] = BusinessEvent,
    ) -> SubscriptionSession:
        """トピックを購読する。接続エラーはリスナー経由で通知される。"""
        ...

    @abstractmethod
    async def unsubscribe(self, topic: str, listener_id: str) -> None:
        """購読を終了する。"""
        ...

    @abstractmethod
    async def stop(self) -> None:
        """すべての購読を終了する。"""
        ...
