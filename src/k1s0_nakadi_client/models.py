"""nakadi データモデル"""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Any, ClassVar, Generic, TypeVar

from pydantic import ConfigDict, Field, SerializationInfo, field_serializer

from .serializer import DATES_AS_TIMESTAMPS, SerializerModule, WireModel

T = TypeVar("T")


class DataOperation(StrEnum):
    """エンティティに対して実行された操作種別。"""

    CREATE = "C"
    UPDATE = "U"
    DELETE = "D"
    SNAPSHOT = "S"


class EventTypeCategory(StrEnum):
    """EventType のカテゴリ。"""

    UNDEFINED = "undefined"
    DATA = "data"
    BUSINESS = "business"


class PartitionStrategy(StrEnum):
    """イベントをパーティションへ割り当てる方式。"""

    HASH = "hash"
    USER_DEFINED = "user_defined"
    RANDOM = "random"


class EventValidationStrategy(StrEnum):
    """受信イベントに対する検証ルール。"""

    NONE = "None"
    SCHEMA_VALIDATION = "schema-validation"
    DATACHANGE_SCHEMA_VALIDATION = "datachange-schema-validation"


class EventEnrichmentStrategy(StrEnum):
    """受信イベントに対するエンリッチメントルール。"""

    METADATA = "metadata_enrichment"


class SchemaType(StrEnum):
    """スキーマ定義の形式。"""

    JSON = "json_schema"


class BatchItemPublishingStatus(StrEnum):
    """バッチ内の各イベントの発行結果。"""

    SUBMITTED = "SUBMITTED"
    FAILED = "FAILED"
    ABORTED = "ABORTED"


class BatchItemStep(StrEnum):
    """発行処理でイベントが到達したステップ。"""

    NONE = "NONE"
    VALIDATING = "VALIDATING"
    ENRICHING = "ENRICHING"
    PARTITIONING = "PARTITIONING"
    PUBLISHING = "PUBLISHING"


class Cursor(WireModel):
    """パーティション内の位置。offset は BEGIN を取り得る。"""

    partition: str
    offset: str

    BEGIN: ClassVar[str] = "BEGIN"


class Partition(WireModel):
    """パーティション情報。"""

    partition: str
    oldest_available_offset: str
    newest_available_offset: str


class EventMetadata(WireModel):
    """イベントメタデータ。

    received_at はサービス側で付与されるため、プロデューサーは設定してはならない。
    """

    eid: str
    occurred_at: datetime
    event_type: str | None = None
    received_at: datetime | None = None
    parent_eids: list[str] = Field(default_factory=list)
    flow_id: str | None = None
    partition: str | None = None

    @field_serializer("occurred_at", "received_at")
    def serialize_timestamp(self, value: datetime | None, info: SerializationInfo) -> str | int | None:
        """ISO-8601 文字列、またはコンテキスト指定時はエポックミリ秒で書き出す。"""
        if value is None:
            return None
        if info.context and info.context.get(DATES_AS_TIMESTAMPS):
            return int(value.timestamp() * 1000)
        return value.isoformat()


class Event(WireModel):
    """メタデータを持つイベントの基底クラス。"""

    @property
    def event_metadata(self) -> EventMetadata | None:
        return getattr(self, "metadata", None)


class BusinessEvent(Event):
    """ビジネスイベント。metadata 以外のトップレベルの任意フィールドを fields として保持する。"""

    model_config = ConfigDict(extra="allow")

    metadata: EventMetadata | None = None

    def __init__(self, fields: dict[str, Any] | None = None, **data: Any) -> None:  # noqa: ANN401
        super().__init__(**{**(fields or {}), **data})

    @property
    def fields(self) -> dict[str, Any]:
        return dict(self.model_extra or {})


class DataChangeEvent(Event, Generic[T]):
    """リソースの変更を表すイベント。"""

    data: T
    data_type: str
    data_operation: DataOperation = Field(alias="data_op")
    metadata: EventMetadata | None = None


E = TypeVar("E", bound=Event)


class Problem(WireModel):
    """RFC 7807 形式のエラー情報。"""

    problem_type: str = Field(alias="type")
    title: str
    status: int
    detail: str | None = None
    instance: str | None = None


class Metrics(WireModel):
    """サービスのメトリクス。"""

    metrics: dict[str, Any] = Field(default_factory=dict)


class EventStreamBatch(WireModel, Generic[E]):
    """ストリームの 1 チャンク。events が空の場合はキープアライブ。"""

    cursor: Cursor
    events: list[E] = Field(default_factory=list)

    @property
    def is_keep_alive(self) -> bool:
        return not self.events


class EventTypeSchema(WireModel):
    """EventType のスキーマ定義。"""

    schema_type: SchemaType = Field(alias="type")
    schema_: str = Field(alias="schema")


class EventTypeStatistics(WireModel):
    """EventType の運用統計。"""

    expected_write_rate: int | None = None
    message_size: int | None = None
    read_parallelism: int | None = None
    write_parallelism: int | None = None


class EventType(WireModel):
    """イベント種別のスキーマと実行時設定。"""

    name: str
    owning_application: str
    category: EventTypeCategory = EventTypeCategory.UNDEFINED
    validation_strategies: list[EventValidationStrategy] | None = None
    enrichment_strategies: list[EventEnrichmentStrategy] = Field(default_factory=list)
    partition_strategy: PartitionStrategy | None = None
    schema_: EventTypeSchema | None = Field(default=None, alias="schema")
    data_key_fields: list[str] | None = None
    partition_key_fields: list[str] | None = None
    statistics: EventTypeStatistics | None = None


class BatchItemResponse(WireModel):
    """個々のイベントの発行結果。SUBMITTED 以外は detail を持つべき。"""

    publishing_status: BatchItemPublishingStatus
    eid: str | None = None
    step: BatchItemStep | None = None
    detail: str | None = None

    @property
    def is_submitted(self) -> bool:
        return self.publishing_status == BatchItemPublishingStatus.SUBMITTED


MODEL_MODULE = SerializerModule(
    name="k1s0_nakadi_client.models",
    models=(
        Cursor,
        Partition,
        EventMetadata,
        BusinessEvent,
        Problem,
        Metrics,
        EventStreamBatch[BusinessEvent],
        EventType,
        BatchItemResponse,
        list[BatchItemResponse],
    ),
)
