"""k1s0 Nakadi client library."""

from .builder import ClientBuilder, default_serializer
from .client import NakadiClient
from .config import ClientConfig
from .exceptions import InvalidConfigurationError, NakadiClientError, NakadiClientErrorCodes
from .http_client import HttpNakadiClient
from .listener import ListenParameters, Listener
from .logger import configure_logging
from .models import (
    BatchItemPublishingStatus,
    BatchItemResponse,
    BatchItemStep,
    BusinessEvent,
    Cursor,
    DataChangeEvent,
    DataOperation,
    Event,
    EventEnrichmentStrategy,
    EventMetadata,
    EventStreamBatch,
    EventType,
    EventTypeCategory,
    EventTypeSchema,
    EventTypeStatistics,
    EventValidationStrategy,
    Metrics,
    Partition,
    PartitionStrategy,
    Problem,
    SchemaType,
)
from .serializer import JsonSerializer, NamingStrategy, Serializer, SerializerModule, WireModel
from .session import StreamState, SubscriptionSession
from .settings import ClientSettings, load_settings

__all__ = [
    "ClientBuilder",
    "ClientConfig",
    "ClientSettings",
    "load_settings",
    "NakadiClient",
    "HttpNakadiClient",
    "Listener",
    "ListenParameters",
    "SubscriptionSession",
    "StreamState",
    "Serializer",
    "JsonSerializer",
    "NamingStrategy",
    "SerializerModule",
    "WireModel",
    "default_serializer",
    "configure_logging",
    "BatchItemPublishingStatus",
    "BatchItemResponse",
    "BatchItemStep",
    "BusinessEvent",
    "Cursor",
    "DataChangeEvent",
    "DataOperation",
    "Event",
    "EventEnrichmentStrategy",
    "EventMetadata",
    "EventStreamBatch",
    "EventType",
    "EventTypeCategory",
    "EventTypeSchema",
    "EventTypeStatistics",
    "EventValidationStrategy",
    "Metrics",
    "Partition",
    "PartitionStrategy",
    "Problem",
    "SchemaType",
    "NakadiClientError",
    "NakadiClientErrorCodes",
    "InvalidConfigurationError",
]
