"""HttpNakadiClient のユニットテスト（respx モック）"""

import json
from datetime import UTC, datetime

import httpx
import pytest
import respx
from k1s0_nakadi_client.builder import ClientBuilder
from k1s0_nakadi_client.exceptions import NakadiClientError, NakadiClientErrorCodes
from k1s0_nakadi_client.http_client import HttpNakadiClient
from k1s0_nakadi_client.models import (
    BatchItemPublishingStatus,
    BatchItemStep,
    BusinessEvent,
    EventEnrichmentStrategy,
    EventMetadata,
    EventType,
    EventTypeCategory,
    EventValidationStrategy,
    Partition,
    PartitionStrategy,
)

BASE_URL = "http://nakadi:8080"

EVENT_TYPE_JSON = {
    "name": "order.order-created",
    "owning_application": "order-service",
    "category": "business",
    "enrichment_strategies": ["metadata_enrichment"],
    "partition_strategy": "random",
    "schema": {"type": "json_schema", "schema": "{}"},
}


def make_client(token: str = "tok") -> HttpNakadiClient:
    return ClientBuilder().with_endpoint("nakadi").with_token_provider(lambda: token).build()


def make_event(eid: str) -> BusinessEvent:
    return BusinessEvent(
        fields={"order_number": eid},
        metadata=EventMetadata(eid=eid, occurred_at=datetime(2024, 1, 1, tzinfo=UTC)),
    )


@respx.mock
async def test_get_event_type_success() -> None:
    """EventType 取得成功。Bearer トークンが付与されること。"""
    route = respx.get(f"{BASE_URL}/event-types/order.order-created").mock(
        return_value=httpx.Response(200, json=EVENT_TYPE_JSON)
    )
    client = make_client()
    event_type = await client.get_event_type("order.order-created")
    assert event_type.name == "order.order-created"
    assert event_type.category == EventTypeCategory.BUSINESS
    assert event_type.enrichment_strategies == [EventEnrichmentStrategy.METADATA]
    assert route.calls.last.request.headers["Authorization"] == "Bearer tok"


@respx.mock
async def test_get_event_types_success() -> None:
    """EventType 一覧取得成功。"""
    respx.get(f"{BASE_URL}/event-types").mock(return_value=httpx.Response(200, json=[EVENT_TYPE_JSON]))
    client = make_client()
    event_types = await client.get_event_types()
    assert len(event_types) == 1
    assert event_types[0].owning_application == "order-service"


@respx.mock
async def test_get_event_type_not_found() -> None:
    """存在しない EventType で NakadiClientError(NOT_FOUND) が発生すること。"""
    respx.get(f"{BASE_URL}/event-types/missing").mock(return_value=httpx.Response(404, text="Not found"))
    client = make_client()
    with pytest.raises(NakadiClientError) as exc_info:
        await client.get_event_type("missing")
    assert exc_info.value.code == NakadiClientErrorCodes.NOT_FOUND
    assert exc_info.value.status == 404


@respx.mock
async def test_problem_response_is_attached() -> None:
    """problem+json のレスポンスが Problem としてエラーに付与されること。"""
    problem = {"type": "http://httpstatus.es/503", "title": "Service Unavailable", "status": 503, "detail": "down"}
    respx.get(f"{BASE_URL}/event-types").mock(
        return_value=httpx.Response(
            503,
            content=json.dumps(problem).encode(),
            headers={"content-type": "application/problem+json"},
        )
    )
    client = make_client()
    with pytest.raises(NakadiClientError) as exc_info:
        await client.get_event_types()
    assert exc_info.value.code == NakadiClientErrorCodes.HTTP_ERROR
    assert exc_info.value.problem.title == "Service Unavailable"
    assert "down" in str(exc_info.value)


@respx.mock
async def test_create_update_delete_event_type() -> None:
    """EventType の作成・更新・削除が成功すること。"""
    create = respx.post(f"{BASE_URL}/event-types").mock(return_value=httpx.Response(201))
    update = respx.put(f"{BASE_URL}/event-types/order.order-created").mock(return_value=httpx.Response(200))
    delete = respx.delete(f"{BASE_URL}/event-types/order.order-created").mock(return_value=httpx.Response(200))
    client = make_client()
    event_type = EventType(name="order.order-created", owning_application="order-service")

    await client.create_event_type(event_type)
    await client.update_event_type("order.order-created", event_type)
    await client.delete_event_type("order.order-created")

    body = json.loads(create.calls.last.request.content)
    assert body["name"] == "order.order-created"
    assert body["owning_application"] == "order-service"
    assert body["category"] == "undefined"
    assert update.called
    assert delete.called


@respx.mock
async def test_create_event_type_conflict() -> None:
    """作成時の 409 で HTTP_ERROR になること。"""
    respx.post(f"{BASE_URL}/event-types").mock(return_value=httpx.Response(409, text="exists"))
    client = make_client()
    with pytest.raises(NakadiClientError) as exc_info:
        await client.create_event_type(EventType(name="a", owning_application="b"))
    assert exc_info.value.code == NakadiClientErrorCodes.HTTP_ERROR
    assert exc_info.value.status == 409


@respx.mock
async def test_publish_events_all_submitted() -> None:
    """全件成功時は空リストが返ること。"""
    route = respx.post(f"{BASE_URL}/event-types/orders/events").mock(return_value=httpx.Response(200))
    client = make_client()
    result = await client.publish_events("orders", [make_event("1"), make_event("2")])
    assert result == []
    body = json.loads(route.calls.last.request.content)
    assert [e["order_number"] for e in body] == ["1", "2"]
    assert body[0]["metadata"]["occurred_at"] == "2024-01-01T00:00:00+00:00"


@respx.mock
async def test_publish_events_partial_failure() -> None:
    """スキーマ違反を含むバッチでイベントごとの結果が配列順に返ること。"""
    respx.post(f"{BASE_URL}/event-types/orders/events").mock(
        return_value=httpx.Response(
            422,
            json=[
                {"eid": "1", "publishing_status": "SUBMITTED", "step": "PUBLISHING"},
                {"eid": "2", "publishing_status": "FAILED", "step": "VALIDATING", "detail": "schema violation"},
                {"eid": "3", "publishing_status": "ABORTED", "step": "NONE", "detail": "aborted"},
            ],
        )
    )
    client = make_client()
    result = await client.publish_events("orders", [make_event("1"), make_event("2"), make_event("3")])
    assert [r.publishing_status for r in result] == [
        BatchItemPublishingStatus.SUBMITTED,
        BatchItemPublishingStatus.FAILED,
        BatchItemPublishingStatus.ABORTED,
    ]
    assert result[1].detail == "schema violation"
    assert result[1].step == BatchItemStep.VALIDATING


async def test_publish_events_rejects_received_at() -> None:
    """received_at を設定したイベントは送信前に拒否されること。"""
    event = BusinessEvent(
        metadata=EventMetadata(
            eid="1",
            occurred_at=datetime(2024, 1, 1, tzinfo=UTC),
            received_at=datetime(2024, 1, 1, tzinfo=UTC),
        )
    )
    with respx.mock:
        route = respx.post(f"{BASE_URL}/event-types/orders/events").mock(return_value=httpx.Response(200))
        client = make_client()
        with pytest.raises(NakadiClientError) as exc_info:
            await client.publish_events("orders", [event])
        assert exc_info.value.code == NakadiClientErrorCodes.INVALID_EVENT
        assert not route.called


@respx.mock
async def test_publish_events_unauthorized() -> None:
    """認証エラーは例外になること。"""
    respx.post(f"{BASE_URL}/event-types/orders/events").mock(return_value=httpx.Response(401, text="unauthorized"))
    client = make_client()
    with pytest.raises(NakadiClientError) as exc_info:
        await client.publish_events("orders", [make_event("1")])
    assert exc_info.value.status == 401


@respx.mock
async def test_get_partitions_and_partition() -> None:
    """パーティション一覧と個別パーティションを取得できること。"""
    partition = {"partition": "0", "oldest_available_offset": "0", "newest_available_offset": "42"}
    respx.get(f"{BASE_URL}/event-types/orders/partitions").mock(
        return_value=httpx.Response(200, json=[partition])
    )
    respx.get(f"{BASE_URL}/event-types/orders/partitions/0").mock(return_value=httpx.Response(200, json=partition))
    client = make_client()
    expected = Partition(partition="0", oldest_available_offset="0", newest_available_offset="42")
    assert await client.get_partitions("orders") == [expected]
    assert await client.get_partition("orders", "0") == expected


@respx.mock
async def test_get_metrics() -> None:
    """メトリクスを取得できること。"""
    respx.get(f"{BASE_URL}/metrics").mock(return_value=httpx.Response(200, json={"gauges": {"x": 1}}))
    client = make_client()
    metrics = await client.get_metrics()
    assert metrics.metrics == {"gauges": {"x": 1}}


@respx.mock
async def test_registry_strategies() -> None:
    """レジストリの各ストラテジーを取得できること。"""
    respx.get(f"{BASE_URL}/registry/validation-strategies").mock(
        return_value=httpx.Response(200, json=[{"name": "schema-validation", "doc": "json schema"}])
    )
    respx.get(f"{BASE_URL}/registry/enrichment-strategies").mock(
        return_value=httpx.Response(200, json=["metadata_enrichment"])
    )
    respx.get(f"{BASE_URL}/registry/partition-strategies").mock(
        return_value=httpx.Response(200, json=["hash", "user_defined", "random"])
    )
    client = make_client()
    assert await client.get_validation_strategies() == [EventValidationStrategy.SCHEMA_VALIDATION]
    assert await client.get_enrichment_strategies() == [EventEnrichmentStrategy.METADATA]
    assert await client.get_partition_strategies() == list(PartitionStrategy)


@respx.mock
async def test_token_is_fetched_per_request() -> None:
    """トークンプロバイダーがリクエストごとに呼ばれること。"""
    tokens = iter(["t1", "t2"])
    route = respx.get(f"{BASE_URL}/metrics").mock(return_value=httpx.Response(200, json={}))
    client = ClientBuilder().with_endpoint("nakadi").with_token_provider(lambda: next(tokens)).build()
    await client.get_metrics()
    await client.get_metrics()
    assert [c.request.headers["Authorization"] for c in route.calls] == ["Bearer t1", "Bearer t2"]


async def test_network_error() -> None:
    """ネットワークエラーの場合に NakadiClientError(HTTP_ERROR) になること。"""
    with respx.mock:
        respx.get(f"{BASE_URL}/event-types").mock(side_effect=httpx.ConnectError("Connection refused"))
        client = make_client()
        with pytest.raises(NakadiClientError) as exc_info:
            await client.get_event_types()
        assert exc_info.value.code == NakadiClientErrorCodes.HTTP_ERROR


async def test_publish_unencodable_event_is_serialization_error() -> None:
    """エンコードできないイベントは HTTP_ERROR ではなく SERIALIZATION_ERROR になること。"""
    with respx.mock:
        route = respx.post(f"{BASE_URL}/event-types/orders/events").mock(return_value=httpx.Response(200))
        client = make_client()
        with pytest.raises(NakadiClientError) as exc_info:
            await client.publish_events("orders", [BusinessEvent(fields={"payload": object()})])
        assert exc_info.value.code == NakadiClientErrorCodes.SERIALIZATION_ERROR
        assert not route.called


async def test_client_error_from_token_provider_is_not_rewrapped() -> None:
    """トークン取得で発生した NakadiClientError がそのまま伝播すること。"""

    def failing_token() -> str:
        raise NakadiClientError(code=NakadiClientErrorCodes.INVALID_CONFIGURATION, message="no token")

    with respx.mock:
        respx.get(f"{BASE_URL}/metrics").mock(return_value=httpx.Response(200, json={}))
        client = ClientBuilder().with_endpoint("nakadi").with_token_provider(failing_token).build()
        with pytest.raises(NakadiClientError) as exc_info:
            await client.get_metrics()
        assert exc_info.value.code == NakadiClientErrorCodes.INVALID_CONFIGURATION
