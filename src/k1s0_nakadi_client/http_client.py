"""Nakadi HTTP REST クライアント実装"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import httpx
import structlog

from .client import NakadiClient
from .config import ClientConfig
from .exceptions import InvalidConfigurationError, NakadiClientError, NakadiClientErrorCodes
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
    Problem,
)
from .session import SubscriptionSession

logger = structlog.get_logger(__name__)

PROBLEM_CONTENT_TYPE = "application/problem+json"


class HttpNakadiClient(NakadiClient):
    """httpx を使った Nakadi HTTP REST クライアント。"""

    def __init__(self, config: ClientConfig) -> None:
        self._config = config
        self._serializer = config.serializer
        self._sessions: dict[tuple[str, str], SubscriptionSession] = {}

    @property
    def config(self) -> ClientConfig:
        return self._config

    @property
    def sessions(self) -> dict[tuple[str, str], SubscriptionSession]:
        return dict(self._sessions)

    def _make_client(self) -> httpx.AsyncClient:
        # トークンはリクエストごとに取得する
        headers: dict[str, str] = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            **self._config.auth_headers(),
        }
        return httpx.AsyncClient(
            base_url=self._config.base_url,
            headers=headers,
            timeout=self._config.settings.request_timeout_seconds,
        )

    def _problem(self, resp: httpx.Response) -> Problem | None:
        if not resp.headers.get("content-type", "").startswith(PROBLEM_CONTENT_TYPE):
            return None
        try:
            return self._serializer.decode(resp.content, Problem)
        except NakadiClientError:
            logger.warning("undecodable problem response", status=resp.status_code)
            return None

    def _handle_error(self, resp: httpx.Response, context: str) -> None:
        if resp.status_code < 400:
            return
        problem = self._problem(resp)
        detail = (problem.detail or problem.title) if problem is not None else resp.text
        if resp.status_code == 404:
            raise NakadiClientError(
                code=NakadiClientErrorCodes.NOT_FOUND,
                message=f"{context}: not found: {detail}",
                status=resp.status_code,
                problem=problem,
            )
        raise NakadiClientError(
            code=NakadiClientErrorCodes.HTTP_ERROR,
            message=f"{context}: HTTP {resp.status_code}: {detail}",
            status=resp.status_code,
            problem=problem,
        )

    async def _send(
        self,
        method: str,
        path: str,
        context: str,
        body: Any = None,  # noqa: ANN401
    ) -> httpx.Response:
        content = self._serializer.encode(body) if body is not None else None
        try:
            async with self._make_client() as client:
                resp = await client.request(method, path, content=content)
        except NakadiClientError:
            raise
        except Exception as e:
            raise NakadiClientError(
                code=NakadiClientErrorCodes.HTTP_ERROR,
                message=f"Failed to {context}: {e}",
                cause=e,
            ) from e
        logger.debug("nakadi request", method=method, path=path, status=resp.status_code)
        return resp

    async def _get(self, path: str, context: str, cls: Any) -> Any:  # noqa: ANN401
        resp = await self._send("GET", path, context)
        self._handle_error(resp, context)
        return self._serializer.decode(resp.content, cls)

    async def get_metrics(self) -> Metrics:
        """サービスのメトリクスを取得する。"""
        resp = await self._send("GET", "/metrics", "get_metrics")
        self._handle_error(resp, "get_metrics")
        data: dict[str, Any] = resp.json()
        return Metrics(metrics=data)

    async def get_event_types(self) -> list[EventType]:
        """登録済みの EventType 一覧を取得する。"""
        return await self._get("/event-types", "get_event_types", list[EventType])

    async def create_event_type(self, event_type: EventType) -> None:
        """EventType を作成する。"""
        resp = await self._send("POST", "/event-types", "create_event_type", event_type)
        self._handle_error(resp, f"create_event_type({event_type.name})")

    async def get_event_type(self, name: str) -> EventType:
        """EventType を取得する。"""
        return await self._get(f"/event-types/{name}", f"get_event_type({name})", EventType)

    async def update_event_type(self, name: str, event_type: EventType) -> None:
        """EventType を更新する。"""
        resp = await self._send("PUT", f"/event-types/{name}", "update_event_type", event_type)
        self._handle_error(resp, f"update_event_type({name})")

    async def delete_event_type(self, name: str) -> None:
        """EventType を削除する。"""
        resp = await self._send("DELETE", f"/event-types/{name}", "delete_event_type")
        self._handle_error(resp, f"delete_event_type({name})")

    async def publish_events(self, name: str, events: Sequence[Event]) -> list[BatchItemResponse]:
        """イベントをバッチ発行する。

        全件成功 (200) の場合は空リストを返す。一部または全部が失敗した場合 (207, 422) は
        イベントごとの BatchItemResponse を配列順に返す。例外にはしない。
        """
        for event in events:
            metadata = event.event_metadata
            if metadata is not None and metadata.received_at is not None:
                raise NakadiClientError(
                    code=NakadiClientErrorCodes.INVALID_EVENT,
                    message=f"received_at is set by the service and must be empty (eid={metadata.eid})",
                )
        context = f"publish_events({name})"
        resp = await self._send("POST", f"/event-types/{name}/events", context, list(events))
        if resp.status_code == 200:
            return []
        if resp.status_code in (207, 422) and self._problem(resp) is None:
            items: list[BatchItemResponse] = self._serializer.decode(resp.content, list[BatchItemResponse])
            failed = [i for i in items if not i.is_submitted]
            logger.warning("events not published", event_type=name, failed=len(failed), total=len(items))
            return items
        self._handle_error(resp, context)
        return []

    async def get_partitions(self, name: str) -> list[Partition]:
        """EventType のパーティション一覧を取得する。"""
        return await self._get(f"/event-types/{name}/partitions", f"get_partitions({name})", list[Partition])

    async def get_partition(self, name: str, partition: str) -> Partition:
        """パーティション情報を取得する。"""
        return await self._get(
            f"/event-types/{name}/partitions/{partition}",
            f"get_partition({name}, {partition})",
            Partition,
        )

    async def _get_strategies(self, path: str, context: str, cls: Any) -> Any:  # noqa: ANN401
        resp = await self._send("GET", path, context)
        self._handle_error(resp, context)
        data: list[Any] = resp.json()
        names = [item["name"] if isinstance(item, dict) else item for item in data]
        return self._serializer.from_wire(names, list[cls])

    async def get_validation_strategies(self) -> list[EventValidationStrategy]:
        return await self._get_strategies(
            "/registry/validation-strategies", "get_validation_strategies", EventValidationStrategy
        )

    async def get_enrichment_strategies(self) -> list[EventEnrichmentStrategy]:
        return await self._get_strategies(
            "/registry/enrichment-strategies", "get_enrichment_strategies", EventEnrichmentStrategy
        )

    async def get_partition_strategies(self) -> list[PartitionStrategy]:
        return await self._get_strategies(
            "/registry/partition-strategies", "get_partition_strategies", PartitionStrategy
        )

    async def subscribe(
        self,
        topic: str,
        parameters: ListenParameters,
        listener: Listener,
        auto_reconnect: bool = True,
        event_class: type[Event] = BusinessEvent,
    ) -> SubscriptionSession:
        """トピックを購読する。

        同じリスナーで購読済みの場合は既存のセッションを返す。
        接続エラーは例外ではなく listener.on_connection_failed で通知される。
        """
        if not topic:
            raise InvalidConfigurationError("topic", "topic must not be empty")
        key = (topic, listener.id)
        existing = self._sessions.get(key)
        if existing is not None and not existing.done:
            logger.info("already subscribed", topic=topic, listener=listener.id)
            return existing
        session = SubscriptionSession(
            topic=topic,
            parameters=parameters,
            listener=listener,
            config=self._config,
            resolve_partitions=self.get_partitions,
            auto_reconnect=auto_reconnect,
            event_class=event_class,
        )
        self._sessions[key] = session
        session.start()
        return session

    async def unsubscribe(self, topic: str, listener_id: str) -> None:
        """購読を終了する。"""
        session = self._sessions.pop((topic, listener_id), None)
        if session is not None:
            await session.close()

    async def stop(self) -> None:
        """すべての購読を終了する。"""
        sessions = list(self._sessions.values())
        self._sessions.clear()
        for session in sessions:
            await session.close()
