"""クライアントビルダー"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Protocol, TypeVar

import httpx

from .config import ClientConfig, TokenProvider
from .exceptions import InvalidConfigurationError
from .http_client import HttpNakadiClient
from .models import MODEL_MODULE
from .serializer import JsonSerializer, NamingStrategy, Serializer
from .settings import ClientSettings

DEFAULT_PORT = 8080

V = TypeVar("V")


class TokenSupplier(Protocol):
    """get() でトークンを返すオブジェクト。"""

    def get(self) -> str: ...


def default_serializer() -> JsonSerializer:
    """未知プロパティは警告ログのみ、日時は ISO-8601、名前は snake_case のシリアライザー。"""
    serializer = JsonSerializer(
        fail_on_unknown_properties=False,
        write_dates_as_timestamps=False,
        naming=NamingStrategy.SNAKE_CASE,
    )
    serializer.register_module(MODEL_MODULE)
    return serializer


def _check_not_none(value: V | None, field_name: str) -> V:
    if value is None or value == "":
        raise InvalidConfigurationError(field_name, f"{field_name} must not be empty")
    return value


@dataclass(frozen=True)
class ClientBuilder:
    """不変のクライアントビルダー。with_* は常に新しいインスタンスを返す。"""

    endpoint: str | None = None
    port: int = DEFAULT_PORT
    secured_connection: bool = False
    token_provider: TokenProvider | None = field(default=None, repr=False)
    serializer: Serializer | None = field(default=None, repr=False)
    settings: ClientSettings = field(default_factory=ClientSettings)

    def with_endpoint(self, endpoint: str | httpx.URL | None) -> ClientBuilder:
        checked = _check_not_none(endpoint, "endpoint")
        return replace(self, endpoint=str(checked))

    def with_port(self, port: int) -> ClientBuilder:
        """ポートを設定する。値の検証は build() で行う。"""
        return replace(self, port=port)

    def with_secured_connection(self, secured_connection: bool = True) -> ClientBuilder:
        return replace(self, secured_connection=secured_connection)

    def with_token_provider(self, token_provider: TokenProvider | None) -> ClientBuilder:
        return replace(self, token_provider=_check_not_none(token_provider, "token_provider"))

    def with_token_supplier(self, supplier: TokenSupplier | None) -> ClientBuilder:
        """get() メソッドを持つオブジェクトをトークンプロバイダーとして設定する。"""
        checked = _check_not_none(supplier, "token_provider")
        return self.with_token_provider(lambda: checked.get())

    def with_serializer(self, serializer: Serializer | None) -> ClientBuilder:
        """シリアライザーを設定する。None の場合は build() でデフォルトを生成する。"""
        if serializer is not None:
            serializer.register_module(MODEL_MODULE)
        return replace(self, serializer=serializer)

    def with_settings(self, settings: ClientSettings) -> ClientBuilder:
        return replace(self, settings=_check_not_none(settings, "settings"))

    def build_config(self) -> ClientConfig:
        """設定を検証して ClientConfig を生成する。"""
        if self.endpoint is None or self.endpoint == "":
            raise InvalidConfigurationError("endpoint", "endpoint is not set -> try with_endpoint()")
        if not isinstance(self.port, int) or self.port <= 0:
            raise InvalidConfigurationError("port", f"port {self.port} is invalid")
        if self.token_provider is None:
            raise InvalidConfigurationError(
                "token_provider", "token_provider is not set -> try with_token_provider()"
            )
        return ClientConfig(
            endpoint=self.endpoint,
            port=self.port,
            token_provider=self.token_provider,
            serializer=self.serializer if self.serializer is not None else default_serializer(),
            secured_connection=self.secured_connection,
            settings=self.settings,
        )

    def build(self) -> HttpNakadiClient:
        """設定を検証してクライアントを生成する。"""
        return HttpNakadiClient(self.build_config())
