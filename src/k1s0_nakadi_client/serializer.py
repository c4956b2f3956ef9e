"""pydantic ベースの JSON シリアライザー"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

import structlog
from pydantic import BaseModel, ConfigDict, TypeAdapter, ValidationError, ValidationInfo, model_validator
from pydantic.alias_generators import to_snake
from pydantic_core import PydanticSerializationError

from .exceptions import NakadiClientError, NakadiClientErrorCodes

logger = structlog.get_logger(__name__)

# シリアライズ・デシリアライズ時に pydantic のコンテキストで受け渡すキー
FAIL_ON_UNKNOWN = "fail_on_unknown_properties"
DATES_AS_TIMESTAMPS = "write_dates_as_timestamps"
NAMING = "naming"


class NamingStrategy(StrEnum):
    """ワイヤー上のフィールド名の扱い。"""

    IDENTITY = "identity"
    SNAKE_CASE = "snake_case"


class WireModel(BaseModel):
    """ワイヤー上の JSON オブジェクトに対応するモデルの基底クラス。

    未知プロパティの扱いと camelCase キーの変換はバリデーションコンテキストで切り替える。
    コンテキストがない場合（直接生成など）は未知プロパティをエラーにする。
    """

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        extra="ignore",
        coerce_numbers_to_str=True,
    )

    @classmethod
    def _wire_keys(cls) -> set[str]:
        keys: set[str] = set()
        for name, info in cls.model_fields.items():
            keys.add(name)
            if info.alias is not None:
                keys.add(info.alias)
        return keys

    @model_validator(mode="before")
    @classmethod
    def _check_properties(cls, data: Any, info: ValidationInfo) -> Any:  # noqa: ANN401
        if not isinstance(data, Mapping):
            return data
        if cls.model_config.get("extra") == "allow":
            return data
        options: Mapping[str, Any] = info.context or {}
        known = cls._wire_keys()
        result: dict[str, Any] = {}
        for key, value in data.items():
            name = key
            if name not in known and options.get(NAMING) == NamingStrategy.SNAKE_CASE:
                name = to_snake(key)
            if name in known:
                result[name] = value
                continue
            if options.get(FAIL_ON_UNKNOWN, True):
                raise ValueError(f"unknown property '{key}' for {cls.__name__}")
            logger.warning(
                "unknown property occurred in JSON representation",
                type=cls.__name__,
                property=key,
            )
        return result


@dataclass(frozen=True)
class SerializerModule:
    """シリアライザーに登録するモデル型の集合。"""

    name: str
    models: tuple[type, ...] = field(default_factory=tuple)


class Serializer(ABC):
    """シリアライザー抽象基底クラス。"""

    @abstractmethod
    def register_module(self, module: SerializerModule) -> None:
        """型サポートモジュールを登録する。"""
        ...

    @abstractmethod
    def to_wire(self, obj: Any) -> Any:  # noqa: ANN401
        """オブジェクトを JSON 互換の値に変換する。"""
        ...

    @abstractmethod
    def from_wire(self, value: Any, cls: Any) -> Any:  # noqa: ANN401
        """JSON 互換の値を cls のインスタンスに変換する。"""
        ...

    @abstractmethod
    def encode(self, obj: Any) -> bytes:  # noqa: ANN401
        """オブジェクトを JSON バイト列にエンコードする。"""
        ...

    @abstractmethod
    def decode(self, data: bytes | str, cls: Any) -> Any:  # noqa: ANN401
        """JSON ドキュメントを cls のインスタンスにデコードする。"""
        ...


class JsonSerializer(Serializer):
    """pydantic の TypeAdapter を使う JSON シリアライザー。

    デフォルトは厳格設定（未知プロパティでエラー、日時はエポックミリ秒、名前変換なし）。
    """

    def __init__(
        self,
        fail_on_unknown_properties: bool = True,
        write_dates_as_timestamps: bool = True,
        naming: NamingStrategy = NamingStrategy.IDENTITY,
    ) -> None:
        self.fail_on_unknown_properties = fail_on_unknown_properties
        self.write_dates_as_timestamps = write_dates_as_timestamps
        self.naming = naming
        self._modules: dict[str, SerializerModule] = {}
        self._adapters: dict[Any, TypeAdapter[Any]] = {}

    @property
    def modules(self) -> tuple[str, ...]:
        return tuple(self._modules)

    def register_module(self, module: SerializerModule) -> None:
        if module.name in self._modules:
            return
        self._modules[module.name] = module
        for model in module.models:
            self._adapter(model)

    def _adapter(self, tp: Any) -> TypeAdapter[Any]:  # noqa: ANN401
        adapter = self._adapters.get(tp)
        if adapter is None:
            adapter = self._adapters[tp] = TypeAdapter(tp)
        return adapter

    def _context(self) -> dict[str, Any]:
        return {
            FAIL_ON_UNKNOWN: self.fail_on_unknown_properties,
            DATES_AS_TIMESTAMPS: self.write_dates_as_timestamps,
            NAMING: self.naming,
        }

    def to_wire(self, obj: Any) -> Any:  # noqa: ANN401
        try:
            return self._adapter(type(obj)).dump_python(
                obj, mode="json", by_alias=True, exclude_none=True, context=self._context()
            )
        except PydanticSerializationError as e:
            raise self._encode_error(obj, e) from e

    def encode(self, obj: Any) -> bytes:  # noqa: ANN401
        try:
            return self._adapter(type(obj)).dump_json(
                obj, by_alias=True, exclude_none=True, context=self._context()
            )
        except PydanticSerializationError as e:
            raise self._encode_error(obj, e) from e

    def from_wire(self, value: Any, cls: Any) -> Any:  # noqa: ANN401
        try:
            return self._adapter(cls).validate_python(value, context=self._context())
        except ValidationError as e:
            raise self._decode_error(cls, e) from e

    def decode(self, data: bytes | str, cls: Any) -> Any:  # noqa: ANN401
        try:
            return self._adapter(cls).validate_json(data, context=self._context())
        except ValidationError as e:
            raise self._decode_error(cls, e) from e

    @staticmethod
    def _decode_error(tp: Any, e: ValidationError) -> NakadiClientError:  # noqa: ANN401
        return NakadiClientError(
            code=NakadiClientErrorCodes.SERIALIZATION_ERROR,
            message=f"Failed to decode {getattr(tp, '__name__', tp)}: {e}",
            cause=e,
        )

    @staticmethod
    def _encode_error(obj: Any, e: PydanticSerializationError) -> NakadiClientError:  # noqa: ANN401
        return NakadiClientError(
            code=NakadiClientErrorCodes.SERIALIZATION_ERROR,
            message=f"Failed to encode {type(obj).__name__}: {e}",
            cause=e,
        )
