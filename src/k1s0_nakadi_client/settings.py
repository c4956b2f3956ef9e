"""クライアント実行時設定（pydantic BaseModel）と読み込み"""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .exceptions import NakadiClientError, NakadiClientErrorCodes

ENV_PREFIX = "K1S0_NAKADI_"


class LogSection(BaseModel):
    """ログ設定。"""

    level: str = "INFO"
    format: Literal["json", "text"] = "json"


class ClientSettings(BaseModel):
    """ストリーミング購読と再接続の設定。"""

    model_config = ConfigDict(frozen=True)

    reconnect_delay_seconds: float = Field(default=10.0, ge=0.0)
    poll_parallelism: int = Field(default=100, ge=1)
    receive_buffer_size: int = Field(default=1024, ge=1)
    batch_flush_timeout_seconds: float = Field(default=5.0, gt=0.0)
    batch_limit: int = Field(default=1, ge=1)
    stream_limit: int = Field(default=0, ge=0)  # 0 = unbounded
    supervisor_max_retries: int = Field(default=100, ge=1)
    supervisor_retry_window_seconds: float = Field(default=300.0, gt=0.0)
    resolve_timeout_seconds: float = Field(default=1.0, gt=0.0)
    request_timeout_seconds: float = Field(default=10.0, gt=0.0)
    log: LogSection = Field(default_factory=LogSection)


def _deep_merge(base: dict[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    """base と override をディープマージして新しい辞書を返す。override の値が優先される。"""
    result: dict[str, Any] = dict(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, Mapping):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _read_yaml(path: Path) -> dict[str, Any]:
    """YAML ファイルを読み込む。"""
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise NakadiClientError(
            code=NakadiClientErrorCodes.READ_FILE,
            message=f"Failed to read settings file: {path}",
            cause=e,
        ) from e
    try:
        data: dict[str, Any] = yaml.safe_load(text) or {}
    except yaml.YAMLError as e:
        raise NakadiClientError(
            code=NakadiClientErrorCodes.PARSE_YAML,
            message=f"Failed to parse YAML: {path}",
            cause=e,
        ) from e
    return data


def _env_overrides(environ: Mapping[str, str]) -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    for name in ClientSettings.model_fields:
        key = ENV_PREFIX + name.upper()
        if key in environ:
            overrides[name] = environ[key]
    log: dict[str, Any] = {}
    for name in LogSection.model_fields:
        key = f"{ENV_PREFIX}LOG_{name.upper()}"
        if key in environ:
            log[name] = environ[key]
    if log:
        overrides["log"] = log
    return overrides


def load_settings(
    base_path: Path | None = None,
    env_path: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> ClientSettings:
    """設定を読み込んで ClientSettings を返す。

    base_path: ベース設定ファイルパス（省略時はデフォルト値のみ）
    env_path: 環境別設定ファイルパス（オプション）。存在する場合はベースにマージ。
    environ: K1S0_NAKADI_ で始まる環境変数による上書き（省略時は os.environ）。
    """
    data: dict[str, Any] = {}
    if base_path is not None:
        data = _read_yaml(base_path)
    if env_path is not None and env_path.exists():
        data = _deep_merge(data, _read_yaml(env_path))
    data = _deep_merge(data, _env_overrides(os.environ if environ is None else environ))
    try:
        return ClientSettings.model_validate(data)
    except ValidationError as e:
        raise NakadiClientError(
            code=NakadiClientErrorCodes.VALIDATION,
            message=f"Settings validation failed: {e}",
            cause=e,
        ) from e
