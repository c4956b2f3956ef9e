"""nakadi クライアントの例外型定義"""

from __future__ import annotations


class NakadiClientError(Exception):
    """nakadi クライアントのエラー基底クラス。"""

    def __init__(
        self,
        code: str,
        message: str,
        cause: Exception | None = None,
        status: int | None = None,
        problem: object | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.status = status
        self.problem = problem
        if cause is not None:
            self.__cause__ = cause

    def __str__(self) -> str:
        return f"{self.code}: {super().__str__()}"


class NakadiClientErrorCodes:
    """NakadiClientError のエラーコード定数。"""

    INVALID_CONFIGURATION: str = "INVALID_CONFIGURATION"
    NOT_FOUND: str = "NOT_FOUND"
    HTTP_ERROR: str = "HTTP_ERROR"
    RETRY_BUDGET_EXHAUSTED: str = "RETRY_BUDGET_EXHAUSTED"
    SERIALIZATION_ERROR: str = "SERIALIZATION_ERROR"
    INVALID_EVENT: str = "INVALID_EVENT"
    READ_FILE: str = "READ_FILE_ERROR"
    PARSE_YAML: str = "PARSE_YAML_ERROR"
    VALIDATION: str = "VALIDATION_ERROR"


class InvalidConfigurationError(NakadiClientError):
    """ビルダーの設定値が不足または不正な場合のエラー。"""

    def __init__(self, field: str, message: str) -> None:
        super().__init__(code=NakadiClientErrorCodes.INVALID_CONFIGURATION, message=message)
        self.field = field
