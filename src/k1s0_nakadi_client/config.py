"""クライアント設定（ビルダーが生成する不変オブジェクト）"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field

import httpx

from .serializer import Serializer
from .settings import ClientSettings

TokenProvider = Callable[[], str]


@dataclass(frozen=True)
class ClientConfig:
    """検証済みのクライアント設定。"""

    endpoint: str
    port: int
    token_provider: TokenProvider = field(repr=False)
    serializer: Serializer = field(repr=False)
    secured_connection: bool = False
    settings: ClientSettings = field(default_factory=ClientSettings)

    @property
    def base_url(self) -> str:
        """エンドポイントのホストとポートから接続先 URL を組み立てる。"""
        raw = self.endpoint if "://" in self.endpoint else f"//{self.endpoint}"
        url = httpx.URL(raw)
        scheme = "https" if self.secured_connection else "http"
        host = f"[{url.host}]" if ":" in url.host else url.host
        path = url.path.rstrip("/")
        return f"{scheme}://{host}:{self.port}{path}"

    def auth_headers(self) -> dict[str, str]:
        """トークンプロバイダーから Authorization ヘッダーを生成する。"""
        return {"Authorization": f"Bearer {self.token_provider()}"}
