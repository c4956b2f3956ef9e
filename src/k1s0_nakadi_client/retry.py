"""パーティション単位の再接続バジェット"""

from __future__ import annotations

import time
from collections import deque
from collections.abc import Callable


class RetryBudget:
    """スライディングウィンドウ内の失敗回数で再接続可否を判定する。

    ウィンドウ内の失敗数が max_retries に達した時点で使い切りとなり、
    以後は再接続しない。
    """

    def __init__(
        self,
        max_retries: int = 100,
        window_seconds: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_retries = max_retries
        self.window_seconds = window_seconds
        self._clock = clock
        self._failures: deque[float] = deque()
        self._exhausted = False

    @property
    def exhausted(self) -> bool:
        return self._exhausted

    @property
    def failures_in_window(self) -> int:
        self._evict(self._clock())
        return len(self._failures)

    def _evict(self, now: float) -> None:
        while self._failures and now - self._failures[0] >= self.window_seconds:
            self._failures.popleft()

    def record_failure(self) -> bool:
        """失敗を記録し、再接続してよければ True を返す。"""
        if self._exhausted:
            return False
        now = self._clock()
        self._evict(now)
        self._failures.append(now)
        if len(self._failures) >= self.max_retries:
            self._exhausted = True
            return False
        return True
