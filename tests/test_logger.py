"""ロギング設定のユニットテスト"""

from k1s0_nakadi_client.logger import LOGGER_NAME, configure_logging
from k1s0_nakadi_client.settings import LogSection


def test_configure_json_logging() -> None:
    """JSON フォーマットのロガーが作成できること。"""
    logger = configure_logging(LogSection(level="INFO", format="json"))
    assert logger is not None


def test_configure_text_logging() -> None:
    """テキストフォーマットのロガーが作成でき、bind できること。"""
    logger = configure_logging(LogSection(level="DEBUG", format="text"))
    assert logger.bind(topic="orders") is not None


def test_unknown_level_falls_back_to_info() -> None:
    """未知のログレベルでもロガーが作成できること。"""
    logger = configure_logging(LogSection(level="verbose"))
    assert logger is not None
    assert LOGGER_NAME == "k1s0_nakadi_client"
