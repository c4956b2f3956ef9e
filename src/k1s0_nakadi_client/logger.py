"""structlog によるロギング設定"""

from __future__ import annotations

import logging
import sys

import structlog

from .settings import LogSection

LOGGER_NAME = "k1s0_nakadi_client"


def configure_logging(section: LogSection) -> structlog.stdlib.BoundLogger:
    """LogSection に従って structlog を設定し、クライアント用ロガーを返す。

    format が "json" の場合は JSON、"text" の場合はコンソール向けに出力する。
    """
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, section.level.upper(), logging.INFO),
    )
    renderer: structlog.types.Processor = (
        structlog.processors.JSONRenderer() if section.format == "json" else structlog.dev.ConsoleRenderer()
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_logger_name,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    return structlog.stdlib.get_logger(LOGGER_NAME)
