import logging
import sys

import structlog

from .config import BaseAppSettings, settings


def configure_logging(app_settings: BaseAppSettings | None = None):
    """
    Configures structlog to output JSON in production
    and pretty-printed text everywhere else.
    """
    cfg = app_settings or settings

    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(
            fmt="iso" if cfg.log_format == "json" else "%H:%M:%S"
        ),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        structlog.processors.format_exc_info,
    ]

    renderer = (
        structlog.processors.JSONRenderer()
        if cfg.log_format == "json"
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=shared_processors + [renderer],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    # stdlib loggers (web3, uvicorn) go to stdout alongside structlog output.
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=cfg.log_level,
    )
    web3_level = max(logging.INFO, logging.getLevelName(cfg.log_level))
    logging.getLogger("web3").setLevel(web3_level)
