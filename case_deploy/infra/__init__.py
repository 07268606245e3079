"""
Infrastructure package.

Logging setup shared by the CLI and every component.
"""

from case_deploy.infra.logging_cfg import (
    LOGGER_NAME,
    BackgroundFileHandler,
    JsonFormatter,
    ThrottledFilter,
    build_logger,
    flush_logger,
    log_event,
    parse_level,
)

__all__ = [
    "LOGGER_NAME",
    "BackgroundFileHandler",
    "JsonFormatter",
    "ThrottledFilter",
    "build_logger",
    "flush_logger",
    "log_event",
    "parse_level",
]
