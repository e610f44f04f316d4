"""Structured logging setup.

All modules log through ``structlog.get_logger()`` with keyword
arguments; this module wires structlog onto the stdlib logging
machinery once per process.
"""

import logging
import sys

import structlog


def configure_logging(level: str = "INFO", json_logs: bool = True, stream=None) -> None:
    """Configure structlog and the root stdlib logger.

    Args:
        level: Log level name, e.g. "INFO".
        json_logs: Render JSON lines when true, colored console output otherwise.
        stream: Output stream, stdout by default. The stdio MCP bridge
            passes stderr because stdout carries the protocol.
    """
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(message)s",
        stream=stream or sys.stdout,
        force=True,
    )

    renderer = (
        structlog.processors.JSONRenderer()
        if json_logs
        else structlog.dev.ConsoleRenderer()
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
