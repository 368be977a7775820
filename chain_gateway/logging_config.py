"""
Logging setup for stdlib logging and structlog
"""

import logging

import structlog


def configure_logging(level: str = "INFO", json_output: bool = False) -> None:
    """
    Configure stdlib logging and structlog once at startup

    Args:
        level: Log level name (DEBUG, INFO, ...)
        json_output: Render structlog events as JSON lines
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        raise ValueError(f"Unknown log level: {level}")

    logging.basicConfig(
        level=numeric_level,
        format='%(asctime)s %(name)s - %(levelname)s - %(message)s'
    )

    renderer = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer()
    )
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
