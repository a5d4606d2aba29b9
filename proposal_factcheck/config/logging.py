"""Logging configuration for loguru and structlog with automatic dev/prod detection.

Orchestration, LLM client and CLI code log through loguru (``get_logger``);
retrieval and verification components log through structlog
(``structlog.get_logger().bind(component=...)``). ``configure_logging`` sets up both
from the same Settings so their output agrees.
"""

import sys

import structlog
from loguru import logger
from structlog.contextvars import merge_contextvars
from structlog.processors import JSONRenderer

from proposal_factcheck.config.settings import Settings


def configure_logging(settings: Settings) -> None:
    """
    Configure loguru and structlog based on the run settings.

    Behavior:
    - Development (TTY + console format): Colorized, human-readable output
    - Production (non-TTY or json format): JSON-structured logs
    - Respects log_level from settings
    """
    logger.remove()

    is_tty = sys.stderr.isatty()
    use_console_format = settings.log_format.lower() == "console"
    level = settings.log_level.upper()

    if is_tty and use_console_format:
        logger.add(
            sys.stderr,
            format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{extra[component]}</cyan> | <level>{message}</level>",
            level=level,
            colorize=True,
        )
    else:
        logger.add(
            sys.stderr,
            format="{message}",
            level=level,
            serialize=True,
            diagnose=False,
        )

    processors = [
        merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    if is_tty and use_console_format:
        processors.append(
            structlog.dev.ConsoleRenderer(
                colors=True,
                exception_formatter=structlog.dev.plain_traceback,
            )
        )
    else:
        processors.append(JSONRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


def get_logger(component: str):
    """
    Get a loguru logger bound to a specific component name.

    Args:
        component: Component/module name for log context

    Returns:
        Logger instance with component context

    Example:
        >>> log = get_logger("orchestration.sequencer")
        >>> log.info("Stage started")
    """
    return logger.bind(component=component)


__all__ = ["logger", "get_logger", "configure_logging"]
