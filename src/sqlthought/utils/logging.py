import json
import structlog
import logging
import inspect
from typing import Any
from sqlthought.config import get_settings
from sqlthought.config_constants import LogFormat

# Module-level flag to prevent multiple configuration
_logging_configured = False

_LEVEL_COLORS = {
    'DEBUG': '\033[36m',    # Cyan
    'INFO': '\033[32m',     # Green
    'WARNING': '\033[33m',  # Yellow
    'ERROR': '\033[31m',    # Red
    'CRITICAL': '\033[35m', # Magenta
}
_RESET = '\033[0m'


def _add_module_info(logger: Any, method_name: str, event_dict: structlog.types.EventDict) -> structlog.types.EventDict:
    """
    Processor that adds a short `module` field next to the full logger name.

    Project loggers keep their last two dotted parts
    ("sqlthought.services.pipeline" -> "services.pipeline"); any other
    logger is reported under its full name.
    """
    logger_name = event_dict.get('logger', 'unknown')

    if logger_name.startswith("sqlthought."):
        event_dict['module'] = '.'.join(logger_name.split('.')[-2:])
    else:
        event_dict['module'] = logger_name

    return event_dict


def _json_renderer(logger: Any, method_name: str, event_dict: structlog.types.EventDict) -> str:
    """Render the event as indented JSON (non-serializable values fall back to str)."""
    return json.dumps(event_dict, indent=2, ensure_ascii=False, default=str)


def _console_renderer(logger: Any, method_name: str, event_dict: structlog.types.EventDict) -> str:
    """
    Single-line, colored renderer for local runs and the demo CLI.

    Format: "<timestamp> [LEVEL] module: event (trace: abcd1234) | key=value, ..."
    """
    level = event_dict.get('level', '').upper()
    trace_id = event_dict.get('trace_id') or ''

    line = (
        f"{event_dict.get('timestamp', '')} "
        f"{_LEVEL_COLORS.get(level, '')}[{level}]{_RESET} "
        f"{event_dict.get('module', '')}: {event_dict.get('event', '')}"
    )
    if trace_id:
        line += f" (trace: {trace_id[:8]})"

    skip_fields = {'timestamp', 'level', 'module', 'event', 'trace_id', 'logger'}
    extras = [f"{key}={value}" for key, value in event_dict.items() if key not in skip_fields]
    if extras:
        line += f" | {', '.join(extras)}"

    return line


def configure_logging() -> None:
    """Configure structured logging for the application (idempotent)."""

    global _logging_configured

    # ---- guard: run only once ----
    if _logging_configured:
        return
    _logging_configured = True

    settings = get_settings()

    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, settings.app.log_level.value),
        handlers=[logging.StreamHandler()]
    )

    renderer = _console_renderer if settings.app.log_format == LogFormat.CONSOLE else _json_renderer

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,  # Adds 'logger' field with module name
            structlog.stdlib.add_log_level,    # Adds 'level' field
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            _add_module_info,
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a configured logger instance.

    Args:
        name: Logger name, typically __name__

    Usage:
        logger = get_logger(__name__)
        logger.info("Correction attempt started", attempt=2, trace_id="abc-123")
    """
    return structlog.get_logger(name)


def get_module_logger() -> structlog.stdlib.BoundLogger:
    """
    Get a logger named after the calling module.

    Falls back to 'unknown' when frame inspection is unavailable.
    """
    module_name = 'unknown'
    frame = None

    try:
        frame = inspect.currentframe()
        if frame is not None and frame.f_back is not None:
            module_name = frame.f_back.f_globals.get('__name__', 'unknown')
    except (AttributeError, RuntimeError):
        # Frame inspection can fail in some environments (e.g., some REPL implementations)
        pass
    finally:
        # Drop the frame reference to avoid a reference cycle
        if frame is not None:
            del frame

    return get_logger(module_name)
