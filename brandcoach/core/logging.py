"""
Structured logging configuration using structlog.

Console output is colored in debug mode and JSON otherwise; the same lines
go to one file per run under settings.log_dir. Request handlers bind
user_id and category so every event of a coaching turn carries them.
Provider credentials never reach a log line.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Any, List, MutableMapping, Optional

import structlog
from structlog.typing import Processor

from brandcoach.core.config import settings

LOG_FILE_PREFIX = "brandcoach_"

SECRET_KEYS = frozenset({"api_key", "x-api-key", "authorization", "anthropic_api_key", "deepseek_api_key"})


def redact_secrets(
    logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """Mask values bound under credential-like keys."""
    for key in list(event_dict):
        if key.lower() in SECRET_KEYS and event_dict[key]:
            event_dict[key] = "***"
    return event_dict


def _rotate_run_logs(log_dir: Path, keep: int) -> None:
    """Remove older run logs so that, with the new one, `keep` remain."""
    runs = sorted(log_dir.glob(f"{LOG_FILE_PREFIX}*.log"), key=lambda p: p.stat().st_mtime)
    stale = runs[: max(len(runs) - (keep - 1), 0)]
    for path in stale:
        try:
            path.unlink()
        except OSError:
            # Held open by a concurrent run
            continue


def configure_logging(log_dir: Optional[Path] = None, level: Optional[str] = None) -> Path:
    """Configure structlog and the stdlib root logger.

    Call once at startup; calling again replaces the handlers.

    Args:
        log_dir: Override settings.log_dir
        level: Override settings.log_level

    Returns:
        Path of this run's log file
    """
    log_dir = Path(log_dir or settings.log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    _rotate_run_logs(log_dir, keep=settings.log_runs_to_keep)
    log_file = log_dir / f"{LOG_FILE_PREFIX}{datetime.now():%Y%m%d_%H%M%S}.log"

    numeric_level = logging.getLevelName((level or settings.log_level).upper())
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO

    processors: List[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        redact_secrets,
    ]
    if settings.debug:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))
    else:
        processors += [structlog.processors.dict_tracebacks, structlog.processors.JSONRenderer()]

    root = logging.getLogger()
    for handler in list(root.handlers):
        handler.close()
        root.removeHandler(handler)
    root.setLevel(numeric_level)

    plain = logging.Formatter("%(message)s")
    for handler in (logging.StreamHandler(), logging.FileHandler(log_file, mode="w")):
        handler.setFormatter(plain)
        root.addHandler(handler)

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    return log_file


def get_logger(name: str) -> structlog.BoundLogger:
    """
    Get a logger instance with the given name.

    Usage:
        log = get_logger(__name__)
        log.info("turn_completed", category="persona")
    """
    return structlog.get_logger(name)


def bind_context(**kwargs) -> None:
    """Bind values to every subsequent log line of the current context."""
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()
