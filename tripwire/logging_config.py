"""Logging configuration for tripwire.

structlog events are rendered by stdlib handlers, so tripwire's own
events and third-party records (aiohttp) share one pipeline:

    root                 console
    tripwire             tripwire.log (every package event)
    tripwire.bot         bot.log
    tripwire.commands    commands.log
    tripwire.slack       slack.log

Files are written only when a Config is given. Every field of every
event is scrubbed of Slack credentials before it is rendered.

Key functions:
    setup_logging: Install (or reinstall) handlers and configure structlog.
    shutdown_logging: Detach and close the handlers setup_logging installed.
    scrub: Redact Slack credentials from a value, recursively.
"""

import logging
import logging.handlers
import re
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import structlog

SUBSYSTEMS = ("bot", "commands", "slack")

LOGGER_PREFIX = "tripwire"

REDACTED = "***REDACTED***"

# Event or payload keys whose values are always secret
_SECRET_KEYS = frozenset({
    "token", "bot_token", "app_token", "authorization", "client_secret", "signing_secret",
})

_SECRET_PATTERNS = (
    re.compile(r"xox[abposr]-[A-Za-z0-9-]{10,}"),
    re.compile(r"xapp-[A-Za-z0-9-]{10,}"),
    re.compile(r"Bearer\s+\S{20,}"),
    # Socket Mode websocket URLs carry a single-use ticket
    re.compile(r"(?<=[?&]ticket=)[^&\s]+"),
)

# (logger, handler) pairs owned by setup_logging
_installed: List[Tuple[logging.Logger, logging.Handler]] = []


def scrub(value: Any) -> Any:
    """Return ``value`` with Slack credentials redacted.

    Strings are matched against the token patterns. Dicts, lists and
    tuples are walked at any depth, so a raw Slack payload can be
    logged as-is; values under secret-looking keys are replaced whole.
    """
    if isinstance(value, str):
        for pattern in _SECRET_PATTERNS:
            value = pattern.sub(REDACTED, value)
        return value
    if isinstance(value, dict):
        return {
            k: REDACTED if _is_secret_key(k) and v else scrub(v)
            for k, v in value.items()
        }
    if isinstance(value, list):
        return [scrub(v) for v in value]
    if isinstance(value, tuple):
        return tuple(scrub(v) for v in value)
    return value


def _is_secret_key(key: Any) -> bool:
    return isinstance(key, str) and key.lower() in _SECRET_KEYS


def sanitize_secrets(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """structlog processor applying scrub() to the whole event."""
    return scrub(event_dict)


def _level(name: Optional[str], default: int) -> int:
    if not name:
        return default
    level = logging.getLevelName(str(name).upper())
    return level if isinstance(level, int) else default


def _formatter(colors: bool) -> structlog.stdlib.ProcessorFormatter:
    # foreign_pre_chain handles records that did not come from structlog
    return structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=[
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            sanitize_secrets,
        ],
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.dev.ConsoleRenderer(colors=colors),
        ],
    )


def _attach(owner: logging.Logger, handler: logging.Handler, level: int, formatter: logging.Formatter) -> None:
    handler.setLevel(level)
    handler.setFormatter(formatter)
    owner.addHandler(handler)
    _installed.append((owner, handler))


def shutdown_logging() -> None:
    """Detach and close every handler installed by setup_logging()."""
    while _installed:
        owner, handler = _installed.pop()
        owner.removeHandler(handler)
        handler.close()


def setup_logging(config=None) -> None:
    """Route tripwire logging to the console and, with a config, to files.

    May be called again (for example once without a config and once
    after the config has loaded); the previous handlers are replaced.
    Handlers installed on the root logger by anyone else are left alone.

    Args:
        config: Optional Config supplying ``log_dir``, ``logging_level``,
            ``logging_subsystem_levels``, ``logging_max_file_size_mb`` and
            ``logging_backup_count``. Without one, only the console
            handler is installed, at INFO.
    """
    shutdown_logging()

    level = _level(config.logging_level if config is not None else None, logging.INFO)
    overrides = config.logging_subsystem_levels if config is not None else {}
    sub_levels = {s: _level(overrides.get(s), level) for s in SUBSYSTEMS}

    package = logging.getLogger(LOGGER_PREFIX)
    package.setLevel(min(level, *sub_levels.values()))
    for subsystem, sub_level in sub_levels.items():
        logging.getLogger(f"{LOGGER_PREFIX}.{subsystem}").setLevel(sub_level)

    _attach(logging.getLogger(), logging.StreamHandler(sys.stdout), level, _formatter(colors=sys.stdout.isatty()))

    if config is not None:
        _attach_files(Path(config.log_dir), level, sub_levels, config)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            sanitize_secrets,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        # Not cached: setup_logging may run again after loggers exist
        cache_logger_on_first_use=False,
    )


def _attach_files(log_dir: Path, level: int, sub_levels: Dict[str, int], config) -> None:
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        logging.getLogger(LOGGER_PREFIX).warning(
            "cannot create log directory %s (%s); logging to console only", log_dir, e,
        )
        return

    max_bytes = config.logging_max_file_size_mb * 1024 * 1024
    formatter = _formatter(colors=False)

    def rotating(name: str) -> logging.Handler:
        return logging.handlers.RotatingFileHandler(
            log_dir / f"{name}.log",
            maxBytes=max_bytes,
            backupCount=config.logging_backup_count,
            encoding="utf-8",
        )

    _attach(logging.getLogger(LOGGER_PREFIX), rotating(LOGGER_PREFIX), level, formatter)
    for subsystem, sub_level in sub_levels.items():
        _attach(logging.getLogger(f"{LOGGER_PREFIX}.{subsystem}"), rotating(subsystem), sub_level, formatter)
