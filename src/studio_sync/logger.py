"""Logging setup for the MCP server and command-line use.

In MCP mode stdout carries JSON-RPC, so log records go to a file and
never to a stream.  In CLI mode they go to stderr, optionally also to a
file.  The ``logging`` section of the YAML config is layered on top after
the config has been loaded (see ``apply_logging_section``).
"""

import json
import logging
import os
import sys

DEFAULT_LOG_FILE = "/tmp/studio-sync.log"
_DATEFMT = "%Y-%m-%d %H:%M:%S"
_NAMED_FORMAT = "[%(asctime)s] [%(levelname)s] %(name)s %(message)s"
_SHORT_FORMAT = "[%(asctime)s] [%(levelname)s] %(message)s"

# Loggers that are noisy at INFO; raised to WARNING unless debugging.
_QUIET_LOGGERS = ("urllib3", "requests", "charset_normalizer", "mcp")


class JsonFormatter(logging.Formatter):
    """Single-line JSON formatter for structured debug output.

    Produces one JSON object per log record with fields: ts, level, logger, msg.
    Exception info is included as an "exc" field when present.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def make_formatter(log_format: str = "text", with_name: bool = True) -> logging.Formatter:
    if log_format == "json":
        return JsonFormatter(datefmt=_DATEFMT)
    return logging.Formatter(
        _NAMED_FORMAT if with_name else _SHORT_FORMAT, datefmt=_DATEFMT
    )


def _resolve_level(mode: str, debug: bool) -> int:
    if debug:
        return logging.DEBUG
    default_level = "WARNING" if mode == "mcp" else "INFO"
    env_level = os.getenv("LOG_LEVEL", default_level).upper()
    return getattr(logging, env_level, logging.INFO)


def _quiet_dependencies(level: int) -> None:
    if level != logging.DEBUG:
        for name in _QUIET_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)


def setup_logging(
    mode: str = "cli",
    debug: bool = False,
    log_file: str | None = None,
    debug_format: str = "text",
) -> None:
    """
    Configure logging based on execution mode.

    Args:
        mode: "mcp" for file logging (never stdout), "cli" for stderr logging.
        debug: If True, overrides LOG_LEVEL to DEBUG.
        log_file: Custom log file path (overrides LOG_FILE env var).
        debug_format: "text" (default) or "json" for structured output.

    Environment variables:
        LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR).
                   Default: WARNING for MCP mode, INFO for CLI mode.
        LOG_FILE: Custom log file path for MCP mode.
                  Default: /tmp/studio-sync.log
    """
    log_level = _resolve_level(mode, debug)

    if mode == "mcp":
        final_log_file = log_file or os.getenv("LOG_FILE", DEFAULT_LOG_FILE)
        if debug_format == "json":
            handler = logging.FileHandler(final_log_file, mode="a")
            handler.setFormatter(make_formatter("json"))
            logging.basicConfig(level=log_level, handlers=[handler])
        else:
            logging.basicConfig(
                level=log_level,
                format=_NAMED_FORMAT,
                datefmt=_DATEFMT,
                filename=final_log_file,
                filemode="a",
            )
    else:
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setFormatter(make_formatter(debug_format, with_name=False))
        handlers: list[logging.Handler] = [stderr_handler]
        if log_file:
            file_handler = logging.FileHandler(log_file, mode="a")
            file_handler.setFormatter(make_formatter(debug_format))
            handlers.append(file_handler)
        logging.basicConfig(level=log_level, handlers=handlers)

    _quiet_dependencies(log_level)


def apply_logging_section(
    level: str, log_file: str | None = None, debug: bool = False
) -> None:
    """Layer the YAML ``logging`` section over ``setup_logging()``.

    ``--debug`` and ``LOG_LEVEL`` win over *level*.  *log_file* is added
    as a second destination; the one chosen by ``setup_logging()`` stays.
    """
    root = logging.getLogger()
    if debug:
        root.setLevel(logging.DEBUG)
    elif os.getenv("LOG_LEVEL") is None:
        root.setLevel(getattr(logging, level.upper(), logging.INFO))

    if log_file:
        handler = logging.FileHandler(log_file, mode="a")
        handler.setFormatter(make_formatter())
        root.addHandler(handler)
    _quiet_dependencies(root.level)
