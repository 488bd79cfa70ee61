"""Logging configuration for the engagement service.

Two output modes, selected by LOG_JSON:

  _ContainerFormatter  single human-readable line per record, for local dev.
                       Lines logged while serving a request carry
                       ``req=<id>``, so the interleaved per-subject lines
                       of one bulk call can be grepped together.
                       WARNING and above get a [file:line] suffix.

  _JsonFormatter       one JSON object per line for log aggregation.
                       Besides the request fields from the middleware,
                       the cache-aside pipeline attaches subject_id,
                       cache_key, keys_count, upstream_status, error_kind
                       and the bulk requested/processed counts; these are
                       lifted into top-level keys so a single subject or
                       a failing upstream can be filtered on.

Modules log through ``logging.getLogger(__name__)`` and attach context via
``extra``; nothing else in the package touches handlers.
"""

from __future__ import annotations

import json
import logging
import sys


class _ContainerFormatter(logging.Formatter):
    _BASE_FMT = "%(asctime)s %(levelname)-8s %(name)s  %(message)s"
    _LOC_SUFFIX = "  [%(filename)s:%(lineno)d]"

    def __init__(self) -> None:
        super().__init__(datefmt="%Y-%m-%dT%H:%M:%S%z")

    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:
        base = super().formatTime(record, datefmt)
        ms = int(record.msecs)
        # .NNN goes before the +0000 offset
        return f"{base[:-5]}.{ms:03d}{base[-5:]}"

    def format(self, record: logging.LogRecord) -> str:
        fmt = self._BASE_FMT
        request_id = getattr(record, "request_id", None)
        if request_id and request_id != "-":
            # "-" is the filter default outside a request
            fmt += "  req=" + str(request_id).replace("%", "%%")
        if record.levelno >= logging.WARNING:
            fmt += self._LOC_SUFFIX
        self._style._fmt = fmt
        return super().format(record)


class _JsonFormatter(logging.Formatter):
    """JSON Lines formatter.

    Only the fields listed in _CONTEXT_FIELDS are lifted from the record;
    anything else passed in ``extra`` stays out of the output.
    """

    _CONTEXT_FIELDS = (
        # request scope (RequestContextMiddleware)
        "request_id",
        "method",
        "path",
        "status_code",
        "duration_ms",
        # pipeline scope
        "subject_id",
        "cache_key",
        "keys_count",
        "requested",
        "processed",
        "upstream_status",
        "error_kind",
        "error",
    )

    def __init__(self) -> None:
        super().__init__(datefmt="%Y-%m-%dT%H:%M:%S%z")

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, object] = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for key in self._CONTEXT_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                log_entry[key] = value

        if record.exc_info and record.exc_info[0] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


def setup_logging(level_name: str, *, json_format: bool = False) -> None:
    """Send everything to stdout with the selected formatter.

    Args:
        level_name: debug/info/warning/error
        json_format: emit JSON lines instead of the human-readable format
    """
    level = getattr(logging, level_name.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(_JsonFormatter() if json_format else _ContainerFormatter())

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()
    root.addHandler(handler)

    # httpx logs every request at INFO
    for name in ("uvicorn", "uvicorn.access", "uvicorn.error", "httpcore", "httpx"):
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
