"""Logging setup shared by the API server and the CLI."""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone

from semantic_uq.core.config import settings

# Attributes the engine and gateway attach through ``extra=``
CONTEXT_FIELDS = ("analysis_id", "request_id", "provider")

TEXT_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"


class JSONFormatter(logging.Formatter):
    """One JSON object per line, with any context fields present on the record."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        for name in CONTEXT_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                entry[name] = value
        if record.exc_info and record.exc_info[1]:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False)


def setup_logging(level: str | None = None, json_output: bool | None = None, stream=None) -> None:
    """Install a single stream handler on the root logger.

    Args:
        level: Level name; defaults to ``settings.log_level``.
        json_output: Emit JSON lines; defaults to ``settings.log_json``.
        stream: Output stream; defaults to stdout.
    """
    level_no = getattr(logging, (level or settings.log_level).upper(), logging.INFO)
    use_json = settings.log_json if json_output is None else json_output

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(JSONFormatter() if use_json else logging.Formatter(TEXT_FORMAT, datefmt="%H:%M:%S"))

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(level_no)

    # Per-request transport chatter
    for name in ("httpx", "httpcore"):
        logging.getLogger(name).setLevel(logging.WARNING)
