"""Root logging setup for hosts and the replay CLI.

Stdlib logging only. Orchestrator modules log job context through ``extra``
(``slot``, ``job_kind``, ``source`` ...); both formatters below surface it.
"""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path

from mediaprogress.core.paths import get_app_state_dir

CONTEXT_KEYS = ("slot", "job_kind", "source", "phase", "action", "event")
LOG_FILE_NAME = "progress.log"
_TRUE = {"1", "true", "yes", "on"}


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in _TRUE


def _context(record: logging.LogRecord) -> dict[str, object]:
    return {key: getattr(record, key) for key in CONTEXT_KEYS if hasattr(record, key)}


class _JsonFormatter(logging.Formatter):
    """One JSON object per line; job context keys are copied to the top level."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, object] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            **_context(record),
        }
        if record.exc_info:
            entry["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class _ContextFormatter(logging.Formatter):
    """Plain text with a trailing ``[slot=... job_kind=...]`` block when context is present."""

    def __init__(self, datefmt: str) -> None:
        super().__init__(fmt="%(asctime)s | %(levelname)s | %(name)s | %(message)s", datefmt=datefmt)

    def format(self, record: logging.LogRecord) -> str:
        text = super().format(record)
        ctx = _context(record)
        if not ctx:
            return text
        tail = " ".join(f"{k}={v}" for k, v in ctx.items())
        first, sep, rest = text.partition("\n")
        return f"{first} [{tail}]{sep}{rest}"


def _file_handler(state_dir: Path | None) -> logging.Handler | None:
    try:
        logs_dir = (state_dir or get_app_state_dir()) / "logs"
        logs_dir.mkdir(parents=True, exist_ok=True)
        handler = RotatingFileHandler(
            logs_dir / LOG_FILE_NAME,
            maxBytes=2 * 1024 * 1024,
            backupCount=3,
            encoding="utf-8",
        )
    except OSError:
        return None
    # Shared log files stay human readable.
    handler.setFormatter(_ContextFormatter("%Y-%m-%d %H:%M:%S"))
    return handler


def setup_logging(
    *,
    level: str | int | None = None,
    json_logs: bool | None = None,
    log_to_file: bool | None = None,
    state_dir: Path | None = None,
) -> None:
    """Replace the root handlers with a stdout handler and, optionally, a rotating file.

    Unset arguments fall back to the environment: ``LOG_LEVEL`` (default INFO),
    ``LOG_JSON`` (default off) and ``LOG_FILE`` (default on).
    """
    raw_level = level if level is not None else os.getenv("LOG_LEVEL", "INFO")
    numeric = raw_level if isinstance(raw_level, int) else getattr(logging, str(raw_level).upper(), logging.INFO)
    if json_logs is None:
        json_logs = _env_flag("LOG_JSON", "0")
    if log_to_file is None:
        log_to_file = _env_flag("LOG_FILE", "1")

    console = logging.StreamHandler(stream=sys.stdout)
    console.setFormatter(_JsonFormatter() if json_logs else _ContextFormatter("%H:%M:%S"))
    handlers: list[logging.Handler] = [console]
    if log_to_file:
        file_handler = _file_handler(state_dir)
        if file_handler is not None:
            handlers.append(file_handler)

    root = logging.getLogger()
    root.handlers.clear()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(int(numeric))
