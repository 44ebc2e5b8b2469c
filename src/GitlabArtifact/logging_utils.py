"""Structured logging helpers shared across artifact processing components."""

from __future__ import annotations

import json
import logging
import sys
import uuid
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Dict, Optional

__all__ = [
    "LOGGER_NAME",
    "LOG_FILE_NAME",
    "JSONFormatter",
    "generate_correlation_id",
    "mask_sensitive_data",
    "setup_logging",
]

LOGGER_NAME = "GitlabArtifact"

_SENSITIVE_KEYS = {"authorization", "private-token", "private_token", "token", "secret", "password"}


def mask_sensitive_data(payload: Dict[str, object]) -> Dict[str, object]:
    """Return a copy of ``payload`` with credential-like fields masked.

    Examples:
        >>> mask_sensitive_data({"PRIVATE-TOKEN": "secret", "status": 200})
        {'PRIVATE-TOKEN': '***masked***', 'status': 200}
    """

    masked: Dict[str, object] = {}
    for key, value in payload.items():
        if str(key).lower() in _SENSITIVE_KEYS:
            masked[key] = "***masked***"
        elif isinstance(value, dict):
            masked[key] = mask_sensitive_data(value)
        else:
            masked[key] = value
    return masked


def generate_correlation_id() -> str:
    """Return a short identifier that links the log entries of one document run."""

    return uuid.uuid4().hex[:12]


_CONTEXT_FIELDS = ("correlation_id", "stage", "project_id", "job_name")
LOG_FILE_NAME = "gitlab-artifact.jsonl"


class JSONFormatter(logging.Formatter):
    """Emit one masked JSON object per record.

    Context attributes passed through ``extra`` are copied only when present,
    and ``extra_fields`` is merged at the top level.
    """

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, object] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc)
            .isoformat(timespec="milliseconds")
            .replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for name in _CONTEXT_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                payload[name] = value
        extra_fields = getattr(record, "extra_fields", None)
        if isinstance(extra_fields, dict):
            payload.update(extra_fields)
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(mask_sensitive_data(payload), default=str)


def setup_logging(
    *,
    level: str = "INFO",
    max_log_size_mb: int = 10,
    backup_count: int = 5,
    log_dir: Optional[Path] = None,
    propagate: bool = False,
) -> logging.Logger:
    """Configure the ``GitlabArtifact`` logger with console and optional JSON file output.

    The file handler writes ``gitlab-artifact.jsonl`` in ``log_dir`` and keeps
    ``backup_count`` rotated files of at most ``max_log_size_mb`` each; older
    output is discarded by the rotation itself.  Handlers installed by a
    previous call are replaced, so repeated setup in a long-running host
    pipeline does not duplicate output.
    """

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    for handler in list(logger.handlers):
        if getattr(handler, "_gitlab_artifact_managed", False):
            logger.removeHandler(handler)
            if isinstance(handler, logging.FileHandler):
                handler.close()

    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))
    stream_handler._gitlab_artifact_managed = True  # type: ignore[attr-defined]
    logger.addHandler(stream_handler)

    if log_dir is not None:
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_dir / LOG_FILE_NAME,
            maxBytes=int(max_log_size_mb * 1024 * 1024),
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setFormatter(JSONFormatter())
        file_handler._gitlab_artifact_managed = True  # type: ignore[attr-defined]
        logger.addHandler(file_handler)

    logger.propagate = propagate
    return logger
