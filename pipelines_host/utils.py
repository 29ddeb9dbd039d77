"""
================================================================================
FILE: pipelines_host/utils.py
================================================================================

PURPOSE:
Shared utility functions used across the host. Includes request ID handling,
logging setup, and small file/path helpers.

WORKFLOW:
1. SECTION 1: Request ID utilities - generation + per-request context
2. SECTION 2: Logging - console handler, text/json formatter, request ID filter
3. SECTION 3: File utilities - identifier derivation, atomic writes

KEY FACTS:
- No imports from pipelines_host modules (prevents circular dependencies)
- Request ID travels through a ContextVar, so log records emitted from
  worker threads started with asyncio.to_thread still carry it
"""
#================================================================================
#IMPORTS
#================================================================================

import contextvars
import json
import logging
import os
import re
import sys
import tempfile
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Any, Union

logger = logging.getLogger(__name__)

# ============================================================================
# SECTION 1: REQUEST ID UTILITIES
# ============================================================================

_request_id_var: contextvars.ContextVar[str] = contextvars.ContextVar(
    "request_id", default="-"
)


def generate_request_id() -> str:
    """Generate unique request ID (UUID v4)."""
    return str(uuid.uuid4())


def set_request_id(request_id: str) -> contextvars.Token:
    """Bind request ID to the current context; returns a reset token."""
    return _request_id_var.set(request_id)


def reset_request_id(token: contextvars.Token) -> None:
    _request_id_var.reset(token)


def get_request_id() -> str:
    return _request_id_var.get()


# ============================================================================
# SECTION 2: LOGGING
# ============================================================================

class RequestIdFilter(logging.Filter):
    """Attach the current request ID to every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = get_request_id()
        return True


class JsonFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "request_id": getattr(record, "request_id", "-"),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        if record.exc_info:
            log_entry["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(log_entry, default=str)


TEXT_LOG_FORMAT = "%(asctime)s [%(levelname)s] [%(request_id)s] %(name)s - %(message)s"


def setup_logging(level: str = "INFO", log_format: str = "text") -> None:
    """
    Configure root logging with a single console handler.

    Clears existing handlers so repeated calls (tests, reloads) honor the
    new level/format instead of stacking handlers.

    Args:
        level: DEBUG/INFO/WARNING/ERROR/CRITICAL
        log_format: "text" or "json"
    """
    root = logging.getLogger()
    root.setLevel(level)

    for h in list(root.handlers):
        root.removeHandler(h)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.addFilter(RequestIdFilter())
    if log_format == "json":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter(TEXT_LOG_FORMAT))

    root.addHandler(handler)
    logger.debug(f"Logging configured: level={level}, format={log_format}")


# ============================================================================
# SECTION 3: FILE UTILITIES
# ============================================================================

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_\-]*$")


def identifier_from_filename(filename: Union[str, Path]) -> str:
    """Pipeline identifier = file name without its extension."""
    return Path(filename).stem


def is_valid_identifier(identifier: str) -> bool:
    """
    Identifiers double as file names and sys.modules suffixes, so path
    separators, dots and leading digits are rejected.
    """
    return bool(identifier) and bool(_IDENTIFIER_RE.match(identifier))


def atomic_write_bytes(path: Path, data: bytes) -> None:
    """
    Write data next to path, then rename over it.

    Readers (the scanner) never see a half-written pipeline source.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=str(path.parent), prefix=".tmp-", suffix=path.suffix + ".part")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        os.replace(tmp_name, path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise


def safe_json_dumps(data: Any, indent: Optional[int] = None) -> str:
    """JSON-encode data, falling back to str() for unknown types."""
    return json.dumps(data, default=str, indent=indent)
