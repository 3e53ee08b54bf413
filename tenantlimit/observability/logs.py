"""Structured logging to a text stream, one JSON object per line."""

from __future__ import annotations

import json
import sys
import threading
from collections.abc import Mapping
from datetime import datetime
from typing import Any, Protocol, TextIO, runtime_checkable


@runtime_checkable
class Logger(Protocol):
    """Structured logging hooks."""

    def info(self, msg: str, fields: Mapping[str, Any] | None = None) -> None:
        """Log an informational message."""

    def error(self, msg: str, fields: Mapping[str, Any] | None = None) -> None:
        """Log an error message."""


class StdLogger:
    """Writes timestamped JSON log lines to a stream (standard error by default)."""

    def __init__(self, stream: TextIO | None = None) -> None:
        self._stream = stream if stream is not None else sys.stderr
        self._lock = threading.Lock()

    def info(self, msg: str, fields: Mapping[str, Any] | None = None) -> None:
        self._log("info", msg, fields)

    def error(self, msg: str, fields: Mapping[str, Any] | None = None) -> None:
        self._log("error", msg, fields)

    def _log(self, level: str, msg: str, fields: Mapping[str, Any] | None) -> None:
        payload: dict[str, Any] = {"level": level, "msg": msg}
        if fields:
            payload.update(fields)
        try:
            body = json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
        except (TypeError, ValueError):
            body = msg
        stamp = datetime.now().strftime("%Y/%m/%d %H:%M:%S")
        with self._lock:
            self._stream.write(f"{stamp} {body}\n")
            self._stream.flush()