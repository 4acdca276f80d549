"""Structured audit logging.

Exactly one JSONL event is written per tool invocation. Events never contain credentials or
argument values other than the target project/repository.
"""

from __future__ import annotations

import json
import sys
import time
import uuid
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

OUTCOME_SUCCEEDED = "succeeded"
OUTCOME_DENIED = "denied"
OUTCOME_FAILED = "failed"


def new_correlation_id() -> str:
    """Random id tying an audit event to the error envelope returned to the agent."""
    return uuid.uuid4().hex


def _now_rfc3339() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass(frozen=True, slots=True)
class AuditEvent:
    """A single audit event."""

    timestamp: str
    correlation_id: str
    operation: str
    target: str
    outcome: str
    error_code: str | None
    reason: str | None
    duration_ms: int | None

    def to_json(self) -> str:
        payload: dict[str, Any] = {k: v for k, v in asdict(self).items() if v is not None}
        return json.dumps(payload, sort_keys=True, separators=(",", ":"))


class AuditLogger:
    """Writes audit events as JSONL to stderr and optionally to a size-rotated file."""

    def __init__(
        self,
        *,
        sink_path: Path | None,
        max_bytes: int = 5 * 1024 * 1024,
        max_backups: int = 2,
    ) -> None:
        self._sink_path = sink_path
        self._max_bytes = max_bytes
        self._max_backups = max_backups

    def _backup(self, index: int) -> Path:
        return Path(f"{self._sink_path}.{index}")

    def _rotate_if_needed(self) -> None:
        sink = self._sink_path
        if sink is None or not sink.exists() or sink.stat().st_size < self._max_bytes:
            return
        if self._max_backups <= 0:
            sink.write_text("", encoding="utf-8")
            return
        # audit.jsonl -> .1 -> .2 ...; the oldest backup falls off.
        self._backup(self._max_backups).unlink(missing_ok=True)
        for i in range(self._max_backups - 1, 0, -1):
            if self._backup(i).exists():
                self._backup(i).replace(self._backup(i + 1))
        sink.replace(self._backup(1))

    def write_event(self, event: AuditEvent) -> None:
        """Emit to stderr, then append to the file sink (sink I/O errors never fail a tool call)."""
        line = event.to_json()
        print(line, file=sys.stderr)
        if self._sink_path is None:
            return
        try:
            self._sink_path.parent.mkdir(parents=True, exist_ok=True)
            self._rotate_if_needed()
            with self._sink_path.open("a", encoding="utf-8") as f:
                f.write(line + "\n")
        except OSError:  # pragma: no cover
            return

    def measure_start(self) -> float:
        return time.monotonic()

    def measure_duration_ms(self, start: float) -> int:
        return int((time.monotonic() - start) * 1000)


def build_event(
    *,
    correlation_id: str,
    operation: str,
    target: str,
    outcome: str,
    error_code: str | None = None,
    reason: str | None = None,
    duration_ms: int | None = None,
) -> AuditEvent:
    """Construct an audit event stamped with the current UTC time."""
    return AuditEvent(
        timestamp=_now_rfc3339(),
        correlation_id=correlation_id,
        operation=operation,
        target=target,
        outcome=outcome,
        error_code=error_code,
        reason=reason,
        duration_ms=duration_ms,
    )
