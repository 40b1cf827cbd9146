"""Per-request audit trail: JSON lines, rotated daily by event timestamp."""

from __future__ import annotations

import hashlib
import json
import logging
import time
import uuid
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path

from .models import ChatMessage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuditEvent:
    request_id: str
    ts_ms: int
    path: str
    variant: str
    status_code: int
    latency_ms: int
    message_count: int = 0
    ping: bool = False
    conversation_sha256: str | None = None
    upstream_status: int | None = None
    error: str | None = None


class AuditLogger:
    def __init__(self, path: Path | None) -> None:
        self.path = path

    @property
    def enabled(self) -> bool:
        return self.path is not None

    def new_request_id(self) -> str:
        return uuid.uuid4().hex

    def _path_for_event(self, *, ts_ms: int) -> Path:
        assert self.path is not None
        day = datetime.fromtimestamp(ts_ms / 1000.0, tz=timezone.utc).strftime("%Y-%m-%d")
        return self.path.with_name(f"{self.path.stem}-{day}{self.path.suffix}")

    def write(self, ev: AuditEvent) -> None:
        """Append one event; a failing audit sink never fails the request."""
        if self.path is None:
            return
        line = json.dumps(asdict(ev), ensure_ascii=False)
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self._path_for_event(ts_ms=ev.ts_ms).open("a", encoding="utf-8") as f:
                f.write(line + "\n")
        except OSError:
            logger.exception("audit write failed for request %s", ev.request_id)


def now_ms() -> int:
    return int(time.time() * 1000)


def conversation_fingerprint(messages: list[ChatMessage]) -> str:
    joined = "\n".join(f"{m.role.upper()}: {m.content}" for m in messages)
    return hashlib.sha256(joined.encode("utf-8")).hexdigest()
