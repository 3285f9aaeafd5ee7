from __future__ import annotations

import json
import os
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from doorkeeper.core.errors import redact


@dataclass(frozen=True)
class AccessAuditLogger:
    """Append-only JSONL trail of door decisions and provisioning. Never sees raw codes."""

    path: str = os.path.join("logs", "access.jsonl")
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def log(
        self,
        *,
        trace_id: str,
        event: str,
        outcome: str,
        target: Optional[str] = None,
        reason: str = "",
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        parent = os.path.dirname(self.path)
        if parent:
            os.makedirs(parent, exist_ok=True)
        payload = {
            "ts": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
            "trace_id": trace_id,
            "event": event,
            "outcome": outcome,
            "target": target,
            "reason": reason,
            "details": redact(details or {}),
        }
        line = json.dumps(payload, ensure_ascii=False)
        with self._lock:
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(line + "\n")
