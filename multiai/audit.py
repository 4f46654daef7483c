"""Best-effort audit trail of prompts and results."""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path

logger = logging.getLogger(__name__)


@dataclass
class AuditEntry:
    prompt: str
    result: str
    model_id: str
    owner: str | None
    recorded_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())


class AuditSink(ABC):
    @abstractmethod
    async def record(self, entry: AuditEntry) -> None:
        ...


class JsonlAuditSink(AuditSink):
    """Append one JSON object per line to a local file."""

    def __init__(self, path: Path) -> None:
        self._path = path
        self._lock = asyncio.Lock()

    async def record(self, entry: AuditEntry) -> None:
        line = json.dumps(asdict(entry), ensure_ascii=False)
        async with self._lock:
            await asyncio.to_thread(self._append, line)

    def _append(self, line: str) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with self._path.open("a", encoding="utf-8") as f:
            f.write(line + "\n")
