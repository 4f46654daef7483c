"""Per-model health advisory store: last-write-wins upserts with freshness and cooldown windows."""

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from config.config_loader import HealthConfig
from multiai.models import HealthRecord

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class HealthAdvisoryStore:
    """In-memory health cache shared by gateways, health checks and the UI.

    Subclass and override ``upsert``/``get``/``snapshot`` to back it with an
    external table; the TTL logic stays here.
    """

    def __init__(
        self,
        cooldown: timedelta = timedelta(minutes=30),
        freshness: timedelta = timedelta(minutes=10),
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.cooldown = cooldown
        self.freshness = freshness
        self._clock = clock
        self._records: dict[str, HealthRecord] = {}
        self._lock = asyncio.Lock()

    @classmethod
    def from_config(cls, health: HealthConfig) -> "HealthAdvisoryStore":
        return cls(
            cooldown=timedelta(minutes=health.cooldown_min),
            freshness=timedelta(minutes=health.freshness_min),
        )

    def now(self) -> datetime:
        return self._clock()

    async def upsert(self, record: HealthRecord) -> None:
        async with self._lock:
            self._records[record.model_id] = record

    async def record(self, model_id: str, is_available: bool, error_message: str | None = None) -> None:
        await self.upsert(HealthRecord(model_id, is_available, self.now(), error_message))

    def get(self, model_id: str) -> HealthRecord | None:
        return self._records.get(model_id)

    def snapshot(self) -> dict[str, HealthRecord]:
        return dict(self._records)

    def in_cooldown(self, model_id: str) -> bool:
        """True while a model marked unavailable is inside its cooldown window."""
        rec = self.get(model_id)
        if rec is None or rec.is_available:
            return False
        return self.now() - rec.checked_at < self.cooldown

    def is_available(self, model_id: str) -> bool | None:
        """Fresh availability, or None when there is no fresh data (assume available)."""
        rec = self.get(model_id)
        if rec is None or self.now() - rec.checked_at > self.freshness:
            return None
        return rec.is_available

    def last_checked(self) -> datetime | None:
        records = self.snapshot()
        if not records:
            return None
        return max(r.checked_at for r in records.values())
