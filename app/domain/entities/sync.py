from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


SYNC_TYPE_TRADES = "trades"
SYNC_TYPE_LP_POSITIONS = "lp_positions"

SYNC_STATE_FRESH = "fresh"
SYNC_STATE_SYNCED = "synced"
SYNC_STATE_CAUGHT_UP = "caught_up"
SYNC_STATE_DEGRADED = "degraded"


@dataclass(frozen=True)
class SyncStatus:
    chain: str
    pool_address: str
    sync_type: str
    last_block: int | None
    updated_at: datetime

    def is_fresh(self, *, now: datetime, threshold_seconds: float) -> bool:
        return (now - self.updated_at).total_seconds() < threshold_seconds


@dataclass(frozen=True)
class SyncOutcome:
    state: str
    fetched: int = 0
    stored: int = 0
    error: str | None = None

    @property
    def failed(self) -> bool:
        return self.state == SYNC_STATE_DEGRADED
